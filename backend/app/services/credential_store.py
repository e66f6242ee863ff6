"""Credential store - repository operations over user records"""

from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime
from app.models.user import User
from app.schemas.user import UserRole
import logging

logger = logging.getLogger(__name__)


class CredentialStore:
    """Owns user rows; holds no password or token logic of its own"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)"""
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def email_exists(self, email: str) -> bool:
        return self.get_by_email(email) is not None

    def get_by_verification_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        return self.db.query(User).filter(User.email_verification_token == token).first()

    def get_by_valid_reset_token(self, token: str, now: Optional[datetime] = None) -> Optional[User]:
        """
        Find the user holding an unexpired reset token

        Args:
            token: Raw reset token from the email
            now: Reference time (defaults to current UTC)

        Returns:
            Matching user, or None when unknown, consumed or expired
        """
        if not token:
            return None
        now = now or datetime.utcnow()
        return (
            self.db.query(User)
            .filter(User.reset_token == token, User.reset_token_expiry > now)
            .first()
        )

    def create_user(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        password_hash: str,
        role: str = UserRole.USER.value,
        email_verified: bool = False,
        email_verification_token: Optional[str] = None,
    ) -> User:
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email.strip().lower(),
            password_hash=password_hash,
            role=role,
            is_active=True,
            email_verified=email_verified,
            email_verification_token=email_verification_token,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Created user id={user.id} (role: {user.role})")
        return user

    def save(self, user: User) -> User:
        """Commit pending attribute changes on a single user row"""
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def consume_verification_token(self, user: User, token: str) -> bool:
        """
        Mark the email verified and clear the token in one conditional UPDATE

        Returns:
            False if another request consumed the token first
        """
        updated = (
            self.db.query(User)
            .filter(User.id == user.id, User.email_verification_token == token)
            .update(
                {User.email_verified: True, User.email_verification_token: None},
                synchronize_session=False,
            )
        )
        self.db.commit()
        self.db.refresh(user)
        return updated == 1

    def consume_reset_token(
        self, user: User, token: str, password_hash: str, now: Optional[datetime] = None
    ) -> bool:
        """
        Replace the password hash and clear the reset token, at most once

        Returns:
            False if the token was already used or expired meanwhile
        """
        now = now or datetime.utcnow()
        updated = (
            self.db.query(User)
            .filter(
                User.id == user.id,
                User.reset_token == token,
                User.reset_token_expiry > now,
            )
            .update(
                {
                    User.password_hash: password_hash,
                    User.reset_token: None,
                    User.reset_token_expiry: None,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        self.db.refresh(user)
        return updated == 1

    def update_profile(
        self,
        user: User,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        user.first_name = first_name or user.first_name
        user.last_name = last_name or user.last_name
        return self.save(user)

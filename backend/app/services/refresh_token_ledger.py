"""Refresh token ledger: issuance, validation and revocation of sessions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import (
    RefreshTokenExpiredError,
    RefreshTokenNotFoundError,
    RefreshTokenRevokedError,
)
from app.core.security import generate_opaque_token
from app.models.security import RefreshToken
from app.models.user import User

logger = logging.getLogger(__name__)


class RefreshTokenLedger:
    """Persistent record of issued refresh tokens, one row per session."""

    def __init__(self, db: Session, *, ttl: timedelta = timedelta(days=7), token_bytes: int = 40) -> None:
        self.db = db
        self.ttl = ttl
        self.token_bytes = token_bytes

    @staticmethod
    def _naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
        return dt.replace(tzinfo=None) if dt and dt.tzinfo else dt

    def issue(
        self,
        user: User,
        *,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RefreshToken:
        now = now or datetime.utcnow()
        record = RefreshToken(
            token=generate_opaque_token(self.token_bytes),
            user_id=user.id,
            expiry_date=now + self.ttl,
            is_revoked=False,
            user_agent=user_agent[:512] if user_agent else None,
            ip_address=ip_address or None,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info("Issued refresh token id=%s for user_id=%s", record.id, user.id)
        return record

    def validate(self, token: str, now: Optional[datetime] = None) -> Tuple[User, RefreshToken]:
        """
        Resolve a refresh token to its owner.

        Raises:
            RefreshTokenNotFoundError: No such token
            RefreshTokenRevokedError: Token was revoked
            RefreshTokenExpiredError: Token is past its expiry date
        """
        now = now or datetime.utcnow()
        record = (
            self.db.query(RefreshToken)
            .options(joinedload(RefreshToken.user))
            .filter(RefreshToken.token == token)
            .first()
        )
        if record is None:
            logger.info("Refresh token rejected: not_found")
            raise RefreshTokenNotFoundError()
        if record.is_revoked:
            logger.warning("Refresh token rejected: revoked id=%s user_id=%s", record.id, record.user_id)
            raise RefreshTokenRevokedError()
        if self._naive_utc(record.expiry_date) <= now:
            logger.info("Refresh token rejected: expired id=%s user_id=%s", record.id, record.user_id)
            raise RefreshTokenExpiredError()
        return record.user, record

    def revoke(self, token: str) -> RefreshToken:
        record = self.db.query(RefreshToken).filter(RefreshToken.token == token).first()
        if record is None:
            raise RefreshTokenNotFoundError()
        if not record.is_revoked:
            record.is_revoked = True
            record.revoked_at = datetime.utcnow()
            self.db.commit()
            logger.info("Revoked refresh token id=%s user_id=%s", record.id, record.user_id)
        return record

    def revoke_all(self, user_id: int) -> int:
        count = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.is_revoked == False)  # noqa: E712
            .update(
                {RefreshToken.is_revoked: True, RefreshToken.revoked_at: datetime.utcnow()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        logger.info("Revoked %s refresh tokens for user_id=%s", count, user_id)
        return count

    def active_sessions(self, user_id: int, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        return (
            self.db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.is_revoked == False,  # noqa: E712
                RefreshToken.expiry_date > now,
            )
            .count()
        )

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Delete expired or revoked rows in one bounded statement."""
        now = now or datetime.utcnow()
        deleted = (
            self.db.query(RefreshToken)
            .filter(or_(RefreshToken.expiry_date < now, RefreshToken.is_revoked == True))  # noqa: E712
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info("Swept %s expired or revoked refresh tokens", deleted)
        return deleted

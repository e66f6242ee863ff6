"""Account lifecycle: registration, email verification, password reset/change."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError

from app.config import Settings
from app.core.exceptions import (
    EmailAlreadyInUseError,
    EmailDeliveryError,
    IncorrectPasswordError,
    InvalidResetTokenError,
    InvalidVerificationTokenError,
    ResourceNotFoundError,
)
from app.core.metrics import AUTH_EVENTS
from app.core.security import PasswordHasher, TokenCodec, generate_opaque_token
from app.models.user import User
from app.services import audit_service as audit_actions
from app.services import email_service as templates
from app.services.audit_service import AuditService, ClientContext
from app.services.credential_store import CredentialStore
from app.services.email_service import EmailService, redact_email
from app.services.refresh_token_ledger import RefreshTokenLedger

logger = logging.getLogger(__name__)

# Identical bodies whether or not the address belongs to an account.
RESEND_VERIFICATION_MESSAGE = (
    "If your email is registered and not verified, you will receive a verification email"
)
PASSWORD_RESET_REQUEST_MESSAGE = (
    "If your email is registered, you will receive a password reset link"
)

Dispatcher = Callable[..., Any]


def dispatch_now(func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    func(*args, **kwargs)


@dataclass
class Registration:
    user: User
    token: str
    email_sent: bool


class AccountService:
    """
    Token-gated one-shot transitions on user accounts.

    Registration delivers its verification email before returning. All other
    mail goes through ``dispatch`` (a background task in the HTTP layer), and
    a delivery failure there never undoes the state change that preceded it.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        hasher: PasswordHasher,
        codec: TokenCodec,
        mailer: EmailService,
        settings: Settings,
        dispatch: Optional[Dispatcher] = None,
        audit: Optional[AuditService] = None,
        ledger: Optional[RefreshTokenLedger] = None,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.mailer = mailer
        self.settings = settings
        self.dispatch = dispatch or dispatch_now
        self.audit = audit
        self.ledger = ledger

    # Mail helpers

    def _deliver(self, to: str, template: str, data: Dict[str, Any]) -> bool:
        try:
            self.mailer.send(to, template, data)
        except EmailDeliveryError as exc:
            logger.warning("Best-effort email '%s' to %s failed: %s", template, redact_email(to), exc.message)
            return False
        return True

    def _schedule(self, to: str, template: str, data: Dict[str, Any]) -> None:
        self.dispatch(self._deliver, to, template, data)

    def _verification_payload(self, user: User, token: str) -> Dict[str, Any]:
        return {
            "first_name": user.first_name,
            "token": token,
            "verification_url": self.settings.verification_url(token),
        }

    def _record(self, action: str, user: User, client: Optional[ClientContext]) -> None:
        if self.audit is not None:
            self.audit.log_event(action, user_id=user.id, client=client)

    def _revoke_sessions(self, user: User) -> None:
        if self.settings.REVOKE_SESSIONS_ON_PASSWORD_CHANGE and self.ledger is not None:
            self.ledger.revoke_all(user.id)

    # Operations

    def register(self, first_name: str, last_name: str, email: str, password: str) -> Registration:
        if self.store.email_exists(email):
            AUTH_EVENTS.labels("register", "email_in_use").inc()
            raise EmailAlreadyInUseError()

        verification_token = generate_opaque_token(self.settings.VERIFICATION_TOKEN_BYTES)
        try:
            user = self.store.create_user(
                first_name=first_name,
                last_name=last_name,
                email=email,
                password_hash=self.hasher.hash(password),
                email_verification_token=verification_token,
            )
        except IntegrityError:
            # Lost a race against a concurrent registration for the same email.
            self.store.db.rollback()
            AUTH_EVENTS.labels("register", "email_in_use").inc()
            raise EmailAlreadyInUseError()

        email_sent = self._deliver(
            user.email, templates.VERIFY_EMAIL, self._verification_payload(user, verification_token)
        )
        AUTH_EVENTS.labels("register", "success").inc()
        return Registration(user=user, token=self.codec.issue_registration_token(user), email_sent=email_sent)

    def issue_verification(self, user: User, *, background: bool = True) -> str:
        """
        Replace the verification token and mail the new one.

        Callers that fail the request right afterwards must pass
        ``background=False``: background tasks of an error response never run,
        and the old token is already gone.
        """
        token = generate_opaque_token(self.settings.VERIFICATION_TOKEN_BYTES)
        user.email_verification_token = token
        self.store.save(user)
        payload = self._verification_payload(user, token)
        if background:
            self._schedule(user.email, templates.VERIFY_EMAIL, payload)
        else:
            self._deliver(user.email, templates.VERIFY_EMAIL, payload)
        return token

    def verify_email(self, token: str, client: Optional[ClientContext] = None) -> User:
        user = self.store.get_by_verification_token(token)
        if user is None or not self.store.consume_verification_token(user, token):
            AUTH_EVENTS.labels("verify_email", "invalid_token").inc()
            raise InvalidVerificationTokenError()

        self._record(audit_actions.EMAIL_VERIFIED, user, client)
        self._schedule(user.email, templates.EMAIL_VERIFIED, {"first_name": user.first_name})
        AUTH_EVENTS.labels("verify_email", "success").inc()
        return user

    def resend_verification(self, email: str) -> str:
        user = self.store.get_by_email(email)
        if user is not None and not user.email_verified:
            self.issue_verification(user)
        return RESEND_VERIFICATION_MESSAGE

    def request_password_reset(self, email: str, now: Optional[datetime] = None) -> str:
        user = self.store.get_by_email(email)
        if user is not None:
            now = now or datetime.utcnow()
            token = generate_opaque_token(self.settings.RESET_TOKEN_BYTES)
            user.reset_token = token
            user.reset_token_expiry = now + timedelta(minutes=self.settings.PASSWORD_RESET_EXPIRE_MINUTES)
            self.store.save(user)
            self._schedule(
                user.email,
                templates.PASSWORD_RESET,
                {
                    "first_name": user.first_name,
                    "token": token,
                    "reset_url": self.settings.reset_password_url(token),
                    "expires_minutes": self.settings.PASSWORD_RESET_EXPIRE_MINUTES,
                },
            )
        return PASSWORD_RESET_REQUEST_MESSAGE

    def reset_password(
        self,
        token: str,
        new_password: str,
        now: Optional[datetime] = None,
        client: Optional[ClientContext] = None,
    ) -> User:
        now = now or datetime.utcnow()
        user = self.store.get_by_valid_reset_token(token, now=now)
        if user is None or not self.store.consume_reset_token(
            user, token, self.hasher.hash(new_password), now=now
        ):
            AUTH_EVENTS.labels("reset_password", "invalid_token").inc()
            raise InvalidResetTokenError()

        self._revoke_sessions(user)
        self._record(audit_actions.PASSWORD_RESET, user, client)
        AUTH_EVENTS.labels("reset_password", "success").inc()
        return user

    def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        client: Optional[ClientContext] = None,
    ) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise ResourceNotFoundError("User")
        if not self.hasher.verify(user.password_hash, current_password):
            AUTH_EVENTS.labels("change_password", "incorrect_password").inc()
            raise IncorrectPasswordError()

        user.password_hash = self.hasher.hash(new_password)
        self.store.save(user)
        self._revoke_sessions(user)
        self._record(audit_actions.PASSWORD_CHANGED, user, client)
        self._schedule(user.email, templates.PASSWORD_CHANGED, {"first_name": user.first_name})
        AUTH_EVENTS.labels("change_password", "success").inc()
        return user

    def update_profile(
        self, user_id: int, first_name: Optional[str] = None, last_name: Optional[str] = None
    ) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise ResourceNotFoundError("User")
        return self.store.update_profile(user, first_name=first_name, last_name=last_name)

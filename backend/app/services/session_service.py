"""Session manager: login, refresh, logout and logout-everywhere."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Optional

from app.core.exceptions import (
    AccountDeactivatedError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    MissingTokenError,
    RefreshTokenError,
)
from app.core.metrics import AUTH_EVENTS
from app.core.security import PasswordHasher, TokenCodec
from app.models.user import User
from app.services import audit_service as audit_actions
from app.services.account_service import AccountService
from app.services.audit_service import AuditService, ClientContext
from app.services.credential_store import CredentialStore
from app.services.refresh_token_ledger import RefreshTokenLedger

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _dummy_hash(hasher_rounds: int) -> str:
    return PasswordHasher(rounds=hasher_rounds).hash("dummy-password-for-timing")


@dataclass
class LoginResult:
    user: User
    access_token: str
    refresh_token: str
    expires_in: int


class SessionService:
    """Issues and retires sessions (refresh token rows) and access tokens."""

    def __init__(
        self,
        store: CredentialStore,
        ledger: RefreshTokenLedger,
        *,
        codec: TokenCodec,
        hasher: PasswordHasher,
        accounts: AccountService,
        audit: Optional[AuditService] = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.codec = codec
        self.hasher = hasher
        self.accounts = accounts
        self.audit = audit

    @property
    def access_token_ttl_seconds(self) -> int:
        return int(self.codec.access_token_ttl.total_seconds())

    def _record(self, action: str, user_id: int, client: Optional[ClientContext], **metadata) -> None:
        if self.audit is not None:
            self.audit.log_event(action, user_id=user_id, client=client, metadata=metadata)

    def login(self, email: str, password: str, client: Optional[ClientContext] = None) -> LoginResult:
        client = client or ClientContext()
        user = self.store.get_by_email(email)

        if user is None:
            # Spend the same bcrypt work as a real check.
            self.hasher.verify(_dummy_hash(self.hasher.rounds), password)
            AUTH_EVENTS.labels("login", "invalid_credentials").inc()
            raise InvalidCredentialsError()
        if not self.hasher.verify(user.password_hash, password):
            AUTH_EVENTS.labels("login", "invalid_credentials").inc()
            raise InvalidCredentialsError()
        if not user.is_active:
            AUTH_EVENTS.labels("login", "deactivated").inc()
            raise AccountDeactivatedError()
        if not user.email_verified:
            self.accounts.issue_verification(user, background=False)
            AUTH_EVENTS.labels("login", "email_not_verified").inc()
            raise EmailNotVerifiedError()

        user.last_login = datetime.utcnow()
        self.store.save(user)

        access_token = self.codec.issue_access_token(user)
        record = self.ledger.issue(user, user_agent=client.user_agent, ip_address=client.ip_address)
        self._record(audit_actions.LOGIN, user.id, client, session_id=record.id)
        AUTH_EVENTS.labels("login", "success").inc()
        logger.info("User logged in: id=%s session=%s", user.id, record.id)

        return LoginResult(
            user=user,
            access_token=access_token,
            refresh_token=record.token,
            expires_in=self.access_token_ttl_seconds,
        )

    def refresh(self, refresh_token: Optional[str]) -> str:
        """Exchange a live refresh token for a new access token; the refresh token is left as is."""
        if not refresh_token:
            raise MissingTokenError()
        try:
            user, _ = self.ledger.validate(refresh_token)
        except RefreshTokenError as exc:
            AUTH_EVENTS.labels("refresh", exc.reason).inc()
            raise InvalidRefreshTokenError() from exc

        if not user.is_active:
            AUTH_EVENTS.labels("refresh", "deactivated").inc()
            raise InvalidRefreshTokenError()

        AUTH_EVENTS.labels("refresh", "success").inc()
        return self.codec.issue_access_token(user)

    def logout(self, refresh_token: Optional[str], client: Optional[ClientContext] = None) -> None:
        if not refresh_token:
            raise MissingTokenError()
        try:
            record = self.ledger.revoke(refresh_token)
        except RefreshTokenError as exc:
            AUTH_EVENTS.labels("logout", exc.reason).inc()
            raise InvalidRefreshTokenError() from exc

        self._record(audit_actions.LOGOUT, record.user_id, client, session_id=record.id)
        AUTH_EVENTS.labels("logout", "success").inc()

    def logout_all(self, user_id: int, client: Optional[ClientContext] = None) -> int:
        revoked = self.ledger.revoke_all(user_id)
        self._record(audit_actions.LOGOUT_ALL, user_id, client, revoked=revoked)
        AUTH_EVENTS.labels("logout_all", "success").inc()
        return revoked

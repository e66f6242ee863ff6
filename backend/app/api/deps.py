"""API dependencies - service wiring, authentication and authorization"""

from datetime import timedelta
from functools import lru_cache

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from app.config import Settings, get_settings
from app.core.database import get_db
from app.core.security import PasswordHasher, TokenCodec
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.models.user import User
from app.schemas.user import UserRole
from app.services.account_service import AccountService
from app.services.audit_service import AuditService, ClientContext
from app.services.credential_store import CredentialStore
from app.services.email_service import EmailService
from app.services.rate_limiter import InMemoryRateLimiter, rate_limiter
from app.services.refresh_token_ledger import RefreshTokenLedger
from app.services.session_service import SessionService

# HTTP Bearer token scheme; missing header is reported as 401 by get_current_user
security = HTTPBearer(auto_error=False)


@lru_cache()
def get_token_codec() -> TokenCodec:
    return TokenCodec.from_settings(get_settings())


@lru_cache()
def get_password_hasher() -> PasswordHasher:
    return PasswordHasher()


@lru_cache()
def get_email_service() -> EmailService:
    return EmailService.from_settings(get_settings())


def get_rate_limiter() -> InMemoryRateLimiter:
    return rate_limiter


def get_client_context(request: Request) -> ClientContext:
    """Caller IP and user agent, kept for audit only"""
    return ClientContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_credential_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def get_audit_service(db: Session = Depends(get_db)) -> AuditService:
    return AuditService(db)


def get_refresh_token_ledger(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RefreshTokenLedger:
    return RefreshTokenLedger(
        db,
        ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        token_bytes=settings.REFRESH_TOKEN_BYTES,
    )


def get_account_service(
    background_tasks: BackgroundTasks,
    store: CredentialStore = Depends(get_credential_store),
    ledger: RefreshTokenLedger = Depends(get_refresh_token_ledger),
    audit: AuditService = Depends(get_audit_service),
    codec: TokenCodec = Depends(get_token_codec),
    hasher: PasswordHasher = Depends(get_password_hasher),
    mailer: EmailService = Depends(get_email_service),
    settings: Settings = Depends(get_settings),
) -> AccountService:
    return AccountService(
        store,
        hasher=hasher,
        codec=codec,
        mailer=mailer,
        settings=settings,
        dispatch=background_tasks.add_task,
        audit=audit,
        ledger=ledger,
    )


def get_session_service(
    store: CredentialStore = Depends(get_credential_store),
    ledger: RefreshTokenLedger = Depends(get_refresh_token_ledger),
    accounts: AccountService = Depends(get_account_service),
    audit: AuditService = Depends(get_audit_service),
    codec: TokenCodec = Depends(get_token_codec),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> SessionService:
    return SessionService(store, ledger, codec=codec, hasher=hasher, accounts=accounts, audit=audit)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    codec: TokenCodec = Depends(get_token_codec),
    store: CredentialStore = Depends(get_credential_store),
) -> User:
    """
    Get current authenticated user from a bearer access token

    Args:
        credentials: HTTP Bearer credentials
        codec: Access token verifier
        store: Credential store

    Returns:
        Current user

    Raises:
        AuthenticationError: If token is missing, invalid or user not usable
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Not authenticated")

    # TokenExpiredError / TokenInvalidError propagate as 401
    payload = codec.verify_access_token(credentials.credentials)

    user = store.get_by_id(int(payload["id"]))
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is disabled")

    return user


async def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get current admin user (authorization check)

    Raises:
        AuthorizationError: If user is not admin
    """
    if current_user.role != UserRole.ADMIN.value:
        raise AuthorizationError("Admin access required")
    return current_user

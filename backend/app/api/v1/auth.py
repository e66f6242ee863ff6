"""Authentication routes"""

from fastapi import APIRouter, Depends, status

from app.config import Settings, get_settings
from app.schemas.auth import (
    AccessTokenResponse,
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
)
from app.schemas.response import MessageResponse
from app.schemas.user import ProfileResponse, ProfileUpdate, UserResponse
from app.services.account_service import AccountService
from app.services.audit_service import ClientContext
from app.services.rate_limiter import InMemoryRateLimiter
from app.services.session_service import SessionService
from app.api.deps import (
    get_account_service,
    get_client_context,
    get_current_user,
    get_rate_limiter,
    get_session_service,
)
from app.models.user import User

router = APIRouter()


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    client: ClientContext = Depends(get_client_context),
    accounts: AccountService = Depends(get_account_service),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    """
    Create an unverified account and send the verification email

    The verification email is delivered before this responds.
    """
    limiter.enforce(
        "register",
        client.ip_address or "unknown",
        settings.EMAIL_RATE_LIMIT_PER_MINUTE,
        settings.EMAIL_RATE_LIMIT_PER_HOUR,
    )
    registration = accounts.register(body.first_name, body.last_name, body.email, body.password)
    if registration.email_sent:
        message = "Registration successful. Please check your email to verify your account."
    else:
        message = (
            "Registration successful, but the verification email could not be sent. "
            "Please request a new verification email."
        )
    return RegisterResponse(
        message=message,
        user=UserResponse.model_validate(registration.user),
        token=registration.token,
        email_sent=registration.email_sent,
    )


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: LoginRequest,
    client: ClientContext = Depends(get_client_context),
    sessions: SessionService = Depends(get_session_service),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    """
    Login endpoint - authenticate user and open a session

    Returns:
        Access token, refresh token and the sanitized user
    """
    limiter.enforce(
        "login",
        f"{client.ip_address or 'unknown'}:{credentials.email.lower()}",
        settings.LOGIN_RATE_LIMIT_PER_MINUTE,
        settings.LOGIN_RATE_LIMIT_PER_HOUR,
    )
    result = sessions.login(credentials.email, credentials.password, client=client)
    return LoginResponse(
        user=UserResponse.model_validate(result.user),
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
    )


@router.post("/refresh-token", response_model=AccessTokenResponse)
def refresh_token(
    body: RefreshTokenRequest,
    sessions: SessionService = Depends(get_session_service),
):
    """Exchange a refresh token for a new access token"""
    access_token = sessions.refresh(body.refresh_token)
    return AccessTokenResponse(access_token=access_token, expires_in=sessions.access_token_ttl_seconds)


@router.post("/logout", response_model=MessageResponse)
def logout(
    body: LogoutRequest,
    client: ClientContext = Depends(get_client_context),
    sessions: SessionService = Depends(get_session_service),
):
    """Revoke one refresh token"""
    sessions.logout(body.refresh_token, client=client)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    current_user: User = Depends(get_current_user),
    client: ClientContext = Depends(get_client_context),
    sessions: SessionService = Depends(get_session_service),
):
    """Revoke every refresh token of the authenticated user"""
    sessions.logout_all(current_user.id, client=client)
    return MessageResponse(message="Logged out from all devices successfully")


@router.get("/verify-email/{token}", response_model=MessageResponse)
def verify_email(
    token: str,
    client: ClientContext = Depends(get_client_context),
    accounts: AccountService = Depends(get_account_service),
):
    """Consume an email verification token"""
    accounts.verify_email(token, client=client)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification-email", response_model=MessageResponse)
def resend_verification_email(
    body: EmailRequest,
    client: ClientContext = Depends(get_client_context),
    accounts: AccountService = Depends(get_account_service),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    """Same response whether or not the address has an unverified account"""
    limiter.enforce(
        "verification email",
        client.ip_address or "unknown",
        settings.EMAIL_RATE_LIMIT_PER_MINUTE,
        settings.EMAIL_RATE_LIMIT_PER_HOUR,
    )
    return MessageResponse(message=accounts.resend_verification(body.email))


@router.post("/request-password-reset", response_model=MessageResponse)
def request_password_reset(
    body: EmailRequest,
    client: ClientContext = Depends(get_client_context),
    accounts: AccountService = Depends(get_account_service),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    """Same response whether or not the address has an account"""
    limiter.enforce(
        "password reset",
        client.ip_address or "unknown",
        settings.EMAIL_RATE_LIMIT_PER_MINUTE,
        settings.EMAIL_RATE_LIMIT_PER_HOUR,
    )
    return MessageResponse(message=accounts.request_password_reset(body.email))


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    client: ClientContext = Depends(get_client_context),
    accounts: AccountService = Depends(get_account_service),
):
    """Consume a password reset token and set the new password"""
    accounts.reset_password(body.token, body.new_password, client=client)
    return MessageResponse(message="Password has been reset successfully")


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    client: ClientContext = Depends(get_client_context),
    accounts: AccountService = Depends(get_account_service),
):
    """Change password of the authenticated user"""
    accounts.change_password(current_user.id, body.current_password, body.new_password, client=client)
    return MessageResponse(message="Password changed successfully")


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """
    Get current user information

    Returns:
        Sanitized user projection
    """
    return UserResponse.model_validate(current_user)


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Update first/last name; omitted fields are kept"""
    user = accounts.update_profile(current_user.id, body.first_name, body.last_name)
    return ProfileResponse(message="Profile updated successfully", data=UserResponse.model_validate(user))

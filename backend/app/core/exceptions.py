"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password, deliberately indistinguishable"""
    def __init__(self):
        super().__init__("Invalid email or password")


class AccountDeactivatedError(AuthenticationError):
    """Account has been switched off by an administrator"""
    def __init__(self):
        super().__init__("Your account has been deactivated. Please contact an administrator.")


class EmailNotVerifiedError(AuthenticationError):
    """Login attempted before the email address was confirmed"""
    def __init__(self):
        super().__init__(
            "Your email address is not verified. "
            "A new verification email has been sent to your inbox."
        )


class TokenExpiredError(AuthenticationError):
    """JWT token has expired"""
    def __init__(self):
        super().__init__("Token has expired")


class TokenInvalidError(AuthenticationError):
    """JWT token is invalid"""
    def __init__(self):
        super().__init__("Invalid token")


class InvalidRefreshTokenError(AuthenticationError):
    """Generic refresh failure shown to callers"""
    def __init__(self):
        super().__init__("Invalid or expired refresh token")


class IncorrectPasswordError(AuthenticationError):
    """Current password check failed during a password change"""
    def __init__(self):
        super().__init__("Current password is incorrect")


# Refresh token ledger failures. Kept distinct for logging, callers
# collapse them into InvalidRefreshTokenError.
class RefreshTokenError(AuthenticationError):
    reason = "invalid"

    def __init__(self, message: str = "Invalid refresh token"):
        super().__init__(message)


class RefreshTokenNotFoundError(RefreshTokenError):
    reason = "not_found"

    def __init__(self):
        super().__init__("Refresh token not found")


class RefreshTokenRevokedError(RefreshTokenError):
    reason = "revoked"

    def __init__(self):
        super().__init__("Refresh token has been revoked")


class RefreshTokenExpiredError(RefreshTokenError):
    reason = "expired"

    def __init__(self):
        super().__init__("Refresh token has expired")


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details=details)


# Business Logic Errors
class BusinessLogicError(BaseAPIException):
    """Business logic error"""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class EmailAlreadyInUseError(BusinessLogicError):
    """Registration with an email that already has an account"""
    def __init__(self):
        super().__init__("Email already in use")


class MissingTokenError(BusinessLogicError):
    """Request body did not carry the token the operation needs"""
    def __init__(self, token_name: str = "Refresh token"):
        super().__init__(f"{token_name} is required")


class InvalidVerificationTokenError(BusinessLogicError):
    """Unknown or already consumed email verification token"""
    def __init__(self):
        super().__init__("Invalid verification token")


class InvalidResetTokenError(BusinessLogicError):
    """Unknown, consumed or expired password reset token"""
    def __init__(self):
        super().__init__("Password reset token is invalid or has expired")


# System Errors
class DatabaseError(BaseAPIException):
    """Database operation failed"""
    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, status_code=500)


class EmailDeliveryError(BaseAPIException):
    """Outgoing email could not be handed to the SMTP server"""
    def __init__(self, message: str = "Email delivery failed"):
        super().__init__(message, status_code=500)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)

"""Pydantic schemas for API validation"""

from app.schemas.user import UserRole, UserResponse, ProfileUpdate, ProfileResponse
from app.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    LogoutRequest,
    EmailRequest,
    ResetPasswordRequest,
    ChangePasswordRequest,
    RegisterResponse,
    LoginResponse,
    AccessTokenResponse,
)
from app.schemas.response import MessageResponse, ErrorResponse, HealthResponse
from app.schemas.audit import AuditEventResponse, SweepResponse

__all__ = [
    "UserRole", "UserResponse", "ProfileUpdate", "ProfileResponse",
    "RegisterRequest", "LoginRequest", "RefreshTokenRequest", "LogoutRequest", "EmailRequest",
    "ResetPasswordRequest", "ChangePasswordRequest",
    "RegisterResponse", "LoginResponse", "AccessTokenResponse",
    "AuditEventResponse", "SweepResponse",
    "MessageResponse", "ErrorResponse", "HealthResponse",
]

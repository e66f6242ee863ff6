"""Authentication request/response schemas"""

from pydantic import EmailStr, Field, field_validator
from typing import Optional

from app.schemas.response import CamelModel
from app.schemas.user import UserResponse

MIN_PASSWORD_LENGTH = 6


class RegisterRequest(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)


class RefreshTokenRequest(CamelModel):
    # Optional so a missing token is reported as 400, not a schema error.
    refresh_token: Optional[str] = None


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class EmailRequest(CamelModel):
    """Body of the anti-enumeration endpoints"""
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)


class RegisterResponse(CamelModel):
    success: bool = True
    message: str
    user: UserResponse
    token: str
    email_sent: bool = True


class LoginResponse(CamelModel):
    success: bool = True
    message: str = "Login successful"
    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AccessTokenResponse(CamelModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    expires_in: int

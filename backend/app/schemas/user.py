"""User schemas"""

from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from app.schemas.response import CamelModel


class UserRole(str, Enum):
    """User role enumeration"""
    USER = "user"
    ADMIN = "admin"


class UserResponse(CamelModel):
    """Sanitized user projection: never carries the hash or one-shot tokens"""
    id: int
    first_name: str
    last_name: str
    email: str
    role: str
    is_active: bool
    email_verified: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ProfileUpdate(CamelModel):
    """Profile update; missing or blank fields keep their stored value"""
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v):
        if v is None:
            return v
        return v.strip() or None


class ProfileResponse(CamelModel):
    success: bool = True
    message: str
    data: UserResponse

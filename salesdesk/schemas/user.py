"""
User-related schemas.
"""

from typing import Optional
from datetime import datetime
from pydantic import Field, EmailStr, field_validator
import re

from salesdesk.models.user import User, UserRole, UserStatus
from salesdesk.schemas.common import CamelModel


class UserSummary(CamelModel):
    """Identity fields shared by login, validate and token claims."""

    id: int
    code: str
    name: str
    email: str
    role: UserRole
    status: UserStatus


class UserCreate(CamelModel):
    """Schema for creating a new user."""

    code: str = Field(min_length=3, max_length=20, description="Login code, e.g. ADV001")
    name: str = Field(min_length=2, max_length=100, description="Advisor's full name")
    email: EmailStr = Field(description="User email address")
    phone: Optional[str] = Field(default=None, max_length=20)
    role: UserRole = Field(default=UserRole.AGENT, description="User's role for access control")
    password: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Initial password. If not provided, a temporary password will be generated.",
    )

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not re.match(r"^[A-Z0-9_-]+$", v):
            raise ValueError("Code may only contain letters, digits, hyphens and underscores")
        return v

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, v: str) -> str:
        # Remove potentially dangerous characters
        v = re.sub(r'[<>"\';\\]', '', v)
        return v.strip()


class ProfileUpdate(CamelModel):
    """Fields a user may change on their own account."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.lower().strip()

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return re.sub(r'[<>"\';\\]', '', v).strip()


class UserUpdate(ProfileUpdate):
    """Schema for an admin updating a user."""

    code: Optional[str] = Field(default=None, min_length=3, max_length=20)
    role: Optional[UserRole] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        if not re.match(r"^[A-Z0-9_-]+$", v):
            raise ValueError("Code may only contain letters, digits, hyphens and underscores")
        return v


class UserStatusUpdate(CamelModel):
    """Change an account's status."""

    status: UserStatus
    reason: Optional[str] = Field(default=None, max_length=500)


class UserResponse(CamelModel):
    """Schema for user response (no sensitive data)."""

    id: int
    code: str
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole
    status: UserStatus
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserCreatedResponse(UserResponse):
    temporary_password: Optional[str] = Field(
        default=None,
        description="Generated password, returned only once when none was supplied",
    )


def user_to_response(user: User) -> UserResponse:
    """Convert User model to UserResponse."""
    return UserResponse.model_validate(user)


def user_to_summary(user: User) -> UserSummary:
    return UserSummary.model_validate(user)

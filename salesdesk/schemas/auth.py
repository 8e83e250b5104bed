"""
Authentication-related schemas.
"""

from typing import Optional
from datetime import datetime
from pydantic import Field, field_validator

from salesdesk.models.user import UserRole, UserStatus
from salesdesk.schemas.common import CamelModel
from salesdesk.schemas.user import UserSummary


class LoginRequest(CamelModel):
    """Login with a user code (or email) and password."""

    code: str = Field(min_length=1, max_length=255, description="User code or email")
    password: str = Field(min_length=1, max_length=128, description="User password")

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()


class TokenPairResponse(CamelModel):
    access_token: str = Field(description="JWT access token")
    refresh_token: str = Field(description="JWT refresh token for token renewal")
    expires_in: int = Field(description="Access token expiration in seconds")
    token_type: str = Field(default="Bearer", description="Token type")
    session_id: str = Field(description="Session the tokens are bound to")


class LoginResponse(TokenPairResponse):
    """Login response with tokens and the authenticated user."""

    user: UserSummary


class PasswordChangeRequest(CamelModel):
    """Request to change password. Strength is checked by the service."""

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class SessionSummary(CamelModel):
    """One active login as shown to its owner."""

    id: int
    device: str
    browser: str
    os: str
    ip_address: Optional[str] = None
    last_activity: datetime
    created_at: datetime
    expires_at: datetime
    current: bool = False


class SessionTiming(CamelModel):
    last_activity: datetime
    expires_at: datetime


class SessionValidation(CamelModel):
    user: UserSummary
    session: SessionTiming


class UserStatusSnapshot(CamelModel):
    """Returned by /auth/me."""

    id: int
    code: str
    name: str
    email: str
    role: UserRole
    status: UserStatus
    last_login: Optional[datetime] = None


class LogoutAllResponse(CamelModel):
    closed_sessions: int


class CleanupResponse(CamelModel):
    cleaned_sessions: int

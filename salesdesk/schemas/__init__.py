"""
Pydantic schemas for API request/response validation.

These schemas provide:
- Input validation with security constraints
- camelCase output serialization
- OpenAPI documentation generation
"""

from salesdesk.schemas.auth import (
    LoginRequest,
    LoginResponse,
    TokenPairResponse,
    PasswordChangeRequest,
    SessionSummary,
    SessionValidation,
    UserStatusSnapshot,
)
from salesdesk.schemas.user import (
    UserSummary,
    UserCreate,
    UserStatusUpdate,
    UserResponse,
    UserCreatedResponse,
)
from salesdesk.schemas.common import (
    CamelModel,
    PaginatedResponse,
    HealthResponse,
)

__all__ = [
    # Auth
    "LoginRequest",
    "LoginResponse",
    "TokenPairResponse",
    "PasswordChangeRequest",
    "SessionSummary",
    "SessionValidation",
    "UserStatusSnapshot",
    # User
    "UserSummary",
    "UserCreate",
    "UserStatusUpdate",
    "UserResponse",
    "UserCreatedResponse",
    # Common
    "CamelModel",
    "PaginatedResponse",
    "HealthResponse",
]

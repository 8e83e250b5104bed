"""
User (sales advisor) model.

Security considerations:
- Passwords are hashed with Argon2id; the hash never leaves this model
- Email is unique and stored lowercase so lookups are case-insensitive
- Users are never hard-deleted, only moved out of the active status
- All timestamps use UTC
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional, List

from sqlalchemy import String, Enum, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from salesdesk.core.database import Base, UTCDateTime, utcnow


class UserRole(str, PyEnum):
    """User roles, least to most privileged."""
    AGENT = "agent"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"


class UserStatus(str, PyEnum):
    """Account lifecycle states."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class User(Base):
    """Sales advisor account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Authentication
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Profile
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.AGENT,
        index=True,
    )

    # Account status
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserStatus.ACTIVE,
        index=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow)
    last_login: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Relationships
    sessions: Mapped[List["UserSession"]] = relationship("UserSession", back_populates="user")

    def __repr__(self) -> str:
        return f"<User {self.code}>"

    @validates("email")
    def _lowercase_email(self, key: str, value: str) -> str:
        return value.lower().strip() if value else value

    @validates("code")
    def _strip_code(self, key: str, value: str) -> str:
        return value.strip() if value else value

    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def snapshot(self) -> dict:
        """Public identity fields; used for token claims and responses."""
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "status": self.status.value,
        }


# Import for type hints (avoid circular import)
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from salesdesk.models.session import UserSession

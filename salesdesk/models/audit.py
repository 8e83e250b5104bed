"""
Activity logging model for security monitoring.

Every authentication event and every administrative change to an account is
logged for:
- Security monitoring (failed logins, mass logouts)
- Accountability (who changed which account, when)
- Forensic investigation
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Optional

from sqlalchemy import String, ForeignKey, Enum, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from salesdesk.core.database import Base, UTCDateTime, utcnow


class ActivityAction(str, PyEnum):
    """Categories of recorded actions."""
    # Authentication
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGOUT_ALL = "LOGOUT_ALL"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"

    # Maintenance
    SESSION_CLEANUP = "SESSION_CLEANUP"

    # User management
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_STATUS_CHANGED = "USER_STATUS_CHANGED"

    # Unhandled failures
    ERROR = "ERROR"


class ActivityLog(Base):
    """
    Append-only activity log entry.

    Security considerations:
    - Records are never updated or deleted by the application
    - ``old_values``/``new_values`` are redacted before they get here
    - IP address and user agent captured for forensics
    - Timestamps are UTC
    """

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Who (null for anonymous actions such as a failed login)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # What
    action: Mapped[ActivityAction] = mapped_column(
        Enum(ActivityAction, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    old_values: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_values: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Context for forensics
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ActivityLog {self.action.value} user={self.user_id} at {self.created_at}>"

    @classmethod
    def create(
        cls,
        action: ActivityAction,
        user_id: Optional[int] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> "ActivityLog":
        """Factory method to create log entries."""
        return cls(
            action=action,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            old_values=old_values,
            new_values=new_values,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            notes=notes,
        )

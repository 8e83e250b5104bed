"""
SalesDesk Database Models

This module exports all SQLAlchemy models for the application.
"""

from salesdesk.models.user import User, UserRole, UserStatus
from salesdesk.models.session import UserSession, SessionStatus
from salesdesk.models.audit import ActivityLog, ActivityAction

__all__ = [
    # User models
    "User",
    "UserRole",
    "UserStatus",
    # Session models
    "UserSession",
    "SessionStatus",
    # Activity models
    "ActivityLog",
    "ActivityAction",
]

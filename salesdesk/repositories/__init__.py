"""
Persistence layer: users and login sessions.
"""

from salesdesk.repositories.users import UserRepository
from salesdesk.repositories.sessions import SessionStore

__all__ = ["UserRepository", "SessionStore"]

from salesdesk.services.auth_service import AuthService
from salesdesk.services.user_service import UserService

__all__ = ["AuthService", "UserService"]

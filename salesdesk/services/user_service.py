"""
User directory.

Admin-managed advisor accounts. Users are never deleted; moving an account
out of ``active`` closes all of its sessions.
"""

from enum import Enum
from typing import Optional

from salesdesk.auth.audit import ActivityRecorder
from salesdesk.auth.password import (
    PasswordService,
    generate_temp_password,
    validate_password_strength,
)
from salesdesk.core.errors import AuthError, ErrorCode
from salesdesk.core.logging import get_logger
from salesdesk.models.audit import ActivityAction
from salesdesk.models.user import UserRole, UserStatus
from salesdesk.repositories.sessions import SessionStore
from salesdesk.repositories.users import UserRepository
from salesdesk.schemas.common import PaginatedResponse
from salesdesk.schemas.user import (
    ProfileUpdate,
    UserCreate,
    UserCreatedResponse,
    UserResponse,
    user_to_response,
)

logger = get_logger(__name__)

# Fields an update may clear
NULLABLE_FIELDS = {"phone"}


def _plain(value):
    return value.value if isinstance(value, Enum) else value


class UserService:
    def __init__(
        self,
        users: UserRepository,
        sessions: SessionStore,
        passwords: PasswordService,
        recorder: ActivityRecorder,
    ):
        self.users = users
        self.sessions = sessions
        self.passwords = passwords
        self.recorder = recorder

    async def create_user(
        self,
        data: UserCreate,
        actor_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> UserCreatedResponse:
        temporary_password = None
        if data.password:
            strength = validate_password_strength(data.password)
            if not strength.is_valid:
                raise AuthError(
                    ErrorCode.WEAK_PASSWORD,
                    "The password does not meet the minimum requirements",
                    details={"errors": strength.errors, "suggestions": strength.suggestions},
                )
            password = data.password
        else:
            password = temporary_password = generate_temp_password()

        if await self.users.exists(data.code, data.email):
            raise AuthError(ErrorCode.DUPLICATE_ENTRY, "A user with this code or email already exists")

        user = await self.users.create(
            code=data.code,
            name=data.name,
            email=data.email,
            password_hash=await self.passwords.hash(password),
            role=data.role,
            phone=data.phone,
        )

        logger.info("user_created", user=user.code, actor_id=actor_id)
        self.recorder.log(
            ActivityAction.USER_CREATED,
            user_id=actor_id,
            entity_type="user",
            entity_id=user.id,
            new_values=user.snapshot(),
            ip_address=ip_address,
        )

        response = UserCreatedResponse.model_validate(user)
        response.temporary_password = temporary_password
        return response

    async def list_users(
        self,
        page: int = 1,
        per_page: int = 20,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        search: Optional[str] = None,
    ) -> PaginatedResponse[UserResponse]:
        users, total = await self.users.list_users(
            page=page,
            per_page=per_page,
            role=role,
            status=status,
            search=search,
        )
        return PaginatedResponse[UserResponse].create(
            items=[user_to_response(u) for u in users],
            total=total,
            page=page,
            per_page=per_page,
        )

    async def get_user(self, user_id: int) -> UserResponse:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise AuthError(ErrorCode.NOT_FOUND, "User not found")
        return user_to_response(user)

    async def update_user(
        self,
        user_id: int,
        data: ProfileUpdate,
        actor_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> UserResponse:
        """
        Apply the fields set on ``data``.

        ``data`` is a ``UserUpdate`` for admins; a ``ProfileUpdate`` carries
        only the fields a user may change on their own account.
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise AuthError(ErrorCode.NOT_FOUND, "User not found")

        requested = data.model_dump(exclude_unset=True)
        changes = {
            field: value
            for field, value in requested.items()
            if (value is not None or field in NULLABLE_FIELDS) and getattr(user, field) != value
        }
        if not changes:
            return user_to_response(user)

        if ("code" in changes or "email" in changes) and await self.users.exists(
            changes.get("code"), changes.get("email"), exclude_id=user_id
        ):
            raise AuthError(ErrorCode.DUPLICATE_ENTRY, "A user with this code or email already exists")

        old_values = {field: _plain(getattr(user, field)) for field in changes}
        user = await self.users.update(user_id, **changes)

        logger.info("user_updated", user=user.code, actor_id=actor_id, fields=sorted(changes))
        self.recorder.log(
            ActivityAction.USER_UPDATED,
            user_id=actor_id,
            entity_type="user",
            entity_id=user_id,
            old_values=old_values,
            new_values={field: _plain(value) for field, value in changes.items()},
            ip_address=ip_address,
        )
        return user_to_response(user)

    async def change_status(
        self,
        user_id: int,
        status: UserStatus,
        actor_id: Optional[int] = None,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> UserResponse:
        if actor_id is not None and actor_id == user_id and status != UserStatus.ACTIVE:
            raise AuthError(ErrorCode.CANNOT_DEACTIVATE_SELF, "You cannot deactivate your own account")

        current = await self.users.get_by_id(user_id)
        if current is None:
            raise AuthError(ErrorCode.NOT_FOUND, "User not found")

        previous = current.status
        user = await self.users.set_status(user_id, status)

        revoked = 0
        if status != UserStatus.ACTIVE:
            revoked = await self.sessions.revoke_all(user_id)

        logger.info(
            "user_status_changed",
            user=user.code,
            previous=previous.value,
            status=status.value,
            actor_id=actor_id,
            sessions_revoked=revoked,
        )
        self.recorder.log(
            ActivityAction.USER_STATUS_CHANGED,
            user_id=actor_id,
            entity_type="user",
            entity_id=user_id,
            old_values={"status": previous.value},
            new_values={"status": status.value, "revokedSessions": revoked},
            ip_address=ip_address,
            notes=reason,
        )
        return user_to_response(user)

"""
Credential verification.

Checks a login identifier (user code or email) and a plaintext password
against the stored Argon2id hash. Expected failures are returned, not raised.
"""

from dataclasses import dataclass
from typing import Optional

from salesdesk.auth.password import PasswordService
from salesdesk.core.errors import ErrorCode
from salesdesk.models.user import User
from salesdesk.repositories.users import UserRepository


@dataclass
class CredentialCheck:
    ok: bool
    user: Optional[User] = None
    reason: Optional[ErrorCode] = None
    message: Optional[str] = None


class CredentialVerifier:
    def __init__(self, users: UserRepository, passwords: PasswordService):
        self.users = users
        self.passwords = passwords

    async def verify(self, identifier: str, password: str) -> CredentialCheck:
        user = await self.users.find_by_identifier(identifier)
        if user is None:
            return CredentialCheck(ok=False, reason=ErrorCode.USER_NOT_FOUND, message="User not found")

        if not user.is_active():
            return CredentialCheck(
                ok=False,
                user=user,
                reason=ErrorCode.USER_INACTIVE,
                message="User account is not active",
            )

        if not password or not await self.passwords.verify(password, user.password_hash):
            return CredentialCheck(
                ok=False,
                user=user,
                reason=ErrorCode.INVALID_PASSWORD,
                message="Incorrect password",
            )

        return CredentialCheck(ok=True, user=user)

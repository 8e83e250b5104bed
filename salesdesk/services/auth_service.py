"""
Authentication service.

Orchestrates the credential verifier, token issuer, session store and
activity recorder for the /auth operations. Expected failures are raised as
``AuthError`` and rendered by the exception handlers.
"""

from typing import Optional

from salesdesk.auth.audit import ActivityRecorder
from salesdesk.auth.credentials import CredentialVerifier
from salesdesk.auth.jwt import TokenIssuer
from salesdesk.auth.password import PasswordService, validate_password_strength
from salesdesk.core.clock import SystemClock
from salesdesk.core.errors import AuthError, ErrorCode
from salesdesk.core.logging import get_logger
from salesdesk.models.audit import ActivityAction
from salesdesk.models.user import User
from salesdesk.repositories.sessions import SessionStore
from salesdesk.repositories.users import UserRepository
from salesdesk.schemas.auth import (
    CleanupResponse,
    LoginResponse,
    LogoutAllResponse,
    SessionSummary,
    SessionTiming,
    SessionValidation,
    TokenPairResponse,
    UserStatusSnapshot,
)
from salesdesk.schemas.user import user_to_summary

logger = get_logger(__name__)


class AuthService:
    def __init__(
        self,
        users: UserRepository,
        sessions: SessionStore,
        issuer: TokenIssuer,
        passwords: PasswordService,
        credentials: CredentialVerifier,
        recorder: ActivityRecorder,
        clock: Optional[SystemClock] = None,
    ):
        self.users = users
        self.sessions = sessions
        self.issuer = issuer
        self.passwords = passwords
        self.credentials = credentials
        self.recorder = recorder
        self.clock = clock or SystemClock()

    async def login(
        self,
        identifier: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResponse:
        check = await self.credentials.verify(identifier, password)

        if not check.ok:
            logger.warning("login_failed", identifier=identifier, ip=ip_address, reason=check.reason.value)
            self.recorder.log(
                ActivityAction.LOGIN_FAILED,
                entity_type="user",
                entity_id=check.user.id if check.user else None,
                new_values={"code": identifier, "reason": check.reason.value},
                ip_address=ip_address,
                user_agent=user_agent,
                notes=check.message,
            )
            raise AuthError(check.reason, check.message, status_code=401)

        user = check.user
        await self._upgrade_hash(user, password)

        pair = self.issuer.issue_pair(user)
        session = await self.sessions.create(
            user,
            ip_address,
            user_agent,
            session_token=pair.session_id,
            refresh_token=pair.refresh_token,
        )

        logger.info("login_succeeded", user=user.code, session_id=session.id)
        self.recorder.log(
            ActivityAction.LOGIN_SUCCESS,
            user_id=user.id,
            entity_type="user",
            entity_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.recorder.log(
            ActivityAction.LOGIN,
            user_id=user.id,
            entity_type="session",
            entity_id=session.id,
            new_values={"device": session.device_info},
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return LoginResponse(
            user=user_to_summary(user),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            token_type=pair.token_type,
            session_id=pair.session_id,
        )

    async def _upgrade_hash(self, user: User, password: str) -> None:
        """Rehash with current Argon2 parameters when the stored hash is outdated."""
        if not self.passwords.needs_rehash(user.password_hash):
            return
        new_hash = await self.passwords.hash(password)
        await self.users.update_password(user.id, new_hash)
        user.password_hash = new_hash
        logger.info("password_hash_upgraded", user=user.code)

    async def refresh_tokens(self, refresh_token: str, user: User, session_id: Optional[str] = None) -> TokenPairResponse:
        """Rotate the token pair of an active session."""
        session = await self.sessions.find_active_by_refresh_token(refresh_token)
        if (
            session is None
            or session.user_id != user.id
            or (session_id and session.session_token != session_id)
            or not user.is_active()
        ):
            raise AuthError(ErrorCode.INVALID_REFRESH_TOKEN, "Invalid or revoked refresh token")

        if not session.is_valid(self.clock.now()):
            await self.sessions.mark_expired(session)
            raise AuthError(ErrorCode.INVALID_REFRESH_TOKEN, "Session has expired")

        try:
            pair = self.issuer.renew(refresh_token, user)
        except AuthError as e:
            raise AuthError(ErrorCode.INVALID_REFRESH_TOKEN, e.message)

        await self.sessions.rotate_refresh_token(session, pair.refresh_token)

        return TokenPairResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            token_type=pair.token_type,
            session_id=pair.session_id,
        )

    async def logout(self, session_token: Optional[str], user_id: int, ip_address: Optional[str] = None) -> None:
        if not session_token or not await self.sessions.revoke(session_token):
            raise AuthError(ErrorCode.SESSION_NOT_FOUND, "Session not found or already closed")

        self.recorder.log(
            ActivityAction.LOGOUT,
            user_id=user_id,
            entity_type="session",
            entity_id=session_token,
            ip_address=ip_address,
        )

    async def logout_all(self, user_id: int, ip_address: Optional[str] = None) -> LogoutAllResponse:
        closed = await self.sessions.revoke_all(user_id)

        logger.info("sessions_closed", user_id=user_id, count=closed)
        self.recorder.log(
            ActivityAction.LOGOUT_ALL,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            new_values={"closedSessions": closed},
            ip_address=ip_address,
        )
        return LogoutAllResponse(closed_sessions=closed)

    async def list_sessions(self, user_id: int, current_session_id: Optional[str] = None) -> list[SessionSummary]:
        sessions = await self.sessions.list_active(user_id)

        summaries = []
        for session in sessions:
            device = session.device_info or {}
            summaries.append(
                SessionSummary(
                    id=session.id,
                    device=device.get("device", "Unknown"),
                    browser=device.get("browser", "Unknown"),
                    os=device.get("os", "Unknown"),
                    ip_address=session.ip_address,
                    last_activity=session.last_activity,
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                    current=session.session_token == current_session_id,
                )
            )
        return summaries

    async def validate_session(self, session_token: str) -> SessionValidation:
        session = await self.sessions.find_active_by_token(session_token)
        if session is None:
            raise AuthError(ErrorCode.INVALID_SESSION, "Invalid or expired session")

        if not session.is_valid(self.clock.now()):
            await self.sessions.mark_expired(session)
            raise AuthError(ErrorCode.INVALID_SESSION, "Invalid or expired session")

        user = await self.users.find_active_by_id(session.user_id)
        if user is None:
            raise AuthError(ErrorCode.INVALID_SESSION, "Invalid or expired session")

        await self.sessions.touch(session)

        return SessionValidation(
            user=user_to_summary(user),
            session=SessionTiming(
                last_activity=session.last_activity,
                expires_at=session.expires_at,
            ),
        )

    async def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        ip_address: Optional[str] = None,
    ) -> int:
        """
        Replace the user's password and close every session they have.

        Returns the number of sessions revoked.
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise AuthError(ErrorCode.USER_NOT_FOUND, "User not found", status_code=404)

        if not await self.passwords.verify(current_password, user.password_hash):
            raise AuthError(ErrorCode.INVALID_CURRENT_PASSWORD, "Current password is incorrect")

        strength = validate_password_strength(new_password)
        if not strength.is_valid:
            raise AuthError(
                ErrorCode.WEAK_PASSWORD,
                "The new password does not meet the minimum requirements",
                details={"errors": strength.errors, "suggestions": strength.suggestions},
            )

        if new_password == current_password:
            raise AuthError(ErrorCode.PASSWORD_REUSED, "The new password must differ from the current one")

        await self.users.update_password(user.id, await self.passwords.hash(new_password))
        revoked = await self.sessions.revoke_all(user.id)

        logger.info("password_changed", user=user.code, sessions_revoked=revoked)
        self.recorder.log(
            ActivityAction.PASSWORD_CHANGE,
            user_id=user.id,
            entity_type="user",
            entity_id=user.id,
            new_values={"revokedSessions": revoked},
            ip_address=ip_address,
        )
        return revoked

    async def check_user_status(self, user_id: int) -> UserStatusSnapshot:
        user = await self.users.find_active_by_id(user_id)
        if user is None:
            raise AuthError(ErrorCode.USER_NOT_FOUND, "User not found or inactive", status_code=404)
        return UserStatusSnapshot.model_validate(user)

    async def cleanup_expired_sessions(
        self,
        actor_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> CleanupResponse:
        cleaned = await self.sessions.sweep_expired()
        self.recorder.log(
            ActivityAction.SESSION_CLEANUP,
            user_id=actor_id,
            entity_type="session",
            new_values={"cleanedSessions": cleaned},
            ip_address=ip_address,
        )
        return CleanupResponse(cleaned_sessions=cleaned)

"""
Application context.

Every collaborator is built once per application and stored on
``app.state.context``. Nothing here is a module-level singleton, so two apps
(or two tests) never share a database, a clock or a rate limiter.
"""

from dataclasses import dataclass
from typing import Optional

from salesdesk.auth.audit import ActivityRecorder
from salesdesk.auth.credentials import CredentialVerifier
from salesdesk.auth.jwt import TokenIssuer
from salesdesk.auth.password import PasswordService
from salesdesk.core.clock import SystemClock
from salesdesk.core.config import Settings
from salesdesk.core.database import Database
from salesdesk.core.logging import get_logger
from salesdesk.core.rate_limit import SlidingWindowLimiter
from salesdesk.repositories.sessions import SessionStore
from salesdesk.repositories.users import UserRepository
from salesdesk.services.auth_service import AuthService
from salesdesk.services.user_service import UserService

logger = get_logger(__name__)


@dataclass
class AppContext:
    settings: Settings
    clock: SystemClock
    database: Database
    users: UserRepository
    sessions: SessionStore
    issuer: TokenIssuer
    passwords: PasswordService
    credentials: CredentialVerifier
    recorder: ActivityRecorder
    login_limiter: SlidingWindowLimiter
    auth: AuthService
    directory: UserService

    async def close(self) -> None:
        if self.recorder.pending:
            logger.info("activity_drain", pending=self.recorder.pending)
        await self.recorder.drain()
        await self.database.dispose()


def build_context(settings: Settings, clock: Optional[SystemClock] = None) -> AppContext:
    """Wire every component against one database and one clock."""
    clock = clock or SystemClock()
    database = Database(settings.database_url, echo=settings.sql_echo)

    users = UserRepository(database.session_factory, clock)
    sessions = SessionStore(database.session_factory, settings, clock)
    issuer = TokenIssuer(settings, clock)
    passwords = PasswordService(settings)
    credentials = CredentialVerifier(users, passwords)
    recorder = ActivityRecorder(database.session_factory)
    login_limiter = SlidingWindowLimiter(
        settings.login_rate_limit_attempts,
        settings.login_rate_limit_window_seconds,
        clock,
    )

    return AppContext(
        settings=settings,
        clock=clock,
        database=database,
        users=users,
        sessions=sessions,
        issuer=issuer,
        passwords=passwords,
        credentials=credentials,
        recorder=recorder,
        login_limiter=login_limiter,
        auth=AuthService(users, sessions, issuer, passwords, credentials, recorder, clock),
        directory=UserService(users, sessions, passwords, recorder),
    )

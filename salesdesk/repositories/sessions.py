"""
Session store.

Durable record of every login session. A session is usable only while its
status is ``active`` and the clock is before ``expires_at``; the store never
decides that on its own inside a lookup, callers check ``is_expired(now)``
and call ``mark_expired`` or ``touch`` explicitly.

Bulk transitions (revoke all, sweep) are single UPDATE statements, so running
them twice or concurrently is harmless.
"""

import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salesdesk.core.clock import SystemClock
from salesdesk.core.config import Settings
from salesdesk.core.logging import get_logger
from salesdesk.core.utils import parse_user_agent
from salesdesk.models.session import UserSession, SessionStatus
from salesdesk.models.user import User

logger = get_logger(__name__)


class SessionStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        clock: Optional[SystemClock] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.ttl = timedelta(hours=settings.session_ttl_hours)

    def _new_id(self) -> str:
        return f"{uuid.uuid4().hex}_{int(self.clock.now().timestamp() * 1000)}"

    async def create(
        self,
        user: User,
        ip_address: Optional[str],
        user_agent: Optional[str],
        session_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> UserSession:
        """Open a new active session and stamp the user's last login."""
        now = self.clock.now()
        session = UserSession(
            user_id=user.id,
            session_token=session_token or self._new_id(),
            refresh_token=refresh_token,
            device_info=parse_user_agent(user_agent),
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            status=SessionStatus.ACTIVE,
            created_at=now,
            last_activity=now,
            expires_at=now + self.ttl,
        )

        async with self.session_factory() as db:
            db.add(session)
            await db.execute(
                update(User)
                .where(User.id == user.id)
                .values(last_login=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            await db.refresh(session)

        user.last_login = now
        return session

    async def find_active_by_token(self, session_token: str, user_id: Optional[int] = None) -> Optional[UserSession]:
        query = select(UserSession).where(
            UserSession.session_token == session_token,
            UserSession.status == SessionStatus.ACTIVE,
        )
        if user_id is not None:
            query = query.where(UserSession.user_id == user_id)

        async with self.session_factory() as db:
            result = await db.execute(query)
            return result.scalar_one_or_none()

    async def find_active_by_refresh_token(self, refresh_token: str) -> Optional[UserSession]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(UserSession).where(
                    UserSession.refresh_token == refresh_token,
                    UserSession.status == SessionStatus.ACTIVE,
                )
            )
            return result.scalars().first()

    async def touch(self, session: UserSession) -> None:
        """Record activity on the session (last writer wins)."""
        now = self.clock.now()
        async with self.session_factory() as db:
            await db.execute(
                update(UserSession)
                .where(UserSession.id == session.id)
                .values(last_activity=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        session.last_activity = now

    async def rotate_refresh_token(self, session: UserSession, refresh_token: str) -> None:
        now = self.clock.now()
        async with self.session_factory() as db:
            await db.execute(
                update(UserSession)
                .where(UserSession.id == session.id)
                .values(refresh_token=refresh_token, last_activity=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        session.refresh_token = refresh_token
        session.last_activity = now

    async def mark_expired(self, session: UserSession) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(UserSession)
                .where(UserSession.id == session.id, UserSession.status == SessionStatus.ACTIVE)
                .values(status=SessionStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        session.status = SessionStatus.EXPIRED

    async def revoke(self, session_token: str) -> bool:
        """Revoke one active session. False when nothing active matched."""
        async with self.session_factory() as db:
            result = await db.execute(
                update(UserSession)
                .where(
                    UserSession.session_token == session_token,
                    UserSession.status == SessionStatus.ACTIVE,
                )
                .values(status=SessionStatus.REVOKED)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount > 0

    async def revoke_all(self, user_id: int) -> int:
        """Revoke every active session of a user; returns how many were closed."""
        async with self.session_factory() as db:
            result = await db.execute(
                update(UserSession)
                .where(
                    UserSession.user_id == user_id,
                    UserSession.status == SessionStatus.ACTIVE,
                )
                .values(status=SessionStatus.REVOKED)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount or 0

    async def list_active(self, user_id: int) -> list[UserSession]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(UserSession)
                .where(
                    UserSession.user_id == user_id,
                    UserSession.status == SessionStatus.ACTIVE,
                )
                .order_by(UserSession.last_activity.desc(), UserSession.id.desc())
            )
            return list(result.scalars().all())

    async def sweep_expired(self) -> int:
        """Flip every active session past its expiry to ``expired``."""
        async with self.session_factory() as db:
            result = await db.execute(
                update(UserSession)
                .where(
                    UserSession.status == SessionStatus.ACTIVE,
                    UserSession.expires_at <= self.clock.now(),
                )
                .values(status=SessionStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            count = result.rowcount or 0

        if count:
            logger.info("sessions_expired", count=count)
        return count

"""
User persistence.

Each method opens its own short-lived session and commits before returning,
so callers never hold a session across awaits on other components.
"""

from typing import Optional

from sqlalchemy import select, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salesdesk.core.clock import SystemClock
from salesdesk.core.utils import apply_search_filter
from salesdesk.models.user import User, UserRole, UserStatus


class UserRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Optional[SystemClock] = None):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()

    async def get_by_id(self, user_id: int) -> Optional[User]:
        async with self.session_factory() as db:
            return await db.get(User, user_id)

    async def find_by_identifier(self, identifier: str) -> Optional[User]:
        """Look a user up by login code or by email (case-insensitive)."""
        identifier = (identifier or "").strip()
        if not identifier:
            return None

        async with self.session_factory() as db:
            result = await db.execute(
                select(User).where(
                    or_(User.code == identifier, User.email == identifier.lower())
                )
            )
            return result.scalars().first()

    async def find_active_by_id(self, user_id: int) -> Optional[User]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(User).where(User.id == user_id, User.status == UserStatus.ACTIVE)
            )
            return result.scalar_one_or_none()

    async def exists(
        self,
        code: Optional[str] = None,
        email: Optional[str] = None,
        exclude_id: Optional[int] = None,
    ) -> bool:
        """True when another user already holds ``code`` or ``email``."""
        conditions = []
        if code:
            conditions.append(User.code == code.strip())
        if email:
            conditions.append(User.email == email.lower().strip())
        if not conditions:
            return False

        query = select(func.count(User.id)).where(or_(*conditions))
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)

        async with self.session_factory() as db:
            result = await db.execute(query)
            return (result.scalar() or 0) > 0

    async def count(self) -> int:
        async with self.session_factory() as db:
            result = await db.execute(select(func.count(User.id)))
            return result.scalar() or 0

    async def create(
        self,
        code: str,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.AGENT,
        phone: Optional[str] = None,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        now = self.clock.now()
        user = User(
            code=code,
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            phone=phone,
            status=status,
            created_at=now,
            updated_at=now,
        )
        async with self.session_factory() as db:
            db.add(user)
            await db.commit()
            await db.refresh(user)
        return user

    async def update_password(self, user_id: int, password_hash: str) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(password_hash=password_hash, updated_at=self.clock.now())
            )
            await db.commit()

    async def set_status(self, user_id: int, status: UserStatus) -> Optional[User]:
        async with self.session_factory() as db:
            user = await db.get(User, user_id)
            if user is None:
                return None
            user.status = status
            user.updated_at = self.clock.now()
            await db.commit()
            await db.refresh(user)
            return user

    async def update(self, user_id: int, **values) -> Optional[User]:
        async with self.session_factory() as db:
            user = await db.get(User, user_id)
            if user is None:
                return None
            for field, value in values.items():
                setattr(user, field, value)
            user.updated_at = self.clock.now()
            await db.commit()
            await db.refresh(user)
            return user

    async def list_users(
        self,
        page: int = 1,
        per_page: int = 20,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        search: Optional[str] = None,
    ) -> tuple[list[User], int]:
        """Return one page of users plus the total matching count."""
        query = select(User)
        count_query = select(func.count(User.id))

        if role:
            query = query.where(User.role == role)
            count_query = count_query.where(User.role == role)

        if status:
            query = query.where(User.status == status)
            count_query = count_query.where(User.status == status)

        query, count_query = apply_search_filter(
            query, count_query, search,
            User.code, User.name, User.email,
        )

        async with self.session_factory() as db:
            total = (await db.execute(count_query)).scalar() or 0
            result = await db.execute(
                query.order_by(User.id).offset((page - 1) * per_page).limit(per_page)
            )
            return list(result.scalars().all()), total

"""
Activity recording.

Centralizes activity log creation so endpoints and services only describe
what happened. Writes are scheduled on the running event loop and never
block or fail the request that triggered them.
"""

import asyncio
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salesdesk.core.logging import get_logger, redact
from salesdesk.models.audit import ActivityLog, ActivityAction

logger = get_logger(__name__)

__all__ = ["ActivityRecorder", "redact"]


class ActivityRecorder:
    """Best-effort, non-blocking writer for ``ActivityLog`` rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._pending: set[asyncio.Task] = set()

    def log(
        self,
        action: ActivityAction,
        user_id: Optional[int] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        """
        Schedule an activity entry and return immediately.

        Example:
            recorder.log(
                ActivityAction.LOGOUT,
                user_id=principal.id,
                entity_type="session",
                entity_id=principal.session_id,
                ip_address=get_client_ip(request),
            )
        """
        entry = ActivityLog.create(
            action=action,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=redact(old_values) if old_values else None,
            new_values=redact(new_values) if new_values else None,
            ip_address=ip_address,
            user_agent=user_agent,
            notes=notes,
        )

        try:
            task = asyncio.get_running_loop().create_task(self._write(entry))
        except RuntimeError:
            logger.warning("activity_entry_dropped", action=action.value, reason="no running event loop")
            return

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, entry: ActivityLog) -> None:
        try:
            async with self.session_factory() as db:
                db.add(entry)
                await db.commit()
        except Exception:
            # Losing an activity entry must never surface to the caller
            logger.exception("activity_write_failed", action=entry.action.value)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.db import atomic
from app.db.repositories.paste_repository import (
    PasteRepository, PasteInviteRepository, PasteVersionRepository, PasteViewRepository
)
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    deleted_count: int = 0
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None


async def delete_expired_pastes(session: AsyncSession, batch_size: int = 100) -> CleanupResult:
    """Delete every paste whose expiry has passed.

    Each batch commits on its own; a failing batch is recorded and skipped.
    """
    result = CleanupResult()
    paste_repository = PasteRepository(session)

    expired_ids = await paste_repository.find_expired_ids(result.started_at)
    await session.commit()

    if not expired_ids:
        logger.debug("No expired pastes to delete")
        result.finished_at = utc_now()
        return result

    logger.info(f"Found {len(expired_ids)} expired paste(s)")

    for start in range(0, len(expired_ids), batch_size):
        batch = expired_ids[start:start + batch_size]
        batch_number = start // batch_size + 1
        try:
            async with atomic(session):
                await PasteViewRepository(session).delete_for_pastes(batch)
                await PasteVersionRepository(session).delete_for_pastes(batch)
                await PasteInviteRepository(session).delete_for_pastes(batch)
                deleted = await paste_repository.delete_many(batch)
            result.deleted_count += deleted
            logger.debug(f"Cleanup batch {batch_number}: deleted {deleted} paste(s)")
        except SQLAlchemyError as e:
            message = f"Batch {batch_number}: {e}"
            logger.error(f"Error deleting expired pastes, {message}")
            result.errors.append(message)

    result.finished_at = utc_now()
    logger.info(
        f"Expired paste cleanup finished: {result.deleted_count} deleted, {len(result.errors)} error(s)"
    )
    return result


class PasteCleanupScheduler:
    """Runs the expired-paste cleanup periodically on the event loop.

    Created once at startup and kept on app.state.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        interval_seconds: int = 600,
        batch_size: int = 100,
        enabled: bool = True,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.enabled = enabled
        self.last_result: Optional[CleanupResult] = None
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.enabled:
            logger.info("Expired paste cleanup is disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run_forever())
        logger.info(f"Expired paste cleanup scheduled every {self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expired paste cleanup stopped")

    async def trigger(self) -> CleanupResult:
        """Run a cleanup now; concurrent triggers wait for the one in progress"""
        async with self._lock:
            async with self.session_factory() as session:
                self.last_result = await delete_expired_pastes(session, self.batch_size)
            return self.last_result

    def status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "batch_size": self.batch_size,
            "last_run": self.last_result,
        }

    async def _run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.trigger()
            except Exception as e:
                logger.error(f"Expired paste cleanup failed: {e}")

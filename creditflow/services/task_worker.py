"""Task worker: asyncio background loop via the FastAPI lifespan.

Claims pending tasks one at a time and hands them to the TaskProcessor.
While work exists the loop keeps claiming; when the queue is empty it
sleeps for the poll interval. Stalled tasks are recovered at start and
again every recovery interval while the loop runs.
"""

import asyncio
import contextlib
import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creditflow.models.task import Task
from creditflow.repositories.task_repository import Settlement, TaskRepository
from creditflow.services.task_processor import TaskProcessor

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_STALE_AFTER = timedelta(hours=2)
DEFAULT_RECOVERY_INTERVAL_SECONDS = 60.0


class TaskWorker:
    """Background worker that drains the pending task queue.

    Lifecycle:
    - start() creates an asyncio task that runs the claim loop.
    - stop() cancels the task and waits for graceful shutdown.
    - run_once() claims and processes at most one task (for testing).

    Args:
        session_factory: Async session factory for DB access.
        processor: Processor that runs claimed tasks.
        poll_interval_seconds: Sleep between polls of an empty queue.
        stale_after: Processing tasks older than this are recovered.
        recovery_interval_seconds: Minimum time between stale recovery sweeps.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        processor: TaskProcessor,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        recovery_interval_seconds: float = DEFAULT_RECOVERY_INTERVAL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._processor = processor
        self._poll_interval_seconds = poll_interval_seconds
        self._stale_after = stale_after
        self._recovery_interval = timedelta(seconds=recovery_interval_seconds)
        self._last_recovery_at: datetime | None = None
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Timestamp of the most recent completed pass."""
        return self._last_run_at

    def start(self) -> None:
        """Start the background claim loop.

        Creates an asyncio task. No-op if already running.
        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("Task worker already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Task worker started (poll_interval=%.1fs)", self._poll_interval_seconds
        )

    async def stop(self) -> None:
        """Stop the background claim loop.

        Cancels the task and waits for it to finish. A task interrupted
        mid-processing stays in processing until stale recovery settles it.
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Task worker stopped")

    async def recover_stalled(self) -> list[Settlement]:
        """Fail and settle tasks stuck in processing past stale_after."""
        now = datetime.now(UTC)
        self._last_recovery_at = now
        cutoff = now - self._stale_after
        async with self._session_factory() as db:
            settlements = await TaskRepository.recover_stalled(db, older_than=cutoff)
            await db.commit()
        if settlements:
            logger.warning("Recovered %d stalled task(s)", len(settlements))
        return settlements

    async def run_once(self) -> Settlement | None:
        """Claim and process one pending task.

        Returns:
            The settlement of the processed task, or None if the queue was
            empty (or the task was settled elsewhere).
        """
        task = await self._claim()
        if task is None:
            return None
        return await self._processor.process(task)

    async def _claim(self) -> Task | None:
        async with self._session_factory() as db:
            task = await TaskRepository.claim_next_pending(db)
            await db.commit()
        self._last_run_at = datetime.now(UTC)
        if task is not None:
            logger.info("Claimed task %s (%d slots)", task.id, task.quantity_requested)
        return task

    def _recovery_due(self) -> bool:
        if self._last_recovery_at is None:
            return True
        return datetime.now(UTC) - self._last_recovery_at >= self._recovery_interval

    async def _run_loop(self) -> None:
        """Background loop: recover when due, claim, process, repeat or sleep."""
        try:
            while self._running:
                if self._recovery_due():
                    try:
                        await self.recover_stalled()
                    except Exception:  # noqa: BLE001
                        logger.exception("Error recovering stalled tasks")

                task = None
                try:
                    task = await self._claim()
                    if task is not None:
                        await self._processor.process(task)
                except Exception:  # noqa: BLE001
                    logger.exception("Error in task worker pass")
                if task is None:
                    await asyncio.sleep(self._poll_interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Task worker loop cancelled")
            raise

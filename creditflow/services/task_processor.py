"""Task processor: runs one claimed task to completion.

Each slot gets its own TaskLog, its own database sessions and its own
retry budget. A failing slot never stops the others; only a fatal
provisioning error (or a failure outside the slot loop) aborts the task.
Settlement charges one credit per attempted slot and refunds the rest of
the reservation in the same transaction that finalizes the task.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creditflow.models.task import Task
from creditflow.providers.errors import ErrorKind, ProvisioningError
from creditflow.providers.provisioning.base import (
    ProvisioningClient,
    ProvisioningOutcome,
    ProvisioningRequest,
)
from creditflow.providers.retry import RetryPolicy
from creditflow.repositories.task_repository import Settlement, TaskRepository
from creditflow.services.identity import SyntheticIdentity, generate_identities

logger = structlog.get_logger()

_MAX_ERROR_LENGTH = 1000


@dataclass(frozen=True)
class SlotResult:
    """Outcome of one account slot after retries."""

    account_number: int
    success: bool
    attempts: int
    error: str | None = None
    fatal: bool = False


def _error_kind(error: BaseException) -> ErrorKind:
    if isinstance(error, ProvisioningError):
        return error.kind
    return ErrorKind.RETRYABLE


class TaskProcessor:
    """Processes claimed tasks against a provisioning client.

    Args:
        session_factory: Async session factory; every DB step opens its own
            session so parallel slots never share one.
        client: Provisioning client.
        retry_policy: Backoff policy wrapped around every attempt.
        concurrency: Slots provisioned at once. 1 keeps strict slot order.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: ProvisioningClient,
        retry_policy: RetryPolicy | None = None,
        *,
        concurrency: int = 1,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._session_factory = session_factory
        self._client = client
        self._retry = retry_policy or RetryPolicy()
        self._concurrency = concurrency

    async def process(self, task: Task) -> Settlement | None:
        """Run every slot of a task that is already in processing.

        Args:
            task: A task claimed by TaskRepository.claim_next_pending().

        Returns:
            The settlement, or None if the task was settled elsewhere
            (e.g. by stale recovery) or could not be finalized.
        """
        task_id = task.id
        log = logger.bind(task_id=str(task_id))
        identities = generate_identities(task.quantity_requested)
        abort_reason: str | None = None

        log.info("task_processing_started", quantity=task.quantity_requested)
        try:
            async with self._client.session():
                if self._concurrency == 1:
                    results = await self._run_sequential(task, identities)
                else:
                    results = await self._run_parallel(task, identities)
            fatal = next((r for r in results if r.fatal), None)
            if fatal is not None:
                abort_reason = (
                    f"Aborted at account {fatal.account_number}: {fatal.error}"
                )
        except ProvisioningError as e:
            abort_reason = str(e)[:_MAX_ERROR_LENGTH]
            log.error("task_session_failed", error=abort_reason)
        except Exception as e:
            abort_reason = f"Processing error: {e}"[:_MAX_ERROR_LENGTH]
            log.exception("task_processing_error")

        return await self._finalize(task_id, abort_reason)

    # =========================================================================
    # Slot execution
    # =========================================================================

    async def _run_sequential(
        self, task: Task, identities: list[SyntheticIdentity]
    ) -> list[SlotResult]:
        results: list[SlotResult] = []
        for identity in identities:
            result = await self._run_slot(task, identity)
            results.append(result)
            if result.fatal:
                break
        return results

    async def _run_parallel(
        self, task: Task, identities: list[SyntheticIdentity]
    ) -> list[SlotResult]:
        semaphore = asyncio.Semaphore(self._concurrency)
        abort = asyncio.Event()

        async def guarded(identity: SyntheticIdentity) -> SlotResult | None:
            async with semaphore:
                if abort.is_set():
                    return None
                result = await self._run_slot(task, identity)
                if result.fatal:
                    abort.set()
                return result

        gathered = await asyncio.gather(*(guarded(i) for i in identities))
        return [r for r in gathered if r is not None]

    async def _run_slot(self, task: Task, identity: SyntheticIdentity) -> SlotResult:
        """Provision one account and record the outcome on its TaskLog."""
        number = identity.account_number
        async with self._session_factory() as db:
            task_log = await TaskRepository.create_log(
                db, task_id=task.id, account_number=number, email=identity.email
            )
            log_id = task_log.id
            await TaskRepository.update_log(
                db, log_id, status="processing", started_at=datetime.now(UTC)
            )
            await db.commit()

        request = ProvisioningRequest(
            invite_link=task.invite_link,
            email=identity.email,
            password=identity.password,
            project_name=f"Project {str(task.id)[:8]}-{number}",
            account_number=number,
        )
        attempts = 0

        async def attempt_once() -> ProvisioningOutcome:
            nonlocal attempts
            attempts += 1
            outcome = await self._client.attempt(request)
            if not outcome.success:
                raise ProvisioningError(
                    outcome.error or "Provisioning failed",
                    kind=outcome.error_kind,
                )
            return outcome

        async def on_retry(
            retry_number: int, error: BaseException, delay_ms: int
        ) -> None:
            logger.info(
                "task_slot_retry",
                task_id=str(task.id),
                account_number=number,
                retry=retry_number,
                delay_ms=delay_ms,
                error=str(error)[:200],
            )

        try:
            outcome = await self._retry.execute(attempt_once, on_retry=on_retry)
        except Exception as e:  # noqa: BLE001
            message = (str(e) or e.__class__.__name__)[:_MAX_ERROR_LENGTH]
            kind = _error_kind(e)
            await self._record_slot(
                task.id,
                log_id,
                status="failed",
                attempts=attempts,
                error_message=message,
            )
            logger.warning(
                "task_slot_failed",
                task_id=str(task.id),
                account_number=number,
                attempts=attempts,
                kind=kind.value,
                error=message,
            )
            return SlotResult(
                account_number=number,
                success=False,
                attempts=attempts,
                error=message,
                fatal=kind == ErrorKind.FATAL,
            )

        await self._record_slot(
            task.id,
            log_id,
            status="success",
            attempts=attempts,
            project_id=outcome.project_id,
            project_url=outcome.project_url,
        )
        logger.info(
            "task_slot_succeeded",
            task_id=str(task.id),
            account_number=number,
            email=identity.email,
            attempts=attempts,
        )
        return SlotResult(account_number=number, success=True, attempts=attempts)

    async def _record_slot(
        self,
        task_id: uuid.UUID,
        log_id: uuid.UUID,
        **values: object,
    ) -> None:
        async with self._session_factory() as db:
            await TaskRepository.update_log(
                db, log_id, completed_at=datetime.now(UTC), **values
            )
            await TaskRepository.refresh_counters(db, task_id)
            await db.commit()

    # =========================================================================
    # Settlement
    # =========================================================================

    async def _finalize(
        self, task_id: uuid.UUID, abort_reason: str | None
    ) -> Settlement | None:
        to_status = "failed" if abort_reason else "completed"
        try:
            settlement = await self._settle(task_id, to_status, abort_reason)
        except Exception as e:
            logger.exception("task_finalize_failed", task_id=str(task_id))
            try:
                settlement = await self._settle(
                    task_id, "failed", f"Finalization failed: {e}"[:_MAX_ERROR_LENGTH]
                )
            except Exception:
                # Left in processing; stale recovery settles it later.
                logger.exception("task_mark_failed_failed", task_id=str(task_id))
                return None

        if settlement is None:
            logger.warning("task_already_settled", task_id=str(task_id))
        else:
            logger.info(
                "task_finalized",
                task_id=str(task_id),
                status=settlement.status,
                credits_used=settlement.credits_used,
                refunded=settlement.refunded,
            )
        return settlement

    async def _settle(
        self, task_id: uuid.UUID, to_status: str, error_message: str | None
    ) -> Settlement | None:
        async with self._session_factory() as db:
            settlement = await TaskRepository.finalize(
                db, task_id, to_status=to_status, error_message=error_message
            )
            await db.commit()
        return settlement

"""Extraction orchestrator: runs a pipeline definition for one entity."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from app.config import settings
from app.core.exceptions import (
    AlreadyRunningError,
    PermanentInputError,
    StepAdapterError,
    TransientProviderError,
)
from app.services.pipelines.definition import PipelineDefinition, StepDefinition
from app.services.progress_store import EntityRecord, ProgressStore
from app.services.run_lock import RunLease, RunLock
from app.services.steps.base_step import StepContext, StepResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry and timeout policy applied to every step of a run."""

    max_attempts: int = 3
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 30.0
    step_timeout_seconds: float | None = 600.0

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_attempts=settings.extraction_step_max_attempts,
            base_delay_seconds=settings.extraction_retry_base_delay_seconds,
            max_delay_seconds=settings.extraction_retry_max_delay_seconds,
            step_timeout_seconds=settings.extraction_step_timeout_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt after ``attempt`` (1-based)."""
        return min(self.base_delay_seconds * 2 ** (attempt - 1), self.max_delay_seconds)


@dataclass(frozen=True, slots=True)
class ExtractionOptions:
    # Re-execute steps that already settled; the only way out of ``completed``.
    force_rerun: bool = False


@dataclass(slots=True)
class ExtractionOutcome:
    """Summary of one run, returned to workers and scripts."""

    entity_id: str
    status: str
    failed_step: str | None = None
    executed_steps: list[str] = field(default_factory=list)
    skipped_steps: list[str] = field(default_factory=list)
    tolerated_failures: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _StepAttemptResult:
    result: StepResult | None
    error: Exception | None
    attempts: int


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _error_text(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message or type(exc).__name__


class ExtractionOrchestrator:
    """Run a pipeline definition step by step, strictly in order.

    Per step: skip when already settled (unless ``force_rerun``), check the
    declared inputs, mark running, invoke the adapter under a timeout, retry
    transient failures with exponential backoff, then record the outcome and
    field patch atomically. Fatal failures stop the run; tolerable failures
    are recorded as ``skipped_with_error`` and the run continues.
    """

    def __init__(
        self,
        store: ProgressStore,
        run_lock: RunLock,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.run_lock = run_lock
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._sleep = sleep

    async def execute_extraction(
        self,
        entity_id: str,
        definition: PipelineDefinition,
        options: ExtractionOptions | None = None,
    ) -> ExtractionOutcome:
        """Acquire the entity's run lock and run the pipeline.

        Raises:
            AlreadyRunningError: another run holds the lock; nothing is written.
            EntityNotFoundError: the entity does not exist.
        """
        lease = await self.run_lock.acquire(entity_id)
        async with lease:
            return await self.run_locked(entity_id, definition, options, lease)

    async def run_locked(
        self,
        entity_id: str,
        definition: PipelineDefinition,
        options: ExtractionOptions | None,
        lease: RunLease,
    ) -> ExtractionOutcome:
        """Run the pipeline while the caller holds ``lease``."""
        options = options or ExtractionOptions()
        record = await self.store.load(entity_id)
        outcome = ExtractionOutcome(entity_id=entity_id, status=record.extraction_status)
        log_ctx = {
            "entity_id": entity_id,
            "entity_type": record.entity_type,
            "force_rerun": options.force_rerun,
        }
        logger.info("Extraction run started", extra=log_ctx)

        for step in definition.steps:
            if record.step(step.name).is_settled and not options.force_rerun:
                continue

            if not await lease.refresh():
                raise AlreadyRunningError(entity_id)

            try:
                record, stop = await self._run_step(record, step, definition, outcome, lease)
            except AlreadyRunningError:
                # Lease lost mid-step; the entity may belong to another run now.
                raise
            except (asyncio.CancelledError, Exception) as e:
                await self._release_interrupted_step(entity_id, step.name, definition, e)
                raise
            if stop:
                break

        record = await self.store.finalize(entity_id, definition=definition)
        outcome.status = record.extraction_status
        outcome.failed_step = record.failed_step
        logger.info(
            "Extraction run finished",
            extra={
                **log_ctx,
                "status": outcome.status,
                "failed_step": outcome.failed_step,
                "executed_steps": outcome.executed_steps,
            },
        )
        return outcome

    async def _release_interrupted_step(
        self,
        entity_id: str,
        step_name: str,
        definition: PipelineDefinition,
        error: BaseException,
    ) -> None:
        """Return a step left ``running`` by a cancelled or failed run to ``pending``.

        Runs while the lease is still held, so the next resume picks the step
        up immediately instead of waiting for the stale threshold.
        """
        log_ctx = {
            "entity_id": entity_id,
            "step": step_name,
            "error_class": type(error).__name__,
        }
        try:
            record = await self.store.load(entity_id)
            if record.step(step_name).status == "running":
                await self.store.reset_steps(
                    entity_id, [step_name], definition=definition, run_active=False
                )
            else:
                await self.store.finalize(entity_id, definition=definition)
        except Exception:
            logger.exception("Failed to release interrupted step", extra=log_ctx)
            return
        logger.warning("Extraction run interrupted, step released", extra=log_ctx)

    async def _run_step(
        self,
        record: EntityRecord,
        step: StepDefinition,
        definition: PipelineDefinition,
        outcome: ExtractionOutcome,
        lease: RunLease,
    ) -> tuple[EntityRecord, bool]:
        """Run one step and record it. Returns the updated record and whether to stop."""
        entity_id = record.id
        step_ctx = {"entity_id": entity_id, "entity_type": record.entity_type, "step": step.name}
        snapshot = record.snapshot()

        missing = [name for name in step.requires if _is_missing(snapshot.get(name))]
        if missing and step.skip_if_missing:
            logger.info("Step skipped, inputs missing", extra={**step_ctx, "missing": missing})
            record = await self.store.record_step_result(
                entity_id, step.name, "skipped", definition=definition
            )
            outcome.skipped_steps.append(step.name)
            return record, False

        if missing:
            attempt = _StepAttemptResult(
                result=None,
                error=PermanentInputError(f"Missing required input: {', '.join(missing)}"),
                attempts=0,
            )
        else:
            record = await self.store.record_step_start(entity_id, step.name, definition=definition)
            outcome.executed_steps.append(step.name)
            attempt = await self._invoke_with_retry(record, step, lease)

        if attempt.result is not None:
            record = await self.store.record_step_result(
                entity_id,
                step.name,
                "completed",
                definition=definition,
                fields=attempt.result.fields,
                raw=attempt.result.raw,
                attempts=attempt.attempts,
            )
            logger.info("Step completed", extra={**step_ctx, "attempts": attempt.attempts})
            return record, False

        error = attempt.error or RuntimeError("step produced no result")
        status = "failed" if step.fatal else "skipped_with_error"
        record = await self.store.record_step_result(
            entity_id,
            step.name,
            status,
            definition=definition,
            error=_error_text(error),
            attempts=attempt.attempts,
        )
        logger.warning(
            "Step failed",
            extra={
                **step_ctx,
                "fatal": step.fatal,
                "attempts": attempt.attempts,
                "error": _error_text(error),
                "error_class": type(error).__name__,
            },
        )
        if step.fatal:
            return record, True
        outcome.tolerated_failures.append(step.name)
        return record, False

    async def _invoke_with_retry(
        self,
        record: EntityRecord,
        step: StepDefinition,
        lease: RunLease,
    ) -> _StepAttemptResult:
        policy = self.retry_policy
        snapshot = record.snapshot()
        last_error: Exception | None = None

        for attempt in range(1, policy.max_attempts + 1):
            # The lease TTL covers one attempt plus backoff, not the whole step.
            if attempt > 1 and not await lease.refresh():
                logger.warning(
                    "Run lease lost before retry",
                    extra={"entity_id": record.id, "step": step.name, "attempt": attempt},
                )
                raise AlreadyRunningError(record.id)
            context = StepContext(
                entity_id=record.id,
                entity_type=record.entity_type,
                step_name=step.name,
                snapshot=snapshot,
                inputs={name: snapshot.get(name) for name in step.requires},
                attempt=attempt,
            )
            try:
                result = await self._invoke(step, context)
                return _StepAttemptResult(result=result, error=None, attempts=attempt)
            except TransientProviderError as e:
                last_error = e
                will_retry = attempt < policy.max_attempts
                logger.warning(
                    "Transient step failure",
                    extra={
                        "entity_id": record.id,
                        "step": step.name,
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "will_retry": will_retry,
                        "error": _error_text(e),
                    },
                )
                if will_retry:
                    await self._sleep(policy.delay_for(attempt))
            except StepAdapterError as e:
                return _StepAttemptResult(result=None, error=e, attempts=attempt)
            except Exception as e:
                logger.exception(
                    "Unexpected step error",
                    extra={
                        "entity_id": record.id,
                        "entity_type": record.entity_type,
                        "step": step.name,
                        "attempt": attempt,
                    },
                )
                return _StepAttemptResult(result=None, error=e, attempts=attempt)

        return _StepAttemptResult(result=None, error=last_error, attempts=policy.max_attempts)

    async def _invoke(self, step: StepDefinition, context: StepContext) -> StepResult:
        timeout = self.retry_policy.step_timeout_seconds
        if not timeout:
            return await step.adapter.execute(context)
        try:
            return await asyncio.wait_for(step.adapter.execute(context), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransientProviderError(
                f"Step {step.name} timed out after {timeout:g}s"
            ) from e

"""Resumable batch runner shared by the enhancement and submission stages."""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError

from claims_rpa.core.database.models import RunStatus, RunType
from claims_rpa.core.exceptions import (
    AuthenticationError,
    BatchFatalError,
    SessionLostError,
)
from claims_rpa.monitoring.metrics import MetricsCollector, metrics as default_metrics
from claims_rpa.processing.runs.tracker import RunTracker

logger = structlog.get_logger(__name__)

BATCH_FATAL_ERRORS = (BatchFatalError, AuthenticationError, SQLAlchemyError)

COMPLETED = "completed"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class VisitOutcome:
    """Result of pushing one visit through a stage."""

    visit_id: str
    success: bool
    reason: Optional[str] = None
    error: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    counts_as: str = COMPLETED

    @classmethod
    def completed(cls, visit_id: str, reason: Optional[str] = None, **payload: Any) -> "VisitOutcome":
        return cls(visit_id, True, reason=reason, payload=payload, counts_as=COMPLETED)

    @classmethod
    def failed(cls, visit_id: str, reason: str, error: Optional[str] = None, **payload: Any) -> "VisitOutcome":
        return cls(visit_id, False, reason=reason, error=error, payload=payload, counts_as=FAILED)

    @classmethod
    def skipped(cls, visit_id: str, reason: str, **payload: Any) -> "VisitOutcome":
        return cls(visit_id, False, reason=reason, payload=payload, counts_as=SKIPPED)


@dataclass
class BatchPolicy:
    """Which visits a batch touches."""

    max_retries: int = 3
    force: bool = False
    retry_failed_only: bool = False

    def skip_reason(
        self, status: Optional[str], attempts: int, retryable: bool = True
    ) -> Optional[str]:
        if not self.force and status == COMPLETED:
            return "already_completed"
        if self.retry_failed_only and status != FAILED:
            return "not_failed"
        if not self.force and not self.retry_failed_only and status == FAILED and not retryable:
            return "not_retryable"
        if (
            not self.force
            and not self.retry_failed_only
            and status == FAILED
            and attempts >= self.max_retries
        ):
            return "retry_limit_reached"
        # unset, in_progress (interrupted earlier) and failed with budget left
        return None

    def should_process(self, status: Optional[str], attempts: int, retryable: bool = True) -> bool:
        return self.skip_reason(status, attempts, retryable) is None


@dataclass
class BatchResult:
    """Results from processing a batch of visits."""

    total: int
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[VisitOutcome] = field(default_factory=list)
    run_id: Optional[int] = None
    processing_time: float = 0.0

    def record(self, outcome: VisitOutcome) -> None:
        self.results.append(outcome)
        if outcome.counts_as == COMPLETED:
            self.completed += 1
        elif outcome.counts_as == FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def failures(self, limit: Optional[int] = None) -> List[VisitOutcome]:
        failed = [r for r in self.results if r.counts_as == FAILED]
        return failed[:limit] if limit else failed


class VisitProcessor(ABC):
    """A stage the runner can drive, one visit at a time."""

    stage: str = "stage"

    @abstractmethod
    def status_of(self, visit: Any) -> Tuple[Optional[str], int]:
        """Return ``(status, attempts)`` for the resume decision."""

    @abstractmethod
    async def process(self, visit: Any) -> VisitOutcome:
        ...

    def is_retryable(self, visit: Any) -> bool:
        """False when the last failure recorded on ``visit`` will not go away by itself."""
        return True

    async def start(self) -> None:
        """Open the shared automation session before the first visit."""

    async def reauthenticate(self) -> None:
        """Log in again after the session was lost."""


class ResumableBatchRunner:
    """Drive a :class:`VisitProcessor` over an ordered list of visits.

    Visits run strictly one after another on a single shared session. A
    per-visit error is recorded as that visit's failure; only the
    batch-fatal errors abort the run.
    """

    def __init__(
        self,
        processor: VisitProcessor,
        tracker: RunTracker,
        run_type: Union[RunType, str],
        delay_seconds: float = 0.0,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.processor = processor
        self.tracker = tracker
        self.run_type = RunType(run_type)
        self.delay_seconds = delay_seconds
        self.metrics = metrics or default_metrics
        self._sleep = sleep

    async def run(
        self,
        visits: Sequence[Any],
        policy: BatchPolicy,
        run_metadata: Optional[Dict[str, Any]] = None,
    ) -> BatchResult:
        start_time = time.time()
        stage = self.processor.stage
        result = BatchResult(total=len(visits))

        metadata = {
            "max_retries": policy.max_retries,
            "force": policy.force,
            "retry_failed_only": policy.retry_failed_only,
            **(run_metadata or {}),
        }
        run_id = await self.tracker.start_run(self.run_type, metadata, total_records=len(visits))
        result.run_id = run_id

        plan: List[Tuple[Any, Optional[str]]] = []
        for visit in visits:
            status, attempts = self.processor.status_of(visit)
            retryable = status != FAILED or self.processor.is_retryable(visit)
            plan.append((visit, policy.skip_reason(status, attempts, retryable)))
        to_process = sum(1 for _, skip in plan if skip is None)

        logger.info(
            "Starting batch",
            run_id=run_id,
            stage=stage,
            total=len(visits),
            to_process=to_process,
            skipped=len(visits) - to_process,
        )
        self.metrics.observe_batch_size(stage, to_process)

        try:
            if to_process:
                await self._start_session()

            processed = 0
            for visit, skip in plan:
                if skip is not None:
                    result.record(VisitOutcome.skipped(visit.id, skip))
                    self.metrics.increment_visits_processed(stage, SKIPPED)
                    continue

                if processed and self.delay_seconds:
                    await self._sleep(self.delay_seconds)
                processed += 1

                with self.metrics.time_visit(stage):
                    outcome = await self._process_one(visit)
                result.record(outcome)
                self.metrics.increment_visits_processed(stage, outcome.counts_as)

                await self.tracker.update_run(
                    run_id, completed_count=result.completed, failed_count=result.failed
                )
        except Exception as e:
            # Per-visit errors never get here; anything that does ends the run
            logger.error("Batch aborted", run_id=run_id, stage=stage, error=str(e))
            await self.tracker.finalize_run(
                run_id,
                RunStatus.FAILED,
                error_message=str(e),
                completed_count=result.completed,
                failed_count=result.failed,
            )
            raise

        await self.tracker.finalize_run(
            run_id,
            RunStatus.COMPLETED,
            completed_count=result.completed,
            failed_count=result.failed,
        )
        result.processing_time = time.time() - start_time

        logger.info(
            "Batch completed",
            run_id=run_id,
            stage=stage,
            completed=result.completed,
            failed=result.failed,
            skipped=result.skipped,
            duration=result.processing_time,
        )
        return result

    async def _start_session(self) -> None:
        try:
            await self.processor.start()
        except BATCH_FATAL_ERRORS:
            raise
        except Exception as e:
            raise AuthenticationError(f"Could not open the automation session: {e}") from e

    async def _process_one(self, visit: Any) -> VisitOutcome:
        try:
            return await self._process_with_relogin(visit)
        except BATCH_FATAL_ERRORS:
            raise
        except Exception as e:
            logger.exception("Visit processing failed", visit_id=visit.id, error=str(e))
            return VisitOutcome.failed(visit.id, reason="error", error=str(e))

    async def _process_with_relogin(self, visit: Any) -> VisitOutcome:
        try:
            return await self.processor.process(visit)
        except SessionLostError as e:
            logger.warning("Session lost, re-authenticating", visit_id=visit.id, error=str(e))

        try:
            await self.processor.reauthenticate()
        except Exception as e:
            raise AuthenticationError(f"Re-authentication failed: {e}") from e

        try:
            return await self.processor.process(visit)
        except SessionLostError as e:
            raise BatchFatalError(f"Session lost again after re-authentication: {e}") from e

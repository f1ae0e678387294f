"""Run tracker: aggregate progress records for every batch invocation."""

from datetime import timedelta
from typing import Any, Dict, Optional, Set, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError

from claims_rpa.core.database.models import RunStatus, RunType
from claims_rpa.core.database.repositories import RunRepository
from claims_rpa.core.lifecycle import DEFAULT_TERMINATION_REASON, ShutdownRegistry
from claims_rpa.core.time_utils import utc_now
from claims_rpa.monitoring.metrics import MetricsCollector, metrics as default_metrics

logger = structlog.get_logger(__name__)

_UPDATABLE_FIELDS = {"total_records", "completed_count", "failed_count", "run_metadata", "error_message"}


class RunTracker:
    """Create, update and finalize ``rpa_extraction_runs`` rows.

    ``start_run`` registers a crash finalizer on the shutdown registry, so a
    run that is never explicitly finalized is marked ``failed`` when the
    process goes down. Finalization happens at most once per run within this
    process.

    Store errors during ``update_run``/``finalize_run`` are logged and
    swallowed so bookkeeping never aborts a batch; ``start_run`` lets them
    propagate because a batch without a run record must not start.
    """

    def __init__(
        self,
        repository: Optional[RunRepository] = None,
        shutdown_registry: Optional[ShutdownRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.repository = repository or RunRepository()
        self.shutdown_registry = shutdown_registry
        self.metrics = metrics or default_metrics
        self._finalized: Set[int] = set()
        self._unregister: Dict[int, Any] = {}
        self._run_types: Dict[int, str] = {}

    async def start_run(
        self,
        run_type: Union[RunType, str],
        metadata: Optional[Dict[str, Any]] = None,
        total_records: int = 0,
    ) -> int:
        run_type = RunType(run_type)
        run = await self.repository.create(
            run_type=run_type,
            status=RunStatus.RUNNING,
            started_at=utc_now(),
            run_metadata=dict(metadata or {}),
            total_records=total_records,
        )
        self._run_types[run.id] = run_type.value

        if self.shutdown_registry is not None:
            run_id = run.id

            async def finalize_on_shutdown(reason: str) -> None:
                await self.finalize_run(
                    run_id, RunStatus.FAILED, error_message=reason or DEFAULT_TERMINATION_REASON
                )

            self._unregister[run.id] = self.shutdown_registry.register(
                finalize_on_shutdown, name=f"run:{run.id}"
            )

        logger.info("Run started", run_id=run.id, run_type=run_type.value, metadata=metadata)
        return run.id

    async def update_run(self, run_id: int, **fields: Any) -> None:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown run fields: {sorted(unknown)}")
        try:
            await self.repository.update_fields(run_id, **fields)
        except SQLAlchemyError as e:
            logger.warning("Failed to update run", run_id=run_id, error=str(e))

    async def finalize_run(
        self,
        run_id: int,
        status: Union[RunStatus, str],
        error_message: Optional[str] = None,
        **fields: Any,
    ) -> bool:
        """Move the run to a terminal status. Returns False if already done."""
        if run_id in self._finalized:
            return False
        self._finalized.add(run_id)

        unregister = self._unregister.pop(run_id, None)
        if unregister is not None:
            unregister()

        status = RunStatus(status)
        values: Dict[str, Any] = {"status": status, "finished_at": utc_now(), **fields}
        if error_message is not None:
            values["error_message"] = error_message

        try:
            await self.repository.update_fields(run_id, **values)
        except SQLAlchemyError as e:
            logger.error("Failed to finalize run", run_id=run_id, status=status.value, error=str(e))
            return True

        self.metrics.increment_runs_finalized(self._run_types.get(run_id, "unknown"), status.value)
        logger.info("Run finalized", run_id=run_id, status=status.value, error=error_message)
        return True

    def is_finalized(self, run_id: int) -> bool:
        return run_id in self._finalized

    async def fail_stale_runs(self, older_than: timedelta) -> int:
        """Mark ``running`` runs started before ``now - older_than`` as failed."""
        cutoff = utc_now() - older_than
        stale = await self.repository.list_running(started_before=cutoff)
        for run in stale:
            await self.repository.update_fields(
                run.id,
                status=RunStatus.FAILED,
                finished_at=utc_now(),
                error_message=f"Run abandoned: still running after {older_than}",
            )
            logger.warning("Marked stale run as failed", run_id=run.id, run_type=RunType(run.run_type).value)
        return len(stale)

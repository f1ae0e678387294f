"""Integration tests for run records and crash finalization."""

from datetime import timedelta

import pytest

from claims_rpa.core.database.models import RunStatus, RunType
from claims_rpa.core.lifecycle import DEFAULT_TERMINATION_REASON
from claims_rpa.core.time_utils import utc_now


@pytest.mark.integration
class TestRunTracker:
    """Test the run lifecycle: running, then exactly one terminal status."""

    async def test_start_and_finalize(self, run_tracker, run_repository, metrics_collector):
        run_id = await run_tracker.start_run(RunType.VISIT_DETAILS, {"date_from": "2026-01-01"}, total_records=4)

        run = await run_repository.get(run_id)
        assert run.status == RunStatus.RUNNING
        assert run.run_metadata == {"date_from": "2026-01-01"}
        assert run.total_records == 4

        await run_tracker.update_run(run_id, completed_count=3, failed_count=1)
        assert await run_tracker.finalize_run(run_id, RunStatus.COMPLETED)

        run = await run_repository.get(run_id)
        assert run.status == RunStatus.COMPLETED
        assert (run.completed_count, run.failed_count) == (3, 1)
        assert run.finished_at is not None
        assert metrics_collector.registry.get_sample_value(
            "rpa_runs_finalized_total", {"run_type": "visit_details", "status": "completed"}
        ) == 1.0

    async def test_simulated_termination_fails_the_run(self, run_tracker, run_repository, shutdown_registry):
        run_id = await run_tracker.start_run(RunType.CLAIM_SUBMISSION)
        assert shutdown_registry.pending == 1

        assert await shutdown_registry.run_all("Received SIGTERM") == 1

        run = await run_repository.get(run_id)
        assert run.status == RunStatus.FAILED
        assert run.error_message == "Received SIGTERM"
        assert run_tracker.is_finalized(run_id)

    async def test_default_termination_reason(self, run_tracker, run_repository, shutdown_registry):
        run_id = await run_tracker.start_run(RunType.QUEUE_LIST)

        await shutdown_registry.run_all()

        assert (await run_repository.get(run_id)).error_message == DEFAULT_TERMINATION_REASON

    async def test_finalizer_is_a_noop_after_completion(self, run_tracker, run_repository, shutdown_registry):
        run_id = await run_tracker.start_run(RunType.VISIT_DETAILS)
        await run_tracker.finalize_run(run_id, RunStatus.COMPLETED)

        assert shutdown_registry.pending == 0
        assert await shutdown_registry.run_all() == 0
        assert not await run_tracker.finalize_run(run_id, RunStatus.FAILED, error_message="late")

        run = await run_repository.get(run_id)
        assert run.status == RunStatus.COMPLETED
        assert run.error_message is None

    async def test_update_rejects_unknown_fields(self, run_tracker):
        run_id = await run_tracker.start_run(RunType.VISIT_DETAILS)
        with pytest.raises(ValueError):
            await run_tracker.update_run(run_id, status=RunStatus.COMPLETED)

    async def test_stale_runs_are_failed(self, run_tracker, run_repository):
        old = await run_repository.create(
            run_type=RunType.VISIT_DETAILS,
            status=RunStatus.RUNNING,
            started_at=utc_now() - timedelta(hours=8),
        )
        recent_id = await run_tracker.start_run(RunType.VISIT_DETAILS)

        assert await run_tracker.fail_stale_runs(timedelta(hours=6)) == 1

        assert (await run_repository.get(old.id)).status == RunStatus.FAILED
        assert (await run_repository.get(recent_id)).status == RunStatus.RUNNING

"""Unit tests for the batch resume policy and result bookkeeping."""

import pytest

from claims_rpa.processing.batch_processor.runner import (
    COMPLETED,
    FAILED,
    SKIPPED,
    BatchPolicy,
    BatchResult,
    VisitOutcome,
)


@pytest.mark.unit
class TestBatchPolicy:
    """Test which visits a batch touches."""

    def test_default_policy(self):
        policy = BatchPolicy(max_retries=3)
        assert policy.should_process(None, 0)
        assert policy.should_process("in_progress", 1)
        assert policy.should_process("failed", 2)
        assert policy.skip_reason("completed", 0) == "already_completed"
        assert policy.skip_reason("failed", 3) == "retry_limit_reached"
        assert policy.skip_reason("failed", 7) == "retry_limit_reached"

    def test_permanent_failure_is_not_retried(self):
        policy = BatchPolicy(max_retries=3)
        assert policy.skip_reason("failed", 1, retryable=False) == "not_retryable"
        assert policy.should_process("failed", 1, retryable=True)
        assert BatchPolicy(force=True).should_process("failed", 1, retryable=False)
        assert BatchPolicy(retry_failed_only=True).should_process("failed", 1, retryable=False)
        assert policy.skip_reason("completed", 0, retryable=False) == "already_completed"

    def test_force_reprocesses_everything(self):
        policy = BatchPolicy(max_retries=3, force=True)
        assert policy.should_process("completed", 0)
        assert policy.should_process("failed", 10)
        assert policy.should_process(None, 0)

    def test_retry_failed_only(self):
        policy = BatchPolicy(max_retries=3, retry_failed_only=True)
        assert policy.should_process("failed", 5)
        assert policy.skip_reason(None, 0) == "not_failed"
        assert policy.skip_reason("in_progress", 0) == "not_failed"
        assert policy.skip_reason("completed", 0) == "already_completed"


@pytest.mark.unit
class TestBatchResult:
    """Test outcome counting."""

    def test_record_counts_by_kind(self):
        result = BatchResult(total=4)
        result.record(VisitOutcome.completed("v1"))
        result.record(VisitOutcome.failed("v2", "not_found", error="Patient not found"))
        result.record(VisitOutcome.skipped("v3", "already_completed"))
        result.record(VisitOutcome.failed("v4", "validation_error"))

        assert (result.completed, result.failed, result.skipped) == (1, 2, 1)
        assert [o.visit_id for o in result.failures()] == ["v2", "v4"]
        assert [o.visit_id for o in result.failures(limit=1)] == ["v2"]

    def test_outcome_kinds(self):
        assert VisitOutcome.completed("v1", reason="draft_saved", portal="MHC_ASIA").counts_as == COMPLETED
        assert VisitOutcome.failed("v1", "error").counts_as == FAILED
        skipped = VisitOutcome.skipped("v1", "not_implemented", portal="IHP")
        assert skipped.counts_as == SKIPPED
        assert skipped.payload == {"portal": "IHP"}
        assert not skipped.success

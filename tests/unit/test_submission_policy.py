"""Unit tests for the submission policy and identifier resolution."""

import pytest

from claims_rpa.core.database.models import Visit
from claims_rpa.processing.submission import (
    SubmissionPolicy,
    SubmissionResult,
    apply_submission_policy,
    resolve_identifier,
)
from claims_rpa.processing.submission.submitter import POLICY_BLOCKED


@pytest.mark.unit
class TestSubmissionPolicy:
    """Test policy flags and the live-submit guardrail."""

    def test_defaults_are_fill_only(self):
        policy = SubmissionPolicy()
        assert policy.fill_only
        assert policy.skip_procedures
        assert not policy.allow_live_submit

    def test_draft_mode(self):
        policy = SubmissionPolicy(save_as_draft=True)
        assert not policy.fill_only
        assert policy.skip_procedures

    def test_live_mode_keeps_procedures(self):
        policy = SubmissionPolicy(allow_live_submit=True)
        assert not policy.fill_only
        assert not policy.skip_procedures

    def test_reported_live_submit_is_blocked(self):
        result = SubmissionResult(True, reason="draft_saved", submitted=True, portal="MHC_ASIA")
        apply_submission_policy(result, SubmissionPolicy(save_as_draft=True))
        assert result.success is False
        assert result.reason == POLICY_BLOCKED
        assert "allow_live_submit" in result.error
        assert result.retryable is False

    def test_allowed_live_submit_passes(self):
        result = SubmissionResult(True, submitted=True)
        apply_submission_policy(result, SubmissionPolicy(allow_live_submit=True))
        assert result.success is True
        assert result.reason is None

    def test_draft_result_untouched(self):
        result = SubmissionResult(True, reason="draft_saved", saved_as_draft=True)
        apply_submission_policy(result, SubmissionPolicy(save_as_draft=True))
        assert result.success and result.reason == "draft_saved"

    def test_to_dict_drops_empty_values(self):
        data = SubmissionResult(False, reason="not_implemented", portal="IHP").to_dict()
        assert data == {
            "success": False,
            "reason": "not_implemented",
            "portal": "IHP",
            "saved_as_draft": False,
            "submitted": False,
            "retryable": True,
        }


@pytest.mark.unit
class TestResolveIdentifier:
    """Test where the portal search identifier comes from."""

    def test_column_first(self):
        visit = Visit(nric="s1234567d", details_sources={"nric": "T7654321Z"})
        assert resolve_identifier(visit) == "S1234567D"

    def test_falls_back_to_extraction_metadata(self):
        visit = Visit(nric=None, details_sources={"patientLookup": "name", "nric": "T7654321Z"})
        assert resolve_identifier(visit) == "T7654321Z"

    def test_nested_member_id(self):
        visit = Visit(nric="bad", details_sources={"memberId": {"value": "G1234567X"}})
        assert resolve_identifier(visit) == "G1234567X"

    def test_none_when_absent(self):
        assert resolve_identifier(Visit(nric=None, details_sources=None)) is None

"""Unit tests for the extraction validation gate rules."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from claims_rpa.core.database.models import DetailsStatus, Visit
from claims_rpa.processing.validation.extraction_gate import (
    HARD_FAIL_ISSUES,
    ExtractionValidationGate,
    visit_context,
)

GOOD_MEDICINES = [{"name": "Paracetamol 500mg", "quantity": 10.0}]


def make_visit(**overrides) -> Visit:
    values = {
        "id": "visit-1",
        "patient_name": "TAN AH KOW",
        "visit_date": date(2026, 1, 20),
        "pay_type": "MHC",
        "nric": "S1234567D",
        "details_status": DetailsStatus.COMPLETED,
        "diagnosis_text": "Upper respiratory tract infection",
        "diagnosis_code": "J06.9",
        "medicines": GOOD_MEDICINES,
        "details_sources": {"diagnosisSource": "visit_notes", "nricExtractionStatus": "found"},
    }
    values.update(overrides)
    return Visit(**values)


@pytest.fixture
def gate(metrics_collector):
    return ExtractionValidationGate(repository=object(), sample_size=2, metrics=metrics_collector)


@pytest.mark.unit
class TestGateRules:
    """Test each rule against a single visit."""

    def test_clean_visit_has_no_issues(self, gate):
        assert gate.evaluate(make_visit()) == []

    def test_missing_nric(self, gate):
        assert gate.evaluate(make_visit(nric=None)) == ["missingNric"]

    @pytest.mark.parametrize("status", [None, DetailsStatus.IN_PROGRESS, DetailsStatus.FAILED])
    def test_not_completed(self, gate, status):
        assert "notCompleted" in gate.evaluate(make_visit(details_status=status))

    @pytest.mark.parametrize("diagnosis", [None, "", "Missing diagnosis", "MISSING DIAGNOSIS"])
    def test_missing_diagnosis_is_not_suspicious(self, gate, diagnosis):
        issues = gate.evaluate(make_visit(diagnosis_text=diagnosis))
        assert "missingDiagnosis" in issues
        assert "suspiciousDiagnosis" not in issues

    @pytest.mark.parametrize("diagnosis", [
        "Knee Brace Fitting",
        "Sprained ankle, compression wrap",
        "Wrist splint",
        "Removal of casts",
        "X-ray chest",
        "CT brain",
        "Physio session",
    ])
    def test_suspicious_diagnosis(self, gate, diagnosis):
        assert "suspiciousDiagnosis" in gate.evaluate(make_visit(diagnosis_text=diagnosis))

    @pytest.mark.parametrize("diagnosis", [
        "Upper respiratory tract infection",
        "Acute gastroenteritis",
        "Contact dermatitis",
        "Broadcast injury",
    ])
    def test_words_inside_other_words_are_not_suspicious(self, gate, diagnosis):
        assert "suspiciousDiagnosis" not in gate.evaluate(make_visit(diagnosis_text=diagnosis))

    def test_missing_meds_accepts_treatment_summary(self, gate):
        assert "missingMeds" in gate.evaluate(make_visit(medicines=[]))
        assert "missingMeds" not in gate.evaluate(
            make_visit(medicines=[], treatment_summary="Nebulisation\nObservation 30 min")
        )

    def test_junk_meds(self, gate):
        visit = make_visit(medicines=GOOD_MEDICINES + [{"name": "Medicine", "quantity": None}])
        assert gate.evaluate(visit) == ["junkMeds"]

    def test_hard_fail_issues(self):
        assert HARD_FAIL_ISSUES == {"notCompleted", "suspiciousDiagnosis"}


@pytest.mark.unit
class TestBuildReport:
    """Test report aggregation over a set of visits."""

    def test_knee_brace_fitting_fails_the_gate(self, gate):
        visits = [
            make_visit(id="v1"),
            make_visit(id="v2", diagnosis_text="Knee Brace Fitting"),
        ]
        report = gate.build_report(visits, date(2026, 1, 1), date(2026, 1, 31), portal_only=True)

        assert report.rows == 2
        assert report.issue_counts["suspiciousDiagnosis"] == 1
        assert report.samples["suspiciousDiagnosis"][0]["diagnosis"] == "Knee Brace Fitting"
        assert report.hard_fail
        assert report.exit_code != 0
        assert report.to_dict()["hardFail"] is True

    def test_soft_issues_do_not_fail(self, gate):
        visits = [
            make_visit(id="v1", nric=None),
            make_visit(
                id="v2",
                diagnosis_text="Missing diagnosis",
                details_sources={"diagnosisMissingReason": "no_notes"},
            ),
        ]
        report = gate.build_report(visits, date(2026, 1, 1), date(2026, 1, 31), portal_only=False)

        assert report.issue_counts["missingNric"] == 1
        assert report.issue_counts["missingDiagnosis"] == 1
        assert report.missing_reason_counts == {"no_notes": 1}
        assert report.diagnosis_source_counts == {"unknown": 1, "visit_notes": 1}
        assert not report.hard_fail
        assert report.exit_code == 0

    def test_samples_are_bounded(self, gate):
        visits = [make_visit(id=f"v{i}", nric=None) for i in range(5)]
        report = gate.build_report(visits, date(2026, 1, 1), date(2026, 1, 31), portal_only=True)
        assert report.issue_counts["missingNric"] == 5
        assert len(report.samples["missingNric"]) == 2


@pytest.mark.unit
class TestScan:
    """Test the store-backed scan."""

    async def test_scan_past_row_limit_fails_the_gate(self, metrics_collector):
        repository = AsyncMock()
        repository.find.return_value = [make_visit(id=f"v{i}") for i in range(3)]
        gate = ExtractionValidationGate(repository=repository, metrics=metrics_collector, row_limit=2)

        report = await gate.scan(date(2026, 1, 1), date(2026, 1, 31))

        assert repository.find.await_args.args[0].limit == 3
        assert report.rows == 2
        assert report.truncated
        assert report.hard_fail
        assert report.exit_code == 2
        assert report.to_dict()["truncated"] is True

    async def test_scan_within_row_limit(self, metrics_collector):
        repository = AsyncMock()
        repository.find.return_value = [make_visit(id="v1"), make_visit(id="v2")]
        gate = ExtractionValidationGate(repository=repository, metrics=metrics_collector, row_limit=2)

        report = await gate.scan(date(2026, 1, 1), date(2026, 1, 31))

        assert not report.truncated
        assert report.exit_code == 0
        assert metrics_collector.registry.get_sample_value("rpa_validation_issues", {"issue": "missingNric"}) == 0.0


@pytest.mark.unit
def test_visit_context_counts_named_medicines():
    visit = make_visit(medicines=[{"name": "Paracetamol"}, {"name": " "}, {"name": "Medicine"}])
    context = visit_context(visit)
    assert context["medicine_count"] == 2
    assert context["junk_count"] == 1
    assert context["details_status"] == "completed"

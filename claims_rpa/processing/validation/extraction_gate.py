"""Read-only quality gate over enhanced visits, run before saving drafts.

Each check is a ``rule_engine`` rule evaluated against a flat per-visit
context dict; a rule that matches means the visit has that issue.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import rule_engine
import structlog

from claims_rpa.core.config import settings
from claims_rpa.core.database.models import Visit
from claims_rpa.core.database.repositories import VisitQuery, VisitRepository
from claims_rpa.monitoring.metrics import MetricsCollector, metrics as default_metrics
from claims_rpa.processing.enhancement.medicines import junk_names
from claims_rpa.processing.enhancement.visit_details import MISSING_DIAGNOSIS

logger = structlog.get_logger(__name__)

SUSPICIOUS_DIAGNOSIS_WORDS = (
    "breg",
    "wrap",
    "brace",
    "splint",
    "cast",
    "physio",
    "x-ray",
    "xray",
    "ultrasound",
    "mri",
    "ct",
    "tape",
    "crutch",
    "orthosis",
)

# Whole words only (optionally plural), so "ct" does not hit "infection".
SUSPICIOUS_DIAGNOSIS_REGEX = "(^|[^a-z])(%s)(e?s)?([^a-z]|$)" % "|".join(SUSPICIOUS_DIAGNOSIS_WORDS)

_DIAGNOSIS_ABSENT = 'diagnosis == "" or diagnosis_lower == "%s"' % MISSING_DIAGNOSIS.lower()


@dataclass(frozen=True)
class GateRule:
    """One named check; ``expression`` matches when the issue is present."""

    name: str
    description: str
    expression: str
    hard_fail: bool = False


GATE_RULES = (
    GateRule("missingNric", "Visit has no NRIC", 'nric == ""'),
    GateRule(
        "notCompleted",
        "Visit details extraction is not completed",
        'details_status != "completed"',
        hard_fail=True,
    ),
    GateRule("missingDiagnosis", "Diagnosis missing or sentinel", _DIAGNOSIS_ABSENT),
    GateRule(
        "suspiciousDiagnosis",
        "Diagnosis looks like a procedure or appliance, not a condition",
        '(not (%s)) and (diagnosis_lower =~~ "%s")' % (_DIAGNOSIS_ABSENT, SUSPICIOUS_DIAGNOSIS_REGEX),
        hard_fail=True,
    ),
    GateRule("missingMeds", "No medicines or treatment lines", "medicine_count == 0"),
    GateRule("junkMeds", "Junk medicine names were persisted", "junk_count > 0"),
)

HARD_FAIL_ISSUES = frozenset(rule.name for rule in GATE_RULES if rule.hard_fail)


@dataclass
class ValidationReport:
    date_from: date
    date_to: date
    portal_only: bool
    rows: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)
    diagnosis_source_counts: Dict[str, int] = field(default_factory=dict)
    nric_status_counts: Dict[str, int] = field(default_factory=dict)
    missing_reason_counts: Dict[str, int] = field(default_factory=dict)
    issue_counts: Dict[str, int] = field(default_factory=dict)
    samples: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    truncated: bool = False

    @property
    def hard_fail(self) -> bool:
        if self.truncated:
            return True
        return any(self.issue_counts.get(name, 0) > 0 for name in HARD_FAIL_ISSUES)

    @property
    def exit_code(self) -> int:
        return 2 if self.hard_fail else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dateFrom": self.date_from.isoformat(),
            "dateTo": self.date_to.isoformat(),
            "portalOnly": self.portal_only,
            "rows": self.rows,
            "statusCounts": self.status_counts,
            "diagnosisSourceCounts": self.diagnosis_source_counts,
            "nricExtractionStatusCounts": self.nric_status_counts,
            "missingDiagnosisReasonCounts": self.missing_reason_counts,
            "issueCounts": self.issue_counts,
            "samples": self.samples,
            "truncated": self.truncated,
            "hardFail": self.hard_fail,
        }


def visit_context(visit: Visit) -> Dict[str, Any]:
    """Flatten a visit into the symbols the gate rules refer to."""
    diagnosis = (visit.diagnosis_text or "").strip()
    medicines = visit.medicines or []
    named = [m for m in medicines if str((m or {}).get("name") or "").strip()]
    treatment_lines = [line for line in (visit.treatment_summary or "").splitlines() if line.strip()]
    status = visit.details_status
    return {
        "nric": (visit.nric or "").strip(),
        "details_status": (status.value if hasattr(status, "value") else status) or "pending",
        "diagnosis": diagnosis,
        "diagnosis_lower": diagnosis.lower(),
        "medicine_count": max(len(named), len(treatment_lines)),
        "junk_count": len(junk_names(medicines)),
    }


class ExtractionValidationGate:
    """Scan a date range of visits and report data-quality issues."""

    def __init__(
        self,
        repository: Optional[VisitRepository] = None,
        sample_size: Optional[int] = None,
        portal_pay_types: Optional[Sequence[str]] = None,
        metrics: Optional[MetricsCollector] = None,
        row_limit: int = 2000,
    ):
        self.repository = repository or VisitRepository()
        self.sample_size = sample_size or settings.failure_sample_size
        self.portal_pay_types = list(portal_pay_types or settings.portal_pay_types)
        self.metrics = metrics or default_metrics
        self.row_limit = row_limit
        self.rules = [(rule, rule_engine.Rule(rule.expression)) for rule in GATE_RULES]
        logger.debug("Initialized extraction gate", rule_count=len(self.rules))

    def evaluate(self, visit: Visit) -> List[str]:
        """Names of the issues ``visit`` has."""
        context = visit_context(visit)
        return [rule.name for rule, compiled in self.rules if compiled.matches(context)]

    async def scan(self, date_from: date, date_to: date, portal_only: bool = True) -> ValidationReport:
        query = VisitQuery(
            date_from=date_from,
            date_to=date_to,
            source="Clinic Assist",
            pay_types=self.portal_pay_types if portal_only else None,
            limit=self.row_limit + 1,
        )
        visits = await self.repository.find(query)
        truncated = len(visits) > self.row_limit
        if truncated:
            visits = visits[: self.row_limit]
            logger.warning(
                "Validation scan hit the row limit; narrow the date range",
                row_limit=self.row_limit,
                date_from=date_from.isoformat(),
                date_to=date_to.isoformat(),
            )
        report = self.build_report(visits, date_from, date_to, portal_only)
        report.truncated = truncated

        for name, count in report.issue_counts.items():
            self.metrics.set_validation_issue(name, count)
        logger.info("Extraction validation scan", **report.to_dict())
        return report

    def build_report(
        self, visits: Sequence[Visit], date_from: date, date_to: date, portal_only: bool
    ) -> ValidationReport:
        status_counts: Counter = Counter()
        source_counts: Counter = Counter()
        nric_counts: Counter = Counter()
        reason_counts: Counter = Counter()
        issue_counts: Counter = Counter({rule.name: 0 for rule in GATE_RULES})
        samples: Dict[str, List[Dict[str, Any]]] = {rule.name: [] for rule in GATE_RULES}

        for visit in visits:
            sources = visit.details_sources or {}
            context = visit_context(visit)
            status_counts[context["details_status"]] += 1
            source_counts[sources.get("diagnosisSource") or "unknown"] += 1
            nric_counts[sources.get("nricExtractionStatus") or "unknown"] += 1

            for name in self.evaluate(visit):
                issue_counts[name] += 1
                if name == "missingDiagnosis":
                    reason_counts[sources.get("diagnosisMissingReason") or "unspecified"] += 1
                if len(samples[name]) < self.sample_size:
                    samples[name].append(self._sample(visit, name))

        return ValidationReport(
            date_from=date_from,
            date_to=date_to,
            portal_only=portal_only,
            rows=len(visits),
            status_counts=dict(sorted(status_counts.items())),
            diagnosis_source_counts=dict(sorted(source_counts.items())),
            nric_status_counts=dict(sorted(nric_counts.items())),
            missing_reason_counts=dict(sorted(reason_counts.items())),
            issue_counts=dict(issue_counts),
            samples=samples,
        )

    @staticmethod
    def _sample(visit: Visit, issue: str) -> Dict[str, Any]:
        sample = {
            "id": visit.id,
            "patient_name": visit.patient_name,
            "visit_date": visit.visit_date.isoformat() if visit.visit_date else None,
            "pay_type": visit.pay_type,
        }
        if issue == "suspiciousDiagnosis":
            sample["diagnosis"] = visit.diagnosis_text
        if issue in ("missingDiagnosis", "suspiciousDiagnosis"):
            sample["diagnosisCode"] = visit.diagnosis_code
        if issue == "notCompleted":
            status = visit.details_status
            sample["status"] = status.value if hasattr(status, "value") else status
        if issue == "junkMeds":
            sample["junk"] = junk_names(visit.medicines or [])[:5]
        return sample

"""Claim routing and submission stage.

Classifies a visit by pay type, drives the portal driver to fill the claim
form and applies :class:`SubmissionPolicy` before anything is written back to
the visit's submission block.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError

from claims_rpa.automation.driver import PortalDriver, SubmitOutcome
from claims_rpa.core.config import settings
from claims_rpa.core.database.models import ChargeType, SubmissionStatus, Visit
from claims_rpa.core.database.repositories import VisitRepository
from claims_rpa.core.exceptions import (
    AuthenticationError,
    BatchFatalError,
    ClaimsRpaError,
    NotFoundError,
    PolicyBlockedError,
    RerouteRequired,
    RoutingOverrideError,
    SessionLostError,
    ValidationError,
)
from claims_rpa.core.logging import audit
from claims_rpa.core.time_utils import format_portal_date, utc_now
from claims_rpa.monitoring.metrics import MetricsCollector, metrics as default_metrics
from claims_rpa.processing.batch_processor.runner import VisitOutcome, VisitProcessor
from claims_rpa.processing.enhancement.identifiers import find_identifier, normalize_nric
from claims_rpa.processing.enhancement.medicines import clean_medicines, is_procedure_item
from claims_rpa.processing.enhancement.visit_details import MISSING_DIAGNOSIS

from .routing import Route, classify

logger = structlog.get_logger(__name__)

NOT_IMPLEMENTED = "not_implemented"
UNKNOWN_PAY_TYPE = "unknown_pay_type"
POLICY_BLOCKED = "policy_blocked"
DRAFT_NOT_SAVED = "draft_not_saved"
SUBMIT_NOT_CONFIRMED = "submit_not_confirmed"

NO_OP_REASONS = frozenset({NOT_IMPLEMENTED, UNKNOWN_PAY_TYPE})


@dataclass(frozen=True)
class SubmissionPolicy:
    """Which portal actions may persist something.

    Filling a form is always allowed. Saving a draft requires
    ``save_as_draft``; a real submit requires ``allow_live_submit``.
    """

    allow_live_submit: bool = False
    save_as_draft: bool = False
    persist_errors_in_fill_only_mode: bool = False

    @property
    def fill_only(self) -> bool:
        return not self.save_as_draft and not self.allow_live_submit

    @property
    def skip_procedures(self) -> bool:
        return not self.allow_live_submit

    @classmethod
    def from_settings(cls) -> "SubmissionPolicy":
        return cls(
            allow_live_submit=settings.submission_allow_live_submit,
            save_as_draft=settings.submission_save_as_draft,
            persist_errors_in_fill_only_mode=settings.submission_persist_fill_only_errors,
        )


@dataclass
class SubmissionResult:
    success: bool
    reason: Optional[str] = None
    portal: Optional[str] = None
    pay_type: Optional[str] = None
    context: Optional[str] = None
    saved_as_draft: bool = False
    submitted: bool = False
    routing_override: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    charge_type: Optional[str] = None
    mc_days: Optional[int] = None
    diagnosis_selected: Optional[str] = None
    medicines_filled: List[str] = field(default_factory=list)
    medicines_skipped: List[str] = field(default_factory=list)
    evidence: Optional[str] = None
    reference: Optional[str] = None
    retryable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v not in (None, [], {})}


def resolve_identifier(visit: Visit) -> Optional[str]:
    """NRIC/FIN for the visit: the column first, then extraction metadata."""
    nric = normalize_nric(visit.nric)
    if nric:
        return nric
    sources = visit.details_sources or {}
    candidates: List[Any] = list(sources.values())
    member = sources.get("memberId")
    if isinstance(member, dict):
        candidates.extend(member.values())
    return find_identifier(candidates)


def apply_submission_policy(result: SubmissionResult, policy: SubmissionPolicy) -> SubmissionResult:
    """A live submit the policy did not allow is never reported as success."""
    if result.submitted and not policy.allow_live_submit:
        blocked = PolicyBlockedError(
            "Live submission reported by portal but blocked by policy (allow_live_submit is off)"
        )
        result.success = False
        result.reason = blocked.code
        result.error = blocked.message
        result.retryable = blocked.retryable
    return result


class ClaimSubmitter(VisitProcessor):
    """Submission stage; one instance per batch, sharing one portal session."""

    stage = "claim_submission"

    def __init__(
        self,
        driver: PortalDriver,
        policy: SubmissionPolicy,
        repository: Optional[VisitRepository] = None,
        metrics: Optional[MetricsCollector] = None,
        fee_sentinel: Optional[int] = None,
    ):
        self.driver = driver
        self.policy = policy
        self.repository = repository or VisitRepository()
        self.metrics = metrics or default_metrics
        self.fee_sentinel = fee_sentinel if fee_sentinel is not None else settings.consultation_fee_sentinel
        self._authenticated = False

    def status_of(self, visit: Visit) -> Tuple[Optional[str], int]:
        status = visit.submission_status
        if status in (SubmissionStatus.SUBMITTED, SubmissionStatus.DRAFT):
            return "completed", 0
        if status == SubmissionStatus.ERROR:
            return "failed", 0
        return None, 0

    def is_retryable(self, visit: Visit) -> bool:
        return (visit.submission_metadata or {}).get("retryable", True) is not False

    async def start(self) -> None:
        await self._ensure_session()

    async def reauthenticate(self) -> None:
        self._authenticated = False
        await self._ensure_session()

    async def process(self, visit: Visit) -> VisitOutcome:
        result = await self.submit(visit)
        payload = result.to_dict()
        for key in ("success", "reason", "error"):
            payload.pop(key, None)
        if result.success:
            return VisitOutcome.completed(visit.id, reason=result.reason, **payload)
        if result.reason in NO_OP_REASONS:
            return VisitOutcome.skipped(visit.id, result.reason, **payload)
        return VisitOutcome.failed(visit.id, reason=result.reason or "error", error=result.error, **payload)

    async def submit(self, visit: Visit) -> SubmissionResult:
        pay_type = (visit.pay_type or "").strip().upper() or None
        route = classify(pay_type)

        if route is None:
            logger.warning("Unknown pay type, skipping submission", visit_id=visit.id, pay_type=pay_type)
            self.metrics.increment_submissions(None, UNKNOWN_PAY_TYPE)
            return SubmissionResult(False, reason=UNKNOWN_PAY_TYPE, pay_type=pay_type)

        if not route.automated:
            logger.warning("Portal automation not implemented", visit_id=visit.id, portal=route.portal_label)
            self.metrics.increment_submissions(route.portal_label, NOT_IMPLEMENTED)
            return SubmissionResult(False, reason=NOT_IMPLEMENTED, portal=route.portal_label, pay_type=pay_type)

        result = SubmissionResult(False, portal=route.group.value, pay_type=pay_type)
        try:
            identifier = resolve_identifier(visit)
            if not identifier:
                raise ValidationError("NRIC not found in visit record; run visit details extraction first")

            await self._ensure_session()
            await self._locate(identifier, route, result)
            await self._fill(visit, result)
            await self._persist_action(result)
        except (SessionLostError, AuthenticationError, BatchFatalError, SQLAlchemyError):
            raise
        except ClaimsRpaError as e:
            result.success = False
            result.reason = e.code
            result.error = e.message
            result.retryable = e.retryable
        except Exception as e:
            logger.exception("Claim submission failed", visit_id=visit.id, error=str(e))
            result.success = False
            result.reason = "automation_error"
            result.error = str(e)

        apply_submission_policy(result, self.policy)
        await self._record(visit, result)
        self.metrics.increment_submissions(result.portal, result.reason or "filled")
        return result

    async def _ensure_session(self) -> None:
        if not self._authenticated:
            await self.driver.authenticate()
            self._authenticated = True

    async def _locate(self, identifier: str, route: Route, result: SubmissionResult) -> None:
        """Search and open the member record, honouring one portal re-route."""
        context = route.initial_context
        override: Optional[Dict[str, str]] = None

        while True:
            try:
                found = await self.driver.find_by_identifier(identifier, context)
                if not found.found:
                    if override is not None:
                        raise RoutingOverrideError(
                            f"Patient not found in {context} after portal instruction: {override['instruction']}"
                        )
                    raise NotFoundError(f"Patient not found in {result.portal}: {identifier}")
                await self.driver.open_record(identifier, context)
                result.context = context
                result.routing_override = override
                return
            except RerouteRequired as signal:
                if override is not None:
                    raise RoutingOverrideError(
                        f"Portal requested another switch to {signal.target_context} "
                        f"after {override['instruction']!r}: {signal.instruction}"
                    ) from signal
                override = {"from": context, "to": signal.target_context, "instruction": signal.instruction}
                logger.info("Portal re-route", identifier_context=context, **override)
                self.metrics.increment_routing_overrides(context or "default", signal.target_context)
                context = signal.target_context

    async def _fill(self, visit: Visit, result: SubmissionResult) -> None:
        visit_date = format_portal_date(visit.visit_date)
        if visit_date:
            await self.driver.fill_field("visit_date", visit_date)

        charge_type = visit.charge_type or ChargeType.FOLLOW
        charge_type = ChargeType(charge_type)
        control = "charge_type_first" if charge_type == ChargeType.FIRST else "charge_type_follow"
        await self.driver.fill_field(control, True)
        result.charge_type = charge_type.value

        # Sentinel triggers the portal's own "apply maximum amount" prompt
        await self.driver.fill_field("consultation_fee", self.fee_sentinel)

        mc_days = visit.mc_days or 0
        await self.driver.fill_field("mc_days", mc_days)
        result.mc_days = mc_days
        if visit.mc_start_date:
            await self.driver.fill_field("mc_start_date", format_portal_date(visit.mc_start_date))

        diagnosis = (visit.diagnosis_text or "").strip()
        if diagnosis and diagnosis.lower() != MISSING_DIAGNOSIS.lower():
            result.diagnosis_selected = await self.driver.select_diagnosis(visit.diagnosis_code, diagnosis)

        for medicine in clean_medicines(visit.medicines or []):
            if self.policy.skip_procedures and is_procedure_item(medicine["name"]):
                result.medicines_skipped.append(medicine["name"])
                continue
            await self.driver.add_medicine(medicine["name"], medicine["quantity"])
            result.medicines_filled.append(medicine["name"])

        result.evidence = await self.driver.capture_evidence(f"{visit.id}-filled")
        result.success = True

    async def _persist_action(self, result: SubmissionResult) -> None:
        if self.policy.allow_live_submit:
            outcome = await self.driver.trigger_submit()
            result.reference = outcome.reference
            if outcome.submitted:
                result.submitted = True
            else:
                result.success = False
                result.reason = SUBMIT_NOT_CONFIRMED
                result.error = outcome.message or "Portal did not confirm the submission"
            return

        if not self.policy.save_as_draft:
            result.reason = "filled_only"
            return

        saved = await self.driver.trigger_save_draft()
        if isinstance(saved, SubmitOutcome):
            # Some portals finalize the claim from the draft button
            result.submitted = saved.submitted
            result.reference = saved.reference
            saved = not saved.submitted
        if saved:
            result.saved_as_draft = True
            result.reason = "draft_saved"
        else:
            result.success = False
            result.reason = DRAFT_NOT_SAVED
            result.error = "Portal did not confirm the draft was saved"

    async def _record(self, visit: Visit, result: SubmissionResult) -> None:
        if result.success and result.submitted:
            now = utc_now()
            await self.repository.update_fields(
                visit.id,
                submission_status=SubmissionStatus.SUBMITTED,
                submitted_at=now,
                submission_portal=result.pay_type,
                submission_metadata={**result.to_dict(), "submitted_at": now.isoformat()},
                submission_error=None,
            )
            audit(visit.id, result.portal, "submit", "submitted", result.reference or "")
            return

        if result.success and result.saved_as_draft:
            await self.repository.update_fields(
                visit.id,
                submission_status=SubmissionStatus.DRAFT,
                submission_portal=result.pay_type,
                submission_metadata={**result.to_dict(), "drafted_at": utc_now().isoformat()},
                submission_error=None,
            )
            audit(visit.id, result.portal, "save_draft", "draft")
            return

        if result.success:
            logger.info("Claim form filled (fill-only run, nothing persisted)", visit_id=visit.id)
            return

        if result.reason == POLICY_BLOCKED:
            self.metrics.increment_policy_blocks(result.portal or "unknown")
            audit(visit.id, result.portal, "submit", "policy_blocked", result.error or "")

        if self.policy.fill_only and not self.policy.persist_errors_in_fill_only_mode:
            logger.warning(
                "Submission failed in fill-only run (not persisted)",
                visit_id=visit.id, reason=result.reason, error=result.error,
            )
            return

        logger.warning("Submission failed", visit_id=visit.id, reason=result.reason, error=result.error)
        await self.repository.update_fields(
            visit.id,
            submission_status=SubmissionStatus.ERROR,
            submission_error=result.error or result.reason,
            submission_portal=result.pay_type,
            submission_metadata=result.to_dict(),
        )

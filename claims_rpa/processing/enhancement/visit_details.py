"""Visit details enhancement: diagnosis, charge type, MC and medicines."""

from typing import Any, Dict, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError

from claims_rpa.automation.driver import SourceSystemDriver, VisitDetails
from claims_rpa.core.database.models import ChargeType, DetailsStatus, Visit
from claims_rpa.core.database.repositories import VisitRepository
from claims_rpa.core.exceptions import (
    AuthenticationError,
    BatchFatalError,
    NotFoundError,
    SessionLostError,
    ValidationError,
    is_retryable,
)
from claims_rpa.core.time_utils import parse_date, utc_now
from claims_rpa.processing.batch_processor.runner import VisitOutcome, VisitProcessor

from .identifiers import normalize_nric, normalize_patient_name, normalize_pcno
from .medicines import clean_medicines

logger = structlog.get_logger(__name__)

MISSING_DIAGNOSIS = "Missing diagnosis"

NRIC_FOUND = "found"
NRIC_INVALID_FORMAT = "invalid_format"
NRIC_NOT_FOUND = "not_found"


def _status_value(status: Any) -> Optional[str]:
    if status is None:
        return None
    return status.value if hasattr(status, "value") else str(status)


class VisitDetailsEnhancer(VisitProcessor):
    """Fill the clinical fields of a visit from the Clinic Assist visit screen.

    State machine per visit: ``unset -> in_progress -> completed | failed``
    and ``failed -> in_progress`` on retry. ``in_progress`` is written before
    the first driver call so an interrupted batch leaves a resumable trace.
    """

    stage = "visit_details"

    def __init__(self, driver: SourceSystemDriver, repository: Optional[VisitRepository] = None):
        self.driver = driver
        self.repository = repository or VisitRepository()

    def status_of(self, visit: Visit) -> Tuple[Optional[str], int]:
        return _status_value(visit.details_status), visit.details_attempts or 0

    def is_retryable(self, visit: Visit) -> bool:
        return (visit.details_sources or {}).get("retryable", True) is not False

    async def start(self) -> None:
        await self.driver.authenticate()

    async def reauthenticate(self) -> None:
        await self.driver.authenticate()

    async def process(self, visit: Visit) -> VisitOutcome:
        await self.repository.update_fields(
            visit.id,
            details_status=DetailsStatus.IN_PROGRESS,
            details_last_attempt_at=utc_now(),
        )
        sources: Dict[str, Any] = {}

        try:
            await self._open_patient(visit, sources)
            await self._capture_nric(visit, sources)
            details = await self.driver.read_visit_details(visit.visit_date)
            fields = self._completion_fields(details, sources)
            await self.repository.update_fields(visit.id, **fields)
        except (SessionLostError, AuthenticationError, BatchFatalError, SQLAlchemyError):
            # Left in_progress; the runner decides whether the batch survives.
            raise
        except Exception as e:
            await self._mark_failed(visit, e, sources)
            return VisitOutcome.failed(
                visit.id, reason=getattr(e, "code", "error"), error=str(e), sources=sources
            )

        logger.info(
            "Visit details extracted",
            visit_id=visit.id,
            diagnosis=(fields["diagnosis_text"] or "")[:100],
            medicines=len(fields["medicines"]),
        )
        return VisitOutcome.completed(
            visit.id,
            diagnosis=fields["diagnosis_text"],
            diagnosis_code=fields["diagnosis_code"],
            medicines=len(fields["medicines"]),
            sources=sources,
        )

    async def _open_patient(self, visit: Visit, sources: Dict[str, Any]) -> None:
        pcno = normalize_pcno(visit.pcno)
        if pcno and await self.driver.find_patient_by_number(pcno):
            sources["patientLookup"] = "pcno"
            return

        name = normalize_patient_name(visit.patient_name)
        if not name:
            if pcno:
                raise NotFoundError(f"Patient number {pcno} not found in Clinic Assist")
            raise ValidationError("Visit has neither a patient number nor a patient name")

        if await self.driver.find_patient_by_name(name):
            sources["patientLookup"] = "name"
            sources["searchName"] = name
            return
        raise NotFoundError(f"Patient {name!r} not found in Clinic Assist")

    async def _capture_nric(self, visit: Visit, sources: Dict[str, Any]) -> None:
        raw = await self.driver.read_patient_nric()
        nric = normalize_nric(raw)
        if nric:
            sources["nricExtractionStatus"] = NRIC_FOUND
            # Persisted on its own so it survives a later failure in this visit
            await self.repository.update_fields(visit.id, nric=nric)
            logger.info("NRIC captured", visit_id=visit.id)
        elif raw:
            sources["nricExtractionStatus"] = NRIC_INVALID_FORMAT
            logger.warning("NRIC has invalid format", visit_id=visit.id)
        else:
            sources["nricExtractionStatus"] = NRIC_NOT_FOUND
            logger.warning("NRIC not found on patient page", visit_id=visit.id)

    def _completion_fields(self, details: VisitDetails, sources: Dict[str, Any]) -> Dict[str, Any]:
        diagnosis = (details.diagnosis_text or "").strip()
        if not diagnosis:
            diagnosis = MISSING_DIAGNOSIS
            sources["diagnosisMissingReason"] = details.diagnosis_missing_reason or "not_found"
        sources["diagnosisSource"] = details.diagnosis_source or ("none" if diagnosis == MISSING_DIAGNOSIS else "unknown")
        if details.source_method:
            sources["sourceMethod"] = details.source_method

        medicines = clean_medicines(details.medicines)
        dropped = len(details.medicines or []) - len(medicines)
        if dropped:
            sources["medicinesDropped"] = dropped

        charge_type = None
        if details.charge_type:
            try:
                charge_type = ChargeType(details.charge_type.strip().lower())
            except ValueError:
                sources["chargeTypeRaw"] = details.charge_type

        return {
            "diagnosis_text": diagnosis,
            "diagnosis_code": (details.diagnosis_code or "").strip() or None,
            "charge_type": charge_type,
            "mc_days": max(int(details.mc_days or 0), 0),
            "mc_start_date": parse_date(details.mc_start_date),
            "medicines": medicines,
            "treatment_summary": details.treatment_summary,
            "details_sources": sources,
            "details_status": DetailsStatus.COMPLETED,
            "details_error": None,
            "details_last_attempt_at": utc_now(),
        }

    async def _mark_failed(self, visit: Visit, error: Exception, sources: Dict[str, Any]) -> None:
        sources["errorCode"] = getattr(error, "code", "error")
        sources["retryable"] = is_retryable(error)
        logger.error(
            "Visit details extraction failed",
            visit_id=visit.id,
            error=str(error),
            retryable=sources["retryable"],
        )
        await self.repository.update_fields(
            visit.id,
            details_status=DetailsStatus.FAILED,
            details_attempts=Visit.details_attempts + 1,
            details_error=str(error) or type(error).__name__,
            details_last_attempt_at=utc_now(),
            details_sources=sources,
        )

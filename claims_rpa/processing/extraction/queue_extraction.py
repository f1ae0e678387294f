"""Queue extraction: one day's Clinic Assist queue into visit rows."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import structlog

from claims_rpa.automation.driver import QueueRow, SourceSystemDriver
from claims_rpa.core.database.models import RunStatus, RunType
from claims_rpa.core.database.repositories import VisitRepository
from claims_rpa.monitoring.metrics import MetricsCollector, metrics as default_metrics
from claims_rpa.processing.enhancement.identifiers import normalize_nric, normalize_pcno
from claims_rpa.processing.runs.tracker import RunTracker

logger = structlog.get_logger(__name__)

SOURCE_CLINIC_ASSIST = "Clinic Assist"


@dataclass
class ExtractionResult:
    run_id: int
    visit_date: date
    total: int = 0
    saved: int = 0
    failed: int = 0
    visit_ids: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


def _amount(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value).replace("$", "").replace(",", "").strip())
    except InvalidOperation:
        return None


def row_to_visit_values(row: QueueRow, visit_date: date) -> Dict[str, Any]:
    """Map a queue row onto visit source columns."""
    nric = normalize_nric(row.nric)
    if row.nric and not nric:
        logger.warning("Queue row NRIC has invalid format", visit_record_no=row.visit_record_no)
    return {
        "patient_name": (row.patient_name or "").strip() or None,
        "visit_date": row.visit_date or visit_date,
        "pay_type": (row.pay_type or "").strip().upper() or None,
        "nric": nric,
        "pcno": normalize_pcno(row.pcno),
        "visit_record_no": str(row.visit_record_no).strip() if row.visit_record_no else None,
        "visit_type": (row.visit_type or "").strip() or None,
        "source": SOURCE_CLINIC_ASSIST,
        "total_amount": _amount(row.total_amount),
    }


class QueueExtractionStage:
    """List the day's queue and upsert each row, tracked as a ``queue_list`` run."""

    def __init__(
        self,
        driver: SourceSystemDriver,
        tracker: RunTracker,
        repository: Optional[VisitRepository] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.driver = driver
        self.tracker = tracker
        self.repository = repository or VisitRepository()
        self.metrics = metrics or default_metrics

    async def extract(self, visit_date: date) -> ExtractionResult:
        run_id = await self.tracker.start_run(
            RunType.QUEUE_LIST, {"visit_date": visit_date.isoformat(), "source": SOURCE_CLINIC_ASSIST}
        )
        result = ExtractionResult(run_id=run_id, visit_date=visit_date)

        try:
            await self.driver.authenticate()
            rows = await self.driver.list_queue(visit_date)
        except Exception as e:
            logger.error("Queue listing failed", run_id=run_id, error=str(e))
            await self.tracker.finalize_run(run_id, RunStatus.FAILED, error_message=str(e))
            raise

        result.total = len(rows)
        await self.tracker.update_run(run_id, total_records=result.total)
        logger.info("Queue listed", run_id=run_id, visit_date=visit_date.isoformat(), rows=result.total)

        for index, row in enumerate(rows):
            try:
                visit = await self.repository.upsert_from_source(row_to_visit_values(row, visit_date))
            except Exception as e:
                result.failed += 1
                result.errors.append({"row": index, "visit_record_no": row.visit_record_no, "error": str(e)})
                logger.error("Failed to save queue row", run_id=run_id, row=index, error=str(e))
                self.metrics.increment_visits_processed("queue_list", "failed")
            else:
                result.saved += 1
                result.visit_ids.append(visit.id)
                self.metrics.increment_visits_processed("queue_list", "completed")

            await self.tracker.update_run(run_id, completed_count=result.saved, failed_count=result.failed)

        await self.tracker.finalize_run(
            run_id, RunStatus.COMPLETED, completed_count=result.saved, failed_count=result.failed
        )
        return result

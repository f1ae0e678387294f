"""Database models for the visit lifecycle."""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def _enum_column(enum_cls: type, length: int = 20) -> Enum:
    """Store enum values (not member names) in a plain VARCHAR column."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class DetailsStatus(str, enum.Enum):
    """Enhancement (visit details) status. ``None`` on the row means unset."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SubmissionStatus(str, enum.Enum):
    """Claim submission status. ``None`` on the row means never persisted."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    ERROR = "error"


class ChargeType(str, enum.Enum):
    FIRST = "first"
    FOLLOW = "follow"


class RunType(str, enum.Enum):
    QUEUE_LIST = "queue_list"
    VISIT_DETAILS = "visit_details"
    CLAIM_SUBMISSION = "claim_submission"


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Visit(Base):
    """One patient encounter on one date at the clinic."""

    __tablename__ = "visits"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Source fields (queue extraction)
    patient_name: Mapped[Optional[str]] = mapped_column(String(200))
    visit_date: Mapped[Optional[date]] = mapped_column(Date, index=True)
    pay_type: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    nric: Mapped[Optional[str]] = mapped_column(String(20))
    pcno: Mapped[Optional[str]] = mapped_column(String(20))
    visit_record_no: Mapped[Optional[str]] = mapped_column(String(50))
    visit_type: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[str] = mapped_column(String(50), default="Clinic Assist")
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    # Clinical fields (enhancement)
    diagnosis_text: Mapped[Optional[str]] = mapped_column(Text)
    diagnosis_code: Mapped[Optional[str]] = mapped_column(String(20))
    charge_type: Mapped[Optional[ChargeType]] = mapped_column(_enum_column(ChargeType))
    mc_days: Mapped[Optional[int]] = mapped_column(Integer)
    mc_start_date: Mapped[Optional[date]] = mapped_column(Date)
    medicines: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON)
    treatment_summary: Mapped[Optional[str]] = mapped_column(Text)

    # Enhancement status block
    details_status: Mapped[Optional[DetailsStatus]] = mapped_column(
        _enum_column(DetailsStatus), index=True
    )
    details_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    details_last_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    details_error: Mapped[Optional[str]] = mapped_column(Text)
    details_sources: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    # Submission status block
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    submission_status: Mapped[Optional[SubmissionStatus]] = mapped_column(
        _enum_column(SubmissionStatus), index=True
    )
    submission_portal: Mapped[Optional[str]] = mapped_column(String(50))
    submission_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    submission_error: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("visit_record_no", "visit_date", name="uq_visits_record_no_date"),
        Index("ix_visits_date_pay_type", "visit_date", "pay_type"),
    )

    def __repr__(self) -> str:
        return f"<Visit {self.id} {self.visit_date} {self.pay_type}>"


class ExtractionRun(Base):
    """Aggregate record of one batch invocation."""

    __tablename__ = "rpa_extraction_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_type: Mapped[RunType] = mapped_column(_enum_column(RunType, 30), nullable=False, index=True)
    status: Mapped[RunStatus] = mapped_column(
        _enum_column(RunStatus), nullable=False, default=RunStatus.RUNNING, index=True
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    # ``metadata`` is reserved on declarative classes
    run_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON)
    total_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<ExtractionRun {self.id} {self.run_type} {self.status}>"

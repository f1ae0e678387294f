"""Record store access for visits and extraction runs.

Every method opens its own short session; no session is held across an
automation driver round trip.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from .base import get_session_factory, session_scope
from .models import DetailsStatus, ExtractionRun, RunStatus, SubmissionStatus, Visit

# Source fields written by queue extraction. Clinical and status blocks are
# owned by later stages and never touched by an upsert.
SOURCE_FIELDS = (
    "patient_name",
    "visit_date",
    "pay_type",
    "nric",
    "pcno",
    "visit_record_no",
    "visit_type",
    "source",
    "total_amount",
)


@dataclass
class VisitQuery:
    """Scope of visits a batch operates on."""

    visit_ids: Optional[Sequence[str]] = None
    pay_types: Optional[Sequence[str]] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    source: Optional[str] = None
    details_completed: bool = False
    not_submitted: bool = False
    newest_first: bool = False
    limit: Optional[int] = None


class VisitRepository:
    """CRUD for :class:`Visit` rows."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory

    def _scope(self):
        return session_scope(self._session_factory or get_session_factory())

    async def get(self, visit_id: str) -> Optional[Visit]:
        async with self._scope() as session:
            return await session.get(Visit, visit_id)

    async def find(self, query: VisitQuery) -> List[Visit]:
        stmt = select(Visit)
        conditions = []

        if query.visit_ids:
            conditions.append(Visit.id.in_(list(query.visit_ids)))
        if query.pay_types:
            pay_types = sorted({p.strip().upper() for p in query.pay_types})
            conditions.append(func.upper(func.trim(Visit.pay_type)).in_(pay_types))
        if query.date_from:
            conditions.append(Visit.visit_date >= query.date_from)
        if query.date_to:
            conditions.append(Visit.visit_date <= query.date_to)
        if query.source:
            conditions.append(Visit.source == query.source)
        if query.details_completed:
            conditions.append(Visit.details_status == DetailsStatus.COMPLETED)
        if query.not_submitted:
            conditions.append(
                or_(Visit.submission_status.is_(None), Visit.submission_status == SubmissionStatus.ERROR)
            )

        if conditions:
            stmt = stmt.where(and_(*conditions))

        if query.newest_first:
            stmt = stmt.order_by(Visit.visit_date.desc(), Visit.created_at.asc(), Visit.id.asc())
        else:
            stmt = stmt.order_by(Visit.visit_date.asc(), Visit.created_at.asc(), Visit.id.asc())
        if query.limit:
            stmt = stmt.limit(query.limit)

        async with self._scope() as session:
            result = await session.execute(stmt)
            visits = list(result.scalars().all())

        if query.visit_ids:
            # Preserve the caller's ordering for explicit id lists
            position = {visit_id: i for i, visit_id in enumerate(query.visit_ids)}
            visits.sort(key=lambda v: position.get(v.id, len(position)))
        return visits

    async def add(self, visit: Visit) -> Visit:
        async with self._scope() as session:
            session.add(visit)
            await session.flush()
            await session.refresh(visit)
            return visit

    async def update_fields(self, visit_id: str, **fields: Any) -> None:
        """Write ``fields`` to one visit in a single statement."""
        if not fields:
            return
        async with self._scope() as session:
            await session.execute(update(Visit).where(Visit.id == visit_id).values(**fields))

    async def upsert_from_source(self, values: Dict[str, Any]) -> Visit:
        """Insert or update a visit keyed by ``(visit_record_no, visit_date)``."""
        source_values = {k: v for k, v in values.items() if k in SOURCE_FIELDS and v is not None}
        record_no = source_values.get("visit_record_no")
        visit_date = source_values.get("visit_date")

        async with self._scope() as session:
            existing = None
            if record_no and visit_date:
                result = await session.execute(
                    select(Visit).where(
                        Visit.visit_record_no == record_no, Visit.visit_date == visit_date
                    )
                )
                existing = result.scalar_one_or_none()

            if existing is None:
                visit = Visit(**source_values)
                session.add(visit)
                await session.flush()
                await session.refresh(visit)
                return visit

            for key, value in source_values.items():
                setattr(existing, key, value)
            await session.flush()
            return existing


class RunRepository:
    """Persistence for :class:`ExtractionRun` rows."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory

    def _scope(self):
        return session_scope(self._session_factory or get_session_factory())

    async def create(self, **fields: Any) -> ExtractionRun:
        async with self._scope() as session:
            run = ExtractionRun(**fields)
            session.add(run)
            await session.flush()
            await session.refresh(run)
            return run

    async def get(self, run_id: int) -> Optional[ExtractionRun]:
        async with self._scope() as session:
            return await session.get(ExtractionRun, run_id)

    async def update_fields(self, run_id: int, **fields: Any) -> None:
        if not fields:
            return
        async with self._scope() as session:
            await session.execute(
                update(ExtractionRun).where(ExtractionRun.id == run_id).values(**fields)
            )

    async def list_running(self, started_before: Optional[datetime] = None) -> List[ExtractionRun]:
        stmt = select(ExtractionRun).where(ExtractionRun.status == RunStatus.RUNNING)
        if started_before is not None:
            stmt = stmt.where(ExtractionRun.started_at < started_before)
        async with self._scope() as session:
            result = await session.execute(stmt.order_by(ExtractionRun.started_at.asc()))
            return list(result.scalars().all())

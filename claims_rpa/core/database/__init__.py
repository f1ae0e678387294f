"""Record store: models, engine/session management and repositories."""

from .base import Base, close_db, get_session_factory, init_db, session_scope
from .models import (
    ChargeType,
    DetailsStatus,
    ExtractionRun,
    RunStatus,
    RunType,
    SubmissionStatus,
    Visit,
)
from .repositories import RunRepository, VisitQuery, VisitRepository

__all__ = [
    "Base",
    "ChargeType",
    "DetailsStatus",
    "ExtractionRun",
    "RunRepository",
    "RunStatus",
    "RunType",
    "SubmissionStatus",
    "Visit",
    "VisitQuery",
    "VisitRepository",
    "close_db",
    "get_session_factory",
    "init_db",
    "session_scope",
]

from .driver import (
    MedicineLine,
    PortalDriver,
    QueueRow,
    SearchResult,
    SourceSystemDriver,
    SubmitOutcome,
    VisitDetails,
    load_factory,
)

__all__ = [
    "MedicineLine",
    "PortalDriver",
    "QueueRow",
    "SearchResult",
    "SourceSystemDriver",
    "SubmitOutcome",
    "VisitDetails",
    "load_factory",
]

"""Capability interfaces for the browser automation layer.

The engine never touches a DOM. It talks to a :class:`SourceSystemDriver`
(Clinic Assist) and a :class:`PortalDriver` (the insurer's claim portal).
Concrete Playwright/Selenium drivers live outside this package and are
plugged in through ``settings.source_driver_factory`` and
``settings.portal_driver_factory``.

Drivers signal the engine through exceptions from
:mod:`claims_rpa.core.exceptions`:

* ``RerouteRequired`` when the portal says the record belongs to another
  sub-system (e.g. "please submit under AIA Clinic"),
* ``SessionLostError`` when the browser session is gone,
* ``AuthenticationError`` when login itself fails,
* ``TransientAutomationError`` for anything environmental.
"""

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from claims_rpa.core.exceptions import DriverNotConfiguredError


@dataclass
class QueueRow:
    """One row of the Clinic Assist patient queue report."""

    patient_name: Optional[str]
    visit_date: date
    pay_type: Optional[str] = None
    nric: Optional[str] = None
    pcno: Optional[str] = None
    visit_record_no: Optional[str] = None
    visit_type: Optional[str] = None
    total_amount: Optional[float] = None


@dataclass
class MedicineLine:
    name: str
    quantity: Optional[float] = None


@dataclass
class VisitDetails:
    """Clinical data scraped from the visit screen for one visit date."""

    charge_type: Optional[str] = None
    diagnosis_text: Optional[str] = None
    diagnosis_code: Optional[str] = None
    diagnosis_source: Optional[str] = None
    diagnosis_missing_reason: Optional[str] = None
    mc_days: int = 0
    mc_start_date: Optional[date] = None
    medicines: List[MedicineLine] = field(default_factory=list)
    treatment_summary: Optional[str] = None
    source_method: Optional[str] = None


@dataclass
class SearchResult:
    found: bool
    context: Optional[str] = None
    member_name: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SubmitOutcome:
    """What the portal reported after ``trigger_submit``."""

    submitted: bool
    reference: Optional[str] = None
    message: Optional[str] = None


class SourceSystemDriver(ABC):
    """Clinic Assist capabilities used by extraction and enhancement."""

    @abstractmethod
    async def authenticate(self) -> None:
        ...

    @abstractmethod
    async def list_queue(self, visit_date: date) -> List[QueueRow]:
        ...

    @abstractmethod
    async def find_patient_by_number(self, pcno: str) -> bool:
        ...

    @abstractmethod
    async def find_patient_by_name(self, name: str) -> bool:
        ...

    @abstractmethod
    async def read_patient_nric(self) -> Optional[str]:
        ...

    @abstractmethod
    async def read_visit_details(self, visit_date: date) -> VisitDetails:
        ...

    async def close(self) -> None:
        return None


class PortalDriver(ABC):
    """Claim portal capabilities used by the submission stage."""

    @abstractmethod
    async def authenticate(self) -> None:
        ...

    @abstractmethod
    async def find_by_identifier(self, identifier: str, context: str) -> SearchResult:
        ...

    @abstractmethod
    async def open_record(self, identifier: str, context: str) -> None:
        ...

    @abstractmethod
    async def fill_field(self, name: str, value: Any) -> None:
        ...

    @abstractmethod
    async def select_diagnosis(self, code: Optional[str], text: Optional[str]) -> Optional[str]:
        """Pick a diagnosis; returns the option actually selected, if any."""

    @abstractmethod
    async def add_medicine(self, name: str, quantity: Optional[float]) -> None:
        ...

    @abstractmethod
    async def trigger_save_draft(self) -> bool:
        ...

    @abstractmethod
    async def trigger_submit(self) -> SubmitOutcome:
        ...

    async def capture_evidence(self, label: str) -> Optional[str]:
        return None

    async def close(self) -> None:
        return None


def load_factory(path: Optional[str]) -> Callable[..., Any]:
    """Resolve a ``package.module:callable`` factory path."""
    if not path:
        raise DriverNotConfiguredError("No automation driver factory configured")
    module_name, _, attr = path.partition(":")
    if not attr:
        module_name, _, attr = path.rpartition(".")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise DriverNotConfiguredError(f"Cannot load driver factory {path!r}: {exc}") from exc

"""Pytest configuration and fixtures for the claims RPA test suite."""

import os
import tempfile
from datetime import date
from typing import AsyncGenerator, Awaitable, Callable
from unittest.mock import AsyncMock

_TEST_DIR = tempfile.mkdtemp(prefix="claims_rpa_tests_")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_DIR, "logs"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/claims_rpa_test.db")
os.environ.setdefault("EVIDENCE_DIR", os.path.join(_TEST_DIR, "screenshots"))

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from claims_rpa.automation.driver import (
    MedicineLine,
    PortalDriver,
    SearchResult,
    SourceSystemDriver,
    SubmitOutcome,
    VisitDetails,
)
from claims_rpa.core.database.base import Base, create_session_factory
from claims_rpa.core.database.models import Visit
from claims_rpa.core.database.repositories import RunRepository, VisitRepository
from claims_rpa.core.lifecycle import ShutdownRegistry
from claims_rpa.monitoring.metrics import MetricsCollector
from claims_rpa.processing.runs.tracker import RunTracker

VISIT_DATE = date(2026, 1, 20)
VALID_NRIC = "S1234567D"


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory record store per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return create_session_factory(db_engine)


@pytest.fixture
def visit_repository(session_factory) -> VisitRepository:
    return VisitRepository(session_factory)


@pytest.fixture
def run_repository(session_factory) -> RunRepository:
    return RunRepository(session_factory)


@pytest.fixture
def metrics_collector() -> MetricsCollector:
    """Metrics on a private registry so counters start at zero."""
    return MetricsCollector()


@pytest.fixture
def shutdown_registry() -> ShutdownRegistry:
    return ShutdownRegistry(install_atexit=False)


@pytest.fixture
def run_tracker(run_repository, shutdown_registry, metrics_collector) -> RunTracker:
    return RunTracker(run_repository, shutdown_registry, metrics_collector)


@pytest.fixture
def make_visit(visit_repository) -> Callable[..., Awaitable[Visit]]:
    """Insert a visit row; keyword arguments override the defaults."""
    counter = {"n": 0}

    async def _make(**overrides) -> Visit:
        counter["n"] += 1
        values = {
            "patient_name": f"PATIENT {counter['n']}",
            "visit_date": VISIT_DATE,
            "pay_type": "MHC",
            "pcno": f"{10000 + counter['n']}",
            "visit_record_no": f"VR{counter['n']:05d}",
            "source": "Clinic Assist",
        }
        values.update(overrides)
        return await visit_repository.add(Visit(**values))

    return _make


@pytest.fixture
def visit_details() -> VisitDetails:
    return VisitDetails(
        charge_type="follow",
        diagnosis_text="Upper respiratory tract infection",
        diagnosis_code="J06.9",
        diagnosis_source="visit_notes",
        mc_days=1,
        mc_start_date=VISIT_DATE,
        medicines=[
            MedicineLine("Paracetamol 500mg", 10),
            MedicineLine("Take 2 tablets twice daily after food", None),
            MedicineLine("PARACETAMOL 500MG", 10),
            MedicineLine("Loratadine 10mg", 5),
        ],
        source_method="visit_screen",
    )


@pytest.fixture
def source_driver(visit_details) -> AsyncMock:
    """Clinic Assist driver that finds every patient by number."""
    driver = AsyncMock(spec=SourceSystemDriver)
    driver.list_queue.return_value = []
    driver.find_patient_by_number.return_value = True
    driver.find_patient_by_name.return_value = True
    driver.read_patient_nric.return_value = VALID_NRIC
    driver.read_visit_details.return_value = visit_details
    return driver


@pytest.fixture
def portal_driver() -> AsyncMock:
    """Claim portal driver that finds every member and confirms every action."""
    driver = AsyncMock(spec=PortalDriver)
    driver.find_by_identifier.return_value = SearchResult(found=True, member_name="TAN AH KOW")
    driver.select_diagnosis.return_value = "J06.9"
    driver.trigger_save_draft.return_value = True
    driver.trigger_submit.return_value = SubmitOutcome(submitted=True, reference="CLM-0001")
    driver.capture_evidence.return_value = "screenshots/filled.png"
    return driver


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )

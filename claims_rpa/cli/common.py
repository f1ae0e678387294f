"""Shared plumbing for the batch command-line tools."""

import argparse
import asyncio
import inspect
import signal
import sys
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Iterable, List, Optional

import structlog

from claims_rpa import __version__
from claims_rpa.automation.driver import load_factory
from claims_rpa.core.config import settings
from claims_rpa.core.database import VisitQuery, close_db, init_db
from claims_rpa.core.exceptions import ClaimsRpaError, DriverNotConfiguredError
from claims_rpa.core.lifecycle import ShutdownRegistry
from claims_rpa.core.logging import configure_logging, log_error
from claims_rpa.monitoring.metrics import metrics
from claims_rpa.processing.runs.tracker import RunTracker

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_GATE_FAILED = 2
EXIT_SIGINT = 130
EXIT_SIGTERM = 143

UNSCOPED_MESSAGE = (
    "Refusing to run without a scope. Pass --visit-ids, --pay-type, --date or "
    "--from/--to, or --all-pending to process every pending visit."
)


class CliArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits 1 on bad arguments."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(EXIT_FATAL, f"{self.prog}: error: {message}\n")


def iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def id_list(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL for this run")
    parser.add_argument(
        "--serve-metrics", action="store_true", help="Expose Prometheus metrics while the batch runs"
    )


def add_scope_arguments(parser: argparse.ArgumentParser, single_date: bool = True) -> None:
    group = parser.add_argument_group("visit selection")
    group.add_argument("--visit-ids", type=id_list, default=None, help="Comma-separated visit ids")
    group.add_argument("--pay-type", default=None, help="Only visits with this pay type")
    if single_date:
        group.add_argument("--date", type=iso_date, default=None, help="Only visits on this date")
    group.add_argument("--from", dest="date_from", type=iso_date, default=None, help="Start date (inclusive)")
    group.add_argument("--to", dest="date_to", type=iso_date, default=None, help="End date (inclusive)")
    group.add_argument(
        "--portal-only", dest="portal_only", action="store_true", default=True,
        help="Only portal pay types (default)",
    )
    group.add_argument(
        "--all-pay-types", dest="portal_only", action="store_false", help="Include every pay type"
    )
    group.add_argument(
        "--all-pending", action="store_true", help="Allow an unscoped run over every pending visit"
    )


def is_scoped(args: argparse.Namespace) -> bool:
    return bool(
        args.visit_ids
        or args.pay_type
        or getattr(args, "date", None)
        or args.date_from
        or args.date_to
    )


def build_visit_query(args: argparse.Namespace, **overrides: Any) -> VisitQuery:
    single = getattr(args, "date", None)
    date_from = single or args.date_from
    date_to = single or args.date_to

    if args.pay_type:
        pay_types: Optional[List[str]] = [args.pay_type.strip().upper()]
    elif args.portal_only and not args.visit_ids:
        pay_types = list(settings.portal_pay_types)
    else:
        pay_types = None

    query = VisitQuery(
        visit_ids=args.visit_ids,
        pay_types=pay_types,
        date_from=date_from,
        date_to=date_to,
        source=None if args.visit_ids else "Clinic Assist",
    )
    for key, value in overrides.items():
        setattr(query, key, value)
    return query


async def build_driver(factory_path: Optional[str]) -> Any:
    """Instantiate a driver from a ``module:callable`` factory taking settings."""
    factory = load_factory(factory_path)
    driver = factory(settings)
    if inspect.isawaitable(driver):
        driver = await driver
    return driver


async def prepare_tracker(registry: ShutdownRegistry) -> RunTracker:
    """Create tables if needed and retire runs a previous crash left ``running``."""
    await init_db()
    tracker = RunTracker(shutdown_registry=registry)
    stale = await tracker.fail_stale_runs(timedelta(hours=settings.stale_run_hours))
    if stale:
        logger.warning("Retired stale runs", count=stale)
    return tracker


def print_failures(failures: Iterable[Any], limit: Optional[int] = None) -> None:
    limit = limit or settings.failure_sample_size
    failures = list(failures)
    if not failures:
        return
    print(f"Failed visits (showing {min(limit, len(failures))} of {len(failures)}):")
    for outcome in failures[:limit]:
        detail = f" - {outcome.error}" if outcome.error else ""
        print(f"  {outcome.visit_id}: {outcome.reason}{detail}")


async def _run_with_shutdown(
    main: Callable[[ShutdownRegistry], Awaitable[int]], registry: ShutdownRegistry
) -> int:
    registry.install_signal_handlers(asyncio.current_task())
    try:
        return await main(registry)
    finally:
        await registry.run_all()
        await close_db()


def run_cli(
    main: Callable[[ShutdownRegistry], Awaitable[int]],
    args: argparse.Namespace,
    log_type: str = "rpa",
) -> int:
    """Run an async CLI body with logging, signal handling and exit codes."""
    configure_logging(args.log_level or settings.log_level, log_type=log_type)
    if getattr(args, "serve_metrics", False):
        metrics.set_application_info(__version__, settings.app_env)
        metrics.start_metrics_server()

    registry = ShutdownRegistry()
    try:
        return asyncio.run(_run_with_shutdown(main, registry))
    except (KeyboardInterrupt, asyncio.CancelledError):
        code = EXIT_SIGTERM if registry.received_signal == signal.SIGTERM else EXIT_SIGINT
        logger.warning("Batch interrupted", exit_code=code)
        return code
    except DriverNotConfiguredError as e:
        print(f"Automation driver not configured: {e.message}", file=sys.stderr)
        return EXIT_FATAL
    except ClaimsRpaError as e:
        logger.error("Batch failed", error=e.message, code=e.code)
        print(f"Batch failed: {e.message}", file=sys.stderr)
        return EXIT_FATAL
    except Exception as e:
        log_error(__name__, e, {"log_type": log_type})
        print(f"Batch failed: {e}", file=sys.stderr)
        return EXIT_FATAL

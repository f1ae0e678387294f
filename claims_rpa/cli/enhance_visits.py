"""
Visit details enhancement batch.

Usage:
    claims-rpa-enhance --date 2026-01-20
    claims-rpa-enhance --from 2026-01-01 --to 2026-01-31 --retry-failed
    claims-rpa-enhance --visit-ids 3f2a...,9c1b... --force
    claims-rpa-enhance --all-pending
"""

import argparse
import sys
from typing import List, Optional

import structlog

from claims_rpa.core.config import settings
from claims_rpa.core.database import RunType, VisitRepository
from claims_rpa.core.lifecycle import ShutdownRegistry
from claims_rpa.processing.batch_processor.runner import BatchPolicy, ResumableBatchRunner
from claims_rpa.processing.enhancement.visit_details import VisitDetailsEnhancer

from .common import (
    EXIT_FATAL,
    EXIT_OK,
    UNSCOPED_MESSAGE,
    CliArgumentParser,
    add_common_arguments,
    add_scope_arguments,
    build_driver,
    build_visit_query,
    is_scoped,
    prepare_tracker,
    print_failures,
    run_cli,
)

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = CliArgumentParser(
        prog="claims-rpa-enhance",
        description="Extract diagnosis, charge type, MC and medicines for queued visits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_scope_arguments(parser)
    parser.add_argument("--force", action="store_true", help="Reprocess visits already completed")
    parser.add_argument("--retry-failed", action="store_true", help="Only reprocess failed visits")
    parser.add_argument(
        "--max-retries", type=int, default=settings.visit_details_max_retries,
        help="Skip failed visits with this many attempts (default: %(default)s)",
    )
    parser.add_argument(
        "--limit", type=int, default=settings.visit_details_batch_size,
        help="Maximum visits to load (default: %(default)s)",
    )
    add_common_arguments(parser)
    return parser


async def enhance(args: argparse.Namespace, registry: ShutdownRegistry) -> int:
    tracker = await prepare_tracker(registry)
    repository = VisitRepository()

    query = build_visit_query(args, newest_first=True, limit=None if args.visit_ids else args.limit)
    visits = await repository.find(query)
    if not visits:
        print("No visits found for the requested scope.")
        return EXIT_OK

    driver = await build_driver(settings.source_driver_factory)
    try:
        runner = ResumableBatchRunner(
            VisitDetailsEnhancer(driver, repository),
            tracker,
            RunType.VISIT_DETAILS,
            delay_seconds=settings.delay_between_visits_seconds,
        )
        policy = BatchPolicy(
            max_retries=args.max_retries, force=args.force, retry_failed_only=args.retry_failed
        )
        result = await runner.run(
            visits,
            policy,
            run_metadata={
                "visit_ids": args.visit_ids,
                "pay_types": query.pay_types,
                "date_from": query.date_from.isoformat() if query.date_from else None,
                "date_to": query.date_to.isoformat() if query.date_to else None,
            },
        )
    finally:
        await driver.close()

    print(
        f"Visit details run {result.run_id}: {result.total} visits, "
        f"{result.completed} completed, {result.failed} failed, {result.skipped} skipped "
        f"({result.processing_time:.1f}s)"
    )
    print_failures(result.failures())
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the enhancement batch."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not is_scoped(args) and not args.all_pending:
        print(UNSCOPED_MESSAGE, file=sys.stderr)
        return EXIT_FATAL

    return run_cli(lambda registry: enhance(args, registry), args, log_type="rpa")


if __name__ == "__main__":
    sys.exit(main())

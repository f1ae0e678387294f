"""
Queue extraction: save one day's Clinic Assist queue as visit rows.

Usage:
    claims-rpa-extract-queue
    claims-rpa-extract-queue --date 2026-01-20
"""

import argparse
import sys
from typing import List, Optional

from claims_rpa.core.config import settings
from claims_rpa.core.database import VisitRepository
from claims_rpa.core.lifecycle import ShutdownRegistry
from claims_rpa.core.time_utils import clinic_today
from claims_rpa.processing.extraction import QueueExtractionStage

from .common import (
    EXIT_OK,
    CliArgumentParser,
    add_common_arguments,
    build_driver,
    iso_date,
    prepare_tracker,
    run_cli,
)


def build_parser() -> argparse.ArgumentParser:
    parser = CliArgumentParser(
        prog="claims-rpa-extract-queue",
        description="List the Clinic Assist queue for a day and upsert visit rows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--date", type=iso_date, default=None, help="Queue date, YYYY-MM-DD (default: today in clinic time)"
    )
    add_common_arguments(parser)
    return parser


async def extract(args: argparse.Namespace, registry: ShutdownRegistry) -> int:
    tracker = await prepare_tracker(registry)
    visit_date = args.date or clinic_today()

    driver = await build_driver(settings.source_driver_factory)
    try:
        stage = QueueExtractionStage(driver, tracker, VisitRepository())
        result = await stage.extract(visit_date)
    finally:
        await driver.close()

    print(
        f"Queue run {result.run_id} for {visit_date.isoformat()}: "
        f"{result.total} rows, {result.saved} saved, {result.failed} failed"
    )
    for error in result.errors[: settings.failure_sample_size]:
        print(f"  row {error['row']} ({error['visit_record_no']}): {error['error']}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for queue extraction."""
    args = build_parser().parse_args(argv)
    return run_cli(lambda registry: extract(args, registry), args, log_type="rpa")


if __name__ == "__main__":
    sys.exit(main())

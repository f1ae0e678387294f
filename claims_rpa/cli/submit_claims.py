"""
Claim submission batch.

Fill-only by default: forms are filled and evidence captured, nothing is
saved. ``--save-as-draft`` persists drafts; ``--allow-live-submit`` is the
only way a claim is actually submitted.

Usage:
    claims-rpa-submit --from 2026-01-01 --to 2026-01-31
    claims-rpa-submit --pay-type MHC --save-as-draft
    claims-rpa-submit --visit-ids 3f2a...,9c1b... --save-as-draft --leave-open
"""

import argparse
import sys
from collections import Counter
from typing import Dict, List, Optional

import structlog

from claims_rpa.core.config import settings
from claims_rpa.core.database import RunType, VisitRepository
from claims_rpa.core.lifecycle import ShutdownRegistry
from claims_rpa.processing.batch_processor.runner import (
    COMPLETED,
    FAILED,
    BatchPolicy,
    BatchResult,
    ResumableBatchRunner,
)
from claims_rpa.processing.submission import ClaimSubmitter, SubmissionPolicy
from claims_rpa.processing.submission.submitter import NO_OP_REASONS

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
        prog="claims-rpa-submit",
        description="Route enhanced visits to their claim portal and fill the claim form",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_scope_arguments(parser, single_date=False)
    parser.add_argument(
        "--save-as-draft", action="store_true", default=settings.submission_save_as_draft,
        help="Save each filled claim as a portal draft",
    )
    parser.add_argument(
        "--allow-live-submit", action="store_true", default=settings.submission_allow_live_submit,
        help="Actually submit claims (never the default)",
    )
    parser.add_argument(
        "--persist-fill-errors", action="store_true",
        default=settings.submission_persist_fill_only_errors,
        help="Record errors on visits even in a fill-only run",
    )
    parser.add_argument(
        "--leave-open", action="store_true",
        help="Do not close the portal session when the batch ends",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum visits to load")
    add_common_arguments(parser)
    return parser


def summarize(result: BatchResult) -> Dict[str, int]:
    """Counts by submission outcome for the end-of-run summary."""
    counts: Counter = Counter()
    for outcome in result.results:
        payload = outcome.payload
        if outcome.counts_as == COMPLETED:
            if payload.get("submitted"):
                counts["submitted"] += 1
            elif payload.get("saved_as_draft"):
                counts["drafts"] += 1
            else:
                counts["filledOnly"] += 1
        elif outcome.counts_as == FAILED:
            counts["errors"] += 1
        elif outcome.reason in NO_OP_REASONS:
            counts["notStarted"] += 1
        else:
            counts["alreadyDone"] += 1
    keys = ("submitted", "drafts", "filledOnly", "errors", "notStarted", "alreadyDone")
    return {key: counts.get(key, 0) for key in keys}


async def submit(args: argparse.Namespace, registry: ShutdownRegistry) -> int:
    tracker = await prepare_tracker(registry)
    repository = VisitRepository()

    query = build_visit_query(args, details_completed=True, not_submitted=True, limit=args.limit)
    visits = await repository.find(query)
    if not visits:
        print("No visits ready for submission in the requested scope.")
        return EXIT_OK

    policy = SubmissionPolicy(
        allow_live_submit=args.allow_live_submit,
        save_as_draft=args.save_as_draft,
        persist_errors_in_fill_only_mode=args.persist_fill_errors,
    )
    if policy.fill_only:
        logger.info("Fill-only run: claims are filled but not saved", visits=len(visits))

    driver = await build_driver(settings.portal_driver_factory)
    try:
        runner = ResumableBatchRunner(
            ClaimSubmitter(driver, policy, repository),
            tracker,
            RunType.CLAIM_SUBMISSION,
            delay_seconds=settings.delay_between_submissions_seconds,
        )
        result = await runner.run(
            visits,
            BatchPolicy(max_retries=settings.visit_details_max_retries),
            run_metadata={
                "visit_ids": args.visit_ids,
                "pay_types": query.pay_types,
                "save_as_draft": policy.save_as_draft,
                "allow_live_submit": policy.allow_live_submit,
            },
        )
    finally:
        if args.leave_open:
            logger.info("Leaving portal session open")
        else:
            await driver.close()

    counts = summarize(result)
    print(
        f"Claim submission run {result.run_id}: {result.total} visits, "
        + ", ".join(f"{value} {key}" for key, value in counts.items())
        + f" ({result.processing_time:.1f}s)"
    )
    print_failures(result.failures())
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the submission batch."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not is_scoped(args) and not args.all_pending:
        print(UNSCOPED_MESSAGE, file=sys.stderr)
        return EXIT_FATAL

    return run_cli(lambda registry: submit(args, registry), args, log_type="submission")


if __name__ == "__main__":
    sys.exit(main())

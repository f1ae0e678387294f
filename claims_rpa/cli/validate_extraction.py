"""
Read-only data-quality gate over extracted visits.

Exits 2 when a hard-fail issue (incomplete extraction or a suspicious
diagnosis) is found, so it can guard a draft-saving run in a shell script.

Usage:
    claims-rpa-validate --from 2026-01-01 --to 2026-01-31
    claims-rpa-validate --from 2026-01-01 --to 2026-01-31 --all-pay-types --json
"""

import argparse
import json
import sys
from typing import List, Optional

from claims_rpa.core.database import init_db
from claims_rpa.core.lifecycle import ShutdownRegistry
from claims_rpa.processing.validation import ExtractionValidationGate, ValidationReport

from .common import EXIT_FATAL, CliArgumentParser, add_common_arguments, iso_date, run_cli


def build_parser() -> argparse.ArgumentParser:
    parser = CliArgumentParser(
        prog="claims-rpa-validate",
        description="Report extraction quality issues for a date range",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--from", dest="date_from", type=iso_date, required=True, help="Start date (inclusive)")
    parser.add_argument("--to", dest="date_to", type=iso_date, required=True, help="End date (inclusive)")
    parser.add_argument(
        "--all-pay-types", dest="portal_only", action="store_false",
        help="Include visits of every pay type, not only portal ones",
    )
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    add_common_arguments(parser)
    return parser


def print_report(report: ValidationReport) -> None:
    print(
        f"Extraction validation {report.date_from.isoformat()}..{report.date_to.isoformat()} "
        f"({'portal pay types' if report.portal_only else 'all pay types'}): {report.rows} visits"
    )
    print(f"  status: {report.status_counts}")
    print(f"  diagnosis sources: {report.diagnosis_source_counts}")
    print(f"  NRIC extraction: {report.nric_status_counts}")
    if report.missing_reason_counts:
        print(f"  missing diagnosis reasons: {report.missing_reason_counts}")
    for issue, count in report.issue_counts.items():
        if not count:
            continue
        print(f"  {issue}: {count}")
        for sample in report.samples.get(issue, []):
            print(f"    {sample}")
    if report.truncated:
        print(f"  truncated: more than {report.rows} visits in range, rest not checked")
    print("HARD FAIL" if report.hard_fail else "OK")


async def validate(args: argparse.Namespace, registry: ShutdownRegistry) -> int:
    await init_db()
    report = await ExtractionValidationGate().scan(args.date_from, args.date_to, portal_only=args.portal_only)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        print_report(report)
    return report.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the extraction gate."""
    args = build_parser().parse_args(argv)
    if args.date_from > args.date_to:
        print("--from must not be after --to", file=sys.stderr)
        return EXIT_FATAL
    return run_cli(lambda registry: validate(args, registry), args, log_type="validation")


if __name__ == "__main__":
    sys.exit(main())

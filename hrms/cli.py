"""
hrms-recalculate — backfill idle time and work hours for completed sessions.

Re-running is safe: rows already within tolerance are left untouched.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from hrms.core.config import settings
from hrms.db.session import Database
from hrms.services.recalculator import (SKIPPED, UPDATED, RecalcScope,
                                        RecalcSummary, recompute_sessions)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hrms-recalculate",
        description="Recalculate idle time and work hours from activity heartbeats",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Every completed session
  hrms-recalculate --all

  # One session, or every session of one employee
  hrms-recalculate --session-id 42
  hrms-recalculate --employee-code EMP007
        """,
    )
    scope = parser.add_mutually_exclusive_group(required=True)
    scope.add_argument("--all", action="store_true", help="Process every completed session")
    scope.add_argument("--session-id", type=int, help="Process a single session")
    scope.add_argument("--employee-code", help="Process all sessions of one employee")

    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.RECALC_CONCURRENCY,
        help=f"Sessions processed in parallel (default: {settings.RECALC_CONCURRENCY})",
    )
    parser.add_argument(
        "--database-url",
        default=settings.DATABASE_URL,
        help="Override DATABASE_URL from the environment",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print every session")
    return parser


def print_summary(summary: RecalcSummary, verbose: bool = False) -> None:
    for r in summary.results:
        if r.outcome == UPDATED:
            print(
                f"✓ Session {r.session_id} ({r.work_date}): "
                f"idle {r.old_idle_time:.2f}h -> {r.breakdown.idle_hours:.2f}h, "
                f"work {r.old_work_hours:.2f}h -> {r.breakdown.work_hours:.2f}h"
            )
        elif verbose:
            marker = "-" if r.outcome == SKIPPED else "="
            print(f"{marker} Session {r.session_id} ({r.work_date}): {r.outcome} [{r.reason}]")

    print("=" * 50)
    print(f"Total records processed: {summary.processed}")
    print(f"Records updated: {summary.updated}")
    print(f"Records unchanged: {summary.unchanged}")
    print(f"Records skipped: {summary.skipped}")
    print(f"Records failed: {summary.failed}")


async def run(database: Database, scope: RecalcScope, concurrency: int) -> RecalcSummary:
    try:
        return await recompute_sessions(database, scope, concurrency=concurrency)
    finally:
        await database.dispose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

    scope = RecalcScope(
        session_id=args.session_id,
        employee_code=args.employee_code,
        all_sessions=args.all,
    )
    try:
        summary = asyncio.run(run(Database(args.database_url), scope, args.concurrency))
    except Exception as e:
        print(f"❌ Recalculation failed: {e}", file=sys.stderr)
        return 1

    print_summary(summary, verbose=args.verbose)
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())

"""
Work-hours recalculation for completed attendance sessions.

Used in two places:

* punch-out finalization, which always writes the result, and
* the operator-triggered backfill, which walks every session that has both
  punch times and only writes when a stored figure is off by more than the
  tolerance. A partial backfill can therefore be restarted at any point.

Each session is read, computed and written inside its own transaction with
the session row locked, so live heartbeats arriving mid-backfill cannot
interleave with the count.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.core.clock import hours_between
from hrms.core.config import settings
from hrms.db.session import Database
from hrms.models.employee import AttendanceSession, Employee
from hrms.services.queries import count_inactive_heartbeats
from hrms.services.work_hours import (WorkHoursBreakdown, clamp_idle,
                                      compute_work_hours, differs,
                                      idle_hours_from_count, round_hours)

logger = logging.getLogger(__name__)

UPDATED = "updated"
UNCHANGED = "unchanged"
SKIPPED = "skipped"


@dataclass
class RecalcOutcome:
    session_id: int
    employee_id: int
    work_date: str
    outcome: str
    old_idle_time: float = 0.0
    old_work_hours: float = 0.0
    breakdown: WorkHoursBreakdown | None = None
    inactive_heartbeats: int = 0
    reason: str | None = None


@dataclass
class RecalcSummary:
    processed: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[RecalcOutcome] = field(default_factory=list)


@dataclass(frozen=True)
class RecalcScope:
    session_id: int | None = None
    employee_code: str | None = None
    all_sessions: bool = False


async def _derive(
    db: AsyncSession, session: AttendanceSession
) -> tuple[int, WorkHoursBreakdown]:
    if session.punch_in is None or session.punch_out is None:
        raise ValueError(f"Session {session.id} is not complete")

    elapsed = hours_between(session.punch_in, session.punch_out)
    inactive = await count_inactive_heartbeats(db, session.id)
    idle = clamp_idle(
        idle_hours_from_count(inactive, settings.HEARTBEAT_INTERVAL_MINUTES),
        elapsed,
    )
    return inactive, compute_work_hours(
        elapsed_hours=elapsed,
        break_hours=session.break_duration or 0.0,
        idle_hours=idle,
        grace_hours=settings.IDLE_GRACE_HOURS,
    )


async def recompute_work_hours(
    db: AsyncSession,
    session: AttendanceSession,
) -> WorkHoursBreakdown:
    """Derive idle time and work hours for a session with both punch times."""
    _, breakdown = await _derive(db, session)
    return breakdown


def apply_breakdown(session: AttendanceSession, breakdown: WorkHoursBreakdown) -> None:
    session.idle_time = round_hours(breakdown.idle_hours)
    session.work_hours = round_hours(breakdown.work_hours)


def needs_update(session: AttendanceSession, breakdown: WorkHoursBreakdown) -> bool:
    tolerance = settings.RECALC_TOLERANCE_HOURS
    return differs(breakdown.idle_hours, session.idle_time, tolerance) or differs(
        breakdown.work_hours, session.work_hours, tolerance
    )


async def recompute_session(db: AsyncSession, session_id: int) -> RecalcOutcome:
    """Read-count-compute-write one session; commits only when something changed."""
    result = await db.execute(
        select(AttendanceSession)
        .where(AttendanceSession.id == session_id)
        .with_for_update()
    )
    session = result.scalar_one_or_none()
    if session is None:
        return RecalcOutcome(
            session_id=session_id,
            employee_id=0,
            work_date="",
            outcome=SKIPPED,
            reason="not_found",
        )

    outcome = RecalcOutcome(
        session_id=session.id,
        employee_id=session.employee_id,
        work_date=session.work_date.isoformat(),
        outcome=UNCHANGED,
        old_idle_time=session.idle_time or 0.0,
        old_work_hours=session.work_hours or 0.0,
    )
    if session.punch_in is None or session.punch_out is None:
        outcome.outcome = SKIPPED
        outcome.reason = "no_punch_times"
        await db.rollback()
        return outcome

    inactive, breakdown = await _derive(db, session)
    outcome.breakdown = breakdown.rounded()
    outcome.inactive_heartbeats = inactive

    if needs_update(session, breakdown):
        apply_breakdown(session, breakdown)
        await db.commit()
        outcome.outcome = UPDATED
        logger.info(
            "Recalculated session %d (%s): idle %.2f -> %.2f, work %.2f -> %.2f",
            session.id,
            outcome.work_date,
            outcome.old_idle_time,
            session.idle_time,
            outcome.old_work_hours,
            session.work_hours,
        )
    else:
        outcome.reason = "already_correct"
        await db.rollback()
    return outcome


async def select_session_ids(db: AsyncSession, scope: RecalcScope) -> list[int]:
    query = (
        select(AttendanceSession.id)
        .where(
            AttendanceSession.punch_in.is_not(None),
            AttendanceSession.punch_out.is_not(None),
        )
        .order_by(AttendanceSession.work_date.desc(), AttendanceSession.id)
    )
    if scope.session_id is not None:
        query = query.where(AttendanceSession.id == scope.session_id)
    elif scope.employee_code is not None:
        query = query.join(Employee, AttendanceSession.employee_id == Employee.id).where(
            Employee.employee_code == scope.employee_code
        )
    elif not scope.all_sessions:
        raise ValueError("Specify a session id, an employee code, or all sessions")
    result = await db.execute(query)
    return list(result.scalars().all())


async def recompute_sessions(
    database: Database,
    scope: RecalcScope,
    concurrency: int | None = None,
) -> RecalcSummary:
    """Backfill work hours across many sessions, one transaction per session."""
    async with database.session_factory() as db:
        session_ids = await select_session_ids(db, scope)

    limit = concurrency or settings.RECALC_CONCURRENCY
    if database.is_sqlite:
        # SQLite serialises writers; parallel transactions only contend
        limit = 1
    semaphore = asyncio.Semaphore(max(1, limit))
    summary = RecalcSummary()

    async def _one(session_id: int) -> RecalcOutcome | None:
        async with semaphore:
            async with database.session_factory() as db:
                try:
                    return await recompute_session(db, session_id)
                except Exception:
                    await db.rollback()
                    logger.exception("Recalculation failed for session %d", session_id)
                    return None

    logger.info("[Recalculate] Processing %d attendance sessions", len(session_ids))
    for outcome in await asyncio.gather(*(_one(sid) for sid in session_ids)):
        summary.processed += 1
        if outcome is None:
            summary.failed += 1
            continue
        summary.results.append(outcome)
        if outcome.outcome == UPDATED:
            summary.updated += 1
        elif outcome.outcome == UNCHANGED:
            summary.unchanged += 1
        else:
            summary.skipped += 1

    logger.info(
        "[Recalculate] Done: %d processed, %d updated, %d unchanged, %d skipped, %d failed",
        summary.processed,
        summary.updated,
        summary.unchanged,
        summary.skipped,
        summary.failed,
    )
    return summary

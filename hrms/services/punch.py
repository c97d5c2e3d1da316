"""
Punch lifecycle — punch in, breaks, punch out.

Punch-out is where a session is finalized: open breaks are closed, the
break duration is summed, and work hours come from the same recalculation
the backfill uses, so a later backfill never disagrees with punch-out.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.core.clock import hours_between, local_day
from hrms.core.config import settings
from hrms.core.exceptions import (AlreadyPunchedIn, AlreadyPunchedOut,
                                  BreakAlreadyStarted, NoBreakInProgress,
                                  NoEmployeeLinked, NoSessionToday,
                                  NotPunchedIn)
from hrms.core.security import Identity
from hrms.models.employee import AttendanceSession, BreakPeriod, Employee
from hrms.services.queries import get_today_session
from hrms.services.recalculator import apply_breakdown, recompute_work_hours
from hrms.services.work_hours import attendance_status, round_hours

logger = logging.getLogger(__name__)


def _employee_id(identity: Identity) -> int:
    if identity.employee_id is None:
        raise NoEmployeeLinked()
    return identity.employee_id


async def _open_session(db: AsyncSession, employee_id: int, now: datetime) -> AttendanceSession:
    session = await get_today_session(db, employee_id, now, for_update=True)
    if session is None:
        raise NoSessionToday()
    if session.punch_in is None:
        raise NotPunchedIn()
    if session.punch_out is not None:
        raise AlreadyPunchedOut()
    return session


async def _breaks(db: AsyncSession, session_id: int) -> list[BreakPeriod]:
    result = await db.execute(
        select(BreakPeriod)
        .where(BreakPeriod.session_id == session_id)
        .order_by(BreakPeriod.started_at.asc())
    )
    return list(result.scalars().all())


def _closed_break_hours(breaks: list[BreakPeriod]) -> float:
    return sum(
        hours_between(b.started_at, b.ended_at) for b in breaks if b.ended_at is not None
    )


async def punch_in(db: AsyncSession, identity: Identity, *, now: datetime) -> AttendanceSession:
    employee_id = _employee_id(identity)
    existing = await get_today_session(db, employee_id, now)
    if existing is not None:
        if existing.punch_out is not None:
            raise AlreadyPunchedOut("Already punched out for today. Only one session per day is allowed.")
        if existing.punch_in is not None:
            raise AlreadyPunchedIn()
        # Pre-created record (e.g. marked ABSENT) gets its punch-in now
        existing.punch_in = now
        existing.status = "PRESENT"
        await db.commit()
        await db.refresh(existing)
        logger.info("Punch in for employee %d on existing session %d", employee_id, existing.id)
        return existing

    session = AttendanceSession(
        employee_id=employee_id,
        work_date=local_day(now, settings.TIMEZONE_OFFSET),
        punch_in=now,
        status="PRESENT",
        break_duration=0.0,
        idle_time=0.0,
        work_hours=0.0,
    )
    db.add(session)
    await db.commit()
    await db.refresh(session)
    logger.info("Punch in for employee %d (session %d)", employee_id, session.id)
    return session


async def start_break(db: AsyncSession, identity: Identity, *, now: datetime) -> AttendanceSession:
    session = await _open_session(db, _employee_id(identity), now)
    breaks = await _breaks(db, session.id)
    if any(b.ended_at is None for b in breaks):
        raise BreakAlreadyStarted()

    db.add(BreakPeriod(session_id=session.id, started_at=now))
    await db.commit()
    await db.refresh(session)
    logger.info("Break started for session %d", session.id)
    return session


async def end_break(db: AsyncSession, identity: Identity, *, now: datetime) -> AttendanceSession:
    session = await _open_session(db, _employee_id(identity), now)
    breaks = await _breaks(db, session.id)
    current = next((b for b in breaks if b.ended_at is None), None)
    if current is None:
        raise NoBreakInProgress()

    current.ended_at = now
    session.break_duration = round_hours(_closed_break_hours(breaks))
    await db.commit()
    await db.refresh(session)
    logger.info("Break ended for session %d (total %.2fh)", session.id, session.break_duration)
    return session


async def punch_out(db: AsyncSession, identity: Identity, *, now: datetime) -> AttendanceSession:
    session = await _open_session(db, _employee_id(identity), now)
    breaks = await _breaks(db, session.id)
    for b in breaks:
        if b.ended_at is None:
            b.ended_at = now

    session.punch_out = now
    session.break_duration = round_hours(_closed_break_hours(breaks))

    breakdown = await recompute_work_hours(db, session)
    apply_breakdown(session, breakdown)

    employee = await db.get(Employee, session.employee_id)
    session.status = attendance_status(
        breakdown.work_hours,
        employee.employee_type if employee else None,
        settings.FULL_TIME_PRESENT_HOURS,
        settings.PART_TIME_PRESENT_HOURS,
    )
    await db.commit()
    await db.refresh(session)

    logger.info(
        "Punch out session %d: elapsed=%.2f break=%.2f idle=%.2f penalty=%.2f work=%.2f status=%s",
        session.id,
        breakdown.elapsed_hours,
        breakdown.break_hours,
        breakdown.idle_hours,
        breakdown.idle_penalty,
        breakdown.work_hours,
        session.status,
    )
    return session

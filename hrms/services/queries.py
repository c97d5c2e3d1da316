"""
Shared attendance queries.

Two query shapes matter to every component: today's session looked up by
a calendar-day range, and the count of inactive heartbeats for a session.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.core.clock import local_day
from hrms.core.config import settings
from hrms.models.activity_log import SOURCE_CLIENT, ActivityLogEntry
from hrms.models.employee import AttendanceSession


async def get_session_for_day(
    db: AsyncSession,
    employee_id: int,
    day: date,
    *,
    for_update: bool = False,
) -> AttendanceSession | None:
    """Session whose work_date falls in ``[day, day + 1)``."""
    query = select(AttendanceSession).where(
        AttendanceSession.employee_id == employee_id,
        AttendanceSession.work_date >= day,
        AttendanceSession.work_date < day + timedelta(days=1),
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def get_today_session(
    db: AsyncSession,
    employee_id: int,
    now: datetime,
    *,
    for_update: bool = False,
) -> AttendanceSession | None:
    day = local_day(now, settings.TIMEZONE_OFFSET)
    return await get_session_for_day(db, employee_id, day, for_update=for_update)


async def count_inactive_heartbeats(db: AsyncSession, session_id: int) -> int:
    """Inactive, client-sourced entries for one session."""
    result = await db.execute(
        select(func.count(ActivityLogEntry.id)).where(
            ActivityLogEntry.session_id == session_id,
            ActivityLogEntry.active.is_(False),
            ActivityLogEntry.source == SOURCE_CLIENT,
        )
    )
    return result.scalar() or 0

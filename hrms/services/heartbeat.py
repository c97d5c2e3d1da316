"""
Heartbeat ingestion & idle accumulation.

Each heartbeat appends one activity-log entry and then recomputes the
session's idle time from a COUNT over the whole log. Recounting instead of
incrementing means a lost or duplicated update never drifts permanently:
the next heartbeat rewrites the aggregate from the log.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from hrms.core.clock import hours_between
from hrms.core.config import settings
from hrms.core.exceptions import (AlreadyPunchedOut, NoEmployeeLinked,
                                  NoSessionToday, NotPunchedIn)
from hrms.core.security import Identity
from hrms.models.activity_log import SOURCE_CLIENT, ActivityLogEntry
from hrms.services.audit import AuditSink
from hrms.services.queries import count_inactive_heartbeats, get_today_session
from hrms.services.work_hours import clamp_idle, idle_hours_from_count

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeartbeatResult:
    idle_time_hours: float
    effective_active: bool
    bot_detected: bool
    recorded_at: datetime


def effective_activity(active: bool, suspicious: bool) -> bool:
    """A suspicious heartbeat never counts as productive time."""
    return active and not suspicious


async def record_heartbeat(
    db: AsyncSession,
    identity: Identity,
    active: bool = True,
    suspicious: bool = False,
    pattern_type: str | None = None,
    pattern_details: str | None = None,
    *,
    now: datetime,
    audit: AuditSink | None = None,
) -> HeartbeatResult:
    if identity.employee_id is None:
        raise NoEmployeeLinked()

    session = await get_today_session(db, identity.employee_id, now, for_update=True)
    if session is None:
        raise NoSessionToday()
    if session.punch_in is None:
        raise NotPunchedIn()
    if session.punch_out is not None:
        raise AlreadyPunchedOut()

    effective_active = effective_activity(active, suspicious)
    db.add(
        ActivityLogEntry(
            session_id=session.id,
            timestamp=now,
            active=effective_active,
            suspicious=suspicious,
            pattern_type=pattern_type,
            pattern_details=pattern_details,
            source=SOURCE_CLIENT,
        )
    )
    await db.flush()

    inactive = await count_inactive_heartbeats(db, session.id)
    idle = clamp_idle(
        idle_hours_from_count(inactive, settings.HEARTBEAT_INTERVAL_MINUTES),
        hours_between(session.punch_in, now),
    )
    session.idle_time = idle
    await db.commit()

    logger.debug(
        "Heartbeat employee=%s session=%s active=%s effective=%s idle=%.3fh",
        identity.employee_id,
        session.id,
        active,
        effective_active,
        idle,
    )

    if suspicious and audit is not None:
        await audit.report_suspicious(
            employee_id=identity.employee_id,
            session_id=session.id,
            pattern_type=pattern_type,
            pattern_details=pattern_details,
            at=now,
        )

    return HeartbeatResult(
        idle_time_hours=idle,
        effective_active=effective_active,
        bot_detected=suspicious,
        recorded_at=now,
    )

"""
Employee attendance endpoints — heartbeat, punch in/out, breaks, today.

Every route acts on the caller's own session; the employee is taken from
the authenticated identity, never from the request body.
"""

import logging

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.api.v1.deps import (get_audit_sink, get_clock, get_current_identity,
                              get_db, rate_limit_key)
from hrms.core.clock import Clock
from hrms.core.config import settings
from hrms.core.exceptions import NoEmployeeLinked
from hrms.core.security import Identity
from hrms.models.activity_log import ActivityLogEntry
from hrms.models.employee import AttendanceSession, BreakPeriod
from hrms.schemas.attendance import (AttendanceSessionRead, HeartbeatRequest,
                                     HeartbeatResponse, TodayResponse)
from hrms.services import punch
from hrms.services.audit import AuditSink
from hrms.services.heartbeat import record_heartbeat
from hrms.services.queries import count_inactive_heartbeats, get_today_session

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)

# Rate limiter — keyed by caller identity, client IP as fallback
limiter = Limiter(key_func=rate_limit_key, enabled=settings.RATE_LIMIT_ENABLED)


# ── Heartbeat ───────────────────────────────────────────────────────
@router.post("/heartbeat", response_model=HeartbeatResponse)
@limiter.limit(settings.HEARTBEAT_RATE_LIMIT)
async def heartbeat(
    request: Request,
    body: HeartbeatRequest | None = None,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    clock: Clock = Depends(get_clock),
    audit: AuditSink = Depends(get_audit_sink),
) -> HeartbeatResponse:
    """Record one activity heartbeat and return the session's idle time.

    A heartbeat flagged ``suspicious`` is always stored as inactive, even
    when the client also claims ``active``.
    """
    body = body or HeartbeatRequest()
    result = await record_heartbeat(
        db,
        identity,
        active=body.active,
        suspicious=body.suspicious,
        pattern_type=body.pattern_type,
        pattern_details=body.pattern_details,
        now=clock.now(),
        audit=audit,
    )
    return HeartbeatResponse(
        success=True,
        idle_time=result.idle_time_hours,
        last_heartbeat=result.recorded_at,
        bot_detected=result.bot_detected,
        effective_active=result.effective_active,
    )


# ── Punch in / out ──────────────────────────────────────────────────
@router.post("/punch-in", response_model=AttendanceSessionRead)
async def punch_in(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    clock: Clock = Depends(get_clock),
) -> AttendanceSession:
    """Open today's attendance session."""
    return await punch.punch_in(db, identity, now=clock.now())


@router.post("/punch-out", response_model=AttendanceSessionRead)
async def punch_out(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    clock: Clock = Depends(get_clock),
) -> AttendanceSession:
    """Close today's session and finalize break, idle and work hours."""
    return await punch.punch_out(db, identity, now=clock.now())


# ── Breaks ──────────────────────────────────────────────────────────
@router.post("/break/start", response_model=AttendanceSessionRead)
async def break_start(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    clock: Clock = Depends(get_clock),
) -> AttendanceSession:
    return await punch.start_break(db, identity, now=clock.now())


@router.post("/break/end", response_model=AttendanceSessionRead)
async def break_end(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    clock: Clock = Depends(get_clock),
) -> AttendanceSession:
    return await punch.end_break(db, identity, now=clock.now())


# ── Today ───────────────────────────────────────────────────────────
@router.get("/today", response_model=TodayResponse)
async def today(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    clock: Clock = Depends(get_clock),
) -> TodayResponse:
    """Current session aggregates for the caller (``session`` is null before punch-in)."""
    if identity.employee_id is None:
        raise NoEmployeeLinked()

    session = await get_today_session(db, identity.employee_id, clock.now())
    if session is None:
        return TodayResponse(session=None)

    total = await db.execute(
        select(func.count(ActivityLogEntry.id)).where(ActivityLogEntry.session_id == session.id)
    )
    open_break = await db.execute(
        select(func.count(BreakPeriod.id)).where(
            BreakPeriod.session_id == session.id, BreakPeriod.ended_at.is_(None)
        )
    )
    return TodayResponse(
        session=AttendanceSessionRead.model_validate(session),
        on_break=(open_break.scalar() or 0) > 0,
        heartbeats=total.scalar() or 0,
        inactive_heartbeats=await count_inactive_heartbeats(db, session.id),
    )

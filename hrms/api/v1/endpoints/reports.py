"""
Admin & operational endpoints — recalculation, suspicious activity, health.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.api.v1.deps import get_clock, get_database, get_db, require_admin
from hrms.core.clock import Clock, ensure_utc
from hrms.core.security import Identity
from hrms.db.session import Database
from hrms.schemas.attendance import (HealthResponse, RecalcBreakdownRead,
                                     RecalculateRequest,
                                     RecalculateResponse,
                                     SuspiciousActivityResponse)
from hrms.services.recalculator import RecalcScope, recompute_sessions
from hrms.services.suspicious import suspicious_activity_report

router = APIRouter(tags=["reports"])
logger = logging.getLogger(__name__)

FORMULA = "Work Hours = Elapsed - Break - Idle - max(0, Idle - 1h)"


# ── Recalculation (admin) ───────────────────────────────────────────
@router.post("/attendance/recalculate", response_model=RecalculateResponse)
async def recalculate(
    body: RecalculateRequest,
    database: Database = Depends(get_database),
    admin: Identity = Depends(require_admin),
) -> RecalculateResponse:
    """Recompute idle time and work hours for completed sessions.

    Idempotent: sessions whose stored figures are already within tolerance
    are reported as ``unchanged`` and not written.
    """
    scope = RecalcScope(
        session_id=body.session_id,
        employee_code=body.employee_code,
        all_sessions=body.all,
    )
    logger.info("Recalculation requested by user %d: %s", admin.user_id, scope)
    summary = await recompute_sessions(database, scope)

    if (body.session_id is not None or body.employee_code is not None) and summary.processed == 0:
        raise HTTPException(status_code=404, detail="No completed attendance sessions matched")

    return RecalculateResponse(
        success=summary.failed == 0,
        message=f"Recalculated {summary.processed} records, updated {summary.updated}",
        formula=FORMULA,
        processed=summary.processed,
        updated=summary.updated,
        unchanged=summary.unchanged,
        skipped=summary.skipped,
        failed=summary.failed,
        results=[
            {
                "session_id": r.session_id,
                "employee_id": r.employee_id,
                "work_date": r.work_date,
                "outcome": r.outcome,
                "old_idle_time": round(r.old_idle_time, 2),
                "old_work_hours": round(r.old_work_hours, 2),
                "new": RecalcBreakdownRead.model_validate(r.breakdown) if r.breakdown else None,
                "inactive_heartbeats": r.inactive_heartbeats,
                "reason": r.reason,
            }
            for r in summary.results
        ],
    )


# ── Suspicious activity (admin) ─────────────────────────────────────
@router.get("/admin/suspicious-activity", response_model=SuspiciousActivityResponse)
async def suspicious_activity(
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    employee_id: int | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _admin: Identity = Depends(require_admin),
) -> SuspiciousActivityResponse:
    """Suspicious heartbeats grouped per employee-day, most flagged first."""
    if start_date and end_date and ensure_utc(start_date) > ensure_utc(end_date):
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    report = await suspicious_activity_report(
        db,
        now=clock.now(),
        start=start_date,
        end=end_date,
        employee_id=employee_id,
    )
    return SuspiciousActivityResponse.model_validate(report)


# ── Health ──────────────────────────────────────────────────────────
@router.get("/health", response_model=HealthResponse)
async def health(database: Database = Depends(get_database)) -> HealthResponse:
    """Public health check — DB connectivity."""
    result = HealthResponse(db=False)
    try:
        result.db = await database.ping()
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
    return result

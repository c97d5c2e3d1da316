"""
Suspicious-activity review for administrators.

Fetches flagged heartbeats in **one** query (joined to session and
employee) and groups them per employee-day in Python.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.core.clock import ensure_utc
from hrms.core.config import settings
from hrms.models.activity_log import ActivityLogEntry
from hrms.models.employee import AttendanceSession, Employee


@dataclass
class SuspiciousLog:
    id: int
    session_id: int
    employee_id: int
    employee_code: str
    employee_name: str
    work_date: str
    timestamp: datetime
    pattern_type: str | None
    pattern_details: str | None


@dataclass
class SuspiciousSummaryRow:
    employee_id: int
    employee_code: str
    employee_name: str
    department: str | None
    work_date: str
    count: int = 0
    pattern_types: dict[str, int] = field(default_factory=dict)
    timestamps: list[datetime] = field(default_factory=list)


@dataclass
class SuspiciousReport:
    total_suspicious: int
    summary: list[SuspiciousSummaryRow]
    logs: list[SuspiciousLog]


async def suspicious_activity_report(
    db: AsyncSession,
    *,
    now: datetime,
    start: datetime | None = None,
    end: datetime | None = None,
    employee_id: int | None = None,
) -> SuspiciousReport:
    start = ensure_utc(start or now - timedelta(days=settings.SUSPICIOUS_REPORT_DAYS))
    end = ensure_utc(end) if end is not None else None

    query = (
        select(ActivityLogEntry, AttendanceSession.work_date, Employee)
        .join(AttendanceSession, ActivityLogEntry.session_id == AttendanceSession.id)
        .join(Employee, AttendanceSession.employee_id == Employee.id)
        .where(
            ActivityLogEntry.suspicious.is_(True),
            ActivityLogEntry.timestamp >= start,
        )
        .order_by(ActivityLogEntry.timestamp.desc())
        .limit(settings.SUSPICIOUS_REPORT_LIMIT)
    )
    if end is not None:
        query = query.where(ActivityLogEntry.timestamp <= end)
    if employee_id is not None:
        query = query.where(AttendanceSession.employee_id == employee_id)

    rows = (await db.execute(query)).all()

    logs: list[SuspiciousLog] = []
    grouped: dict[tuple[int, str], SuspiciousSummaryRow] = {}
    pattern_counts: dict[tuple[int, str], dict[str, int]] = defaultdict(lambda: defaultdict(int))

    for entry, work_date, employee in rows:
        day = work_date.isoformat()
        ts = ensure_utc(entry.timestamp)
        logs.append(
            SuspiciousLog(
                id=entry.id,
                session_id=entry.session_id,
                employee_id=employee.id,
                employee_code=employee.employee_code,
                employee_name=employee.name,
                work_date=day,
                timestamp=ts,
                pattern_type=entry.pattern_type,
                pattern_details=entry.pattern_details,
            )
        )

        key = (employee.id, day)
        row = grouped.get(key)
        if row is None:
            row = grouped[key] = SuspiciousSummaryRow(
                employee_id=employee.id,
                employee_code=employee.employee_code,
                employee_name=employee.name,
                department=employee.department,
                work_date=day,
            )
        row.count += 1
        row.timestamps.append(ts)
        pattern_counts[key][entry.pattern_type or "unspecified"] += 1

    for key, row in grouped.items():
        row.pattern_types = dict(pattern_counts[key])

    # Most suspicious first
    summary = sorted(grouped.values(), key=lambda r: r.count, reverse=True)
    return SuspiciousReport(total_suspicious=len(logs), summary=summary, logs=logs)

"""
Work-hours arithmetic.

    raw        = elapsed - break - idle
    penalty    = max(0, idle - grace)      # idle past the grace hour counts twice
    work_hours = max(0, raw - penalty)

All inputs and outputs are hours. Nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class WorkHoursBreakdown:
    elapsed_hours: float
    break_hours: float
    idle_hours: float
    raw_hours: float
    idle_penalty: float
    work_hours: float

    def rounded(self) -> WorkHoursBreakdown:
        return WorkHoursBreakdown(
            elapsed_hours=round_hours(self.elapsed_hours),
            break_hours=round_hours(self.break_hours),
            idle_hours=round_hours(self.idle_hours),
            raw_hours=round_hours(self.raw_hours),
            idle_penalty=round_hours(self.idle_penalty),
            work_hours=round_hours(self.work_hours),
        )


def round_hours(value: float) -> float:
    return round(value, 2)


def idle_hours_from_count(inactive_count: int, interval_minutes: float) -> float:
    """Each inactive heartbeat stands for one full cadence interval."""
    return inactive_count * interval_minutes / 60


def clamp_idle(idle_hours: float, elapsed_hours: float) -> float:
    """Idle time can never exceed the time actually spent punched in."""
    return max(0.0, min(idle_hours, max(0.0, elapsed_hours)))


def compute_work_hours(
    elapsed_hours: float,
    break_hours: float,
    idle_hours: float,
    grace_hours: float = 1.0,
) -> WorkHoursBreakdown:
    raw = elapsed_hours - break_hours - idle_hours
    penalty = max(0.0, idle_hours - grace_hours)
    return WorkHoursBreakdown(
        elapsed_hours=elapsed_hours,
        break_hours=break_hours,
        idle_hours=idle_hours,
        raw_hours=raw,
        idle_penalty=penalty,
        work_hours=max(0.0, raw - penalty),
    )


def differs(new: float, stored: float | None, tolerance: float) -> bool:
    return abs(new - (stored or 0.0)) > tolerance


def attendance_status(work_hours: float, employee_type: str | None,
                      full_time_hours: float, part_time_hours: float) -> str:
    """PRESENT when the day meets the employee type's threshold, else HALF_DAY."""
    threshold = part_time_hours if employee_type in ("Intern", "Part-time") else full_time_hours
    return "PRESENT" if work_hours >= threshold else "HALF_DAY"

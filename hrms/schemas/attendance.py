"""Pydantic schemas for heartbeats, sessions, recalculation and reports."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

# Column widths of activity_logs.pattern_type / pattern_details
PATTERN_TYPE_MAX = 64
PATTERN_DETAILS_MAX = 500


# ── Heartbeat ───────────────────────────────────────────────────────
class HeartbeatRequest(BaseModel):
    """Client heartbeat.

    Detection data is never grounds for rejection: the pattern tag is an open
    set, so both pattern fields are trimmed to fit storage instead of failing
    validation and dropping the heartbeat.
    """

    active: bool = True
    suspicious: bool = False
    pattern_type: str | None = Field(default=None, alias="patternType")
    pattern_details: str | None = Field(default=None, alias="patternDetails")

    model_config = {"populate_by_name": True}

    @field_validator("pattern_type", mode="before")
    @classmethod
    def _pattern_type(cls, v: object) -> str | None:
        if v is None:
            return None
        v = str(v).strip()[:PATTERN_TYPE_MAX]
        return v or None

    @field_validator("pattern_details", mode="before")
    @classmethod
    def _pattern_details(cls, v: object) -> str | None:
        if v is None:
            return None
        return str(v)[:PATTERN_DETAILS_MAX] or None


class HeartbeatResponse(BaseModel):
    success: bool = True
    idle_time: float = Field(serialization_alias="idleTime")
    last_heartbeat: datetime = Field(serialization_alias="lastHeartbeat")
    bot_detected: bool = Field(serialization_alias="botDetected")
    effective_active: bool = Field(serialization_alias="effectiveActive")


# ── Sessions ────────────────────────────────────────────────────────
# Employee-facing responses serialize camelCase, like the heartbeat.
class AttendanceSessionRead(BaseModel):
    id: int
    employee_id: int = Field(serialization_alias="employeeId")
    work_date: date = Field(serialization_alias="workDate")
    punch_in: datetime | None = Field(serialization_alias="punchIn")
    punch_out: datetime | None = Field(serialization_alias="punchOut")
    break_duration: float = Field(serialization_alias="breakDuration")
    idle_time: float = Field(serialization_alias="idleTime")
    work_hours: float = Field(serialization_alias="workHours")
    status: str

    model_config = {"from_attributes": True}


class TodayResponse(BaseModel):
    session: AttendanceSessionRead | None
    on_break: bool = Field(default=False, serialization_alias="onBreak")
    heartbeats: int = 0
    inactive_heartbeats: int = Field(default=0, serialization_alias="inactiveHeartbeats")


# ── Recalculation ───────────────────────────────────────────────────
class RecalculateRequest(BaseModel):
    session_id: int | None = None
    employee_code: str | None = None
    all: bool = False

    @model_validator(mode="after")
    def _one_scope(self) -> RecalculateRequest:
        if self.session_id is None and self.employee_code is None and not self.all:
            raise ValueError("Specify session_id, employee_code, or all=true")
        return self


class RecalcBreakdownRead(BaseModel):
    elapsed_hours: float
    break_hours: float
    idle_hours: float
    idle_penalty: float
    work_hours: float

    model_config = {"from_attributes": True}


class RecalcResultRead(BaseModel):
    session_id: int
    employee_id: int
    work_date: str
    outcome: str
    old_idle_time: float
    old_work_hours: float
    new: RecalcBreakdownRead | None = None
    inactive_heartbeats: int
    reason: str | None = None


class RecalculateResponse(BaseModel):
    success: bool = True
    message: str
    formula: str
    processed: int
    updated: int
    unchanged: int
    skipped: int
    failed: int
    results: list[RecalcResultRead]


# ── Suspicious activity ─────────────────────────────────────────────
class SuspiciousLogRead(BaseModel):
    id: int
    session_id: int
    employee_id: int
    employee_code: str
    employee_name: str
    work_date: str
    timestamp: datetime
    pattern_type: str | None
    pattern_details: str | None

    model_config = {"from_attributes": True}


class SuspiciousSummaryRead(BaseModel):
    employee_id: int
    employee_code: str
    employee_name: str
    department: str | None
    work_date: str
    count: int
    pattern_types: dict[str, int]
    timestamps: list[datetime]

    model_config = {"from_attributes": True}


class SuspiciousActivityResponse(BaseModel):
    total_suspicious: int
    summary: list[SuspiciousSummaryRead]
    logs: list[SuspiciousLogRead]

    model_config = {"from_attributes": True}


# ── Health ──────────────────────────────────────────────────────────
class HealthResponse(BaseModel):
    db: bool

"""
Employee, attendance session & break models — core business domain.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (Boolean, Column, Date, DateTime, Float, ForeignKey,
                        Index, Integer, String, UniqueConstraint)
from sqlalchemy.orm import relationship

from hrms.db.base import Base


class Employee(Base):
    __tablename__ = "employees"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_code: str = Column(String(32), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    department: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    employee_type: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default="Full-time",
        server_default="Full-time",
    )  # Full-time | Part-time | Intern
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    sessions = relationship(
        "AttendanceSession",
        back_populates="employee",
        cascade="all, delete-orphan",
    )


class AttendanceSession(Base):
    """One employee's punch-in/punch-out record for one calendar day."""

    __tablename__ = "attendance_sessions"
    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_session_emp_date"),
        Index("ix_session_employee_date", "employee_id", "work_date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    work_date: date = Column(Date, nullable=False, index=True)  # type: ignore[assignment]
    punch_in: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    punch_out: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    # Hours. break_duration is owned by the break flow; the other two are derived.
    break_duration: float = Column(Float, nullable=False, default=0.0)  # type: ignore[assignment]
    idle_time: float = Column(Float, nullable=False, default=0.0)  # type: ignore[assignment]
    work_hours: float = Column(Float, nullable=False, default=0.0)  # type: ignore[assignment]
    status: str = Column(String(20), nullable=False, default="PRESENT")  # type: ignore[assignment]
    # PRESENT | HALF_DAY | ABSENT
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime | None = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=True,
    )

    employee = relationship("Employee", back_populates="sessions")
    activity_logs = relationship(
        "ActivityLogEntry",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ActivityLogEntry.timestamp",
    )
    breaks = relationship(
        "BreakPeriod",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="BreakPeriod.started_at",
    )


class BreakPeriod(Base):
    __tablename__ = "break_periods"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    session_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("attendance_sessions.id"), nullable=False, index=True
    )
    started_at: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    ended_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]

    session = relationship("AttendanceSession", back_populates="breaks")

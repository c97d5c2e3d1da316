"""
ActivityLogEntry model — append-only heartbeat audit trail.

One row per heartbeat. Rows are never updated or deleted except by the
cascade when their owning session is removed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        String)
from sqlalchemy.orm import relationship

from hrms.db.base import Base

SOURCE_CLIENT = "client"
SOURCE_SERVER = "server"


class ActivityLogEntry(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_session_active_source", "session_id", "active", "source"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    session_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("attendance_sessions.id"), nullable=False, index=True
    )
    timestamp: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    active: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    suspicious: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    pattern_type: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    pattern_details: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    source: str = Column(  # type: ignore[assignment]
        String(16),
        nullable=False,
        default=SOURCE_CLIENT,
        server_default=SOURCE_CLIENT,
    )  # client | server

    session = relationship("AttendanceSession", back_populates="activity_logs")

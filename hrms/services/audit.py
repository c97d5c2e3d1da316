"""
Audit sink for suspicious heartbeats.

The default sink writes a warning-level record on the ``hrms.audit``
logger so log shippers can alert on it. Anything with a matching
``report_suspicious`` coroutine can be injected instead.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

logger = logging.getLogger("hrms.audit")


class AuditSink(Protocol):
    async def report_suspicious(
        self,
        *,
        employee_id: int,
        session_id: int,
        pattern_type: str | None,
        pattern_details: str | None,
        at: datetime,
    ) -> None: ...


class LoggingAuditSink:
    async def report_suspicious(
        self,
        *,
        employee_id: int,
        session_id: int,
        pattern_type: str | None,
        pattern_details: str | None,
        at: datetime,
    ) -> None:
        logger.warning(
            "Suspicious heartbeat: employee=%s session=%s pattern=%s details=%s at=%s",
            employee_id,
            session_id,
            pattern_type or "unspecified",
            pattern_details or "-",
            at.isoformat(),
        )

"""
Client-side heartbeat emitter.

Tracks the last local input instant and, on a fixed cadence, reports to the
attendance API whether the user was active during the recent window and
whether the input looked scripted. The server only trusts what arrives
here; the emitter never computes idle time itself.

Lifecycle::

    STOPPED --start()--> TRACKING --stop() / rejected--> STOPPED
"""

from __future__ import annotations

import enum
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from hrms.core.clock import Clock
from hrms.emitter.timer import PeriodicTimer
from hrms.emitter.transport import HeartbeatRejected, HeartbeatTransport
from hrms.services.bot_detection import InputEvent, PatternDetector, default_detector

logger = logging.getLogger(__name__)

# Match the server's HEARTBEAT_INTERVAL_MINUTES and ACTIVITY_WINDOW_MINUTES defaults;
# the emitter runs on employee machines and never loads server settings.
DEFAULT_INTERVAL = timedelta(minutes=3)
DEFAULT_ACTIVITY_WINDOW = timedelta(minutes=5)

ActivityListener = Callable[[InputEvent], None]


class InputSource(Protocol):
    """Delivers raw keyboard / pointer events to subscribed listeners."""

    def subscribe(self, listener: ActivityListener) -> None: ...

    def unsubscribe(self, listener: ActivityListener) -> None: ...


class EmitterState(str, enum.Enum):
    TRACKING = "tracking"
    STOPPED = "stopped"


@dataclass(frozen=True)
class HeartbeatReport:
    active: bool
    suspicious: bool = False
    pattern_type: str | None = None
    pattern_details: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"active": self.active, "suspicious": self.suspicious}
        if self.pattern_type:
            payload["patternType"] = self.pattern_type
        if self.pattern_details:
            payload["patternDetails"] = self.pattern_details[:500]
        return payload


class HeartbeatEmitter:
    def __init__(
        self,
        transport: HeartbeatTransport,
        timer: PeriodicTimer,
        input_source: InputSource,
        *,
        clock: Clock | None = None,
        detector: PatternDetector | None = None,
        interval: timedelta | None = None,
        activity_window: timedelta | None = None,
        window_size: int = 200,
    ) -> None:
        self._transport = transport
        self._timer = timer
        self._input = input_source
        self._clock = clock or Clock()
        self._detector = detector or default_detector()
        self.interval = interval or DEFAULT_INTERVAL
        self.activity_window = activity_window or DEFAULT_ACTIVITY_WINDOW
        self._events: deque[InputEvent] = deque(maxlen=window_size)
        self._last_activity: datetime | None = None
        self.state = EmitterState.STOPPED
        self.sent = 0

    @property
    def last_activity(self) -> datetime | None:
        return self._last_activity

    # ── Local input ─────────────────────────────────────────────────
    def record_activity(self, event: InputEvent | None = None) -> None:
        self._last_activity = self._clock.now()
        if event is not None:
            self._events.append(event)

    # ── Lifecycle ───────────────────────────────────────────────────
    async def start(self) -> None:
        """Begin tracking: subscribe, send one heartbeat now, then every interval."""
        if self.state is EmitterState.TRACKING:
            return
        # Starting the tracker counts as activity
        self._last_activity = self._clock.now()
        self._input.subscribe(self.record_activity)
        self.state = EmitterState.TRACKING
        logger.info("Heartbeat emitter started (every %s)", self.interval)

        await self._send()
        # The immediate send may have been rejected
        if self.state is EmitterState.TRACKING:
            self._timer.start(self.interval.total_seconds(), self.tick)

    async def tick(self) -> None:
        if self.state is not EmitterState.TRACKING:
            return
        await self._send()

    def stop(self) -> None:
        if self.state is EmitterState.STOPPED:
            return
        self._timer.cancel()
        self._input.unsubscribe(self.record_activity)
        self.state = EmitterState.STOPPED
        self._events.clear()
        logger.info("Heartbeat emitter stopped after %d heartbeats", self.sent)

    # ── Reporting ───────────────────────────────────────────────────
    def build_report(self) -> HeartbeatReport:
        """Snapshot activity and detector verdict; drains the event window."""
        now = self._clock.now()
        was_active = (
            self._last_activity is not None
            and now - self._last_activity < self.activity_window
        )
        detection = self._detector.analyze(list(self._events))
        self._events.clear()
        return HeartbeatReport(
            active=was_active,
            suspicious=detection.suspicious,
            pattern_type=detection.pattern_type,
            pattern_details=detection.details,
        )

    async def _send(self) -> None:
        report = self.build_report()
        try:
            await self._transport.send(report.to_payload())
        except HeartbeatRejected as e:
            logger.info("Heartbeat rejected (%s): %s; stopping", e.code or e.status_code, e.detail)
            self.stop()
            return
        except Exception as e:
            # Next tick is the retry
            logger.warning("Failed to send heartbeat: %s", e)
            return
        self.sent += 1
        if report.suspicious:
            logger.debug("Reported suspicious input: %s", report.pattern_type)

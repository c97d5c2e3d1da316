"""Tests for the client-side heartbeat emitter, its transport and timer."""

import asyncio
import json
import subprocess
import sys
from datetime import timedelta
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport

from conftest import START, FixedClock, make_session
from hrms.emitter.heartbeat_emitter import (EmitterState, HeartbeatEmitter,
                                            HeartbeatReport)
from hrms.emitter.timer import AsyncioPeriodicTimer
from hrms.emitter.transport import HeartbeatRejected, HttpHeartbeatTransport
from hrms.services.bot_detection import Detection, InputEvent


class FakeTransport:
    def __init__(self, error: Exception | None = None) -> None:
        self.payloads: list[dict] = []
        self.error = error

    async def send(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return {"success": True}


class FakeTimer:
    def __init__(self) -> None:
        self.interval = None
        self.callback = None
        self.running = False

    def start(self, interval_seconds, callback):
        self.interval = interval_seconds
        self.callback = callback
        self.running = True

    def cancel(self):
        self.running = False

    async def fire(self):
        await self.callback()


class FakeInput:
    def __init__(self) -> None:
        self.listeners = []

    def subscribe(self, listener):
        self.listeners.append(listener)

    def unsubscribe(self, listener):
        self.listeners.remove(listener)

    def emit(self, event):
        for listener in list(self.listeners):
            listener(event)


class RecordingDetector:
    def __init__(self, verdict: Detection | None = None) -> None:
        self.verdict = verdict or Detection()
        self.seen: list[int] = []

    def analyze(self, events):
        self.seen.append(len(events))
        return self.verdict


def _key(at: float = 0.0) -> InputEvent:
    return InputEvent(kind="key", at=at)


@pytest.fixture
def parts():
    return FakeTransport(), FakeTimer(), FakeInput(), FixedClock(START)


def _emitter(transport, timer, source, clock, **kwargs) -> HeartbeatEmitter:
    kwargs.setdefault("detector", RecordingDetector())
    return HeartbeatEmitter(transport, timer, source, clock=clock, **kwargs)


# ── Lifecycle ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_start_sends_immediately_and_schedules(parts):
    transport, timer, source, clock = parts
    emitter = _emitter(transport, timer, source, clock)
    assert emitter.state is EmitterState.STOPPED

    await emitter.start()

    assert emitter.state is EmitterState.TRACKING
    assert transport.payloads == [{"active": True, "suspicious": False}]
    assert timer.running
    assert timer.interval == 180.0
    assert len(source.listeners) == 1


@pytest.mark.asyncio
async def test_activity_window(parts):
    transport, timer, source, clock = parts
    emitter = _emitter(transport, timer, source, clock)
    await emitter.start()

    clock.advance(minutes=4)
    await timer.fire()
    assert transport.payloads[-1]["active"] is True

    clock.advance(minutes=2)
    await timer.fire()
    assert transport.payloads[-1]["active"] is False

    source.emit(_key())
    assert emitter.last_activity == clock.now()
    clock.advance(minutes=3)
    await timer.fire()
    assert transport.payloads[-1]["active"] is True


@pytest.mark.asyncio
async def test_nothing_sent_after_stop(parts):
    transport, timer, source, clock = parts
    emitter = _emitter(transport, timer, source, clock)
    await emitter.start()
    emitter.stop()

    assert emitter.state is EmitterState.STOPPED
    assert not timer.running
    assert source.listeners == []

    await emitter.tick()
    assert len(transport.payloads) == 1


@pytest.mark.asyncio
async def test_transport_failure_is_swallowed(parts):
    _, timer, source, clock = parts
    transport = FakeTransport(error=httpx.ConnectError("connection refused"))
    emitter = _emitter(transport, timer, source, clock)

    await emitter.start()
    assert emitter.state is EmitterState.TRACKING
    assert timer.running

    transport.error = None
    clock.advance(minutes=3)
    await timer.fire()
    assert len(transport.payloads) == 2
    assert emitter.sent == 1


@pytest.mark.asyncio
async def test_rejection_stops_the_cadence(parts):
    _, timer, source, clock = parts
    transport = FakeTransport(error=HeartbeatRejected(400, "no_session", "Please punch in first."))
    emitter = _emitter(transport, timer, source, clock)

    await emitter.start()
    assert emitter.state is EmitterState.STOPPED
    assert not timer.running
    assert source.listeners == []


@pytest.mark.asyncio
async def test_detector_verdict_is_reported(parts):
    transport, timer, source, clock = parts
    detector = RecordingDetector(
        Detection(suspicious=True, pattern_type="periodic-interval", details="every 30000ms")
    )
    emitter = _emitter(transport, timer, source, clock, detector=detector)
    await emitter.start()

    assert transport.payloads[0] == {
        "active": True,
        "suspicious": True,
        "patternType": "periodic-interval",
        "patternDetails": "every 30000ms",
    }


@pytest.mark.asyncio
async def test_event_window_drains_each_tick(parts):
    transport, timer, source, clock = parts
    detector = RecordingDetector()
    emitter = _emitter(transport, timer, source, clock, detector=detector, window_size=3)
    await emitter.start()

    for i in range(5):
        source.emit(_key(float(i)))
    await timer.fire()
    await timer.fire()
    # start saw nothing, first tick sees the bounded window, second an empty one
    assert detector.seen == [0, 3, 0]


def test_report_payload_omits_empty_pattern():
    assert HeartbeatReport(active=False).to_payload() == {"active": False, "suspicious": False}
    long = HeartbeatReport(active=True, suspicious=True, pattern_type="x", pattern_details="d" * 900)
    assert len(long.to_payload()["patternDetails"]) == 500


def test_custom_cadence():
    emitter = HeartbeatEmitter(
        FakeTransport(), FakeTimer(), FakeInput(),
        interval=timedelta(seconds=30), activity_window=timedelta(minutes=1),
    )
    assert emitter.interval.total_seconds() == 30
    assert emitter.activity_window.total_seconds() == 60


# ── Transport ───────────────────────────────────────────────────────
def _mock_client(status: int, body: dict, seen: list) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://hrms")


@pytest.mark.asyncio
async def test_http_transport_posts_json_with_bearer():
    seen: list[httpx.Request] = []
    client = _mock_client(200, {"success": True, "idleTime": 0.0}, seen)
    transport = HttpHeartbeatTransport("http://hrms", "tok-123", client=client)

    body = await transport.send({"active": True, "suspicious": False})

    assert body["success"] is True
    request = seen[0]
    assert request.url.path == "/api/v1/attendance/heartbeat"
    assert request.headers["Authorization"] == "Bearer tok-123"
    assert json.loads(request.content) == {"active": True, "suspicious": False}
    await client.aclose()


@pytest.mark.asyncio
async def test_http_transport_precondition_rejection():
    client = _mock_client(409, {"detail": "Already punched out for today.", "code": "already_punched_out"}, [])
    transport = HttpHeartbeatTransport("http://hrms", "tok", client=client)

    with pytest.raises(HeartbeatRejected) as exc:
        await transport.send({"active": True})
    assert exc.value.code == "already_punched_out"
    assert exc.value.status_code == 409
    await client.aclose()


@pytest.mark.asyncio
async def test_http_transport_server_error_raises():
    client = _mock_client(500, {"detail": "Internal server error"}, [])
    transport = HttpHeartbeatTransport("http://hrms", "tok", client=client)
    with pytest.raises(httpx.HTTPStatusError):
        await transport.send({"active": True})
    await client.aclose()


# ── Against the real API ────────────────────────────────────────────
@pytest.mark.asyncio
async def test_emitter_against_api_until_punch_out(app, db_session, employee, as_employee, clock):
    await make_session(db_session, employee)
    clock.advance(minutes=3)

    client = httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    transport = HttpHeartbeatTransport("http://test", "unused", client=client)
    timer = FakeTimer()
    emitter = HeartbeatEmitter(transport, timer, FakeInput(), clock=clock)

    await emitter.start()
    assert emitter.sent == 1

    clock.advance(minutes=3)
    await client.post("/api/v1/attendance/punch-out")
    await timer.fire()

    assert emitter.state is EmitterState.STOPPED
    assert emitter.sent == 1
    await client.aclose()


# ── Timer ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_asyncio_timer_runs_until_cancelled():
    calls = 0

    async def callback():
        nonlocal calls
        calls += 1

    timer = AsyncioPeriodicTimer()
    timer.start(0.01, callback)
    assert timer.running
    await asyncio.sleep(0.1)
    timer.cancel()
    assert not timer.running

    seen = calls
    assert seen >= 1
    await asyncio.sleep(0.05)
    assert calls == seen


def test_default_cadence_matches_server_settings():
    from hrms.core.config import Settings
    from hrms.emitter.heartbeat_emitter import DEFAULT_ACTIVITY_WINDOW, DEFAULT_INTERVAL

    server = Settings()
    assert DEFAULT_INTERVAL == timedelta(minutes=server.HEARTBEAT_INTERVAL_MINUTES)
    assert DEFAULT_ACTIVITY_WINDOW == timedelta(minutes=server.ACTIVITY_WINDOW_MINUTES)


def test_emitter_import_does_not_load_server_settings():
    code = (
        "import sys\n"
        "import hrms.emitter.heartbeat_emitter, hrms.emitter.transport, hrms.emitter.timer\n"
        "assert 'hrms.core.config' not in sys.modules, 'server settings imported'\n"
    )
    repo_root = Path(__file__).resolve().parent.parent
    result = subprocess.run([sys.executable, "-c", code], capture_output=True, text=True, cwd=repo_root)
    assert result.returncode == 0, result.stderr

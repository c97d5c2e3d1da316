"""Tests for punch in/out, breaks and today's summary."""

import pytest
from httpx import AsyncClient

from conftest import START, make_employee, make_session
from hrms.core.exceptions import (AlreadyPunchedIn, AlreadyPunchedOut,
                                  BreakAlreadyStarted, NoBreakInProgress)
from hrms.core.security import Identity
from hrms.services import punch
from hrms.services.heartbeat import record_heartbeat
from hrms.services.recalculator import UNCHANGED, recompute_session


async def _work_a_day(db, identity, clock, inactive_beats: int = 25):
    """09:00 punch in, N inactive heartbeats, lunch 12-13, 17:00 punch out."""
    await punch.punch_in(db, identity, now=clock.now())
    for _ in range(inactive_beats):
        await record_heartbeat(db, identity, active=False, now=clock.advance(minutes=3))

    clock.current = START.replace(hour=12)
    await punch.start_break(db, identity, now=clock.now())
    clock.current = START.replace(hour=13)
    await punch.end_break(db, identity, now=clock.now())

    clock.current = START.replace(hour=17)
    return await punch.punch_out(db, identity, now=clock.now())


# ── Service ─────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_punch_in_creates_todays_session(db_session, identity, clock):
    session = await punch.punch_in(db_session, identity, now=clock.now())
    assert session.work_date == START.date()
    assert session.punch_out is None
    assert session.status == "PRESENT"
    assert session.idle_time == 0.0


@pytest.mark.asyncio
async def test_double_punch_in_is_rejected(db_session, identity, clock):
    await punch.punch_in(db_session, identity, now=clock.now())
    with pytest.raises(AlreadyPunchedIn):
        await punch.punch_in(db_session, identity, now=clock.advance(minutes=10))


@pytest.mark.asyncio
async def test_punch_in_fills_precreated_session(db_session, employee, identity, clock):
    absent = await make_session(db_session, employee, punch_in=None, status="ABSENT")
    session = await punch.punch_in(db_session, identity, now=clock.advance(minutes=30))
    assert session.id == absent.id
    assert session.status == "PRESENT"
    assert session.punch_in is not None


@pytest.mark.asyncio
async def test_full_day_finalizes_work_hours(db_session, identity, clock):
    session = await _work_a_day(db_session, identity, clock)

    # elapsed 8, break 1, idle 1.25 -> raw 5.75, penalty 0.25
    assert session.break_duration == pytest.approx(1.0)
    assert session.idle_time == pytest.approx(1.25)
    assert session.work_hours == pytest.approx(5.5)
    assert session.status == "HALF_DAY"
    assert session.punch_out is not None


@pytest.mark.asyncio
async def test_part_time_threshold(db_session, clock):
    intern = await make_employee(db_session, code="INT001", name="Sara Malik", employee_type="Intern")
    identity = Identity(user_id=3, employee_id=intern.id, role="employee")
    session = await _work_a_day(db_session, identity, clock, inactive_beats=0)
    assert session.work_hours == pytest.approx(7.0)
    assert session.status == "PRESENT"


@pytest.mark.asyncio
async def test_punch_out_matches_recalculation(db_session, identity, clock):
    session = await _work_a_day(db_session, identity, clock, inactive_beats=40)
    outcome = await recompute_session(db_session, session.id)
    assert outcome.outcome == UNCHANGED
    assert outcome.breakdown.work_hours == pytest.approx(outcome.old_work_hours)
    assert outcome.breakdown.idle_hours == pytest.approx(outcome.old_idle_time)


@pytest.mark.asyncio
async def test_punch_out_closes_open_break(db_session, identity, clock):
    await punch.punch_in(db_session, identity, now=clock.now())
    clock.current = START.replace(hour=16)
    await punch.start_break(db_session, identity, now=clock.now())
    clock.current = START.replace(hour=16, minute=30)
    session = await punch.punch_out(db_session, identity, now=clock.now())
    assert session.break_duration == pytest.approx(0.5)
    assert session.work_hours == pytest.approx(7.0)


@pytest.mark.asyncio
async def test_one_session_per_day(db_session, identity, clock):
    await punch.punch_in(db_session, identity, now=clock.now())
    await punch.punch_out(db_session, identity, now=clock.advance(hours=2))
    with pytest.raises(AlreadyPunchedOut):
        await punch.punch_in(db_session, identity, now=clock.advance(minutes=5))
    with pytest.raises(AlreadyPunchedOut):
        await punch.punch_out(db_session, identity, now=clock.advance(minutes=5))


@pytest.mark.asyncio
async def test_break_state_errors(db_session, identity, clock):
    await punch.punch_in(db_session, identity, now=clock.now())
    with pytest.raises(NoBreakInProgress):
        await punch.end_break(db_session, identity, now=clock.advance(minutes=5))
    await punch.start_break(db_session, identity, now=clock.advance(minutes=5))
    with pytest.raises(BreakAlreadyStarted):
        await punch.start_break(db_session, identity, now=clock.advance(minutes=5))


@pytest.mark.asyncio
async def test_multiple_breaks_accumulate(db_session, identity, clock):
    await punch.punch_in(db_session, identity, now=clock.now())
    for start_hour in (10, 14):
        clock.current = START.replace(hour=start_hour)
        await punch.start_break(db_session, identity, now=clock.now())
        clock.current = START.replace(hour=start_hour, minute=15)
        session = await punch.end_break(db_session, identity, now=clock.now())
    assert session.break_duration == pytest.approx(0.5)


# ── API ─────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_punch_cycle_via_api(async_client: AsyncClient, as_employee, clock):
    resp = await async_client.post("/api/v1/attendance/punch-in")
    assert resp.status_code == 200
    assert resp.json()["workDate"] == START.date().isoformat()

    resp = await async_client.post("/api/v1/attendance/punch-in")
    assert resp.status_code == 409
    assert resp.json()["code"] == "already_punched_in"

    clock.advance(hours=1)
    assert (await async_client.post("/api/v1/attendance/break/start")).status_code == 200
    clock.advance(minutes=30)
    resp = await async_client.post("/api/v1/attendance/break/end")
    assert resp.status_code == 200
    assert resp.json()["breakDuration"] == pytest.approx(0.5)

    clock.advance(hours=7)
    resp = await async_client.post("/api/v1/attendance/punch-out")
    assert resp.status_code == 200
    data = resp.json()
    assert data["workHours"] == pytest.approx(8.0)
    assert data["status"] == "PRESENT"
    assert data["punchOut"] is not None


@pytest.mark.asyncio
async def test_today_before_and_after_punch_in(async_client: AsyncClient, as_employee, clock):
    resp = await async_client.get("/api/v1/attendance/today")
    assert resp.status_code == 200
    assert resp.json()["session"] is None

    await async_client.post("/api/v1/attendance/punch-in")
    for active in (False, True, False):
        clock.advance(minutes=3)
        await async_client.post("/api/v1/attendance/heartbeat", json={"active": active})
    await async_client.post("/api/v1/attendance/break/start")

    data = (await async_client.get("/api/v1/attendance/today")).json()
    assert data["heartbeats"] == 3
    assert data["inactiveHeartbeats"] == 2
    assert data["onBreak"] is True
    assert data["session"]["idleTime"] == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_punch_requires_linked_employee(async_client: AsyncClient, as_admin):
    resp = await async_client.post("/api/v1/attendance/punch-in")
    assert resp.status_code == 403
    assert resp.json()["code"] == "no_employee"

"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from hrms.api.v1.endpoints import attendance, reports

api_router = APIRouter()

# Heartbeat, punch in/out, breaks, today
api_router.include_router(attendance.router)

# Recalculation, suspicious activity, health
api_router.include_router(reports.router)

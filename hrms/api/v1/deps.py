"""
FastAPI dependencies — identity guards, database session, clock and audit sink.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.core.clock import Clock
from hrms.core.security import Identity, decode_access_token
from hrms.db.session import Database
from hrms.models.user import User
from hrms.services.audit import AuditSink

# Tokens are issued by the HR platform; auto_error=False lets us fall back to the cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Application-scoped collaborators ────────────────────────────────
def get_database(request: Request) -> Database:
    return request.app.state.database


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_audit_sink(request: Request) -> AuditSink:
    return request.app.state.audit_sink


# ── Database session ────────────────────────────────────────────────
async def get_db(
    database: Database = Depends(get_database),
) -> AsyncGenerator[AsyncSession, None]:
    async for session in database.session():
        yield session


# ── Identity dependencies ───────────────────────────────────────────
def _pick_token(header_token: Optional[str], cookie_token: Optional[str]) -> Optional[str]:
    # Priority: Header > Cookie
    if header_token:
        return header_token
    if cookie_token and cookie_token.startswith("Bearer "):
        return cookie_token.split(" ", 1)[1]
    return cookie_token or None


def rate_limit_key(request: Request) -> str:
    """Rate-limit bucket for authenticated routes.

    Keyed on the token subject so employees sharing an office NAT do not
    share a bucket. Requests without a readable token fall back to the
    client address.
    """
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    header_token = value.strip() if scheme.lower() == "bearer" else None
    token = _pick_token(header_token, request.cookies.get("access_token"))
    if token:
        payload = decode_access_token(token)
        if payload and payload.get("sub") is not None:
            return f"user:{payload['sub']}"
    return get_remote_address(request)


async def get_current_identity(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Decode JWT from Header OR Cookie and resolve the caller."""

    final_token = _pick_token(token, access_token)

    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not final_token:
        raise credentials_exc

    payload = decode_access_token(final_token)
    if payload is None:
        raise credentials_exc

    user_id: str | None = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exc
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")

    return Identity(user_id=user.id, employee_id=user.employee_id, role=user.role)


async def require_admin(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    """Only allow admin role to proceed."""
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return identity

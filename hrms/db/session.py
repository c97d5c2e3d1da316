"""
Async SQLAlchemy engine & session factory (asyncpg driver).

The ``Database`` object is built once per application and handed to the
components that need storage; nothing here is a module-level singleton.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hrms.db.base import Base


class Database:
    def __init__(self, url: str, **engine_overrides: Any) -> None:
        self.url = url
        self.is_sqlite = url.startswith("sqlite")

        engine_args: dict[str, Any] = {
            "echo": False,
            "pool_pre_ping": True,
        }
        if "postgresql" in url:
            engine_args.update(
                {
                    "pool_size": 20,
                    "max_overflow": 10,
                    "pool_recycle": 300,
                }
            )
        elif self.is_sqlite and ":memory:" in url:
            # One shared connection, otherwise every session sees an empty DB
            engine_args.update(
                {
                    "connect_args": {"check_same_thread": False},
                    "poolclass": StaticPool,
                }
            )
        engine_args.update(engine_overrides)

        self.engine = create_async_engine(url, **engine_args)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def ping(self) -> bool:
        async with self.session_factory() as session:
            await session.execute(select(1))
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an AsyncSession and close it after use."""
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

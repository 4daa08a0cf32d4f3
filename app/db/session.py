# app/db/session.py

from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.utils.timeout_protection import with_timeout

T = TypeVar("T")

# 1) Engine: one per app, async and resilient
engine = create_async_engine(
    settings.async_db_uri,
    pool_pre_ping=settings.DB_POOL_PRE_PING,   # avoids stale connection errors
)

# 2) Session factory: creates short-lived sessions per request
AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,  # keep objects usable after commit
    class_=AsyncSession,
)

# 3) Declarative Base: all models inherit from this
class Base(DeclarativeBase):
    pass

# BIGINT keys on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY
IdType = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

# 4) FastAPI dependency: yields a session and closes it safely
async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


class Store:
    """
    Handle on the transactional store, passed to every service at construction.

    ``run`` executes one operation as a single unit of work: it either commits
    everything the operation wrote or rolls all of it back.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        timeout_seconds: float = settings.STORE_TIMEOUT_SECONDS,
    ):
        self._sessionmaker = sessionmaker
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_engine(cls, bind: AsyncEngine, timeout_seconds: Optional[float] = None) -> "Store":
        factory = async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)
        return cls(factory, timeout_seconds or settings.STORE_TIMEOUT_SECONDS)

    async def run(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        name: Optional[str] = None,
        **kwargs: Any,
    ) -> T:
        async def unit_of_work() -> T:
            async with self._sessionmaker() as session:
                async with session.begin():
                    return await operation(session, *args, **kwargs)

        return await with_timeout(
            unit_of_work(),
            self.timeout_seconds,
            operation=name or getattr(operation, "__name__", "store"),
        )


default_store = Store(AsyncSessionLocal)

def get_store() -> Store:
    """FastAPI dependency; tests override it with a store bound to their own engine."""
    return default_store

"""Async SQLAlchemy engine, session factory, declarative Base, and table creation."""


from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from docverify.core.config import settings


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine; SQLite gets thread-agnostic connections.

    An in-memory SQLite URL is pinned to one shared connection so every
    session (verification workers included) sees the same database.
    """
    kwargs: dict = {"pool_pre_ping": True, "echo": False}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url.rstrip("/").endswith(":") or ":memory:" in database_url:
            kwargs["poolclass"] = StaticPool
    return create_async_engine(database_url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.database_url)
async_session_factory = build_session_factory(engine)


# ---------------------------------------------------------------------------
# Declarative Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """All ORM models inherit from this base."""


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create any missing tables for the registered domain models."""
    import docverify.domain  # noqa: F401  (register mappers)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

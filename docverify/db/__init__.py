"""Database package: async SQLAlchemy engine, session factory, Base."""
from docverify.db.base import (
    Base,
    async_session_factory,
    build_engine,
    build_session_factory,
    engine,
    init_models,
)

__all__ = [
    "Base",
    "async_session_factory",
    "build_engine",
    "build_session_factory",
    "engine",
    "init_models",
]

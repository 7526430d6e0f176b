"""
Async SQLAlchemy engine, session factory, and declarative base.

Provides:
- ``Base`` -- the declarative base class for all ORM models.
- ``build_engine`` / ``build_session_factory`` -- constructors used by the
  web process and by Celery workers (which need an engine bound to their own
  event loop).
- ``get_engine`` / ``get_session_factory`` -- lazily created process-wide
  instances for the web application.
- ``init_models`` -- create every table known to ``Base.metadata``.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from sechub.config import get_settings

# ── Constants ────────────────────────────────────────────────────────────────

_POOL_SIZE: int = 20
_MAX_OVERFLOW: int = 10
_POOL_TIMEOUT_SECONDS: int = 30
_POOL_RECYCLE_SECONDS: int = 1800  # 30 minutes


# ── Declarative Base ─────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models in the project."""


# ── Engine & Session Factory ─────────────────────────────────────────────────

def build_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create and return a new async engine.

    Pool sizing only applies to server databases; SQLite URLs get the
    driver's default pool.
    """
    settings = get_settings()
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.DEBUG)
    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_size=_POOL_SIZE,
        max_overflow=_MAX_OVERFLOW,
        pool_timeout=_POOL_TIMEOUT_SECONDS,
        pool_recycle=_POOL_RECYCLE_SECONDS,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session-maker producing ``AsyncSession`` instances on *engine*."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory bound to :func:`get_engine`."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables registered on ``Base.metadata`` if they are missing."""
    import sechub.models  # noqa: F401 -- registers the mappers

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose the process-wide engine and forget the cached factory."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None

"""
db/session.py

SQLAlchemy engine and session factory for the reconciliation store.

Every connection carries a PostgreSQL ``statement_timeout`` so a hung upsert
fails the row instead of blocking a transform run indefinitely.
"""

from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import DatabaseSettings, get_database_settings


def build_connect_args(statement_timeout_ms: int) -> dict[str, str]:
    """
    Return psycopg connect arguments that bound each statement's runtime.

    A non-positive timeout disables the bound.
    """

    if statement_timeout_ms <= 0:
        return {}
    return {"options": f"-c statement_timeout={int(statement_timeout_ms)}"}


def create_db_engine(settings: DatabaseSettings | None = None) -> Engine:
    settings = settings or get_database_settings()
    if not settings.url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")

    return create_engine(
        settings.url,
        echo=settings.echo,
        pool_pre_ping=True,
        pool_recycle=settings.pool_recycle_seconds,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        connect_args=build_connect_args(settings.statement_timeout_ms),
    )


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> Engine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def _get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            class_=Session,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def SessionLocal() -> Session:
    """Lazy session factory. Drop-in replacement for a sessionmaker() call."""
    return _get_session_factory()()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session for scripts: rolled back on error, always closed.

    Services commit explicitly; this scope never commits on its own.
    """

    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

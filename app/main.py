"""
app/main.py

FastAPI entry point for the reconciliation API.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Upserts target these constraints by name; a schema without them cannot
# reconcile idempotently.
REQUIRED_CONSTRAINTS: dict[str, str] = {
    "inventory_items": "uq_inventory_items_tenant_source",
    "sales_transactions": "uq_sales_transactions_provider_line_item",
}


def _validate_env() -> None:
    """
    Collect every missing or invalid startup variable and fail once.
    """

    from db.config import load_env_files

    load_env_files()
    problems: list[str] = []

    database_url = next(
        (
            value.strip()
            for value in (
                os.getenv("DATABASE_URL", ""),
                os.getenv("CLOUD_DATABASE_URL", ""),
                os.getenv("LOCAL_DATABASE_URL", ""),
            )
            if value.strip()
        ),
        "",
    )
    if not database_url:
        problems.append("DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL must be set.")
    elif database_url.startswith("sqlite"):
        problems.append("SQLite is not supported; canonical upserts need PostgreSQL.")

    for name in ("TRANSFORM_ERROR_THRESHOLD_PCT", "TRANSFORM_HIGH_VALUE_BOUNDARY"):
        raw = os.getenv(name, "").strip()
        if not raw:
            continue
        try:
            float(raw)
        except ValueError:
            problems.append(f"{name}={raw!r} is not a number.")

    if problems:
        raise RuntimeError(
            "Startup validation failed:\n" + "\n".join(f"  - {problem}" for problem in problems)
        )


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    from sqlalchemy import text

    from db.session import session_scope

    try:
        with session_scope() as db:
            db.execute(text("SELECT 1"))
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every ORM table and every idempotency constraint must exist.

    Does not migrate; run ``alembic upgrade head`` first.
    """

    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    missing_tables = sorted(set(Base.metadata.tables) - set(inspector.get_table_names()))
    if missing_tables:
        logger.critical("Missing tables: %s. Run 'alembic upgrade head'.", ", ".join(missing_tables))
        raise RuntimeError(f"Schema mismatch, missing tables: {', '.join(missing_tables)}")

    missing_constraints = [
        f"{table}.{constraint}"
        for table, constraint in REQUIRED_CONSTRAINTS.items()
        if constraint not in {uc["name"] for uc in inspector.get_unique_constraints(table)}
    ]
    if missing_constraints:
        logger.critical("Missing idempotency constraints: %s", ", ".join(missing_constraints))
        raise RuntimeError(
            f"Schema mismatch, missing constraints: {', '.join(missing_constraints)}"
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    _check_db()
    _check_schema()
    logger.info("Database reachable and schema validated")
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Inventory Reconciliation API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import transforms_router, uploads_router

    application.include_router(uploads_router)
    application.include_router(transforms_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()

"""
alembic/env.py

Migration environment for the reconciliation store (PostgreSQL only).

URL priority: ``-x db_url=...``, then ``ALEMBIC_DATABASE_URL``, then
``sqlalchemy.url`` from the ini file, then the application's own
DATABASE_URL / CLOUD_DATABASE_URL / LOCAL_DATABASE_URL resolution.
"""

from __future__ import annotations

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import engine_from_config, pool

from db.base import Base
from db.config import load_env_files, normalize_postgres_url, resolve_database_url
from db.models import (  # noqa: F401  imports trigger Base.metadata registration
    InventoryItem,
    PosCatalogItem,
    PosOrder,
    PosOrderItem,
    SalesTransaction,
    TransformRun,
    Upload,
    UploadBatch,
)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _migration_url() -> str:
    load_env_files()

    override = context.get_x_argument(as_dictionary=True).get("db_url")
    candidates = (
        override,
        os.getenv("ALEMBIC_DATABASE_URL"),
        config.get_main_option("sqlalchemy.url"),
    )
    for candidate in candidates:
        if candidate and candidate.strip():
            url = normalize_postgres_url(candidate.strip())
            break
    else:
        url = resolve_database_url()

    if not url.startswith("postgresql"):
        raise RuntimeError("Reconciliation migrations require a PostgreSQL URL.")
    return url


def _configure(**kwargs: Any) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(
        url=_migration_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _migration_url()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

"""
Environment-driven database configuration for the reconciliation store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_CLOUD_LIKE_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})


def load_env_files() -> None:
    """
    Load KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Variables already set in the process environment win.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite postgres URLs to the psycopg (v3) SQLAlchemy driver form.
    """

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def resolve_database_url() -> str:
    """
    Resolve the database URL.

    Priority:
    1) DATABASE_URL
    2) CLOUD_DATABASE_URL when ENVIRONMENT is cloud-like
    3) LOCAL_DATABASE_URL
    """

    load_env_files()

    direct_url = os.getenv("DATABASE_URL")
    if direct_url:
        return normalize_postgres_url(direct_url)

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    cloud_url = os.getenv("CLOUD_DATABASE_URL")
    if environment in _CLOUD_LIKE_ENVIRONMENTS and cloud_url:
        return normalize_postgres_url(cloud_url)

    local_url = os.getenv("LOCAL_DATABASE_URL")
    if local_url:
        return normalize_postgres_url(local_url)

    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL, or configure "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )


# ----------------------------------------------------------------------
# Environment readers shared with app/config.py
# ----------------------------------------------------------------------


@lru_cache(maxsize=1)
def ensure_env_loaded() -> None:
    """
    Load project `.env` files once per process.
    """

    load_env_files()


def get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    ensure_env_loaded()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def get_int_env(name: str, default: int) -> int:
    """
    Read an integer; unparseable values fall back to ``default``.
    """

    ensure_env_loaded()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value.strip())
    except ValueError:
        return default


def get_float_env(name: str, default: float) -> float:
    ensure_env_loaded()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value.strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class DatabaseSettings:
    """
    Engine and pool settings.
    """

    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle_seconds: int = 1800
    statement_timeout_ms: int = 30_000


def get_database_settings() -> DatabaseSettings:
    """
    Build database settings from the environment. Raises if no URL is set.
    """

    url = resolve_database_url()
    return DatabaseSettings(
        url=url,
        echo=get_bool_env("SQL_ECHO", False),
        pool_size=max(1, get_int_env("DB_POOL_SIZE", 5)),
        max_overflow=max(0, get_int_env("DB_MAX_OVERFLOW", 10)),
        pool_recycle_seconds=max(1, get_int_env("DB_POOL_RECYCLE", 1800)),
        statement_timeout_ms=get_int_env("DB_STATEMENT_TIMEOUT_MS", 30_000),
    )

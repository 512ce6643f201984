"""
Structured logging helpers for ingestion and transform runs.
"""

from __future__ import annotations

import json
import logging
from typing import Any


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one run-level event as a single compact JSON line.

    Non-JSON values (UUIDs, Decimals, datetimes) are rendered with ``str``.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))

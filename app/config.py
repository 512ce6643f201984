"""
app/config.py

Application-level configuration helpers.

Pipeline policies (error threshold, default stocking level, high-value
boundary, ...) are read here once and passed into services through their
constructors; nothing below the service layer reads the environment.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from db.config import get_bool_env, get_float_env, get_int_env


@dataclass(frozen=True)
class CSVIngestionSettings:
    """
    Runtime settings for the CSV stream parser and batcher.
    """

    batch_size: int = 1000
    max_error_samples: int = 50
    max_sample_rows: int = 25
    log_validation_errors: bool = True


@dataclass(frozen=True)
class ClassifierSettings:
    """
    Fuzzy category matching bounds.
    """

    max_distance: int = 3
    min_confidence: float = 0.7


@dataclass(frozen=True)
class TransformSettings:
    """
    Policies applied by the tier 1 -> tier 2 transform orchestrators.
    """

    error_threshold_pct: float = 5.0
    default_stocking_level: float = 10.0
    high_value_boundary: float = 50.0
    max_error_details: int = 50
    flagged_review_limit: int = 25
    # Fuzzy matches accepted by the classifier but below this are flagged.
    review_min_confidence: float = 0.8
    skip_unmapped_sales: bool = True
    atomic_runs: bool = False
    pos_batch_size: int = 1000


@lru_cache(maxsize=1)
def get_csv_ingestion_settings() -> CSVIngestionSettings:
    """
    Return cached CSV ingestion settings from environment variables.
    """

    return CSVIngestionSettings(
        batch_size=max(1, get_int_env("CSV_INGEST_BATCH_SIZE", 1000)),
        max_error_samples=max(1, get_int_env("CSV_INGEST_MAX_ERROR_SAMPLES", 50)),
        max_sample_rows=max(0, get_int_env("CSV_INGEST_MAX_SAMPLE_ROWS", 25)),
        log_validation_errors=get_bool_env("CSV_INGEST_LOG_VALIDATION_ERRORS", True),
    )


@lru_cache(maxsize=1)
def get_classifier_settings() -> ClassifierSettings:
    """
    Return cached category classifier settings.
    """

    return ClassifierSettings(
        max_distance=max(0, get_int_env("CATEGORY_MAX_DISTANCE", 3)),
        min_confidence=min(1.0, max(0.0, get_float_env("CATEGORY_MIN_CONFIDENCE", 0.7))),
    )


@lru_cache(maxsize=1)
def get_transform_settings() -> TransformSettings:
    """
    Return cached transform policy settings from environment variables.
    """

    return TransformSettings(
        error_threshold_pct=max(0.0, get_float_env("TRANSFORM_ERROR_THRESHOLD_PCT", 5.0)),
        default_stocking_level=max(
            0.0001, get_float_env("TRANSFORM_DEFAULT_STOCKING_LEVEL", 10.0)
        ),
        high_value_boundary=max(0.01, get_float_env("TRANSFORM_HIGH_VALUE_BOUNDARY", 50.0)),
        max_error_details=max(1, get_int_env("TRANSFORM_MAX_ERROR_DETAILS", 50)),
        flagged_review_limit=max(0, get_int_env("TRANSFORM_FLAGGED_REVIEW_LIMIT", 25)),
        review_min_confidence=min(
            1.0, max(0.0, get_float_env("TRANSFORM_REVIEW_MIN_CONFIDENCE", 0.8))
        ),
        skip_unmapped_sales=get_bool_env("TRANSFORM_SKIP_UNMAPPED_SALES", True),
        atomic_runs=get_bool_env("TRANSFORM_ATOMIC_RUNS", False),
        pos_batch_size=max(1, get_int_env("TRANSFORM_POS_BATCH_SIZE", 1000)),
    )

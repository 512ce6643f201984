"""
app/mappers package marker.
"""

from app.mappers.schema_registry import (
    HEADER_ALIASES,
    RecordSchema,
    UnsupportedRecordTypeError,
    get_record_schema,
    normalize_header,
)

__all__ = [
    "HEADER_ALIASES",
    "RecordSchema",
    "UnsupportedRecordTypeError",
    "get_record_schema",
    "normalize_header",
]

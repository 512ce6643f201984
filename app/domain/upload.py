"""
app/domain/upload.py

Domain models produced by the CSV stream parser.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FieldError:
    """
    One failing field of one data row.
    """

    row: int
    field: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidRow:
    """
    Sanitized field map of one data row that passed validation.
    """

    row: int
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "data": dict(self.data)}


@dataclass(frozen=True)
class InvalidRow:
    row: int
    errors: tuple[FieldError, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "errors": [{"field": e.field, "message": e.message} for e in self.errors],
        }


@dataclass(frozen=True)
class UploadBatchPayload:
    """
    One flushed batch, in the shape persisted to ``csv_upload_batches``.
    """

    batch_index: int
    rows: tuple[ValidRow, ...]
    errors: tuple[InvalidRow, ...]

    @property
    def rows_valid(self) -> int:
        return len(self.rows)

    @property
    def rows_invalid(self) -> int:
        return len(self.errors)

    @property
    def rows_total(self) -> int:
        return self.rows_valid + self.rows_invalid

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchIndex": self.batch_index,
            "rowsTotal": self.rows_total,
            "rowsValid": self.rows_valid,
            "rowsInvalid": self.rows_invalid,
            "rows": [row.to_dict() for row in self.rows],
            "errors": [row.to_dict() for row in self.errors],
        }


@dataclass
class ParseSummary:
    """
    End-of-stream parse summary.
    """

    record_type: str
    rows_total: int = 0
    rows_valid: int = 0
    rows_invalid: int = 0
    batches_persisted: int = 0
    raw_headers: list[str] = field(default_factory=list)
    normalized_headers: list[str] = field(default_factory=list)
    missing_headers: list[str] = field(default_factory=list)
    unknown_headers: list[str] = field(default_factory=list)
    row_error_samples: list[FieldError] = field(default_factory=list)
    row_error_count: int = 0
    sample_rows: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ready_for_transform(self) -> bool:
        return self.rows_valid > 0

    def validation_errors_payload(self) -> dict[str, Any]:
        return {
            "missingHeaders": list(self.missing_headers),
            "unknownHeaders": list(self.unknown_headers),
            "rowErrorsSample": [error.to_dict() for error in self.row_error_samples],
            "rowErrorsCount": self.row_error_count,
        }

    def metadata_payload(self) -> dict[str, Any]:
        return {
            "rawHeaders": list(self.raw_headers),
            "normalizedHeaders": list(self.normalized_headers),
            "unknownHeaders": list(self.unknown_headers),
            "sampleRows": [dict(row) for row in self.sample_rows],
        }

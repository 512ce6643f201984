"""
app/services/csv_stream_parser.py

Streaming CSV parser for inventory and sales uploads.

Rows are read one at a time, validated, and flushed to a batch sink every
``batch_size`` rows so memory stays bounded by one batch. Header problems
are detected before any batch is flushed.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Any, BinaryIO, Protocol

from app.domain.upload import FieldError, InvalidRow, ParseSummary, UploadBatchPayload, ValidRow
from app.mappers.schema_registry import RecordSchema, get_record_schema, normalize_header
from app.validators.row_validator import CSVRowValidator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class CSVFormatError(ValueError):
    """
    Raised when the stream cannot be read as UTF-8 CSV.
    """

    code = "CSV_FORMAT_INVALID"

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": str(self)}


class CSVHeaderMissingError(CSVFormatError):
    """
    Raised when required headers are absent after normalization.
    """

    code = "CSV_HEADER_MISSING"

    def __init__(
        self,
        *,
        record_type: str,
        missing: list[str],
        normalized_headers: list[str],
    ) -> None:
        super().__init__(
            f"Missing required {record_type} headers: {', '.join(missing)}"
        )
        self.record_type = record_type
        self.missing = tuple(missing)
        self.normalized_headers = tuple(normalized_headers)

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "message": str(self),
            "record_type": self.record_type,
            "missing": list(self.missing),
            "normalized_headers": list(self.normalized_headers),
        }


class BatchSink(Protocol):
    def persist_batch(self, batch: UploadBatchPayload) -> None:
        ...


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class CSVStreamParser:
    """
    Parses one CSV stream into validated batches.
    """

    def __init__(
        self,
        *,
        batch_size: int = 1000,
        max_error_samples: int = 50,
        max_sample_rows: int = 25,
        log_validation_errors: bool = True,
        validator: CSVRowValidator | None = None,
    ) -> None:
        self._batch_size = max(1, batch_size)
        self._max_error_samples = max(0, max_error_samples)
        self._max_sample_rows = max(0, max_sample_rows)
        self._log_validation_errors = log_validation_errors
        self._validator = validator or CSVRowValidator()

    def parse(
        self,
        *,
        stream: BinaryIO | bytes,
        record_type: str,
        sink: BatchSink,
    ) -> ParseSummary:
        """
        Stream, validate and flush batches; returns the end-of-stream summary.

        Raises:
            UnsupportedRecordTypeError: unknown record type.
            CSVHeaderMissingError: required headers absent (nothing flushed).
            CSVFormatError: undecodable or malformed CSV.
        """

        schema = get_record_schema(record_type)
        summary = ParseSummary(record_type=schema.record_type)
        raw_file = io.BytesIO(stream) if isinstance(stream, (bytes, bytearray)) else stream
        text_stream: io.TextIOWrapper | None = None

        try:
            text_stream = io.TextIOWrapper(raw_file, encoding="utf-8-sig", newline="")
            reader = csv.reader(text_stream)
            header_row = next(reader, None)
            if header_row is None or not any(cell.strip() for cell in header_row):
                raise CSVFormatError("CSV header row is missing.")

            normalized = self._check_headers(schema, header_row, summary)

            batch_index = 0
            valid_rows: list[ValidRow] = []
            invalid_rows: list[InvalidRow] = []
            row_number = 0

            for cells in reader:
                if not any(cell.strip() for cell in cells):
                    continue
                row_number += 1
                raw_row = _zip_row(normalized, cells)
                data, errors = self._validator.validate(
                    record_type=schema.record_type,
                    raw_row=raw_row,
                    row_number=row_number,
                )
                summary.rows_total += 1

                if errors:
                    summary.rows_invalid += 1
                    invalid_rows.append(InvalidRow(row=row_number, errors=tuple(errors)))
                    self._record_errors(summary, errors)
                else:
                    summary.rows_valid += 1
                    valid_rows.append(ValidRow(row=row_number, data=data))
                    if len(summary.sample_rows) < self._max_sample_rows:
                        summary.sample_rows.append(data)

                if len(valid_rows) + len(invalid_rows) >= self._batch_size:
                    self._flush(sink, summary, batch_index, valid_rows, invalid_rows)
                    batch_index += 1
                    valid_rows = []
                    invalid_rows = []

            if valid_rows or invalid_rows:
                self._flush(sink, summary, batch_index, valid_rows, invalid_rows)

        except UnicodeDecodeError as exc:
            raise CSVFormatError("CSV must be UTF-8 encoded.") from exc
        except csv.Error as exc:
            raise CSVFormatError(f"Invalid CSV format: {exc}") from exc
        finally:
            if text_stream is not None:
                try:
                    text_stream.detach()
                except ValueError:
                    pass

        logger.info(
            "CSV parsed record_type=%s rows_total=%s rows_valid=%s rows_invalid=%s batches=%s",
            summary.record_type,
            summary.rows_total,
            summary.rows_valid,
            summary.rows_invalid,
            summary.batches_persisted,
        )
        return summary

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_headers(
        self,
        schema: RecordSchema,
        header_row: list[str],
        summary: ParseSummary,
    ) -> list[str]:
        normalized = [normalize_header(header) for header in header_row]
        summary.raw_headers = list(header_row)
        summary.normalized_headers = normalized
        summary.missing_headers = schema.missing_fields(normalized)
        summary.unknown_headers = [h for h in schema.unknown_fields(normalized) if h]

        if summary.missing_headers:
            raise CSVHeaderMissingError(
                record_type=schema.record_type,
                missing=summary.missing_headers,
                normalized_headers=normalized,
            )
        if summary.unknown_headers:
            logger.info(
                "CSV has unknown headers record_type=%s headers=%s",
                schema.record_type,
                summary.unknown_headers,
            )
        return normalized

    def _flush(
        self,
        sink: BatchSink,
        summary: ParseSummary,
        batch_index: int,
        valid_rows: list[ValidRow],
        invalid_rows: list[InvalidRow],
    ) -> None:
        sink.persist_batch(
            UploadBatchPayload(
                batch_index=batch_index,
                rows=tuple(valid_rows),
                errors=tuple(invalid_rows),
            )
        )
        summary.batches_persisted += 1

    def _record_errors(self, summary: ParseSummary, errors: list[FieldError]) -> None:
        for error in errors:
            summary.row_error_count += 1
            if self._log_validation_errors:
                logger.warning(
                    "CSV validation error row=%s field=%s message=%s",
                    error.row,
                    error.field,
                    error.message,
                )
            if len(summary.row_error_samples) < self._max_error_samples:
                summary.row_error_samples.append(error)


def _zip_row(normalized_headers: list[str], cells: list[str]) -> dict[str, Any]:
    """
    Pair cells with normalized headers; the first column wins on duplicates.
    """

    row: dict[str, Any] = {}
    for index, name in enumerate(normalized_headers):
        if not name or name in row:
            continue
        row[name] = cells[index] if index < len(cells) else None
    return row

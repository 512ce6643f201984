"""
app/services/csv_upload_service.py

Upload lifecycle around the CSV stream parser.

    uploaded -> validated   parse finished (even with invalid rows)
    uploaded -> failed      header / format error, or batches could not be stored

The upload row is committed before parsing so a failed parse still leaves a
record with its validation errors. Batches are flushed as the parser emits
them and committed together with the final status.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import BinaryIO, Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_csv_ingestion_settings
from app.domain.upload import ParseSummary, UploadBatchPayload
from app.logging_utils import log_event
from app.mappers.schema_registry import get_record_schema
from app.services.csv_stream_parser import CSVFormatError, CSVHeaderMissingError, CSVStreamParser
from db.models.upload import Upload, UploadStatus
from db.repositories.errors import UploadPersistenceError
from db.repositories.upload_repository import UploadRepository

logger = logging.getLogger(__name__)


class UploadStore(Protocol):
    def create_upload(
        self,
        *,
        tenant_id: str,
        record_type: str,
        filename: str | None = None,
        file_size_bytes: int | None = None,
    ) -> Upload:
        ...

    def add_batch(self, *, upload_id: uuid.UUID, batch: UploadBatchPayload) -> object:
        ...

    def mark_validated(self, *, upload_id: uuid.UUID, summary: ParseSummary) -> object:
        ...

    def mark_failed(self, *, upload_id: uuid.UUID, validation_errors: dict) -> object:
        ...

    def get_upload(self, upload_id: uuid.UUID) -> Upload | None:
        ...


@dataclass(frozen=True)
class UploadResult:
    upload_id: uuid.UUID
    status: str
    summary: ParseSummary


class _UploadBatchSink:
    def __init__(self, store: UploadStore, upload_id: uuid.UUID) -> None:
        self._store = store
        self._upload_id = upload_id

    def persist_batch(self, batch: UploadBatchPayload) -> None:
        self._store.add_batch(upload_id=self._upload_id, batch=batch)


class CSVUploadService:
    """
    Creates the upload record, streams the file and records the outcome.
    """

    def __init__(
        self,
        *,
        parser: CSVStreamParser,
        repository_factory: Callable[[Session], UploadStore] = UploadRepository,
    ) -> None:
        self._parser = parser
        self._repository_factory = repository_factory

    def ingest(
        self,
        *,
        db: Session,
        stream: BinaryIO,
        tenant_id: str,
        record_type: str,
        filename: str | None = None,
        file_size_bytes: int | None = None,
    ) -> UploadResult:
        """
        Raises:
            UnsupportedRecordTypeError: before any record is created.
            CSVFormatError / CSVHeaderMissingError: upload is left ``failed``.
            UploadPersistenceError: batches could not be stored.
        """

        schema = get_record_schema(record_type)
        repository = self._repository_factory(db)

        try:
            upload = repository.create_upload(
                tenant_id=tenant_id,
                record_type=schema.record_type,
                filename=filename,
                file_size_bytes=file_size_bytes,
            )
            upload_id = upload.id
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise UploadPersistenceError("Failed to create upload record.") from exc

        try:
            summary = self._parser.parse(
                stream=stream,
                record_type=schema.record_type,
                sink=_UploadBatchSink(repository, upload_id),
            )
            repository.mark_validated(upload_id=upload_id, summary=summary)
            db.commit()
        except CSVFormatError as exc:
            db.rollback()
            self._mark_failed(db, repository, upload_id, self._format_error_payload(exc))
            log_event(
                logger,
                logging.WARNING,
                "csv_upload_rejected",
                upload_id=upload_id,
                tenant_id=tenant_id,
                record_type=schema.record_type,
                code=exc.code,
                message=str(exc),
            )
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            self._mark_failed(
                db,
                repository,
                upload_id,
                {"code": "UPLOAD_PERSISTENCE_FAILED", "message": "Failed to persist upload batches."},
            )
            raise UploadPersistenceError("Failed to persist upload batches.") from exc

        log_event(
            logger,
            logging.INFO,
            "csv_upload_validated",
            upload_id=upload_id,
            tenant_id=tenant_id,
            record_type=schema.record_type,
            rows_total=summary.rows_total,
            rows_valid=summary.rows_valid,
            rows_invalid=summary.rows_invalid,
            batches=summary.batches_persisted,
        )
        return UploadResult(upload_id=upload_id, status=UploadStatus.VALIDATED, summary=summary)

    def get_upload(self, *, db: Session, upload_id: uuid.UUID) -> Upload | None:
        return self._repository_factory(db).get_upload(upload_id)

    def _format_error_payload(self, exc: CSVFormatError) -> dict[str, object]:
        payload = exc.to_dict()
        if isinstance(exc, CSVHeaderMissingError):
            payload["missingHeaders"] = list(exc.missing)
        return payload

    def _mark_failed(
        self,
        db: Session,
        repository: UploadStore,
        upload_id: uuid.UUID,
        validation_errors: dict[str, object],
    ) -> None:
        try:
            repository.mark_failed(upload_id=upload_id, validation_errors=validation_errors)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to mark upload failed upload_id=%s", upload_id)


@lru_cache(maxsize=1)
def get_csv_upload_service() -> CSVUploadService:
    """
    Build and cache the upload service with env-driven settings.
    """
    settings = get_csv_ingestion_settings()
    return CSVUploadService(
        parser=CSVStreamParser(
            batch_size=settings.batch_size,
            max_error_samples=settings.max_error_samples,
            max_sample_rows=settings.max_sample_rows,
            log_validation_errors=settings.log_validation_errors,
        )
    )

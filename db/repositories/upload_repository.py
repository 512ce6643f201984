"""
Repository for CSV upload lifecycle and persisted upload batches.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from app.domain.upload import ParseSummary, UploadBatchPayload
from db.models.upload import Upload, UploadBatch, UploadStatus


class UploadRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_upload(
        self,
        *,
        tenant_id: str,
        record_type: str,
        filename: str | None = None,
        file_size_bytes: int | None = None,
    ) -> Upload:
        upload = Upload(
            tenant_id=tenant_id,
            record_type=record_type,
            status=UploadStatus.UPLOADED,
            filename=filename,
            file_size_bytes=file_size_bytes,
        )
        self._session.add(upload)
        self._session.flush()
        self._session.refresh(upload)
        return upload

    def get_upload(self, upload_id: uuid.UUID) -> Upload | None:
        return self._session.get(Upload, upload_id)

    def list_uploads(
        self,
        *,
        tenant_id: str,
        record_type: str | None = None,
        limit: int = 100,
    ) -> list[Upload]:
        stmt: Select[tuple[Upload]] = select(Upload).where(Upload.tenant_id == tenant_id)
        if record_type:
            stmt = stmt.where(Upload.record_type == record_type)
        stmt = stmt.order_by(Upload.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def add_batch(self, *, upload_id: uuid.UUID, batch: UploadBatchPayload) -> UploadBatch:
        row = UploadBatch(
            upload_id=upload_id,
            batch_index=batch.batch_index,
            rows_total=batch.rows_total,
            rows_valid=batch.rows_valid,
            rows_invalid=batch.rows_invalid,
            rows=[valid.to_dict() for valid in batch.rows],
            errors=[invalid.to_dict() for invalid in batch.errors],
        )
        self._session.add(row)
        self._session.flush()
        return row

    def list_batches(self, upload_id: uuid.UUID) -> list[UploadBatch]:
        stmt = (
            select(UploadBatch)
            .where(UploadBatch.upload_id == upload_id)
            .order_by(UploadBatch.batch_index.asc())
        )
        return list(self._session.scalars(stmt).all())

    def mark_validated(self, *, upload_id: uuid.UUID, summary: ParseSummary) -> Upload | None:
        upload = self.get_upload(upload_id)
        if upload is None:
            return None
        upload.status = UploadStatus.VALIDATED
        upload.rows_total = summary.rows_total
        upload.rows_valid = summary.rows_valid
        upload.rows_invalid = summary.rows_invalid
        upload.validation_errors = summary.validation_errors_payload()
        upload.upload_metadata = summary.metadata_payload()
        return upload

    def mark_failed(
        self,
        *,
        upload_id: uuid.UUID,
        validation_errors: dict[str, Any],
    ) -> Upload | None:
        upload = self.get_upload(upload_id)
        if upload is None:
            return None
        upload.status = UploadStatus.FAILED
        upload.validation_errors = validation_errors
        return upload

    def mark_transformed(
        self,
        *,
        upload_id: uuid.UUID,
        transform_summary: dict[str, Any],
    ) -> Upload | None:
        upload = self.get_upload(upload_id)
        if upload is None:
            return None
        upload.status = UploadStatus.TRANSFORMED
        upload.transform_summary = transform_summary
        upload.transformed_at = datetime.now(timezone.utc)
        return upload

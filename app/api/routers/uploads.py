"""
app/api/routers/uploads.py

CSV upload HTTP endpoints (ingestion tier).
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, UploadFile, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_csv_upload, get_tenant_id
from app.mappers.schema_registry import UnsupportedRecordTypeError
from app.schemas.uploads import FieldErrorResponse, UploadStatusResponse, UploadSummaryResponse
from app.services.csv_stream_parser import CSVFormatError
from app.services.csv_upload_service import CSVUploadService, get_csv_upload_service
from db.models.upload import Upload
from db.repositories.errors import UploadPersistenceError
from db.session import get_db

router = APIRouter(tags=["uploads"])


@router.post(
    "/uploads/{record_type}",
    status_code=status.HTTP_201_CREATED,
    response_model=UploadSummaryResponse,
)
def upload_csv(
    record_type: str = Path(..., description="inventory or sales"),
    file: UploadFile = Depends(get_csv_upload),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    upload_service: CSVUploadService = Depends(get_csv_upload_service),
) -> UploadSummaryResponse:
    """
    Stream one CSV file into persisted upload batches.
    """

    try:
        result = upload_service.ingest(
            db=db,
            stream=file.file,
            tenant_id=tenant_id,
            record_type=record_type,
            filename=file.filename,
            file_size_bytes=file.size,
        )
    except UnsupportedRecordTypeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except CSVFormatError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.to_dict(),
        ) from exc
    except UploadPersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to persist CSV upload.",
        ) from exc
    finally:
        file.file.close()

    summary = result.summary
    return UploadSummaryResponse(
        upload_id=result.upload_id,
        record_type=summary.record_type,
        status=result.status,
        rows_total=summary.rows_total,
        rows_valid=summary.rows_valid,
        rows_invalid=summary.rows_invalid,
        batches_persisted=summary.batches_persisted,
        ready_for_transform=summary.ready_for_transform,
        unknown_headers=list(summary.unknown_headers),
        row_errors_count=summary.row_error_count,
        row_errors_sample=[
            FieldErrorResponse(row=error.row, field=error.field, message=error.message)
            for error in summary.row_error_samples
        ],
        sample_rows=[dict(row) for row in summary.sample_rows],
    )


@router.get("/uploads/{upload_id}", response_model=UploadStatusResponse)
def get_upload_status(
    upload_id: UUID,
    db: Session = Depends(get_db),
    upload_service: CSVUploadService = Depends(get_csv_upload_service),
) -> UploadStatusResponse:
    upload = upload_service.get_upload(db=db, upload_id=upload_id)
    if upload is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Upload not found: {upload_id}",
        )
    return _to_status_response(upload)


def _to_status_response(upload: Upload) -> UploadStatusResponse:
    return UploadStatusResponse(
        upload_id=upload.id,
        tenant_id=upload.tenant_id,
        record_type=upload.record_type,
        status=upload.status,
        filename=upload.filename,
        file_size_bytes=upload.file_size_bytes,
        rows_total=upload.rows_total,
        rows_valid=upload.rows_valid,
        rows_invalid=upload.rows_invalid,
        validation_errors=upload.validation_errors,
        upload_metadata=upload.upload_metadata,
        transform_summary=upload.transform_summary,
        created_at=upload.created_at,
        updated_at=upload.updated_at,
        transformed_at=upload.transformed_at,
    )

"""
app/api/routers/transforms.py

Transform HTTP endpoints: upload -> canonical and POS raw -> canonical,
plus the transform run ledger.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_transform_settings
from app.domain.reconciliation import TransformResult
from app.schemas.transforms import (
    PosSalesTransformRequest,
    RowErrorResponse,
    TransformRequest,
    TransformResultResponse,
    TransformRunListResponse,
    TransformRunResponse,
    TransformSummaryResponse,
)
from app.services.transform_service import (
    TransformPreconditionError,
    TransformService,
    TransformThresholdExceededError,
    UploadNotFoundError,
    get_transform_service,
)
from db.models.transform_run import TransformRun
from db.repositories.errors import CanonicalPersistenceError
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transforms"])


@router.post("/uploads/{upload_id}/transform", response_model=TransformResultResponse)
def transform_upload(
    upload_id: UUID,
    payload: TransformRequest,
    record_type: str | None = Query(default=None, description="Optional expected record type"),
    db: Session = Depends(get_db),
    transform_service: TransformService = Depends(get_transform_service),
) -> TransformResultResponse:
    """
    Transform a validated upload into canonical inventory items or sales.
    """

    with _transform_errors():
        result = transform_service.transform_upload(
            db=db,
            upload_id=upload_id,
            tenant_id=payload.tenant_id,
            dry_run=payload.dry_run,
            expected_record_type=record_type,
        )
    return _to_result_response(result)


@router.post("/pos/{provider}/inventory/transform", response_model=TransformResultResponse)
def transform_pos_inventory(
    payload: TransformRequest,
    provider: str = Path(..., min_length=1, max_length=32),
    db: Session = Depends(get_db),
    transform_service: TransformService = Depends(get_transform_service),
) -> TransformResultResponse:
    with _transform_errors():
        result = transform_service.transform_pos_catalog(
            db=db,
            tenant_id=payload.tenant_id,
            provider=provider.strip().lower(),
            dry_run=payload.dry_run,
        )
    return _to_result_response(result)


@router.post("/pos/{provider}/sales/transform", response_model=TransformResultResponse)
def transform_pos_sales(
    payload: PosSalesTransformRequest,
    provider: str = Path(..., min_length=1, max_length=32),
    db: Session = Depends(get_db),
    transform_service: TransformService = Depends(get_transform_service),
) -> TransformResultResponse:
    with _transform_errors():
        result = transform_service.transform_pos_orders(
            db=db,
            tenant_id=payload.tenant_id,
            provider=provider.strip().lower(),
            dry_run=payload.dry_run,
            since=payload.since,
        )
    return _to_result_response(result)


@router.get("/transform-runs/{run_id}", response_model=TransformRunResponse)
def get_transform_run(
    run_id: UUID,
    db: Session = Depends(get_db),
    transform_service: TransformService = Depends(get_transform_service),
) -> TransformRunResponse:
    run = transform_service.get_run(db=db, run_id=run_id)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Transform run not found: {run_id}",
        )
    return _to_run_response(run)


@router.get("/transform-runs", response_model=TransformRunListResponse)
def list_transform_runs(
    tenant_id: str | None = Query(default=None, description="Filter by tenant"),
    upload_id: UUID | None = Query(default=None, description="Filter by upload"),
    record_type: str | None = Query(default=None, description="Filter by record type"),
    run_status: str | None = Query(default=None, alias="status", description="Filter by run status"),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    transform_service: TransformService = Depends(get_transform_service),
) -> TransformRunListResponse:
    runs = transform_service.list_runs(
        db=db,
        tenant_id=tenant_id,
        upload_id=upload_id,
        record_type=record_type,
        status=run_status,
        limit=limit,
    )
    return TransformRunListResponse(runs=[_to_run_response(run) for run in runs])


@contextmanager
def _transform_errors() -> Iterator[None]:
    try:
        yield
    except UploadNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_dict()) from exc
    except TransformPreconditionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_dict()) from exc
    except TransformThresholdExceededError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.to_dict(),
        ) from exc
    except (CanonicalPersistenceError, SQLAlchemyError) as exc:
        logger.error("Transform persistence failure: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to persist transform results.",
        ) from exc


def _to_result_response(result: TransformResult) -> TransformResultResponse:
    summary = result.summary_payload(flagged_limit=get_transform_settings().flagged_review_limit)
    return TransformResultResponse(
        run_id=result.run_id,
        upload_id=result.upload_id,
        tenant_id=result.tenant_id,
        record_type=result.record_type,
        source_provider=result.source_provider,
        status=result.status,
        dry_run=result.dry_run,
        error_rate=result.error_rate,
        threshold_pct=result.threshold_pct,
        exceeded_threshold=result.exceeded_threshold,
        summary=TransformSummaryResponse(**summary),
        errors=[RowErrorResponse(row=error.row, message=error.message) for error in result.errors],
    )


def _to_run_response(run: TransformRun) -> TransformRunResponse:
    return TransformRunResponse(
        run_id=run.id,
        tenant_id=run.tenant_id,
        upload_id=run.upload_id,
        record_type=run.record_type,
        source_provider=run.source_provider,
        dry_run=run.dry_run,
        status=run.status,
        processed_count=run.processed_count,
        created_count=run.created_count,
        updated_count=run.updated_count,
        skipped_count=run.skipped_count,
        error_count=run.error_count,
        error_rate=float(run.error_rate or 0),
        summary=run.summary,
        errors=run.errors,
        error_message=run.error_message,
        started_at=run.started_at,
        completed_at=run.completed_at,
        created_at=run.created_at,
    )

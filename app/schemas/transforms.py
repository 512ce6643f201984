"""
app/schemas/transforms.py

Request and response schemas for transform endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class TransformRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1, max_length=64)
    dry_run: bool = False


class PosSalesTransformRequest(TransformRequest):
    since: datetime | None = None


class RowErrorResponse(BaseModel):
    row: int
    message: str


class TransformSummaryResponse(BaseModel):
    processed: int = Field(..., ge=0)
    created: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)
    item_matching: dict[str, int] = Field(default_factory=dict)
    flagged_for_review: list[dict[str, Any]] = Field(default_factory=list)


class TransformResultResponse(BaseModel):
    """
    API response model for one finished transform run.
    """

    run_id: UUID | None = None
    upload_id: UUID | None = None
    tenant_id: str
    record_type: str
    source_provider: str
    status: str | None = None
    dry_run: bool
    error_rate: float
    threshold_pct: float
    exceeded_threshold: bool
    summary: TransformSummaryResponse
    errors: list[RowErrorResponse] = Field(default_factory=list)


class TransformRunResponse(BaseModel):
    run_id: UUID
    tenant_id: str
    upload_id: UUID | None = None
    record_type: str
    source_provider: str
    dry_run: bool
    status: str
    processed_count: int
    created_count: int
    updated_count: int
    skipped_count: int
    error_count: int
    error_rate: float
    summary: dict[str, Any] | None = None
    errors: list[dict[str, Any]] | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


class TransformRunListResponse(BaseModel):
    runs: list[TransformRunResponse] = Field(default_factory=list)

"""
app/schemas/uploads.py

Response schemas for CSV upload endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class FieldErrorResponse(BaseModel):
    """
    API response model for one field-level validation error.
    """

    row: int = Field(..., ge=1)
    field: str
    message: str


class UploadSummaryResponse(BaseModel):
    """
    API response model returned once a CSV has been streamed and validated.
    """

    upload_id: UUID
    record_type: str
    status: str
    rows_total: int = Field(..., ge=0)
    rows_valid: int = Field(..., ge=0)
    rows_invalid: int = Field(..., ge=0)
    batches_persisted: int = Field(..., ge=0)
    ready_for_transform: bool
    unknown_headers: list[str] = Field(default_factory=list)
    row_errors_count: int = Field(0, ge=0)
    row_errors_sample: list[FieldErrorResponse] = Field(default_factory=list)
    sample_rows: list[dict[str, Any]] = Field(default_factory=list)


class UploadStatusResponse(BaseModel):
    upload_id: UUID
    tenant_id: str
    record_type: str
    status: str
    filename: str | None = None
    file_size_bytes: int | None = None
    rows_total: int
    rows_valid: int
    rows_invalid: int
    validation_errors: dict[str, Any] | None = None
    upload_metadata: dict[str, Any] | None = None
    transform_summary: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime
    transformed_at: datetime | None = None

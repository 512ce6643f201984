"""
db/models/transform_run.py

Transform run ledger: one row per orchestrator invocation.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class TransformRunStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TransformRun(Base, TimestampMixin):
    __tablename__ = "transform_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    upload_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("csv_uploads.id", ondelete="SET NULL"),
        nullable=True,
        comment="Null for POS raw-tier runs",
    )
    record_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="inventory, sales",
    )
    source_provider: Mapped[str] = mapped_column(String(32), nullable=False)
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=TransformRunStatus.PROCESSING,
    )
    processed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_rate: Mapped[Decimal] = mapped_column(
        Numeric(6, 3),
        nullable=False,
        default=0,
        comment="Percentage of processed rows that errored",
    )
    summary: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    errors: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_transform_runs_tenant_id", "tenant_id"),
        Index("ix_transform_runs_upload_id", "upload_id"),
        Index("ix_transform_runs_status", "status"),
        Index("ix_transform_runs_record_type_status", "record_type", "status"),
        Index("ix_transform_runs_created_at", "created_at"),
    )

"""
db/models/upload.py

CSV upload and persisted upload batch models (ingestion tier).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, CreatedAtMixin, TimestampMixin


class RecordType:
    INVENTORY = "inventory"
    SALES = "sales"


class UploadStatus:
    UPLOADED = "uploaded"
    VALIDATED = "validated"
    FAILED = "failed"
    TRANSFORMED = "transformed"


class Upload(Base, TimestampMixin):
    __tablename__ = "csv_uploads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    record_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="inventory, sales",
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=UploadStatus.UPLOADED,
    )
    filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rows_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rows_valid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rows_invalid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    validation_errors: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="Missing/unknown headers and sampled row errors",
    )
    upload_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="Raw/normalized headers and sample rows",
    )
    transform_summary: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
    )
    transformed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    batches: Mapped[list["UploadBatch"]] = relationship(
        back_populates="upload",
        order_by="UploadBatch.batch_index",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_csv_uploads_tenant_id", "tenant_id"),
        Index("ix_csv_uploads_status", "status"),
        Index("ix_csv_uploads_tenant_record_type", "tenant_id", "record_type"),
    )


class UploadBatch(Base, CreatedAtMixin):
    __tablename__ = "csv_upload_batches"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    upload_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("csv_uploads.id", ondelete="CASCADE"),
        nullable=False,
    )
    batch_index: Mapped[int] = mapped_column(Integer, nullable=False)
    rows_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rows_valid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rows_invalid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rows: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        comment="[{row, data}] sanitized valid rows",
    )
    errors: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        comment="[{row, errors: [{field, message}]}]",
    )

    upload: Mapped[Upload] = relationship(back_populates="batches")

    __table_args__ = (
        UniqueConstraint(
            "upload_id",
            "batch_index",
            name="uq_csv_upload_batches_upload_batch_index",
        ),
        Index("ix_csv_upload_batches_upload_id", "upload_id"),
    )

"""
db/models/inventory_item.py

Canonical (tier 2) inventory item reconciled from CSV uploads and POS catalogs.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class InventoryItem(Base, TimestampMixin):
    __tablename__ = "inventory_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="produce, proteins, dairy, dry_goods, beverages, frozen, paper_disposables, cleaning_chemicals",
    )
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    current_stock: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=0)
    minimum_stock: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=0)
    maximum_stock: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=0)
    storage_location: Mapped[str | None] = mapped_column(String(120), nullable=True)
    variance_threshold_quantity: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=0,
    )
    variance_threshold_dollar: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=0,
    )
    high_value_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source_provider: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="csv, square, or another POS provider",
    )
    source_item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="Tagged provider payload plus classification provenance",
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "source_provider",
            "source_item_id",
            name="uq_inventory_items_tenant_source",
        ),
        Index("ix_inventory_items_tenant_id", "tenant_id"),
        Index("ix_inventory_items_tenant_name", "tenant_id", "name"),
        Index("ix_inventory_items_category", "category"),
    )

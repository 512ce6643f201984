"""
db/models/sales_transaction.py

Canonical (tier 2) sales transaction. Rows are append-only: there is no
updated_at column and existing rows are never rewritten.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, CreatedAtMixin


class SalesTransaction(Base, CreatedAtMixin):
    __tablename__ = "sales_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    inventory_item_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("inventory_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    source_provider: Mapped[str] = mapped_column(String(32), nullable=False)
    source_order_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_line_item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_payload: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "source_provider",
            "source_line_item_id",
            name="uq_sales_transactions_provider_line_item",
        ),
        Index("ix_sales_transactions_tenant_date", "tenant_id", "transaction_date"),
        Index("ix_sales_transactions_inventory_item_id", "inventory_item_id"),
    )

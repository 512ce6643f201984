"""
db/models/pos_raw.py

Raw (tier 1) POS records as persisted by the provider adapter.

The adapter owns fetching, rate limiting and retries; the reconciliation core
only reads these tables.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin


class PosCatalogItem(Base, TimestampMixin):
    __tablename__ = "pos_catalog_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    catalog_object_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    variations: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        comment="[{id, name, ordinal, price_money: {amount, currency}}]",
    )
    raw_payload: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "provider",
            "catalog_object_id",
            name="uq_pos_catalog_items_tenant_provider_object",
        ),
        Index("ix_pos_catalog_items_tenant_provider", "tenant_id", "provider"),
    )


class PosOrder(Base, TimestampMixin):
    __tablename__ = "pos_orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    external_order_id: Mapped[str] = mapped_column(String(255), nullable=False)
    state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["PosOrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint(
            "provider",
            "external_order_id",
            name="uq_pos_orders_provider_order",
        ),
        Index("ix_pos_orders_tenant_opened_at", "tenant_id", "opened_at"),
    )


class PosOrderItem(Base, TimestampMixin):
    __tablename__ = "pos_order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("pos_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_item_uid: Mapped[str] = mapped_column(String(255), nullable=False)
    catalog_object_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Null for modifiers and ad-hoc charges",
    )
    variation_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    variation_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    base_price_money_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    gross_sales_money_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_tax_money_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_discount_money_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_money_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    order: Mapped[PosOrder] = relationship(back_populates="items")

    __table_args__ = (
        UniqueConstraint(
            "order_id",
            "line_item_uid",
            name="uq_pos_order_items_order_line_item",
        ),
        Index("ix_pos_order_items_catalog_object_id", "catalog_object_id"),
    )

"""
app/repositories/inventory_item_repository.py

Persistence layer for canonical inventory items.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import func, literal_column, select
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.reconciliation import CanonicalInventoryItem, UpsertOutcome
from db.models.inventory_item import InventoryItem
from db.repositories.errors import wrap_persistence_error

_IDEMPOTENCY_CONSTRAINT = "uq_inventory_items_tenant_source"

# Columns rewritten when an existing item is reconciled again.
_UPDATABLE_COLUMNS: tuple[str, ...] = (
    "name",
    "description",
    "category",
    "unit",
    "unit_cost",
    "current_stock",
    "minimum_stock",
    "maximum_stock",
    "storage_location",
    "variance_threshold_quantity",
    "variance_threshold_dollar",
    "high_value_flag",
    "needs_review",
    "provider_payload",
)


def inventory_item_values(item: CanonicalInventoryItem) -> dict[str, Any]:
    return {
        "tenant_id": item.tenant_id,
        "name": item.name,
        "description": item.description,
        "category": item.category,
        "unit": item.unit,
        "unit_cost": item.unit_cost,
        "current_stock": item.current_stock,
        "minimum_stock": item.minimum_stock,
        "maximum_stock": item.maximum_stock,
        "storage_location": item.storage_location,
        "variance_threshold_quantity": item.variance_threshold_quantity,
        "variance_threshold_dollar": item.variance_threshold_dollar,
        "high_value_flag": item.high_value_flag,
        "needs_review": item.needs_review,
        "source_provider": item.source_provider,
        "source_item_id": item.source_item_id,
        "provider_payload": item.provider_payload,
    }


def build_inventory_upsert(item: CanonicalInventoryItem) -> Insert:
    """
    INSERT .. ON CONFLICT (tenant, provider, source id) DO UPDATE.

    ``inserted`` is true only for freshly inserted rows (``xmax = 0``).
    """

    stmt = insert(InventoryItem).values(id=uuid.uuid4(), **inventory_item_values(item))
    return stmt.on_conflict_do_update(
        constraint=_IDEMPOTENCY_CONSTRAINT,
        set_={name: stmt.excluded[name] for name in _UPDATABLE_COLUMNS}
        | {"updated_at": func.now()},
    ).returning(InventoryItem.id, literal_column("(xmax = 0)").label("inserted"))


class InventoryItemRepository:
    """
    Repository for idempotent upserts and lookups of inventory items.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def find_inventory_item_id(
        self,
        *,
        tenant_id: str,
        source_provider: str,
        source_item_id: str,
    ) -> uuid.UUID | None:
        stmt = select(InventoryItem.id).where(
            InventoryItem.tenant_id == tenant_id,
            InventoryItem.source_provider == source_provider,
            InventoryItem.source_item_id == source_item_id,
        )
        try:
            with self._session.begin_nested():
                return self._session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            raise wrap_persistence_error(exc, "Inventory item lookup failed") from exc

    def find_inventory_item_id_by_name(self, *, tenant_id: str, name: str) -> uuid.UUID | None:
        stmt = (
            select(InventoryItem.id)
            .where(InventoryItem.tenant_id == tenant_id, InventoryItem.name == name)
            .order_by(InventoryItem.created_at.asc())
            .limit(1)
        )
        try:
            with self._session.begin_nested():
                return self._session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            raise wrap_persistence_error(exc, "Inventory item lookup failed") from exc

    def upsert_inventory_item(self, item: CanonicalInventoryItem) -> UpsertOutcome:
        """
        Upsert inside a savepoint so one failed row leaves the run usable.
        """

        try:
            with self._session.begin_nested():
                row = self._session.execute(build_inventory_upsert(item)).one()
        except SQLAlchemyError as exc:
            raise wrap_persistence_error(
                exc,
                f"Failed to upsert inventory item {item.source_provider}:{item.source_item_id}",
            ) from exc
        return UpsertOutcome(entity_id=row.id, created=bool(row.inserted))

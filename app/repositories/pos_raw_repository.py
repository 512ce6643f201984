"""
app/repositories/pos_raw_repository.py

Read access to raw (tier 1) POS catalog and order records.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from db.models.pos_raw import PosCatalogItem, PosOrder


class PosRawRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_catalog_items(self, *, tenant_id: str, provider: str) -> list[PosCatalogItem]:
        stmt = (
            select(PosCatalogItem)
            .where(PosCatalogItem.tenant_id == tenant_id, PosCatalogItem.provider == provider)
            .order_by(PosCatalogItem.created_at.asc(), PosCatalogItem.catalog_object_id.asc())
        )
        return list(self._session.scalars(stmt).all())

    def list_orders(
        self,
        *,
        tenant_id: str,
        provider: str,
        since: datetime | None = None,
    ) -> list[PosOrder]:
        stmt = (
            select(PosOrder)
            .options(selectinload(PosOrder.items))
            .where(PosOrder.tenant_id == tenant_id, PosOrder.provider == provider)
        )
        if since is not None:
            stmt = stmt.where(PosOrder.opened_at >= since)
        stmt = stmt.order_by(PosOrder.opened_at.asc())
        return list(self._session.scalars(stmt).all())

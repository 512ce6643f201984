"""
app/repositories/sales_transaction_repository.py

Persistence layer for canonical sales transactions (append-only).
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.reconciliation import CanonicalSalesTransaction, UpsertOutcome
from db.models.sales_transaction import SalesTransaction
from db.repositories.errors import wrap_persistence_error

_IDEMPOTENCY_CONSTRAINT = "uq_sales_transactions_provider_line_item"


def build_sales_insert(txn: CanonicalSalesTransaction) -> Insert:
    """
    INSERT .. ON CONFLICT DO NOTHING; an empty RETURNING means already applied.
    """

    return (
        insert(SalesTransaction)
        .values(
            id=uuid.uuid4(),
            tenant_id=txn.tenant_id,
            inventory_item_id=txn.inventory_item_id,
            transaction_date=txn.transaction_date,
            quantity=Decimal(txn.quantity),
            unit_price=txn.unit_price,
            total_amount=txn.total_amount,
            source_provider=txn.source_provider,
            source_order_id=txn.source_order_id,
            source_line_item_id=txn.source_line_item_id,
            provider_payload=txn.provider_payload,
        )
        .on_conflict_do_nothing(constraint=_IDEMPOTENCY_CONSTRAINT)
        .returning(SalesTransaction.id)
    )


class SalesTransactionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def sales_transaction_exists(self, *, source_provider: str, source_line_item_id: str) -> bool:
        stmt = select(SalesTransaction.id).where(
            SalesTransaction.source_provider == source_provider,
            SalesTransaction.source_line_item_id == source_line_item_id,
        )
        try:
            with self._session.begin_nested():
                return self._session.scalars(stmt).first() is not None
        except SQLAlchemyError as exc:
            raise wrap_persistence_error(exc, "Sales transaction lookup failed") from exc

    def insert_sales_transaction(self, txn: CanonicalSalesTransaction) -> UpsertOutcome:
        try:
            with self._session.begin_nested():
                inserted_id = self._session.scalars(build_sales_insert(txn)).first()
        except SQLAlchemyError as exc:
            raise wrap_persistence_error(
                exc,
                f"Failed to insert sales transaction {txn.source_provider}:{txn.source_line_item_id}",
            ) from exc
        return UpsertOutcome(entity_id=inserted_id, created=inserted_id is not None)

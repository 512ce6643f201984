"""
tests/test_repository_statements.py

Compiled PostgreSQL statements behind idempotent canonical writes.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import DBAPIError, OperationalError

from app.domain.reconciliation import CanonicalInventoryItem, CanonicalSalesTransaction
from app.repositories.inventory_item_repository import InventoryItemRepository, build_inventory_upsert
from app.repositories.sales_transaction_repository import SalesTransactionRepository, build_sales_insert
from db.repositories.errors import (
    CanonicalPersistenceError,
    PersistenceTimeoutError,
    wrap_persistence_error,
)


def _compile(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


def _item() -> CanonicalInventoryItem:
    return CanonicalInventoryItem(
        tenant_id="tenant-a",
        name="Roma Tomatoes",
        category="produce",
        unit="lbs",
        unit_cost=Decimal("1.2500"),
        variance_threshold_quantity=Decimal("2.50"),
        variance_threshold_dollar=Decimal("3.13"),
        high_value_flag=False,
        source_provider="csv",
        source_item_id="csv-tom-1",
        provider_payload={"provider": "csv"},
    )


class TestInventoryUpsert:
    def test_conflict_target_is_the_idempotency_key(self) -> None:
        sql = _compile(build_inventory_upsert(_item()))

        assert "ON CONFLICT ON CONSTRAINT uq_inventory_items_tenant_source DO UPDATE" in sql
        assert "RETURNING inventory_items.id, (xmax = 0) AS inserted" in sql

    def test_identity_columns_are_never_rewritten(self) -> None:
        set_clause = _compile(build_inventory_upsert(_item())).split("DO UPDATE SET", 1)[1]

        assert "unit_cost = excluded.unit_cost" in set_clause
        assert "updated_at = now()" in set_clause
        for column in ("tenant_id =", "source_provider =", "source_item_id =", "created_at ="):
            assert column not in set_clause


class TestSalesInsert:
    def test_conflict_does_nothing(self) -> None:
        txn = CanonicalSalesTransaction(
            tenant_id="tenant-a",
            inventory_item_id=uuid.uuid4(),
            transaction_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
            quantity="2",
            unit_price=Decimal("4.50"),
            total_amount=Decimal("9.00"),
            source_provider="square",
            source_order_id="ORD-1",
            source_line_item_id="square-uid-1",
            provider_payload={},
        )
        sql = _compile(build_sales_insert(txn))

        assert "ON CONFLICT ON CONSTRAINT uq_sales_transactions_provider_line_item DO NOTHING" in sql
        assert "RETURNING sales_transactions.id" in sql
        assert "DO UPDATE" not in sql


class TestPersistenceErrors:
    def test_statement_timeout_is_distinguished(self) -> None:
        class CanceledError(Exception):
            sqlstate = "57014"

        error = wrap_persistence_error(DBAPIError("UPDATE", {}, CanceledError("canceled")), "Upsert failed")

        assert isinstance(error, PersistenceTimeoutError)
        assert error.to_dict()["code"] == "PERSISTENCE_TIMEOUT"

    def test_other_failures_are_generic(self) -> None:
        error = wrap_persistence_error(DBAPIError("UPDATE", {}, Exception("boom")), "Upsert failed")

        assert type(error) is CanonicalPersistenceError
        assert str(error) == "Upsert failed"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class _Savepoint:
    def __init__(self, log: list[str]) -> None:
        self._log = log

    def __enter__(self) -> "_Savepoint":
        self._log.append("savepoint")
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._log.append("rollback" if exc_type else "release")
        return False


class _Result:
    def __init__(self, value: object) -> None:
        self._value = value

    def first(self) -> object:
        return self._value


class RecordingSession:
    """Session double that logs savepoints and fails the first N selects."""

    def __init__(self, value: object = None, failures: int = 0) -> None:
        self.log: list[str] = []
        self._value = value
        self._failures = failures

    def begin_nested(self) -> _Savepoint:
        return _Savepoint(self.log)

    def scalars(self, statement) -> _Result:
        self.log.append("select")
        if self._failures > 0:
            self._failures -= 1
            raise OperationalError("SELECT", {}, Exception("connection reset"))
        return _Result(self._value)


class TestLookupSavepoints:
    def test_inventory_lookup_runs_in_a_savepoint(self) -> None:
        item_id = uuid.uuid4()
        session = RecordingSession(value=item_id)
        repository = InventoryItemRepository(session)

        found = repository.find_inventory_item_id(
            tenant_id="tenant-a",
            source_provider="csv",
            source_item_id="csv-tom-1",
        )

        assert found == item_id
        assert session.log == ["savepoint", "select", "release"]

    def test_failed_lookup_rolls_back_only_its_savepoint(self) -> None:
        session = RecordingSession(failures=1)
        repository = InventoryItemRepository(session)

        with pytest.raises(CanonicalPersistenceError, match="Inventory item lookup failed"):
            repository.find_inventory_item_id_by_name(tenant_id="tenant-a", name="Roma Tomatoes")

        assert repository.find_inventory_item_id_by_name(tenant_id="tenant-a", name="Roma Tomatoes") is None
        assert session.log == ["savepoint", "select", "rollback", "savepoint", "select", "release"]

    def test_sales_existence_check_runs_in_a_savepoint(self) -> None:
        session = RecordingSession(failures=1, value=uuid.uuid4())
        repository = SalesTransactionRepository(session)

        with pytest.raises(CanonicalPersistenceError):
            repository.sales_transaction_exists(source_provider="square", source_line_item_id="uid-1")

        assert repository.sales_transaction_exists(source_provider="square", source_line_item_id="uid-1")
        assert session.log == ["savepoint", "select", "rollback", "savepoint", "select", "release"]

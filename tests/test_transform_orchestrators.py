"""
tests/test_transform_orchestrators.py

Inventory and sales orchestrators against in-memory stores.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.domain.source_records import CsvInventoryRow, CsvSalesRow, SquareLineItem, to_inventory_source
from app.services.category_classifier import CategoryClassifier
from app.services.transform_orchestrators import (
    InventoryTransformOrchestrator,
    SalesTransformOrchestrator,
    compute_error_rate,
    determine_stock_levels,
)
from app.services.unit_normalizer import UnitInferrer, UnitNormalizer
from app.services.variance_calculator import VarianceThresholdCalculator
from tests.fakes import (
    FakeInventoryStore,
    FakeSalesStore,
    FlakyInventoryStore,
    FlakySalesStore,
    inventory_row,
)

TENANT = "tenant-a"


def _inventory_orchestrator(store: FakeInventoryStore, **kwargs: object) -> InventoryTransformOrchestrator:
    return InventoryTransformOrchestrator(
        store=store,
        classifier=CategoryClassifier(),
        unit_normalizer=UnitNormalizer(),
        unit_inferrer=UnitInferrer(),
        calculator=VarianceThresholdCalculator(),
        **kwargs,
    )


def _rows(*datas: dict) -> list[CsvInventoryRow]:
    return [CsvInventoryRow(upload_id="u1", row=index, data=data) for index, data in enumerate(datas, start=1)]


def _sale(row: int, item_name: str, **overrides: object) -> CsvSalesRow:
    data = {
        "transaction_date": "2026-10-01T12:00:00+00:00",
        "item_name": item_name,
        "quantity": 1,
        "unit_price": 4.5,
        "total_amount": 4.5,
        "order_id": f"T-{row}",
        "line_item_id": f"L-{row}",
    }
    data.update(overrides)
    return CsvSalesRow(upload_id="u2", row=row, data=data)


@pytest.fixture()
def inventory_store() -> FakeInventoryStore:
    return FakeInventoryStore()


@pytest.fixture()
def sales_store() -> FakeSalesStore:
    return FakeSalesStore()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_error_rate_is_a_percentage(self) -> None:
        assert compute_error_rate(3, 100) == 3.0
        assert compute_error_rate(1, 3) == 33.333
        assert compute_error_rate(0, 0) == 0.0

    def test_stock_levels_prefer_maximum(self) -> None:
        levels = determine_stock_levels(Decimal("4"), Decimal("20"), 10.0)
        assert levels.stocking_level == 20.0
        assert levels.minimum_stock == Decimal("4")
        assert levels.maximum_stock == Decimal("20")

    def test_missing_bounds_derive_from_level(self) -> None:
        levels = determine_stock_levels(None, None, 10.0)
        assert levels.stocking_level == 10.0
        assert levels.minimum_stock == Decimal("3.0000")
        assert levels.maximum_stock == Decimal("15.0000")

    def test_minimum_only(self) -> None:
        levels = determine_stock_levels(Decimal("8"), None, 10.0)
        assert levels.stocking_level == 8.0
        assert levels.maximum_stock == Decimal("12.0000")


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class TestInventoryOrchestrator:
    def test_first_run_creates_second_run_updates(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store)
        batches = [_rows(inventory_row(1), inventory_row(2))]

        first = orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=batches)
        second = orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=batches)

        assert (first.summary.created, first.summary.updated) == (2, 0)
        assert (second.summary.created, second.summary.updated) == (0, 2)
        assert second.item_matching == {"auto_linked": 2, "needs_review": 0}
        assert len(inventory_store.items) == 2

    def test_duplicate_key_within_run_updates(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store)
        result = orchestrator.run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1, unit_cost=2.0)), _rows(inventory_row(1, unit_cost=3.0))],
        )

        assert (result.summary.created, result.summary.updated) == (1, 1)
        ((_, item),) = inventory_store.items.values()
        assert item.unit_cost == Decimal("3.0000")

    def test_unmapped_category_falls_back_and_is_flagged(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store)
        result = orchestrator.run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1, category="Electronics"))],
        )

        ((_, item),) = inventory_store.items.values()
        assert item.category == "dry_goods"
        assert item.needs_review
        assert item.provider_payload["classification"]["match_type"] == "fallback"
        assert result.flagged_for_review[0].reason == "unmapped_category"

    def test_missing_identifiers_are_flagged(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store)
        result = orchestrator.run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1, sku=None))],
        )
        assert result.flagged_for_review[0].to_dict() == {"name": "Item 1", "reason": "missing_identifiers"}

    def test_item_carries_variance_thresholds(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store)
        source = to_inventory_source(
            CsvInventoryRow(upload_id="u1", row=1, data=inventory_row(1, unit_cost=3.0, maximum_stock=20))
        )
        item, flag = orchestrator.build_item(source, tenant_id=TENANT)

        assert flag is None
        assert item.unit == "lbs"
        assert item.variance_threshold_quantity == Decimal("5.00")
        assert item.variance_threshold_dollar == Decimal("15.00")
        assert item.high_value_flag is False
        assert item.provider_payload["variance"]["breakdown"]["final_pct"] == 25.0

    def test_dry_run_writes_nothing(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store)
        result = orchestrator.run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1))],
            dry_run=True,
        )
        assert result.summary.created == 1
        assert inventory_store.upserts == 0

    def test_dry_run_agrees_with_real_run_on_repeated_keys(self) -> None:
        batches = [_rows(inventory_row(1), inventory_row(1), inventory_row(2))]
        preview_store, real_store = FakeInventoryStore(), FakeInventoryStore()

        preview = _inventory_orchestrator(preview_store).run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=batches,
            dry_run=True,
        )
        real = _inventory_orchestrator(real_store).run(tenant_id=TENANT, source_provider="csv", batches=batches)

        assert (preview.summary.created, preview.summary.updated) == (2, 1)
        assert preview.summary.to_dict() == real.summary.to_dict()
        assert preview.item_matching == real.item_matching
        assert preview_store.upserts == 0

    def test_dry_run_keys_do_not_leak_between_runs(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store)
        batches = [_rows(inventory_row(1))]

        orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=batches, dry_run=True)
        again = orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=batches, dry_run=True)

        assert (again.summary.created, again.summary.updated) == (1, 0)

    def test_failed_lookup_does_not_stop_later_rows(self) -> None:
        store = FlakyInventoryStore(failures=1)
        result = _inventory_orchestrator(store).run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1), inventory_row(2), inventory_row(3))],
            dry_run=True,
        )

        assert result.summary.errors == 1
        assert result.summary.created == 2
        assert result.errors[0].row == 1
        assert result.errors[0].message == "Inventory item lookup failed"

    def test_low_confidence_fuzzy_match_is_flagged(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store)
        result = orchestrator.run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1, category="Poultrie"))],
        )

        ((_, item),) = inventory_store.items.values()
        assert item.category == "proteins"
        assert item.needs_review
        assert result.flagged_for_review[0].to_dict() == {
            "name": "Item 1",
            "reason": "low_category_confidence",
            "category": "Poultrie",
            "mapped_category": "proteins",
            "confidence": 0.75,
        }

    def test_review_floor_is_independent_of_classifier(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store, review_min_confidence=0.7)
        result = orchestrator.run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1, category="Poultrie"))],
        )

        assert result.flagged_for_review == []
        ((_, item),) = inventory_store.items.values()
        assert item.category == "proteins"
        assert not item.needs_review

    def test_row_errors_are_counted_and_sampled(self, inventory_store: FakeInventoryStore) -> None:
        orchestrator = _inventory_orchestrator(inventory_store, max_error_details=2)
        rows = _rows(inventory_row(1), {}, {"name": "No cost"}, {}, inventory_row(5))

        result = orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=[rows])

        assert result.summary.processed == 5
        assert result.summary.errors == 3
        assert [error.row for error in result.errors] == [2, 3]
        assert result.error_rate == 60.0
        assert result.exceeded_threshold

    def test_batch_callback_fires_per_batch(self, inventory_store: FakeInventoryStore) -> None:
        seen: list[int] = []
        _inventory_orchestrator(inventory_store).run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1)), _rows(inventory_row(2)), _rows(inventory_row(3))],
            on_batch_complete=seen.append,
        )
        assert seen == [0, 1, 2]


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


class TestSalesOrchestrator:
    @pytest.fixture()
    def seeded_store(self, inventory_store: FakeInventoryStore) -> FakeInventoryStore:
        _inventory_orchestrator(inventory_store).run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[_rows(inventory_row(1, name="Cold Brew", sku=None))],
        )
        return inventory_store

    def test_matched_line_is_linked(self, seeded_store: FakeInventoryStore, sales_store: FakeSalesStore) -> None:
        orchestrator = SalesTransformOrchestrator(inventory_store=seeded_store, sales_store=sales_store)
        result = orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=[[_sale(1, "Cold Brew")]])

        assert result.summary.created == 1
        assert result.item_matching["matched"] == 1
        (txn,) = sales_store.transactions.values()
        assert txn.inventory_item_id is not None
        assert txn.quantity == "1"

    def test_replay_is_already_applied(self, seeded_store: FakeInventoryStore, sales_store: FakeSalesStore) -> None:
        orchestrator = SalesTransformOrchestrator(inventory_store=seeded_store, sales_store=sales_store)
        batches = [[_sale(1, "Cold Brew"), _sale(2, "Cold Brew")]]

        orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=batches)
        replay = orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=batches)

        assert replay.summary.created == 0
        assert replay.summary.skipped == 2
        assert replay.item_matching["already_applied"] == 2
        assert len(sales_store.transactions) == 2

    def test_unmapped_line_is_skipped_and_flagged(
        self,
        seeded_store: FakeInventoryStore,
        sales_store: FakeSalesStore,
    ) -> None:
        orchestrator = SalesTransformOrchestrator(inventory_store=seeded_store, sales_store=sales_store)
        result = orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=[[_sale(1, "Mystery Soup")]])

        assert result.summary.skipped == 1
        assert result.summary.errors == 0
        assert result.item_matching["unmatched"] == 1
        assert result.flagged_for_review[0].reason == "inventory_match_not_found"
        assert sales_store.transactions == {}

    def test_unmapped_line_is_kept_when_configured(
        self,
        seeded_store: FakeInventoryStore,
        sales_store: FakeSalesStore,
    ) -> None:
        orchestrator = SalesTransformOrchestrator(
            inventory_store=seeded_store,
            sales_store=sales_store,
            skip_unmapped=False,
        )
        result = orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=[[_sale(1, "Mystery Soup")]])

        assert result.summary.created == 1
        (txn,) = sales_store.transactions.values()
        assert txn.inventory_item_id is None

    def test_square_line_without_catalog_ref_is_skipped(self, sales_store: FakeSalesStore) -> None:
        orchestrator = SalesTransformOrchestrator(inventory_store=FakeInventoryStore(), sales_store=sales_store)
        line = SquareLineItem(
            row=1,
            order_id="ORD-1",
            line_item_uid="uid-1",
            catalog_object_id=None,
            name="Custom Amount",
            quantity="1",
            total_amount=500,
            opened_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
        )
        result = orchestrator.run(tenant_id=TENANT, source_provider="square", batches=[[line]])

        assert result.summary.skipped == 1
        assert result.flagged_for_review == []

    def test_dry_run_reports_existing_lines(
        self,
        seeded_store: FakeInventoryStore,
        sales_store: FakeSalesStore,
    ) -> None:
        orchestrator = SalesTransformOrchestrator(inventory_store=seeded_store, sales_store=sales_store)
        orchestrator.run(tenant_id=TENANT, source_provider="csv", batches=[[_sale(1, "Cold Brew")]])

        preview = orchestrator.run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[[_sale(1, "Cold Brew"), _sale(2, "Cold Brew")]],
            dry_run=True,
        )

        assert (preview.summary.created, preview.summary.skipped) == (1, 1)
        assert len(sales_store.transactions) == 1

    def test_dry_run_agrees_with_real_run_on_repeated_lines(self, seeded_store: FakeInventoryStore) -> None:
        batches = [[_sale(1, "Cold Brew"), _sale(2, "Cold Brew")], [_sale(1, "Cold Brew")]]
        preview_sales, real_sales = FakeSalesStore(), FakeSalesStore()

        preview = SalesTransformOrchestrator(inventory_store=seeded_store, sales_store=preview_sales).run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=batches,
            dry_run=True,
        )
        real = SalesTransformOrchestrator(inventory_store=seeded_store, sales_store=real_sales).run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=batches,
        )

        assert preview.item_matching == {"matched": 2, "unmatched": 0, "already_applied": 1}
        assert preview.summary.to_dict() == real.summary.to_dict()
        assert preview.item_matching == real.item_matching
        assert preview_sales.transactions == {}

    def test_failed_lookup_does_not_stop_later_lines(self, seeded_store: FakeInventoryStore) -> None:
        orchestrator = SalesTransformOrchestrator(inventory_store=seeded_store, sales_store=FlakySalesStore())
        result = orchestrator.run(
            tenant_id=TENANT,
            source_provider="csv",
            batches=[[_sale(1, "Cold Brew"), _sale(2, "Cold Brew"), _sale(3, "Cold Brew")]],
            dry_run=True,
        )

        assert result.summary.errors == 1
        assert result.summary.created == 2
        assert result.errors[0].message == "Sales transaction lookup failed"

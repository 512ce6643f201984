"""
tests/test_transform_service.py

Run lifecycle: preconditions, ledger, commit policy and the error-rate gate.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.services.transform_service import (
    TransformPreconditionError,
    TransformThresholdExceededError,
    UploadNotFoundError,
    chunked,
)
from tests.fakes import build_service, inventory_row

TENANT = "tenant-a"


def _rows_with_failures(total: int, failures: int) -> list[dict]:
    return [{} if index <= failures else inventory_row(index) for index in range(1, total + 1)]


class TestUploadTransforms:
    def test_low_error_rate_completes(self, repos, session) -> None:
        upload = repos.uploads.seed(tenant_id=TENANT, record_type="inventory", rows=_rows_with_failures(100, 3))
        service = build_service(repos)

        result = service.transform_upload(db=session, upload_id=upload.id, tenant_id=TENANT)

        assert result.status == "completed"
        assert result.error_rate == 3.0
        assert result.summary.created == 97
        assert result.summary.errors == 3
        assert result.run_id in repos.runs.runs
        assert repos.runs.runs[result.run_id].status == "completed"
        assert upload.status == "transformed"
        assert upload.transform_summary["summary"]["created"] == 97

    def test_high_error_rate_fails_with_all_sampled_errors(self, repos, session) -> None:
        upload = repos.uploads.seed(tenant_id=TENANT, record_type="inventory", rows=_rows_with_failures(20, 18))
        service = build_service(repos)

        with pytest.raises(TransformThresholdExceededError) as excinfo:
            service.transform_upload(db=session, upload_id=upload.id, tenant_id=TENANT)

        error = excinfo.value
        assert len(error.errors) == 18
        assert error.result.error_rate == 90.0
        assert error.to_dict()["code"] == "TRANSFORM_THRESHOLD_EXCEEDED"
        (run,) = repos.runs.runs.values()
        assert run.status == "failed"
        assert upload.status == "validated"
        # best-effort: successful rows stay committed
        assert len(repos.inventory.items) == 2
        assert session.rollbacks == 0

    def test_atomic_runs_roll_back_on_gate_failure(self, repos, session) -> None:
        upload = repos.uploads.seed(tenant_id=TENANT, record_type="inventory", rows=_rows_with_failures(20, 18))
        service = build_service(repos, atomic_runs=True)

        with pytest.raises(TransformThresholdExceededError):
            service.transform_upload(db=session, upload_id=upload.id, tenant_id=TENANT)

        assert session.rollbacks == 1

    def test_batches_are_committed_as_they_finish(self, repos, session) -> None:
        upload = repos.uploads.seed(
            tenant_id=TENANT,
            record_type="inventory",
            rows=[inventory_row(index) for index in range(1, 11)],
            batch_size=4,
        )
        build_service(repos).transform_upload(db=session, upload_id=upload.id, tenant_id=TENANT)

        # ledger + 3 batches + completion + upload status
        assert session.commits == 6

    def test_dry_run_leaves_upload_untouched(self, repos, session) -> None:
        upload = repos.uploads.seed(tenant_id=TENANT, record_type="inventory", rows=[inventory_row(1)])
        result = build_service(repos).transform_upload(
            db=session,
            upload_id=upload.id,
            tenant_id=TENANT,
            dry_run=True,
        )

        assert result.dry_run
        assert repos.inventory.items == {}
        assert upload.status == "validated"

    def test_rerun_after_transform_is_allowed(self, repos, session) -> None:
        upload = repos.uploads.seed(tenant_id=TENANT, record_type="inventory", rows=[inventory_row(1)])
        service = build_service(repos)

        service.transform_upload(db=session, upload_id=upload.id, tenant_id=TENANT)
        rerun = service.transform_upload(db=session, upload_id=upload.id, tenant_id=TENANT)

        assert (rerun.summary.created, rerun.summary.updated) == (0, 1)


class TestPreconditions:
    def test_missing_upload(self, repos, session) -> None:
        with pytest.raises(UploadNotFoundError):
            build_service(repos).transform_upload(db=session, upload_id=uuid.uuid4(), tenant_id=TENANT)
        assert repos.runs.runs == {}

    @pytest.mark.parametrize(
        ("mutate", "kwargs", "code"),
        [
            (lambda upload: None, {"tenant_id": "tenant-b"}, "TENANT_MISMATCH"),
            (lambda upload: None, {"expected_record_type": "sales"}, "UPLOAD_TYPE_MISMATCH"),
            (lambda upload: setattr(upload, "status", "failed"), {}, "UPLOAD_NOT_VALIDATED"),
            (lambda upload: setattr(upload, "rows_valid", 0), {}, "NO_VALID_ROWS"),
        ],
    )
    def test_precondition_failures_create_no_run(self, repos, session, mutate, kwargs, code) -> None:
        upload = repos.uploads.seed(tenant_id=TENANT, record_type="inventory", rows=[inventory_row(1)])
        mutate(upload)
        call = {"tenant_id": TENANT, **kwargs}

        with pytest.raises(TransformPreconditionError) as excinfo:
            build_service(repos).transform_upload(db=session, upload_id=upload.id, **call)

        assert excinfo.value.code == code
        assert repos.runs.runs == {}
        assert session.commits == 0

    def test_upload_without_batches(self, repos, session) -> None:
        upload = repos.uploads.seed(tenant_id=TENANT, record_type="inventory", rows=[inventory_row(1)])
        repos.uploads.batches[upload.id] = []

        with pytest.raises(TransformPreconditionError) as excinfo:
            build_service(repos).transform_upload(db=session, upload_id=upload.id, tenant_id=TENANT)
        assert excinfo.value.code == "NO_BATCHES"

    def test_pos_transform_without_source_records(self, repos, session) -> None:
        with pytest.raises(TransformPreconditionError) as excinfo:
            build_service(repos).transform_pos_catalog(db=session, tenant_id=TENANT)
        assert excinfo.value.code == "NO_SOURCE_RECORDS"
        assert repos.runs.runs == {}


class TestPosTransforms:
    def test_catalog_then_orders(self, repos, session) -> None:
        repos.pos.catalog_items.append(
            SimpleNamespace(
                tenant_id=TENANT,
                provider="square",
                catalog_object_id="ITEM_1",
                name="Cold Brew 16 oz",
                description=None,
                category_id="CAT_1",
                category_name="Beverages",
                variations=[{"id": "V1", "name": "Regular", "ordinal": 0, "price_money": {"amount": 495}}],
                raw_payload=None,
                updated_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
            )
        )
        opened = datetime(2026, 10, 2, 12, 0, tzinfo=timezone.utc)
        repos.pos.orders.append(
            SimpleNamespace(
                tenant_id=TENANT,
                provider="square",
                external_order_id="ORD-1",
                opened_at=opened,
                closed_at=opened,
                items=[
                    SimpleNamespace(
                        line_item_uid="uid-1",
                        catalog_object_id="ITEM_1",
                        variation_id="V1",
                        name="Cold Brew 16 oz",
                        variation_name="Regular",
                        quantity="2",
                        base_price_money_amount=495,
                        gross_sales_money_amount=990,
                        total_tax_money_amount=79,
                        total_discount_money_amount=0,
                        total_money_amount=1069,
                    )
                ],
            )
        )
        service = build_service(repos)

        inventory = service.transform_pos_catalog(db=session, tenant_id=TENANT)
        sales = service.transform_pos_orders(db=session, tenant_id=TENANT)

        assert inventory.summary.created == 1
        ((item_id, item),) = repos.inventory.items.values()
        assert item.unit == "oz"
        assert item.category == "beverages"
        assert item.provider_payload["unit_inference"]["unit"] == "oz"

        assert sales.item_matching["matched"] == 1
        (txn,) = repos.sales.transactions.values()
        assert txn.inventory_item_id == item_id
        assert txn.source_line_item_id == "square-uid-1"
        assert str(txn.total_amount) == "10.69"


def test_chunked() -> None:
    assert list(chunked(iter(range(5)), 2)) == [[0, 1], [2, 3], [4]]
    assert list(chunked([], 3)) == []

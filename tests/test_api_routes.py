"""
tests/test_api_routes.py

HTTP status and payload mapping for upload and transform endpoints.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routers import transforms_router, uploads_router
from app.domain.reconciliation import RowFailure, TransformResult, TransformSummary
from app.services.csv_stream_parser import CSVStreamParser
from app.services.csv_upload_service import CSVUploadService, get_csv_upload_service
from app.services.transform_service import (
    TransformPreconditionError,
    TransformThresholdExceededError,
    UploadNotFoundError,
    get_transform_service,
)
from db.session import get_db
from tests.fakes import FakeSession, FakeUploadRepository

NOW = datetime(2026, 10, 19, tzinfo=timezone.utc)


def _result(**overrides: object) -> TransformResult:
    fields = {
        "record_type": "inventory",
        "source_provider": "csv",
        "tenant_id": "tenant-a",
        "dry_run": False,
        "threshold_pct": 5.0,
        "summary": TransformSummary(processed=2, created=2),
        "item_matching": {"auto_linked": 0, "needs_review": 2},
        "run_id": uuid.uuid4(),
        "status": "completed",
    }
    fields.update(overrides)
    return TransformResult(**fields)


class StubTransformService:
    def __init__(self) -> None:
        self.outcome: object = _result()
        self.runs: list[SimpleNamespace] = []

    def _respond(self, **_: object) -> TransformResult:
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    transform_upload = _respond
    transform_pos_catalog = _respond
    transform_pos_orders = _respond

    def get_run(self, *, db, run_id):
        return next((run for run in self.runs if run.id == run_id), None)

    def list_runs(self, **_: object):
        return list(self.runs)


@pytest.fixture()
def transform_service() -> StubTransformService:
    return StubTransformService()


@pytest.fixture()
def upload_store() -> FakeUploadRepository:
    return FakeUploadRepository()


@pytest.fixture()
def client(transform_service: StubTransformService, upload_store: FakeUploadRepository) -> TestClient:
    app = FastAPI()
    app.include_router(uploads_router)
    app.include_router(transforms_router)
    app.dependency_overrides[get_db] = lambda: FakeSession()
    app.dependency_overrides[get_transform_service] = lambda: transform_service
    app.dependency_overrides[get_csv_upload_service] = lambda: CSVUploadService(
        parser=CSVStreamParser(),
        repository_factory=lambda _db: upload_store,
    )
    return TestClient(app)


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


class TestUploadRoutes:
    def test_upload_returns_summary(self, client: TestClient, upload_store: FakeUploadRepository) -> None:
        content = (
            "Item Name,Category,UOM,Unit Cost,Description,Supplier\n"
            "Roma Tomatoes,Produce,lb,1.25,Vine ripe,Sysco\n"
        )
        response = client.post(
            "/uploads/inventory",
            params={"tenant_id": "tenant-a"},
            files={"file": ("inventory.csv", content, "text/csv")},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "validated"
        assert body["rows_valid"] == 1
        assert body["ready_for_transform"] is True

        status_response = client.get(f"/uploads/{body['upload_id']}")
        assert status_response.status_code == 200
        assert status_response.json()["status"] == "validated"
        assert upload_store.uploads[uuid.UUID(body["upload_id"])].tenant_id == "tenant-a"

    def test_missing_headers_are_a_bad_request(self, client: TestClient) -> None:
        response = client.post(
            "/uploads/inventory",
            params={"tenant_id": "tenant-a"},
            files={"file": ("inventory.csv", "Item Name\nTomatoes\n", "text/csv")},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "CSV_HEADER_MISSING"

    def test_unsupported_record_type(self, client: TestClient) -> None:
        response = client.post(
            "/uploads/payroll",
            params={"tenant_id": "tenant-a"},
            files={"file": ("x.csv", "a,b\n1,2\n", "text/csv")},
        )
        assert response.status_code == 400

    def test_non_csv_file_is_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/uploads/inventory",
            params={"tenant_id": "tenant-a"},
            files={"file": ("photo.png", b"\x89PNG", "image/png")},
        )
        assert response.status_code == 400

    def test_unknown_upload_is_not_found(self, client: TestClient) -> None:
        assert client.get(f"/uploads/{uuid.uuid4()}").status_code == 404


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------


class TestTransformRoutes:
    def test_completed_run(self, client: TestClient) -> None:
        response = client.post(f"/uploads/{uuid.uuid4()}/transform", json={"tenant_id": "tenant-a"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["summary"]["created"] == 2
        assert body["summary"]["item_matching"] == {"auto_linked": 0, "needs_review": 2}

    def test_threshold_exceeded_is_unprocessable(
        self,
        client: TestClient,
        transform_service: StubTransformService,
    ) -> None:
        failed = _result(
            summary=TransformSummary(processed=20, created=2, errors=18),
            errors=[RowFailure(row=index, message="bad row") for index in range(1, 19)],
            error_rate=90.0,
            exceeded_threshold=True,
            status="failed",
        )
        transform_service.outcome = TransformThresholdExceededError(failed)

        response = client.post(f"/uploads/{uuid.uuid4()}/transform", json={"tenant_id": "tenant-a"})

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "TRANSFORM_THRESHOLD_EXCEEDED"
        assert len(detail["result"]["errors"]) == 18

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (UploadNotFoundError(uuid.uuid4()), 404),
            (TransformPreconditionError(code="UPLOAD_NOT_VALIDATED", message="not validated"), 400),
        ],
    )
    def test_precondition_errors(
        self,
        client: TestClient,
        transform_service: StubTransformService,
        error: Exception,
        status_code: int,
    ) -> None:
        transform_service.outcome = error
        response = client.post(f"/uploads/{uuid.uuid4()}/transform", json={"tenant_id": "tenant-a"})

        assert response.status_code == status_code
        assert response.json()["detail"]["code"] == error.code

    def test_pos_sales_transform_accepts_since(self, client: TestClient) -> None:
        response = client.post(
            "/pos/square/sales/transform",
            json={"tenant_id": "tenant-a", "since": "2026-10-01T00:00:00Z"},
        )
        assert response.status_code == 200

    def test_blank_tenant_is_rejected(self, client: TestClient) -> None:
        response = client.post("/pos/square/inventory/transform", json={"tenant_id": ""})
        assert response.status_code == 422

    def test_run_lookup(self, client: TestClient, transform_service: StubTransformService) -> None:
        run = SimpleNamespace(
            id=uuid.uuid4(),
            tenant_id="tenant-a",
            upload_id=None,
            record_type="sales",
            source_provider="square",
            dry_run=False,
            status="completed",
            processed_count=3,
            created_count=3,
            updated_count=0,
            skipped_count=0,
            error_count=0,
            error_rate=0,
            summary={"processed": 3},
            errors=[],
            error_message=None,
            started_at=NOW,
            completed_at=NOW,
            created_at=NOW,
        )
        transform_service.runs.append(run)

        assert client.get(f"/transform-runs/{run.id}").json()["record_type"] == "sales"
        assert client.get(f"/transform-runs/{uuid.uuid4()}").status_code == 404
        assert len(client.get("/transform-runs", params={"tenant_id": "tenant-a"}).json()["runs"]) == 1

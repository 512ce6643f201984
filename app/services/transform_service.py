"""
app/services/transform_service.py

Entry points for tier 1 -> tier 2 transform runs.

Every run follows the same sequence:

    1. Preconditions (upload exists, tenant, type, state, batches). Failures
       raise before any ledger row exists.
    2. Ledger row created in ``processing`` and committed.
    3. Orchestrator run. Canonical writes are committed per batch, or held
       in one transaction when atomic runs are enabled.
    4. Error-rate gate: ``completed`` or ``failed``. A failed gate raises
       ``TransformThresholdExceededError`` carrying the partial result.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Iterator, Sequence

from sqlalchemy.orm import Session

from app.config import TransformSettings, get_transform_settings
from app.domain.reconciliation import TransformResult
from app.domain.source_records import (
    CsvInventoryRow,
    CsvSalesRow,
    SquareCatalogItem,
    SquareLineItem,
    SquareVariation,
)
from app.logging_utils import log_event
from app.repositories.inventory_item_repository import InventoryItemRepository
from app.repositories.pos_raw_repository import PosRawRepository
from app.repositories.sales_transaction_repository import SalesTransactionRepository
from app.services.category_classifier import CategoryClassifier, get_category_classifier
from app.services.transform_orchestrators import (
    InventoryTransformOrchestrator,
    SalesTransformOrchestrator,
    TransformOrchestrator,
)
from app.services.unit_normalizer import (
    UnitInferrer,
    UnitNormalizer,
    get_unit_inferrer,
    get_unit_normalizer,
)
from app.services.variance_calculator import VarianceThresholdCalculator, get_variance_calculator
from db.models.pos_raw import PosCatalogItem, PosOrder
from db.models.transform_run import TransformRun, TransformRunStatus
from db.models.upload import RecordType, Upload, UploadBatch, UploadStatus
from db.repositories.transform_run_repository import TransformRunRepository
from db.repositories.upload_repository import UploadRepository

logger = logging.getLogger(__name__)

SQUARE_PROVIDER = "square"
CSV_PROVIDER = "csv"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TransformPreconditionError(ValueError):
    """
    Raised before a run starts when its inputs are not transformable.
    """

    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": str(self)}


class UploadNotFoundError(TransformPreconditionError):
    def __init__(self, upload_id: uuid.UUID) -> None:
        super().__init__(code="UPLOAD_NOT_FOUND", message=f"Upload not found: {upload_id}")
        self.upload_id = upload_id


class TransformThresholdExceededError(RuntimeError):
    """
    Raised when a run's error rate exceeds the configured threshold.

    ``result`` is the full partial result, including sampled row errors.
    """

    code = "TRANSFORM_THRESHOLD_EXCEEDED"

    def __init__(self, result: TransformResult, *, flagged_limit: int | None = None) -> None:
        super().__init__(
            f"{result.record_type} transform failed: error rate {result.error_rate:.2f}% "
            f"exceeds threshold {result.threshold_pct:.2f}% "
            f"({result.summary.errors}/{result.summary.processed} rows)"
        )
        self.result = result
        self._flagged_limit = flagged_limit

    @property
    def errors(self) -> list:
        return self.result.errors

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "message": str(self),
            "result": self.result.to_dict(flagged_limit=self._flagged_limit),
        }


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransformRepositories:
    uploads: Any
    runs: Any
    inventory: Any
    sales: Any
    pos: Any


def build_transform_repositories(db: Session, settings: TransformSettings) -> TransformRepositories:
    return TransformRepositories(
        uploads=UploadRepository(db),
        runs=TransformRunRepository(db, flagged_review_limit=settings.flagged_review_limit),
        inventory=InventoryItemRepository(db),
        sales=SalesTransactionRepository(db),
        pos=PosRawRepository(db),
    )


RepositoryFactory = Callable[[Session, TransformSettings], TransformRepositories]


# ---------------------------------------------------------------------------
# Raw record conversion
# ---------------------------------------------------------------------------


def upload_batch_records(upload: Upload, batches: Sequence[UploadBatch]) -> Iterator[list[Any]]:
    """
    Yield one list of typed source records per persisted batch, in order.
    """

    record_cls = CsvInventoryRow if upload.record_type == RecordType.INVENTORY else CsvSalesRow
    upload_id = str(upload.id)
    for batch in sorted(batches, key=lambda item: item.batch_index):
        yield [
            record_cls(upload_id=upload_id, row=int(entry["row"]), data=entry.get("data") or {})
            for entry in batch.rows or []
        ]


def catalog_item_record(item: PosCatalogItem, row: int) -> Any:
    if item.provider != SQUARE_PROVIDER:
        return {
            **(item.raw_payload or {}),
            "provider": item.provider,
            "row": row,
            "source_item_id": item.catalog_object_id,
            "name": item.name,
            "description": item.description,
            "category": item.category_name,
        }

    variations = []
    for variation in item.variations or []:
        price = variation.get("price_money") or {}
        variations.append(
            SquareVariation(
                id=str(variation.get("id")),
                name=variation.get("name"),
                ordinal=variation.get("ordinal"),
                price_amount=price.get("amount"),
                currency=price.get("currency"),
            )
        )
    return SquareCatalogItem(
        row=row,
        catalog_object_id=item.catalog_object_id,
        name=item.name,
        description=item.description,
        category_id=item.category_id,
        category_name=item.category_name,
        variations=tuple(variations),
        synced_at=item.updated_at,
    )


def order_line_records(orders: Sequence[PosOrder]) -> Iterator[Any]:
    row = 0
    for order in orders:
        for line in order.items:
            row += 1
            if order.provider != SQUARE_PROVIDER:
                yield {
                    "provider": order.provider,
                    "row": row,
                    "order_id": order.external_order_id,
                    "line_item_id": line.line_item_uid,
                    "catalog_ref": line.catalog_object_id,
                    "item_name": line.name,
                    "transaction_date": order.closed_at or order.opened_at,
                    "quantity": line.quantity,
                    "unit_price": Decimal(line.base_price_money_amount) / 100,
                    "total_amount": Decimal(line.total_money_amount) / 100,
                }
                continue
            yield SquareLineItem(
                row=row,
                order_id=order.external_order_id,
                line_item_uid=line.line_item_uid,
                catalog_object_id=line.catalog_object_id,
                name=line.name,
                quantity=line.quantity,
                variation_id=line.variation_id,
                variation_name=line.variation_name,
                base_price_amount=line.base_price_money_amount,
                gross_sales_amount=line.gross_sales_money_amount,
                total_tax_amount=line.total_tax_money_amount,
                total_discount_amount=line.total_discount_money_amount,
                total_amount=line.total_money_amount,
                opened_at=order.opened_at,
                closed_at=order.closed_at,
            )


def chunked(records: Sequence[Any] | Iterator[Any], size: int) -> Iterator[list[Any]]:
    chunk: list[Any] = []
    for record in records:
        chunk.append(record)
        if len(chunk) >= size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TransformService:
    """
    Runs transform orchestrators against uploads and raw POS tables.
    """

    def __init__(
        self,
        *,
        settings: TransformSettings,
        classifier: CategoryClassifier,
        unit_normalizer: UnitNormalizer,
        unit_inferrer: UnitInferrer,
        calculator: VarianceThresholdCalculator,
        repository_factory: RepositoryFactory = build_transform_repositories,
    ) -> None:
        self._settings = settings
        self._classifier = classifier
        self._unit_normalizer = unit_normalizer
        self._unit_inferrer = unit_inferrer
        self._calculator = calculator
        self._repository_factory = repository_factory

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def transform_upload(
        self,
        *,
        db: Session,
        upload_id: uuid.UUID,
        tenant_id: str,
        dry_run: bool = False,
        expected_record_type: str | None = None,
    ) -> TransformResult:
        """
        Transform a validated CSV upload into canonical entities.

        Raises:
            UploadNotFoundError / TransformPreconditionError: nothing was run.
            TransformThresholdExceededError: run recorded as ``failed``.
        """

        repos = self._repository_factory(db, self._settings)
        upload = repos.uploads.get_upload(upload_id)
        batches = self._check_upload(repos, upload, upload_id, tenant_id, expected_record_type)

        orchestrator = self._orchestrator_for(upload.record_type, repos)
        result = self._execute(
            db=db,
            repos=repos,
            orchestrator=orchestrator,
            tenant_id=tenant_id,
            source_provider=CSV_PROVIDER,
            batches=upload_batch_records(upload, batches),
            dry_run=dry_run,
            upload_id=upload.id,
        )

        if not dry_run:
            repos.uploads.mark_transformed(
                upload_id=upload.id,
                transform_summary=result.to_dict(flagged_limit=self._settings.flagged_review_limit),
            )
            db.commit()
        return result

    def transform_pos_catalog(
        self,
        *,
        db: Session,
        tenant_id: str,
        provider: str = SQUARE_PROVIDER,
        dry_run: bool = False,
    ) -> TransformResult:
        repos = self._repository_factory(db, self._settings)
        items = repos.pos.list_catalog_items(tenant_id=tenant_id, provider=provider)
        if not items:
            raise TransformPreconditionError(
                code="NO_SOURCE_RECORDS",
                message=f"No {provider} catalog items for tenant {tenant_id}",
            )

        records = [catalog_item_record(item, row) for row, item in enumerate(items, start=1)]
        return self._execute(
            db=db,
            repos=repos,
            orchestrator=self._orchestrator_for(RecordType.INVENTORY, repos),
            tenant_id=tenant_id,
            source_provider=provider,
            batches=chunked(records, self._settings.pos_batch_size),
            dry_run=dry_run,
        )

    def transform_pos_orders(
        self,
        *,
        db: Session,
        tenant_id: str,
        provider: str = SQUARE_PROVIDER,
        dry_run: bool = False,
        since: datetime | None = None,
    ) -> TransformResult:
        repos = self._repository_factory(db, self._settings)
        orders = repos.pos.list_orders(tenant_id=tenant_id, provider=provider, since=since)
        if not orders:
            raise TransformPreconditionError(
                code="NO_SOURCE_RECORDS",
                message=f"No {provider} orders for tenant {tenant_id}",
            )

        return self._execute(
            db=db,
            repos=repos,
            orchestrator=self._orchestrator_for(RecordType.SALES, repos),
            tenant_id=tenant_id,
            source_provider=provider,
            batches=chunked(order_line_records(orders), self._settings.pos_batch_size),
            dry_run=dry_run,
        )

    def get_run(self, *, db: Session, run_id: uuid.UUID) -> TransformRun | None:
        return self._repository_factory(db, self._settings).runs.get_run(run_id)

    def list_runs(
        self,
        *,
        db: Session,
        tenant_id: str | None = None,
        upload_id: uuid.UUID | None = None,
        record_type: str | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[TransformRun]:
        return self._repository_factory(db, self._settings).runs.list_runs(
            tenant_id=tenant_id,
            upload_id=upload_id,
            record_type=record_type,
            status=status,
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_upload(
        self,
        repos: TransformRepositories,
        upload: Upload | None,
        upload_id: uuid.UUID,
        tenant_id: str,
        expected_record_type: str | None,
    ) -> list[UploadBatch]:
        if upload is None:
            raise UploadNotFoundError(upload_id)
        if upload.tenant_id != tenant_id:
            raise TransformPreconditionError(
                code="TENANT_MISMATCH",
                message=f"Upload {upload_id} does not belong to tenant {tenant_id}",
            )
        if expected_record_type and upload.record_type != expected_record_type:
            raise TransformPreconditionError(
                code="UPLOAD_TYPE_MISMATCH",
                message=f"Upload {upload_id} is a {upload.record_type} upload, expected {expected_record_type}",
            )
        if upload.status not in (UploadStatus.VALIDATED, UploadStatus.TRANSFORMED):
            raise TransformPreconditionError(
                code="UPLOAD_NOT_VALIDATED",
                message=f"Upload {upload_id} is {upload.status}; it must be validated first",
            )
        if not upload.rows_valid:
            raise TransformPreconditionError(
                code="NO_VALID_ROWS",
                message=f"Upload {upload_id} has no valid rows",
            )
        batches = repos.uploads.list_batches(upload_id)
        if not batches:
            raise TransformPreconditionError(
                code="NO_BATCHES",
                message=f"Upload {upload_id} has no persisted batches",
            )
        return batches

    def _orchestrator_for(self, record_type: str, repos: TransformRepositories) -> TransformOrchestrator:
        common = {
            "error_threshold_pct": self._settings.error_threshold_pct,
            "max_error_details": self._settings.max_error_details,
            "flagged_review_limit": self._settings.flagged_review_limit,
        }
        if record_type == RecordType.INVENTORY:
            return InventoryTransformOrchestrator(
                store=repos.inventory,
                classifier=self._classifier,
                unit_normalizer=self._unit_normalizer,
                unit_inferrer=self._unit_inferrer,
                calculator=self._calculator,
                default_stocking_level=self._settings.default_stocking_level,
                review_min_confidence=self._settings.review_min_confidence,
                **common,
            )
        if record_type == RecordType.SALES:
            return SalesTransformOrchestrator(
                inventory_store=repos.inventory,
                sales_store=repos.sales,
                skip_unmapped=self._settings.skip_unmapped_sales,
                **common,
            )
        raise TransformPreconditionError(
            code="UNSUPPORTED_RECORD_TYPE",
            message=f"No transformer for record type {record_type!r}",
        )

    def _execute(
        self,
        *,
        db: Session,
        repos: TransformRepositories,
        orchestrator: TransformOrchestrator,
        tenant_id: str,
        source_provider: str,
        batches: Any,
        dry_run: bool,
        upload_id: uuid.UUID | None = None,
    ) -> TransformResult:
        run = repos.runs.create_run(
            tenant_id=tenant_id,
            record_type=orchestrator.record_type,
            source_provider=source_provider,
            dry_run=dry_run,
            upload_id=upload_id,
        )
        run_id = run.id
        db.commit()

        atomic = self._settings.atomic_runs and not dry_run
        on_batch_complete = None if (atomic or dry_run) else (lambda _batch_number: db.commit())

        try:
            result = orchestrator.run(
                tenant_id=tenant_id,
                source_provider=source_provider,
                batches=batches,
                dry_run=dry_run,
                on_batch_complete=on_batch_complete,
            )
        except Exception as exc:
            db.rollback()
            logger.exception(
                "Transform run crashed run_id=%s record_type=%s tenant=%s",
                run_id,
                orchestrator.record_type,
                tenant_id,
            )
            repos.runs.mark_failed(run_id=run_id, error_message=str(exc))
            db.commit()
            raise

        result.run_id = run_id
        result.upload_id = upload_id

        if result.exceeded_threshold:
            if atomic:
                db.rollback()
            else:
                db.commit()
            result.status = TransformRunStatus.FAILED
            error = TransformThresholdExceededError(
                result,
                flagged_limit=self._settings.flagged_review_limit,
            )
            repos.runs.mark_failed(run_id=run_id, error_message=str(error), result=result)
            db.commit()
            log_event(
                logger,
                logging.WARNING,
                "transform_run_failed",
                run_id=run_id,
                record_type=result.record_type,
                tenant_id=tenant_id,
                error_rate=result.error_rate,
                threshold_pct=result.threshold_pct,
                rolled_back=atomic,
            )
            raise error

        result.status = TransformRunStatus.COMPLETED
        repos.runs.mark_completed(run_id=run_id, result=result)
        db.commit()
        log_event(
            logger,
            logging.INFO,
            "transform_run_completed",
            run_id=run_id,
            record_type=result.record_type,
            tenant_id=tenant_id,
            dry_run=dry_run,
            **result.summary.to_dict(),
        )
        return result


@lru_cache(maxsize=1)
def get_transform_service() -> TransformService:
    """
    Build and cache the transform service with env-driven settings.
    """
    return TransformService(
        settings=get_transform_settings(),
        classifier=get_category_classifier(),
        unit_normalizer=get_unit_normalizer(),
        unit_inferrer=get_unit_inferrer(),
        calculator=get_variance_calculator(),
    )

"""
app/services/transform_orchestrators.py

Tier 1 -> tier 2 transform orchestrators for inventory items and sales
transactions.

Both orchestrators walk batches in order and rows one at a time, so a row's
upsert always observes earlier rows with the same idempotency key. Row
failures are caught, counted and sampled; only the run-level error-rate
gate decides the outcome, and that decision belongs to the caller.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Callable, ClassVar, Iterable, Protocol, Sequence

from app.domain.reconciliation import (
    CanonicalInventoryItem,
    CanonicalSalesTransaction,
    ClassificationResult,
    MatchType,
    ReviewFlag,
    ReviewReason,
    RowAction,
    RowFailure,
    RowOutcome,
    StockLevels,
    TransformResult,
    UpsertOutcome,
)
from app.domain.source_records import (
    InventorySourceRecord,
    SalesSourceRecord,
    to_inventory_source,
    to_sales_source,
)
from app.logging_utils import log_event
from app.services.category_classifier import FALLBACK_CLASSIFICATION, CategoryClassifier
from app.services.unit_normalizer import UnitInferrer, UnitNormalizer
from app.services.variance_calculator import VarianceThresholdCalculator
from db.models.upload import RecordType

logger = logging.getLogger(__name__)

_TWO_PLACES = Decimal("0.01")
_FOUR_PLACES = Decimal("0.0001")


# ---------------------------------------------------------------------------
# Store contracts
# ---------------------------------------------------------------------------


class InventoryItemStore(Protocol):
    def find_inventory_item_id(
        self,
        *,
        tenant_id: str,
        source_provider: str,
        source_item_id: str,
    ) -> uuid.UUID | None:
        ...

    def find_inventory_item_id_by_name(self, *, tenant_id: str, name: str) -> uuid.UUID | None:
        ...

    def upsert_inventory_item(self, item: CanonicalInventoryItem) -> UpsertOutcome:
        ...


class SalesTransactionStore(Protocol):
    def sales_transaction_exists(self, *, source_provider: str, source_line_item_id: str) -> bool:
        ...

    def insert_sales_transaction(self, txn: CanonicalSalesTransaction) -> UpsertOutcome:
        ...


BatchCallback = Callable[[int], None]


def compute_error_rate(errors: int, processed: int) -> float:
    """
    Error rate as a percentage of processed rows; 0 when nothing was processed.
    """

    if processed <= 0:
        return 0.0
    return round(errors / processed * 100, 3)


def determine_stock_levels(
    minimum: Decimal | None,
    maximum: Decimal | None,
    default_stocking_level: float,
) -> StockLevels:
    """
    Stocking level is the max bound, else the min bound, else the default.
    Missing bounds derive from it (min 30%, max 150%).
    """

    if maximum is not None and maximum > 0:
        level = float(maximum)
    elif minimum is not None and minimum > 0:
        level = float(minimum)
    else:
        level = default_stocking_level
    level_decimal = Decimal(str(level))
    return StockLevels(
        stocking_level=level,
        minimum_stock=minimum if minimum is not None else (level_decimal * Decimal("0.3")).quantize(_FOUR_PLACES),
        maximum_stock=maximum if maximum is not None else (level_decimal * Decimal("1.5")).quantize(_FOUR_PLACES),
    )


def _row_number(record: Any, position: int) -> int:
    row = record.get("row") if isinstance(record, Mapping) else getattr(record, "row", None)
    return row if isinstance(row, int) and row > 0 else position


class TransformOrchestrator:
    """
    Shared run loop: counting, error sampling and error-rate evaluation.
    """

    record_type: ClassVar[str]
    matching_keys: ClassVar[tuple[str, ...]]

    def __init__(
        self,
        *,
        error_threshold_pct: float = 5.0,
        max_error_details: int = 50,
        flagged_review_limit: int = 25,
    ) -> None:
        self._error_threshold_pct = error_threshold_pct
        self._max_error_details = max(1, max_error_details)
        self._flagged_review_limit = max(0, flagged_review_limit)

    def run(
        self,
        *,
        tenant_id: str,
        source_provider: str,
        batches: Iterable[Sequence[Any]],
        dry_run: bool = False,
        on_batch_complete: BatchCallback | None = None,
    ) -> TransformResult:
        result = TransformResult(
            record_type=self.record_type,
            source_provider=source_provider,
            tenant_id=tenant_id,
            dry_run=dry_run,
            threshold_pct=self._error_threshold_pct,
            item_matching={key: 0 for key in self.matching_keys},
        )

        # Keys a dry run would already have written earlier in this run.
        staged_keys: set[tuple[str, ...]] = set()
        position = 0
        for batch_number, batch in enumerate(batches):
            for record in batch:
                position += 1
                result.summary.processed += 1
                try:
                    outcome = self._transform_row(
                        record,
                        tenant_id=tenant_id,
                        dry_run=dry_run,
                        staged_keys=staged_keys,
                    )
                except Exception as exc:  # noqa: BLE001
                    row = _row_number(record, position)
                    result.summary.errors += 1
                    if len(result.errors) < self._max_error_details:
                        result.errors.append(RowFailure(row=row, message=str(exc)))
                    logger.error(
                        "Transform row failed record_type=%s provider=%s tenant=%s row=%s: %s",
                        self.record_type,
                        source_provider,
                        tenant_id,
                        row,
                        exc,
                    )
                    continue
                self._record_outcome(result, outcome)

            if on_batch_complete is not None:
                on_batch_complete(batch_number)

        result.error_rate = compute_error_rate(result.summary.errors, result.summary.processed)
        result.exceeded_threshold = result.error_rate > self._error_threshold_pct
        log_event(
            logger,
            logging.WARNING if result.exceeded_threshold else logging.INFO,
            "transform_run_finished",
            record_type=self.record_type,
            provider=source_provider,
            tenant_id=tenant_id,
            dry_run=dry_run,
            error_rate=result.error_rate,
            threshold_pct=self._error_threshold_pct,
            **result.summary.to_dict(),
        )
        return result

    def _record_outcome(self, result: TransformResult, outcome: RowOutcome) -> None:
        if outcome.action == RowAction.CREATED:
            result.summary.created += 1
        elif outcome.action == RowAction.UPDATED:
            result.summary.updated += 1
        else:
            result.summary.skipped += 1

        key = self._matching_key(outcome)
        result.item_matching[key] = result.item_matching.get(key, 0) + 1

        if outcome.flag is not None and len(result.flagged_for_review) < self._flagged_review_limit:
            result.flagged_for_review.append(outcome.flag)

    def _transform_row(
        self,
        record: Any,
        *,
        tenant_id: str,
        dry_run: bool,
        staged_keys: set[tuple[str, ...]],
    ) -> RowOutcome:
        raise NotImplementedError

    def _matching_key(self, outcome: RowOutcome) -> str:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class InventoryTransformOrchestrator(TransformOrchestrator):
    """
    classify -> normalize unit -> variance thresholds -> idempotent upsert.
    """

    record_type = RecordType.INVENTORY
    matching_keys = ("auto_linked", "needs_review")

    def __init__(
        self,
        *,
        store: InventoryItemStore,
        classifier: CategoryClassifier,
        unit_normalizer: UnitNormalizer,
        unit_inferrer: UnitInferrer,
        calculator: VarianceThresholdCalculator,
        default_stocking_level: float = 10.0,
        review_min_confidence: float = 0.8,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._store = store
        self._classifier = classifier
        self._unit_normalizer = unit_normalizer
        self._unit_inferrer = unit_inferrer
        self._calculator = calculator
        self._default_stocking_level = default_stocking_level
        self._review_min_confidence = review_min_confidence

    def build_item(
        self,
        source: InventorySourceRecord,
        *,
        tenant_id: str,
    ) -> tuple[CanonicalInventoryItem, ReviewFlag | None]:
        classification = self._classifier.classify(source.category_label)
        if classification is None:
            classification = FALLBACK_CLASSIFICATION
            logger.info(
                "Category fallback applied row=%s label=%r category=%s",
                source.row,
                source.category_label,
                classification.category,
            )

        inference = None
        if source.unit_label:
            unit = self._unit_normalizer.normalize(source.unit_label)
        else:
            inference = self._unit_inferrer.infer(
                source.name,
                variation_name=source.unit_hint,
                category=classification.category,
            )
            unit = self._unit_normalizer.normalize(inference.unit)

        levels = determine_stock_levels(
            source.minimum_stock,
            source.maximum_stock,
            self._default_stocking_level,
        )
        threshold = self._calculator.calculate(
            unit_cost=source.unit_cost,
            unit=unit,
            category=classification.category,
            stocking_level=levels.stocking_level,
        )
        flag = self._review_flag(source, classification)

        payload = source.payload.to_json()
        payload["classification"] = {"label": source.category_label, **classification.to_dict()}
        payload["unit_inference"] = inference.to_dict() if inference else None
        payload["variance"] = threshold.to_dict()

        item = CanonicalInventoryItem(
            tenant_id=tenant_id,
            name=source.name,
            description=source.description,
            category=classification.category,
            unit=unit,
            unit_cost=source.unit_cost.quantize(_FOUR_PLACES),
            current_stock=source.current_stock if source.current_stock is not None else Decimal("0"),
            minimum_stock=levels.minimum_stock,
            maximum_stock=levels.maximum_stock,
            storage_location=source.storage_location,
            variance_threshold_quantity=Decimal(str(threshold.quantity_threshold)).quantize(_TWO_PLACES),
            variance_threshold_dollar=Decimal(str(threshold.dollar_threshold)).quantize(_TWO_PLACES),
            high_value_flag=threshold.high_value,
            needs_review=flag is not None,
            source_provider=source.provider,
            source_item_id=source.source_item_id,
            provider_payload=payload,
        )
        return item, flag

    def _transform_row(
        self,
        record: Any,
        *,
        tenant_id: str,
        dry_run: bool,
        staged_keys: set[tuple[str, ...]],
    ) -> RowOutcome:
        source = to_inventory_source(record)
        item, flag = self.build_item(source, tenant_id=tenant_id)

        if dry_run:
            key = item.idempotency_key
            existing = key in staged_keys or self._store.find_inventory_item_id(
                tenant_id=tenant_id,
                source_provider=item.source_provider,
                source_item_id=item.source_item_id,
            ) is not None
            staged_keys.add(key)
            action = RowAction.UPDATED if existing else RowAction.CREATED
            return RowOutcome(action=action, linked=existing, flag=flag)

        outcome = self._store.upsert_inventory_item(item)
        action = RowAction.CREATED if outcome.created else RowAction.UPDATED
        return RowOutcome(action=action, linked=not outcome.created, flag=flag)

    def _matching_key(self, outcome: RowOutcome) -> str:
        return "auto_linked" if outcome.action == RowAction.UPDATED else "needs_review"

    def _review_flag(
        self,
        source: InventorySourceRecord,
        classification: ClassificationResult,
    ) -> ReviewFlag | None:
        if classification.match_type == MatchType.FALLBACK:
            return ReviewFlag(
                name=source.name,
                reason=ReviewReason.UNMAPPED_CATEGORY,
                details={"category": source.category_label},
            )
        if classification.confidence < self._review_min_confidence:
            return ReviewFlag(
                name=source.name,
                reason=ReviewReason.LOW_CATEGORY_CONFIDENCE,
                details={
                    "category": source.category_label,
                    "mapped_category": classification.category,
                    "confidence": round(classification.confidence, 2),
                },
            )
        if not source.has_stable_identifier:
            return ReviewFlag(name=source.name, reason=ReviewReason.MISSING_IDENTIFIERS)
        return None


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


class SalesTransformOrchestrator(TransformOrchestrator):
    """
    Resolves each line item to an inventory item and appends it once.

    Line items with no catalog reference, or one that resolves to nothing,
    are skipped rather than counted as errors.
    """

    record_type = RecordType.SALES
    matching_keys = ("matched", "unmatched", "already_applied")

    def __init__(
        self,
        *,
        inventory_store: InventoryItemStore,
        sales_store: SalesTransactionStore,
        skip_unmapped: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._inventory_store = inventory_store
        self._sales_store = sales_store
        self._skip_unmapped = skip_unmapped

    def _transform_row(
        self,
        record: Any,
        *,
        tenant_id: str,
        dry_run: bool,
        staged_keys: set[tuple[str, ...]],
    ) -> RowOutcome:
        source = to_sales_source(record)
        if not source.catalog_ref and not (source.resolve_by_name and source.item_name):
            logger.debug(
                "Sales line skipped, no catalog reference row=%s line=%s",
                source.row,
                source.source_line_item_id,
            )
            return RowOutcome(action=RowAction.SKIPPED, linked=False, note="no_catalog_reference")

        inventory_item_id = self._resolve_inventory_item(source, tenant_id=tenant_id)
        flag: ReviewFlag | None = None
        if inventory_item_id is None:
            flag = ReviewFlag(
                name=source.item_name,
                reason=ReviewReason.INVENTORY_MATCH_NOT_FOUND,
                details={
                    "order_id": source.source_order_id,
                    "line_item_id": source.source_line_item_id,
                    "catalog_ref": source.catalog_ref,
                },
            )
            if self._skip_unmapped:
                return RowOutcome(action=RowAction.SKIPPED, linked=False, flag=flag, note="unmapped")

        txn = self._build_transaction(source, tenant_id=tenant_id, inventory_item_id=inventory_item_id)
        linked = inventory_item_id is not None

        if dry_run:
            key = txn.idempotency_key
            exists = key in staged_keys or self._sales_store.sales_transaction_exists(
                source_provider=txn.source_provider,
                source_line_item_id=txn.source_line_item_id,
            )
            staged_keys.add(key)
            if exists:
                return RowOutcome(action=RowAction.SKIPPED, linked=linked, flag=flag, note="already_applied")
            return RowOutcome(action=RowAction.CREATED, linked=linked, flag=flag)

        outcome = self._sales_store.insert_sales_transaction(txn)
        if not outcome.created:
            return RowOutcome(action=RowAction.SKIPPED, linked=linked, flag=flag, note="already_applied")
        return RowOutcome(action=RowAction.CREATED, linked=linked, flag=flag)

    def _matching_key(self, outcome: RowOutcome) -> str:
        if outcome.note == "already_applied":
            return "already_applied"
        return "matched" if outcome.linked else "unmatched"

    def _resolve_inventory_item(self, source: SalesSourceRecord, *, tenant_id: str) -> uuid.UUID | None:
        if source.catalog_ref:
            item_id = self._inventory_store.find_inventory_item_id(
                tenant_id=tenant_id,
                source_provider=source.provider,
                source_item_id=source.catalog_ref,
            )
            if item_id is not None:
                return item_id
        if source.resolve_by_name and source.item_name:
            return self._inventory_store.find_inventory_item_id_by_name(
                tenant_id=tenant_id,
                name=source.item_name,
            )
        return None

    def _build_transaction(
        self,
        source: SalesSourceRecord,
        *,
        tenant_id: str,
        inventory_item_id: uuid.UUID | None,
    ) -> CanonicalSalesTransaction:
        payload = source.payload.to_json()
        payload["inventory_match"] = {
            "catalog_ref": source.catalog_ref,
            "resolved": inventory_item_id is not None,
        }
        return CanonicalSalesTransaction(
            tenant_id=tenant_id,
            inventory_item_id=inventory_item_id,
            transaction_date=source.transaction_date,
            quantity=str(source.quantity),
            unit_price=source.unit_price,
            total_amount=source.total_amount,
            source_provider=source.provider,
            source_order_id=source.source_order_id,
            source_line_item_id=source.source_line_item_id,
            provider_payload=payload,
        )

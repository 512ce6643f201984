"""
app/domain/reconciliation.py

Domain models shared by the classifier, the threshold calculator and the
tier 1 -> tier 2 transform orchestrators.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


class MatchType:
    EXACT = "exact"
    FUZZY = "fuzzy"
    FALLBACK = "fallback"


class ReviewReason:
    UNMAPPED_CATEGORY = "unmapped_category"
    LOW_CATEGORY_CONFIDENCE = "low_category_confidence"
    MISSING_IDENTIFIERS = "missing_identifiers"
    INVENTORY_MATCH_NOT_FOUND = "inventory_match_not_found"


class RowAction:
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ClassificationResult:
    """
    Canonical category chosen for a provider label.
    """

    category: str
    confidence: float
    match_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "confidence": round(self.confidence, 4),
            "match_type": self.match_type,
        }


@dataclass(frozen=True)
class UnitInference:
    """
    Unit token inferred from free text (item / variation names).
    """

    unit: str
    confidence: float
    match_type: str
    matched_pattern: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.unit,
            "confidence": self.confidence,
            "match_type": self.match_type,
            "matched_pattern": self.matched_pattern,
        }


@dataclass(frozen=True)
class VarianceBreakdown:
    """
    Every factor that contributed to a variance threshold.
    """

    unit_cost: float
    unit: str
    category: str
    stocking_level: float
    base_pct: float
    category_adjustment: float
    unit_adjustment: float
    final_pct: float
    high_value_boundary: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_cost": self.unit_cost,
            "unit": self.unit,
            "category": self.category,
            "stocking_level": self.stocking_level,
            "base_pct": self.base_pct,
            "category_adjustment": self.category_adjustment,
            "unit_adjustment": self.unit_adjustment,
            "final_pct": self.final_pct,
            "high_value_boundary": self.high_value_boundary,
        }


@dataclass(frozen=True)
class VarianceThreshold:
    """
    Acceptable quantity / dollar deviation for one inventory item.

    ``error`` is set (and every number zeroed) when inputs were invalid.
    """

    quantity_threshold: float
    dollar_threshold: float
    high_value: bool
    breakdown: VarianceBreakdown | None = None
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "quantity_threshold": self.quantity_threshold,
            "dollar_threshold": self.dollar_threshold,
            "high_value": self.high_value,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class ReviewFlag:
    """
    Reason a produced entity needs a human look.
    """

    name: str | None
    reason: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "reason": self.reason, **self.details}


@dataclass(frozen=True)
class StockLevels:
    stocking_level: float
    minimum_stock: Decimal
    maximum_stock: Decimal


@dataclass(frozen=True)
class CanonicalInventoryItem:
    """
    Tier 2 inventory item; ``(tenant_id, source_provider, source_item_id)``
    is the idempotency key.
    """

    tenant_id: str
    name: str
    category: str
    unit: str
    unit_cost: Decimal
    variance_threshold_quantity: Decimal
    variance_threshold_dollar: Decimal
    high_value_flag: bool
    source_provider: str
    source_item_id: str
    provider_payload: dict[str, Any]
    description: str | None = None
    current_stock: Decimal = Decimal("0")
    minimum_stock: Decimal = Decimal("0")
    maximum_stock: Decimal = Decimal("0")
    storage_location: str | None = None
    needs_review: bool = False

    @property
    def idempotency_key(self) -> tuple[str, str, str]:
        return (self.tenant_id, self.source_provider, self.source_item_id)


@dataclass(frozen=True)
class CanonicalSalesTransaction:
    """
    Tier 2 sales line; ``(source_provider, source_line_item_id)`` is unique.

    ``quantity`` is an exact decimal string.
    """

    tenant_id: str
    inventory_item_id: uuid.UUID | None
    transaction_date: datetime
    quantity: str
    unit_price: Decimal | None
    total_amount: Decimal | None
    source_provider: str
    source_order_id: str | None
    source_line_item_id: str
    provider_payload: dict[str, Any]

    @property
    def idempotency_key(self) -> tuple[str, str]:
        return (self.source_provider, self.source_line_item_id)


@dataclass(frozen=True)
class UpsertOutcome:
    entity_id: uuid.UUID | None
    created: bool


@dataclass(frozen=True)
class RowOutcome:
    """
    Result of transforming one source row.
    """

    action: str
    linked: bool
    flag: ReviewFlag | None = None
    note: str | None = None


@dataclass(frozen=True)
class RowFailure:
    row: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "message": self.message}


@dataclass
class TransformSummary:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass
class TransformResult:
    """
    Aggregated outcome of one orchestrator run.

    ``errors`` holds up to the configured number of row failures;
    ``summary.errors`` is the full count.
    """

    record_type: str
    source_provider: str
    tenant_id: str
    dry_run: bool
    threshold_pct: float
    summary: TransformSummary = field(default_factory=TransformSummary)
    errors: list[RowFailure] = field(default_factory=list)
    item_matching: dict[str, int] = field(default_factory=dict)
    flagged_for_review: list[ReviewFlag] = field(default_factory=list)
    error_rate: float = 0.0
    exceeded_threshold: bool = False
    run_id: uuid.UUID | None = None
    upload_id: uuid.UUID | None = None
    status: str | None = None

    def summary_payload(self, *, flagged_limit: int | None = None) -> dict[str, Any]:
        flagged = self.flagged_for_review
        if flagged_limit is not None:
            flagged = flagged[:flagged_limit]
        return {
            **self.summary.to_dict(),
            "item_matching": dict(self.item_matching),
            "flagged_for_review": [flag.to_dict() for flag in flagged],
        }

    def to_dict(self, *, flagged_limit: int | None = None) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id) if self.run_id else None,
            "upload_id": str(self.upload_id) if self.upload_id else None,
            "tenant_id": self.tenant_id,
            "record_type": self.record_type,
            "source_provider": self.source_provider,
            "status": self.status,
            "dry_run": self.dry_run,
            "error_rate": self.error_rate,
            "threshold_pct": self.threshold_pct,
            "exceeded_threshold": self.exceeded_threshold,
            "summary": self.summary_payload(flagged_limit=flagged_limit),
            "errors": [error.to_dict() for error in self.errors],
        }

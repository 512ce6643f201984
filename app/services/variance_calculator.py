"""
app/services/variance_calculator.py

Multi-factor variance threshold calculator.

final_pct = max(1, base_pct(unit_cost) + category_adj + unit_adj)
quantity  = stocking_level * final_pct / 100
dollar    = quantity * unit_cost
high      = dollar >= high_value_boundary
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from app.config import get_transform_settings
from app.domain.reconciliation import VarianceBreakdown, VarianceThreshold
from app.services.unit_normalizer import CanonicalUnit, UnitNormalizer, get_unit_normalizer

logger = logging.getLogger(__name__)

# (exclusive upper cost bound, base tolerance pct)
COST_TIERS: tuple[tuple[float, float], ...] = (
    (5.0, 20.0),
    (20.0, 15.0),
    (100.0, 10.0),
    (math.inf, 5.0),
)

CATEGORY_ADJUSTMENTS: Mapping[str, float] = MappingProxyType(
    {
        "produce": 5.0,
        "proteins": -5.0,
        "dairy": 3.0,
        "dry_goods": 0.0,
        "beverages": 10.0,
        "frozen": 0.0,
        "paper_disposables": 15.0,
        "cleaning_chemicals": 5.0,
    }
)

UNIT_ADJUSTMENTS: Mapping[str, float] = MappingProxyType(
    {
        CanonicalUnit.PIECES: 30.0,
        CanonicalUnit.CASES: -5.0,
        CanonicalUnit.BOXES: -5.0,
    }
)

MIN_FINAL_PCT = 1.0


def base_percentage(unit_cost: float) -> float:
    for upper_bound, pct in COST_TIERS:
        if unit_cost < upper_bound:
            return pct
    return COST_TIERS[-1][1]


def _as_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class VarianceThresholdCalculator:
    """
    Deterministic threshold calculator; policies are fixed per instance.
    """

    def __init__(
        self,
        *,
        high_value_boundary: float = 50.0,
        category_adjustments: Mapping[str, float] | None = None,
        unit_adjustments: Mapping[str, float] | None = None,
        unit_normalizer: UnitNormalizer | None = None,
    ) -> None:
        if high_value_boundary <= 0:
            raise ValueError("high_value_boundary must be positive")
        self._high_value_boundary = float(high_value_boundary)
        self._category_adjustments = MappingProxyType(
            dict(category_adjustments if category_adjustments is not None else CATEGORY_ADJUSTMENTS)
        )
        self._unit_adjustments = MappingProxyType(
            dict(unit_adjustments if unit_adjustments is not None else UNIT_ADJUSTMENTS)
        )
        self._unit_normalizer = unit_normalizer or UnitNormalizer()

    @property
    def high_value_boundary(self) -> float:
        return self._high_value_boundary

    def calculate(
        self,
        *,
        unit_cost: object,
        unit: str | None,
        category: str | None,
        stocking_level: object,
    ) -> VarianceThreshold:
        """
        Invalid inputs return a zeroed threshold with ``error`` set.
        """

        cost = _as_number(unit_cost)
        level = _as_number(stocking_level)
        if cost is None or cost < 0:
            return self._invalid(f"unit_cost must be a non-negative number, got {unit_cost!r}")
        if level is None or level <= 0:
            return self._invalid(f"stocking_level must be a positive number, got {stocking_level!r}")

        canonical_unit = self._unit_normalizer.normalize(unit)
        base_pct = base_percentage(cost)
        category_adj = self._category_adjustments.get(category or "", 0.0)
        unit_adj = self._unit_adjustments.get(canonical_unit, 0.0)
        final_pct = max(MIN_FINAL_PCT, base_pct + category_adj + unit_adj)

        quantity = level * final_pct / 100
        dollar = quantity * cost

        return VarianceThreshold(
            quantity_threshold=round(quantity, 2),
            dollar_threshold=round(dollar, 2),
            high_value=dollar >= self._high_value_boundary,
            breakdown=VarianceBreakdown(
                unit_cost=cost,
                unit=canonical_unit,
                category=category or "",
                stocking_level=level,
                base_pct=base_pct,
                category_adjustment=category_adj,
                unit_adjustment=unit_adj,
                final_pct=final_pct,
                high_value_boundary=self._high_value_boundary,
            ),
        )

    def with_high_value_boundary(self, boundary: float) -> "VarianceThresholdCalculator":
        return VarianceThresholdCalculator(
            high_value_boundary=boundary,
            category_adjustments=self._category_adjustments,
            unit_adjustments=self._unit_adjustments,
            unit_normalizer=self._unit_normalizer,
        )

    def with_category_adjustment(self, category: str, adjustment: float) -> "VarianceThresholdCalculator":
        return VarianceThresholdCalculator(
            high_value_boundary=self._high_value_boundary,
            category_adjustments={**self._category_adjustments, category: float(adjustment)},
            unit_adjustments=self._unit_adjustments,
            unit_normalizer=self._unit_normalizer,
        )

    def with_unit_adjustment(self, unit: str, adjustment: float) -> "VarianceThresholdCalculator":
        canonical_unit = self._unit_normalizer.normalize(unit)
        return VarianceThresholdCalculator(
            high_value_boundary=self._high_value_boundary,
            category_adjustments=self._category_adjustments,
            unit_adjustments={**self._unit_adjustments, canonical_unit: float(adjustment)},
            unit_normalizer=self._unit_normalizer,
        )

    def _invalid(self, message: str) -> VarianceThreshold:
        logger.warning("Variance threshold not computed: %s", message)
        return VarianceThreshold(
            quantity_threshold=0.0,
            dollar_threshold=0.0,
            high_value=False,
            error=message,
        )


@lru_cache(maxsize=1)
def get_variance_calculator() -> VarianceThresholdCalculator:
    settings = get_transform_settings()
    return VarianceThresholdCalculator(
        high_value_boundary=settings.high_value_boundary,
        unit_normalizer=get_unit_normalizer(),
    )

"""
tests/test_variance_calculator.py

Pytest unit tests for VarianceThresholdCalculator.

All tests are pure Python: no database, deterministic inputs only.
"""

from __future__ import annotations

import math

import pytest

from app.services.variance_calculator import VarianceThresholdCalculator, base_percentage


@pytest.fixture()
def calc() -> VarianceThresholdCalculator:
    return VarianceThresholdCalculator()


# ---------------------------------------------------------------------------
# Cost tiers
# ---------------------------------------------------------------------------


class TestBasePercentage:
    @pytest.mark.parametrize(
        ("unit_cost", "expected"),
        [(0.0, 20.0), (4.99, 20.0), (5.0, 15.0), (19.99, 15.0), (20.0, 10.0), (99.99, 10.0), (100.0, 5.0), (1e9, 5.0)],
    )
    def test_tier_boundaries(self, unit_cost: float, expected: float) -> None:
        assert base_percentage(unit_cost) == expected


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


class TestCalculate:
    def test_each_unit_adds_piece_adjustment(self, calc: VarianceThresholdCalculator) -> None:
        result = calc.calculate(unit_cost=150, unit="each", category="dry_goods", stocking_level=10)

        assert result.is_valid
        assert result.breakdown.final_pct == 35.0
        assert result.breakdown.unit == "pieces"
        assert result.quantity_threshold == 3.5
        assert result.dollar_threshold == 525.0
        assert result.high_value is True

    def test_category_adjustment(self, calc: VarianceThresholdCalculator) -> None:
        result = calc.calculate(unit_cost=3.0, unit="lb", category="produce", stocking_level=20)

        assert result.breakdown.base_pct == 20.0
        assert result.breakdown.category_adjustment == 5.0
        assert result.quantity_threshold == 5.0
        assert result.dollar_threshold == 15.0
        assert result.high_value is False

    def test_final_percentage_never_below_one(self, calc: VarianceThresholdCalculator) -> None:
        harsh = calc.with_category_adjustment("proteins", -50)
        result = harsh.calculate(unit_cost=200, unit="case", category="proteins", stocking_level=100)

        assert result.breakdown.final_pct == 1.0
        assert result.quantity_threshold == 1.0

    def test_unknown_category_has_no_adjustment(self, calc: VarianceThresholdCalculator) -> None:
        result = calc.calculate(unit_cost=10, unit="kg", category="tools", stocking_level=10)
        assert result.breakdown.category_adjustment == 0.0
        assert result.breakdown.final_pct == 15.0

    def test_high_value_boundary_is_inclusive(self) -> None:
        calc = VarianceThresholdCalculator(high_value_boundary=15.0)
        result = calc.calculate(unit_cost=3.0, unit="lb", category="produce", stocking_level=20)
        assert result.high_value is True

    def test_is_deterministic(self, calc: VarianceThresholdCalculator) -> None:
        first = calc.calculate(unit_cost=12.34, unit="oz", category="dairy", stocking_level=7)
        second = calc.calculate(unit_cost=12.34, unit="oz", category="dairy", stocking_level=7)
        assert first == second

    def test_builders_do_not_mutate(self, calc: VarianceThresholdCalculator) -> None:
        calc.with_unit_adjustment("lb", 50)
        result = calc.calculate(unit_cost=3.0, unit="lb", category="produce", stocking_level=20)
        assert result.breakdown.unit_adjustment == 0.0


class TestInvalidInputs:
    @pytest.mark.parametrize(
        ("unit_cost", "stocking_level"),
        [(-1, 10), ("abc", 10), (math.nan, 10), (True, 10), (5, 0), (5, -3), (5, None)],
    )
    def test_invalid_inputs_return_zeroed_error(
        self,
        calc: VarianceThresholdCalculator,
        unit_cost: object,
        stocking_level: object,
    ) -> None:
        result = calc.calculate(unit_cost=unit_cost, unit="lb", category="produce", stocking_level=stocking_level)

        assert not result.is_valid
        assert result.quantity_threshold == 0.0
        assert result.dollar_threshold == 0.0
        assert result.high_value is False

    def test_non_positive_boundary_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            VarianceThresholdCalculator(high_value_boundary=0)

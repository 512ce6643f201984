"""
app/services/unit_normalizer.py

Unit-of-measure handling for inventory items.

``UnitNormalizer`` maps any unit token onto the closed canonical unit set
and never fails: unknown tokens degrade to ``pieces``. ``UnitInferrer``
guesses a unit token from item / variation names when the source has no
explicit unit column (POS catalogs).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from app.domain.reconciliation import UnitInference

logger = logging.getLogger(__name__)


class CanonicalUnit:
    LBS = "lbs"
    OZ = "oz"
    KG = "kg"
    G = "g"
    GALLONS = "gallons"
    LITERS = "liters"
    CUPS = "cups"
    PIECES = "pieces"
    BOXES = "boxes"
    CASES = "cases"


CANONICAL_UNITS: frozenset[str] = frozenset(
    {
        CanonicalUnit.LBS,
        CanonicalUnit.OZ,
        CanonicalUnit.KG,
        CanonicalUnit.G,
        CanonicalUnit.GALLONS,
        CanonicalUnit.LITERS,
        CanonicalUnit.CUPS,
        CanonicalUnit.PIECES,
        CanonicalUnit.BOXES,
        CanonicalUnit.CASES,
    }
)


def _aliases(unit: str, *tokens: str) -> dict[str, str]:
    return {token: unit for token in tokens}


UNIT_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        **_aliases(CanonicalUnit.LBS, "lb", "lbs", "pound", "pounds", "#"),
        **_aliases(CanonicalUnit.OZ, "oz", "ounce", "ounces", "fl oz", "floz", "fluid ounce", "fluid ounces"),
        **_aliases(CanonicalUnit.KG, "kg", "kgs", "kilogram", "kilograms"),
        **_aliases(CanonicalUnit.G, "g", "gr", "gram", "grams"),
        **_aliases(CanonicalUnit.GALLONS, "gal", "gals", "gallon", "gallons"),
        **_aliases(
            CanonicalUnit.LITERS,
            "l", "liter", "liters", "litre", "litres",
            "ml", "milliliter", "milliliters", "qt", "quart", "quarts", "pt", "pint", "pints",
        ),
        **_aliases(CanonicalUnit.CUPS, "cup", "cups"),
        **_aliases(
            CanonicalUnit.PIECES,
            "ea", "each", "pc", "pcs", "piece", "pieces", "count", "ct",
            "bag", "bags", "can", "cans", "jar", "jars", "bottle", "bottles",
            "container", "containers", "bulk",
        ),
        **_aliases(CanonicalUnit.BOXES, "box", "boxes", "bx"),
        **_aliases(CanonicalUnit.CASES, "case", "cases", "cs"),
    }
)


def normalize_token(raw: object) -> str:
    return " ".join(str(raw).lower().split())


class UnitNormalizer:
    """
    Total mapping from unit tokens to canonical units.
    """

    def __init__(
        self,
        aliases: Mapping[str, str] | None = None,
        *,
        default_unit: str = CanonicalUnit.PIECES,
    ) -> None:
        self._aliases: Mapping[str, str] = MappingProxyType(
            dict(aliases if aliases is not None else UNIT_ALIASES)
        )
        self._default_unit = default_unit

    def normalize(self, raw_unit: object) -> str:
        if raw_unit is None:
            return self._default_unit
        token = normalize_token(raw_unit)
        if token in CANONICAL_UNITS:
            return token
        unit = self._aliases.get(token)
        if unit is None:
            logger.debug("Unrecognized unit token=%r, using %s", raw_unit, self._default_unit)
            return self._default_unit
        return unit

    def extend(self, aliases: Mapping[str, str]) -> "UnitNormalizer":
        additions: dict[str, str] = {}
        for token, unit in aliases.items():
            if unit not in CANONICAL_UNITS:
                raise ValueError(f"Unknown canonical unit: {unit!r}")
            additions[normalize_token(token)] = unit
        return UnitNormalizer({**self._aliases, **additions}, default_unit=self._default_unit)


# ---------------------------------------------------------------------------
# Inference from free text
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UnitPattern:
    pattern: re.Pattern[str]
    unit: str
    confidence: float


def _quantity_pattern(tokens: str, unit: str, confidence: float) -> UnitPattern:
    return UnitPattern(re.compile(rf"(\d+\s*)({tokens})(\b|$)", re.IGNORECASE), unit, confidence)


def _word_pattern(tokens: str, unit: str, confidence: float) -> UnitPattern:
    return UnitPattern(re.compile(rf"\b({tokens})\b", re.IGNORECASE), unit, confidence)


UNIT_PATTERNS: tuple[UnitPattern, ...] = (
    # weight
    _quantity_pattern("oz|ounce|ounces", "oz", 0.95),
    _quantity_pattern("lb|lbs|pound|pounds", "lb", 0.95),
    _quantity_pattern("kg|kilogram|kilograms", "kg", 0.95),
    _quantity_pattern("g|gram|grams", "g", 0.9),
    # volume
    _quantity_pattern("gal|gallon|gallons", "gal", 0.95),
    _quantity_pattern("qt|quart|quarts", "qt", 0.95),
    _quantity_pattern("pt|pint|pints", "pt", 0.95),
    _quantity_pattern(r"fl\s*oz|fluid\s*ounce|fluid\s*ounces", "fl oz", 0.95),
    _quantity_pattern("l|liter|liters|litre|litres", "L", 0.95),
    _quantity_pattern("ml|milliliter|milliliters", "mL", 0.95),
    _quantity_pattern("cup|cups", "cup", 0.9),
    # count
    _quantity_pattern("ea|each", "ea", 0.9),
    _quantity_pattern("pc|pcs|piece|pieces", "ea", 0.85),
    _quantity_pattern("count", "ea", 0.85),
    _word_pattern("whole|individual", "ea", 0.7),
    # containers
    _quantity_pattern("case|cases", "case", 0.9),
    _quantity_pattern("box|boxes", "box", 0.85),
    _quantity_pattern("bag|bags", "bag", 0.85),
    _quantity_pattern("can|cans", "can", 0.85),
    _quantity_pattern("jar|jars", "jar", 0.85),
    _quantity_pattern("bottle|bottles", "bottle", 0.85),
    _quantity_pattern("container|containers", "container", 0.8),
    _word_pattern("bulk|wholesale", "bulk", 0.7),
)

CATEGORY_DEFAULT_UNITS: Mapping[str, str] = MappingProxyType(
    {
        "produce": "lb",
        "proteins": "lb",
        "dairy": "gal",
        "dry_goods": "lb",
        "beverages": "gal",
        "frozen": "lb",
        "paper_disposables": "ea",
        "cleaning_chemicals": "gal",
    }
)

GLOBAL_DEFAULT_UNIT = "lb"


class UnitInferrer:
    """
    Infers a unit token from item and variation names.

    The highest-confidence matching pattern wins (first on ties); otherwise
    the category default (0.6), otherwise ``lb`` (0.5).
    """

    def __init__(
        self,
        patterns: tuple[UnitPattern, ...] = UNIT_PATTERNS,
        category_defaults: Mapping[str, str] = CATEGORY_DEFAULT_UNITS,
    ) -> None:
        self._patterns = patterns
        self._category_defaults = category_defaults

    def infer(
        self,
        item_name: str | None,
        *,
        variation_name: str | None = None,
        category: str | None = None,
    ) -> UnitInference:
        if not isinstance(item_name, str) or not item_name.strip():
            return UnitInference(unit=GLOBAL_DEFAULT_UNIT, confidence=0.5, match_type="global_default")

        text = " ".join(part for part in (item_name, variation_name) if part).lower()
        best: UnitPattern | None = None
        for candidate in self._patterns:
            if candidate.pattern.search(text) and (best is None or candidate.confidence > best.confidence):
                best = candidate

        if best is not None:
            return UnitInference(
                unit=best.unit,
                confidence=best.confidence,
                match_type="pattern",
                matched_pattern=best.pattern.pattern,
            )

        if category and category in self._category_defaults:
            return UnitInference(
                unit=self._category_defaults[category],
                confidence=0.6,
                match_type="category_default",
            )

        logger.info("Unit inference fell back to %s item=%r category=%r", GLOBAL_DEFAULT_UNIT, item_name, category)
        return UnitInference(unit=GLOBAL_DEFAULT_UNIT, confidence=0.5, match_type="global_default")

    def with_pattern(self, pattern: str, unit: str, confidence: float = 0.8) -> "UnitInferrer":
        extra = UnitPattern(re.compile(pattern, re.IGNORECASE), unit, confidence)
        return UnitInferrer(self._patterns + (extra,), self._category_defaults)


@lru_cache(maxsize=1)
def get_unit_normalizer() -> UnitNormalizer:
    return UnitNormalizer()


@lru_cache(maxsize=1)
def get_unit_inferrer() -> UnitInferrer:
    return UnitInferrer()

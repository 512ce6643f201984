"""
app/services/category_classifier.py

Maps free-text POS / CSV category labels onto the closed set of canonical
ingredient categories.

Lookup is exact first, then approximate: the table key with the smallest
Levenshtein distance (at most ``max_distance``) is accepted when its
confidence ``1 - distance / max(len(label), len(key))`` reaches
``min_confidence``. The table is read-only; ``extend`` returns a new
classifier.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from rapidfuzz.distance import Levenshtein

from app.config import get_classifier_settings
from app.domain.reconciliation import ClassificationResult, MatchType

logger = logging.getLogger(__name__)


class CanonicalCategory:
    PRODUCE = "produce"
    PROTEINS = "proteins"
    DAIRY = "dairy"
    DRY_GOODS = "dry_goods"
    BEVERAGES = "beverages"
    FROZEN = "frozen"
    PAPER_DISPOSABLES = "paper_disposables"
    CLEANING_CHEMICALS = "cleaning_chemicals"


CANONICAL_CATEGORIES: frozenset[str] = frozenset(
    {
        CanonicalCategory.PRODUCE,
        CanonicalCategory.PROTEINS,
        CanonicalCategory.DAIRY,
        CanonicalCategory.DRY_GOODS,
        CanonicalCategory.BEVERAGES,
        CanonicalCategory.FROZEN,
        CanonicalCategory.PAPER_DISPOSABLES,
        CanonicalCategory.CLEANING_CHEMICALS,
    }
)

FALLBACK_CLASSIFICATION = ClassificationResult(
    category=CanonicalCategory.DRY_GOODS,
    confidence=0.3,
    match_type=MatchType.FALLBACK,
)


def _group(category: str, *labels: str) -> dict[str, str]:
    return {label: category for label in labels}


CATEGORY_TABLE: Mapping[str, str] = MappingProxyType(
    {
        **_group(
            CanonicalCategory.PRODUCE,
            "produce", "fresh produce", "fruits", "fruit", "vegetables", "vegetable",
            "veggies", "veggie", "fresh fruit", "fresh vegetables", "fresh veggies",
            "greens", "leafy greens", "salad greens", "herbs", "fresh herbs",
        ),
        **_group(
            CanonicalCategory.PROTEINS,
            "proteins", "protein", "meat", "meats", "poultry", "chicken", "beef", "pork",
            "seafood", "fish", "shellfish", "meats & seafood", "meat & seafood",
            "meats and seafood", "butcher", "fresh meat", "fresh seafood",
        ),
        **_group(
            CanonicalCategory.DAIRY,
            "dairy", "dairy products", "milk", "cheese", "cheeses", "cream", "butter",
            "yogurt", "eggs", "egg", "dairy & eggs", "dairy and eggs", "refrigerated dairy",
        ),
        **_group(
            CanonicalCategory.DRY_GOODS,
            "dry goods", "dry", "pantry", "pantry staples", "canned goods", "canned",
            "baking", "baking supplies", "flour", "sugar", "rice", "pasta", "grains",
            "cereals", "spices", "seasonings", "condiments", "sauces", "oils", "vinegars",
        ),
        **_group(
            CanonicalCategory.BEVERAGES,
            "beverages", "beverage", "drinks", "drink", "soda", "soft drinks", "juice",
            "juices", "coffee", "tea", "water", "bottled water", "sparkling water", "wine",
            "beer", "alcohol", "spirits", "liquor",
        ),
        **_group(
            CanonicalCategory.FROZEN,
            "frozen", "frozen foods", "frozen goods", "freezer", "ice cream",
            "frozen vegetables", "frozen fruit", "frozen meat", "frozen seafood",
        ),
        **_group(
            CanonicalCategory.PAPER_DISPOSABLES,
            "paper", "paper goods", "paper products", "disposables", "disposable", "to-go",
            "takeout", "packaging", "containers", "napkins", "cups", "plates", "utensils",
        ),
        **_group(
            CanonicalCategory.CLEANING_CHEMICALS,
            "cleaning", "cleaning supplies", "chemicals", "janitorial", "sanitation",
            "sanitizer", "disinfectant", "detergent", "soap",
        ),
    }
)


def normalize_label(label: str) -> str:
    return " ".join(label.lower().split())


def match_confidence(distance: int, label: str, key: str) -> float:
    longest = max(len(label), len(key))
    if longest == 0:
        return 1.0
    return max(0.0, 1.0 - distance / longest)


class CategoryClassifier:
    """
    Exact-then-fuzzy category classifier over an immutable label table.
    """

    def __init__(
        self,
        table: Mapping[str, str] | None = None,
        *,
        max_distance: int = 3,
        min_confidence: float = 0.7,
    ) -> None:
        self._table: Mapping[str, str] = MappingProxyType(dict(table if table is not None else CATEGORY_TABLE))
        self._max_distance = max(0, max_distance)
        self._min_confidence = min_confidence

    @property
    def table(self) -> Mapping[str, str]:
        return self._table

    def classify(self, label: str | None) -> ClassificationResult | None:
        """
        Return the canonical category for ``label``, or None when no table
        key is close enough.
        """

        if not isinstance(label, str) or not label.strip():
            logger.warning("Category label missing or not a string label=%r", label)
            return None

        normalized = normalize_label(label)
        exact = self._table.get(normalized)
        if exact is not None:
            return ClassificationResult(category=exact, confidence=1.0, match_type=MatchType.EXACT)

        best_key: str | None = None
        best_distance = self._max_distance + 1
        for key in self._table:
            distance = Levenshtein.distance(normalized, key, score_cutoff=self._max_distance)
            if distance < best_distance:
                best_key = key
                best_distance = distance

        if best_key is not None:
            confidence = match_confidence(best_distance, normalized, best_key)
            if confidence >= self._min_confidence:
                logger.debug(
                    "Fuzzy category match label=%r key=%r distance=%s confidence=%.3f",
                    label,
                    best_key,
                    best_distance,
                    confidence,
                )
                return ClassificationResult(
                    category=self._table[best_key],
                    confidence=confidence,
                    match_type=MatchType.FUZZY,
                )

        logger.info(
            "No category match label=%r normalized=%r nearest=%r",
            label,
            normalized,
            best_key,
        )
        return None

    def classify_or_fallback(self, label: str | None) -> ClassificationResult:
        return self.classify(label) or FALLBACK_CLASSIFICATION

    def supported_categories(self) -> tuple[str, ...]:
        """
        Distinct canonical categories reachable from the table, in table order.
        """

        return tuple(dict.fromkeys(self._table.values()))

    def extend(self, mappings: Mapping[str, str]) -> "CategoryClassifier":
        """
        Return a new classifier whose table also contains ``mappings``.

        Raises:
            ValueError: a target is not a canonical category or a label is blank.
        """

        additions: dict[str, str] = {}
        for label, category in mappings.items():
            normalized = normalize_label(label)
            if not normalized:
                raise ValueError("Category label must not be blank")
            if category not in CANONICAL_CATEGORIES:
                raise ValueError(f"Unknown canonical category: {category!r}")
            additions[normalized] = category

        return CategoryClassifier(
            {**self._table, **additions},
            max_distance=self._max_distance,
            min_confidence=self._min_confidence,
        )


@lru_cache(maxsize=1)
def get_category_classifier() -> CategoryClassifier:
    settings = get_classifier_settings()
    return CategoryClassifier(
        max_distance=settings.max_distance,
        min_confidence=settings.min_confidence,
    )

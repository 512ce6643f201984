from __future__ import annotations

import unittest

from app.domain.reconciliation import MatchType
from app.services.category_classifier import (
    CANONICAL_CATEGORIES,
    FALLBACK_CLASSIFICATION,
    CategoryClassifier,
    match_confidence,
)


class TestCategoryClassifier(unittest.TestCase):
    def setUp(self) -> None:
        self.classifier = CategoryClassifier()

    def test_exact_match_is_case_and_whitespace_insensitive(self) -> None:
        result = self.classifier.classify("  Meats   &  Seafood ")

        self.assertIsNotNone(result)
        self.assertEqual(result.category, "proteins")
        self.assertEqual(result.confidence, 1.0)
        self.assertEqual(result.match_type, MatchType.EXACT)

    def test_fuzzy_match_within_distance(self) -> None:
        result = self.classifier.classify("vegetabels")

        self.assertIsNotNone(result)
        self.assertEqual(result.category, "produce")
        self.assertEqual(result.match_type, MatchType.FUZZY)
        self.assertAlmostEqual(result.confidence, 0.8)

    def test_distant_label_has_no_match(self) -> None:
        self.assertIsNone(self.classifier.classify("electronics"))

    def test_missing_label_has_no_match(self) -> None:
        self.assertIsNone(self.classifier.classify(None))
        self.assertIsNone(self.classifier.classify("   "))

    def test_fallback_is_dry_goods_at_low_confidence(self) -> None:
        result = self.classifier.classify_or_fallback("electronics")

        self.assertEqual(result, FALLBACK_CLASSIFICATION)
        self.assertEqual(result.category, "dry_goods")
        self.assertEqual(result.confidence, 0.3)
        self.assertEqual(result.match_type, MatchType.FALLBACK)

    def test_min_confidence_rejects_weak_fuzzy_matches(self) -> None:
        strict = CategoryClassifier(min_confidence=0.95)
        self.assertIsNone(strict.classify("vegetabels"))

    def test_confidence_decreases_with_distance(self) -> None:
        scores = [match_confidence(distance, "beverages", "beverages") for distance in range(4)]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertEqual(scores[0], 1.0)

    def test_every_table_target_is_canonical(self) -> None:
        self.assertTrue(set(self.classifier.table.values()) <= CANONICAL_CATEGORIES)
        self.assertEqual(set(self.classifier.supported_categories()), CANONICAL_CATEGORIES)

    def test_extend_returns_new_classifier(self) -> None:
        extended = self.classifier.extend({"Bar Mixers": "beverages"})

        self.assertEqual(extended.classify("bar mixers").category, "beverages")
        self.assertNotIn("bar mixers", self.classifier.table)

    def test_extend_rejects_unknown_categories(self) -> None:
        with self.assertRaises(ValueError):
            self.classifier.extend({"gadgets": "electronics"})
        with self.assertRaises(ValueError):
            self.classifier.extend({"   ": "produce"})

    def test_table_is_read_only(self) -> None:
        with self.assertRaises(TypeError):
            self.classifier.table["gadgets"] = "produce"  # type: ignore[index]


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import unittest

from app.mappers.schema_registry import (
    UnsupportedRecordTypeError,
    get_record_schema,
    normalize_header,
    supported_record_types,
)


class TestHeaderNormalization(unittest.TestCase):
    def test_alias_headers_map_to_canonical_fields(self) -> None:
        self.assertEqual(normalize_header("Item Name"), "name")
        self.assertEqual(normalize_header("  UOM "), "unit")
        self.assertEqual(normalize_header("Par Level"), "maximum_stock")
        self.assertEqual(normalize_header("Qty"), "quantity")
        self.assertEqual(normalize_header("Ticket ID"), "order_id")

    def test_unaliased_headers_are_snake_cased(self) -> None:
        self.assertEqual(normalize_header("Unit   Price"), "unit_price")
        self.assertEqual(normalize_header("Storage Bin"), "storage_bin")

    def test_blank_header_normalizes_to_empty(self) -> None:
        self.assertEqual(normalize_header(""), "")
        self.assertEqual(normalize_header(None), "")


class TestRecordSchemas(unittest.TestCase):
    def test_supported_record_types(self) -> None:
        self.assertEqual(set(supported_record_types()), {"inventory", "sales"})

    def test_lookup_is_case_insensitive(self) -> None:
        self.assertEqual(get_record_schema(" Inventory ").record_type, "inventory")

    def test_unknown_record_type_raises(self) -> None:
        with self.assertRaises(UnsupportedRecordTypeError):
            get_record_schema("payroll")

    def test_missing_and_unknown_fields(self) -> None:
        schema = get_record_schema("sales")
        headers = ["transaction_date", "item_name", "quantity", "table_number"]

        self.assertEqual(schema.missing_fields(headers), ["unit_price", "total_amount", "order_id"])
        self.assertEqual(schema.unknown_fields(headers), ["table_number"])


if __name__ == "__main__":
    unittest.main()

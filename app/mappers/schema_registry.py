"""
app/mappers/schema_registry.py

Per-record-type field schemas and the header alias table used to map
human-entered CSV column names onto canonical field names.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Sequence

from db.models.upload import RecordType

HEADER_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        # inventory
        "item name": "name",
        "item_name": "name",
        "product name": "name",
        "category name": "category",
        "category_name": "category",
        "uom": "unit",
        "unit of measure": "unit",
        "unit cost": "unit_cost",
        "price": "unit_cost",
        "cost": "unit_cost",
        "supplier": "supplier_name",
        "vendor": "supplier_name",
        "vendor name": "supplier_name",
        "current qty": "current_stock",
        "current quantity": "current_stock",
        "par level": "maximum_stock",
        "par": "maximum_stock",
        "min": "minimum_stock",
        "max": "maximum_stock",
        "batch": "batch_number",
        "location name": "location",
        "gl account": "gl_account",
        "gl code": "gl_account",
        "sku": "sku",
        "item sku": "sku",
        "vendor item #": "vendor_item_number",
        "vendor item number": "vendor_item_number",
        # sales
        "date": "transaction_date",
        "transaction date": "transaction_date",
        "item": "item_name",
        "menu item": "item_name",
        "qty": "quantity",
        "quantity sold": "quantity",
        "price each": "unit_price",
        "line total": "total_amount",
        "total": "total_amount",
        "ticket id": "order_id",
        "check id": "order_id",
        "line item id": "line_item_id",
        "modifier": "modifiers",
        "modifier list": "modifiers",
    }
)

_WHITESPACE_RE = re.compile(r"\s+")


class UnsupportedRecordTypeError(ValueError):
    """
    Raised when a record type has no registered schema.
    """


@dataclass(frozen=True)
class RecordSchema:
    """
    Required and optional canonical fields for one record type.
    """

    record_type: str
    required_fields: tuple[str, ...]
    optional_fields: tuple[str, ...]

    @property
    def known_fields(self) -> frozenset[str]:
        return frozenset(self.required_fields + self.optional_fields)

    def missing_fields(self, normalized_headers: Sequence[str]) -> list[str]:
        present = set(normalized_headers)
        return [name for name in self.required_fields if name not in present]

    def unknown_fields(self, normalized_headers: Sequence[str]) -> list[str]:
        known = self.known_fields
        return [name for name in normalized_headers if name not in known]


INVENTORY_SCHEMA = RecordSchema(
    record_type=RecordType.INVENTORY,
    required_fields=(
        "name",
        "category",
        "unit",
        "unit_cost",
        "description",
        "supplier_name",
    ),
    optional_fields=(
        "minimum_stock",
        "maximum_stock",
        "current_stock",
        "batch_number",
        "location",
        "gl_account",
        "sku",
        "vendor_item_number",
        "notes",
    ),
)

SALES_SCHEMA = RecordSchema(
    record_type=RecordType.SALES,
    required_fields=(
        "transaction_date",
        "item_name",
        "quantity",
        "unit_price",
        "total_amount",
        "order_id",
    ),
    optional_fields=(
        "line_item_id",
        "modifiers",
        "notes",
        "location",
        "server_name",
        "guest_count",
    ),
)

_SCHEMAS: Mapping[str, RecordSchema] = MappingProxyType(
    {
        RecordType.INVENTORY: INVENTORY_SCHEMA,
        RecordType.SALES: SALES_SCHEMA,
    }
)


def normalize_header(header: str | None) -> str:
    """
    Map a raw header through the alias table, else lower-case it and
    replace whitespace runs with underscores.
    """

    if not header:
        return ""
    lowered = header.strip().lower()
    return HEADER_ALIASES.get(lowered) or _WHITESPACE_RE.sub("_", lowered)


def get_record_schema(record_type: str) -> RecordSchema:
    schema = _SCHEMAS.get((record_type or "").strip().lower())
    if schema is None:
        raise UnsupportedRecordTypeError(f"Unsupported record type: {record_type!r}")
    return schema


def supported_record_types() -> tuple[str, ...]:
    return tuple(_SCHEMAS)

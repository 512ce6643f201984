"""
app/domain/source_records.py

Provider-specific source records and their normalization into the common
shape the transform orchestrators consume.

New providers register a variant with ``to_inventory_source.register`` /
``to_sales_source.register``; plain mappings fall through to the generic
handlers.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import singledispatch
from typing import Any, ClassVar

from app.validators.row_validator import parse_timestamp

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_CENTS = Decimal(100)


def slugify(value: Any) -> str:
    """
    Lower-case, collapse non-alphanumeric runs to ``-`` and trim dashes.
    """

    if value is None:
        return ""
    return _SLUG_RE.sub("-", str(value).lower()).strip("-")


def build_source_item_id(provider: str, candidates: tuple[Any, ...], row: int) -> str:
    """
    ``<provider>-<slug of first usable candidate>``, else ``<provider>-row-<row>``.
    """

    for candidate in candidates:
        slug = slugify(candidate)
        if slug:
            return f"{provider}-{slug}"
    return f"{provider}-row-{row}"


def minor_to_major(amount: Any) -> Decimal | None:
    """
    Convert an integer minor-unit amount (cents) to an exact major amount.
    """

    if amount is None:
        return None
    return Decimal(str(amount)) / _CENTS


def to_decimal(value: Any) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value: {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return number


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ----------------------------------------------------------------------
# Provider payloads
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class ProviderPayload:
    """
    Provider-specific fields retained on a canonical entity.
    """

    provider: ClassVar[str] = "generic"

    def to_json(self) -> dict[str, Any]:
        return {"provider": self.provider, **asdict(self)}


@dataclass(frozen=True)
class CsvInventoryPayload(ProviderPayload):
    provider: ClassVar[str] = "csv"

    upload_id: str
    original_row: int
    supplier_name: str | None = None
    batch_number: str | None = None
    gl_account: str | None = None
    sku: str | None = None
    vendor_item_number: str | None = None
    notes: str | None = None
    category_label: str | None = None
    unit_label: str | None = None


@dataclass(frozen=True)
class SquareItemPayload(ProviderPayload):
    provider: ClassVar[str] = "square"

    square_id: str
    catalog_object_id: str
    variation_id: str | None
    category_id: str | None
    last_synced: str


@dataclass(frozen=True)
class CsvSalesPayload(ProviderPayload):
    provider: ClassVar[str] = "csv"

    upload_id: str
    original_row: int
    item_name: str | None = None
    modifiers: str | None = None
    notes: str | None = None
    location: str | None = None
    server_name: str | None = None
    guest_count: float | None = None


@dataclass(frozen=True)
class SquareLinePayload(ProviderPayload):
    provider: ClassVar[str] = "square"

    variation_id: str | None
    variation_name: str | None
    tax: str | None
    discount: str | None
    gross_sales: str | None


@dataclass(frozen=True)
class GenericPayload(ProviderPayload):
    provider_name: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {"provider": self.provider_name, "fields": dict(self.fields)}


# ----------------------------------------------------------------------
# Normalized records
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class InventorySourceRecord:
    row: int
    provider: str
    source_item_id: str
    has_stable_identifier: bool
    name: str
    category_label: str | None
    unit_cost: Decimal
    payload: ProviderPayload
    unit_label: str | None = None
    unit_hint: str | None = None
    description: str | None = None
    minimum_stock: Decimal | None = None
    maximum_stock: Decimal | None = None
    current_stock: Decimal | None = None
    storage_location: str | None = None


@dataclass(frozen=True)
class SalesSourceRecord:
    """
    ``catalog_ref`` is matched against inventory ``source_item_id``;
    ``resolve_by_name`` allows a second lookup by exact item name.
    """

    row: int
    provider: str
    source_order_id: str | None
    source_line_item_id: str
    catalog_ref: str | None
    item_name: str | None
    resolve_by_name: bool
    transaction_date: datetime
    quantity: Decimal
    unit_price: Decimal | None
    total_amount: Decimal | None
    payload: ProviderPayload


# ----------------------------------------------------------------------
# Provider variants
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class CsvInventoryRow:
    upload_id: str
    row: int
    data: Mapping[str, Any]


@dataclass(frozen=True)
class CsvSalesRow:
    upload_id: str
    row: int
    data: Mapping[str, Any]


@dataclass(frozen=True)
class SquareVariation:
    id: str
    name: str | None = None
    ordinal: int | None = None
    price_amount: int | None = None
    currency: str | None = None


@dataclass(frozen=True)
class SquareCatalogItem:
    row: int
    catalog_object_id: str
    name: str
    description: str | None = None
    category_id: str | None = None
    category_name: str | None = None
    variations: tuple[SquareVariation, ...] = ()
    synced_at: datetime | None = None

    def primary_variation(self) -> SquareVariation | None:
        """
        Lowest ordinal wins; missing ordinals sort as 0, ties keep order.
        """

        if not self.variations:
            return None
        return min(self.variations, key=lambda variation: variation.ordinal or 0)


@dataclass(frozen=True)
class SquareLineItem:
    row: int
    order_id: str
    line_item_uid: str
    catalog_object_id: str | None
    name: str | None
    quantity: Any
    variation_id: str | None = None
    variation_name: str | None = None
    base_price_amount: int | None = None
    gross_sales_amount: int | None = None
    total_tax_amount: int | None = None
    total_discount_amount: int | None = None
    total_amount: int | None = None
    opened_at: datetime | None = None
    closed_at: datetime | None = None


# ----------------------------------------------------------------------
# Inventory normalization
# ----------------------------------------------------------------------


@singledispatch
def to_inventory_source(record: Any) -> InventorySourceRecord:
    raise TypeError(f"Unsupported inventory source record: {type(record).__name__}")


@to_inventory_source.register
def _(record: CsvInventoryRow) -> InventorySourceRecord:
    data = record.data
    name = _clean(data.get("name"))
    if name is None:
        raise ValueError("Inventory row has no name")
    sku = _clean(data.get("sku"))
    vendor_item_number = _clean(data.get("vendor_item_number"))
    unit_cost = to_decimal(data.get("unit_cost"))
    if unit_cost is None:
        raise ValueError("Inventory row has no unit cost")

    payload = CsvInventoryPayload(
        upload_id=record.upload_id,
        original_row=record.row,
        supplier_name=_clean(data.get("supplier_name")),
        batch_number=_clean(data.get("batch_number")),
        gl_account=_clean(data.get("gl_account")),
        sku=sku,
        vendor_item_number=vendor_item_number,
        notes=_clean(data.get("notes")),
        category_label=_clean(data.get("category")),
        unit_label=_clean(data.get("unit")),
    )
    return InventorySourceRecord(
        row=record.row,
        provider="csv",
        source_item_id=build_source_item_id("csv", (sku, vendor_item_number, name), record.row),
        has_stable_identifier=bool(sku or vendor_item_number),
        name=name,
        category_label=_clean(data.get("category")),
        unit_cost=unit_cost,
        payload=payload,
        unit_label=_clean(data.get("unit")),
        description=_clean(data.get("description")),
        minimum_stock=to_decimal(data.get("minimum_stock")),
        maximum_stock=to_decimal(data.get("maximum_stock")),
        current_stock=to_decimal(data.get("current_stock")),
        storage_location=_clean(data.get("location")),
    )


@to_inventory_source.register
def _(record: SquareCatalogItem) -> InventorySourceRecord:
    primary = record.primary_variation()
    if primary is None:
        raise ValueError(f"Catalog item {record.catalog_object_id} has no variations")
    synced_at = record.synced_at or datetime.now(timezone.utc)

    return InventorySourceRecord(
        row=record.row,
        provider="square",
        source_item_id=record.catalog_object_id,
        has_stable_identifier=True,
        name=record.name,
        category_label=record.category_name,
        unit_cost=minor_to_major(primary.price_amount) or Decimal("0"),
        payload=SquareItemPayload(
            square_id=record.catalog_object_id,
            catalog_object_id=record.catalog_object_id,
            variation_id=primary.id,
            category_id=record.category_id,
            last_synced=synced_at.isoformat(),
        ),
        unit_hint=primary.name,
        description=record.description,
    )


@to_inventory_source.register(Mapping)
def _(record: Mapping) -> InventorySourceRecord:
    provider = _clean(record.get("provider"))
    name = _clean(record.get("name"))
    row = int(record.get("row") or 0)
    if provider is None or name is None:
        raise ValueError("Generic inventory record requires provider and name")
    source_id = _clean(record.get("source_item_id") or record.get("id"))
    known = {
        "provider", "row", "source_item_id", "id", "name", "category", "unit",
        "unit_cost", "description", "minimum_stock", "maximum_stock", "current_stock",
    }
    return InventorySourceRecord(
        row=row,
        provider=provider,
        source_item_id=source_id or build_source_item_id(provider, (name,), row),
        has_stable_identifier=source_id is not None,
        name=name,
        category_label=_clean(record.get("category")),
        unit_cost=to_decimal(record.get("unit_cost")) or Decimal("0"),
        payload=GenericPayload(
            provider_name=provider,
            fields={key: value for key, value in record.items() if key not in known},
        ),
        unit_label=_clean(record.get("unit")),
        description=_clean(record.get("description")),
        minimum_stock=to_decimal(record.get("minimum_stock")),
        maximum_stock=to_decimal(record.get("maximum_stock")),
        current_stock=to_decimal(record.get("current_stock")),
    )


# ----------------------------------------------------------------------
# Sales normalization
# ----------------------------------------------------------------------


def _require_timestamp(value: Any) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Invalid transaction date: {value!r}")
    return parsed


def _require_quantity(value: Any) -> Decimal:
    quantity = to_decimal(value)
    if quantity is None or quantity <= 0:
        raise ValueError(f"Quantity must be positive, got {value!r}")
    return quantity


@singledispatch
def to_sales_source(record: Any) -> SalesSourceRecord:
    raise TypeError(f"Unsupported sales source record: {type(record).__name__}")


@to_sales_source.register
def _(record: CsvSalesRow) -> SalesSourceRecord:
    data = record.data
    item_name = _clean(data.get("item_name"))
    line_item_id = _clean(data.get("line_item_id"))
    if line_item_id:
        source_line_item_id = f"csv-{line_item_id}"
    else:
        slug = slugify(item_name) or f"line-{record.row}"
        source_line_item_id = f"csv-{record.upload_id}-{record.row}-{slug}"

    guest_count = data.get("guest_count")
    return SalesSourceRecord(
        row=record.row,
        provider="csv",
        source_order_id=_clean(data.get("order_id")),
        source_line_item_id=source_line_item_id,
        catalog_ref=build_source_item_id("csv", (item_name,), record.row) if item_name else None,
        item_name=item_name,
        resolve_by_name=True,
        transaction_date=_require_timestamp(data.get("transaction_date")),
        quantity=_require_quantity(data.get("quantity")),
        unit_price=to_decimal(data.get("unit_price")),
        total_amount=to_decimal(data.get("total_amount")),
        payload=CsvSalesPayload(
            upload_id=record.upload_id,
            original_row=record.row,
            item_name=item_name,
            modifiers=_clean(data.get("modifiers")),
            notes=_clean(data.get("notes")),
            location=_clean(data.get("location")),
            server_name=_clean(data.get("server_name")),
            guest_count=float(guest_count) if guest_count is not None else None,
        ),
    )


def _major_str(amount: Any) -> str | None:
    major = minor_to_major(amount)
    return str(major) if major is not None else None


@to_sales_source.register
def _(record: SquareLineItem) -> SalesSourceRecord:
    transaction_date = record.closed_at or record.opened_at
    if transaction_date is None:
        raise ValueError(f"Order {record.order_id} has no timestamp")

    return SalesSourceRecord(
        row=record.row,
        provider="square",
        source_order_id=record.order_id,
        source_line_item_id=f"square-{record.line_item_uid}",
        catalog_ref=record.catalog_object_id,
        item_name=record.name,
        resolve_by_name=False,
        transaction_date=_require_timestamp(transaction_date),
        quantity=_require_quantity(record.quantity),
        unit_price=minor_to_major(record.base_price_amount),
        total_amount=minor_to_major(record.total_amount),
        payload=SquareLinePayload(
            variation_id=record.variation_id,
            variation_name=record.variation_name,
            tax=_major_str(record.total_tax_amount),
            discount=_major_str(record.total_discount_amount),
            gross_sales=_major_str(record.gross_sales_amount),
        ),
    )


@to_sales_source.register(Mapping)
def _(record: Mapping) -> SalesSourceRecord:
    provider = _clean(record.get("provider"))
    line_item_id = _clean(record.get("source_line_item_id") or record.get("line_item_id"))
    if provider is None or line_item_id is None:
        raise ValueError("Generic sales record requires provider and line_item_id")
    known = {
        "provider", "row", "source_line_item_id", "line_item_id", "order_id",
        "catalog_ref", "item_name", "transaction_date", "quantity", "unit_price", "total_amount",
    }
    return SalesSourceRecord(
        row=int(record.get("row") or 0),
        provider=provider,
        source_order_id=_clean(record.get("order_id")),
        source_line_item_id=f"{provider}-{line_item_id}",
        catalog_ref=_clean(record.get("catalog_ref")),
        item_name=_clean(record.get("item_name")),
        resolve_by_name=True,
        transaction_date=_require_timestamp(record.get("transaction_date")),
        quantity=_require_quantity(record.get("quantity")),
        unit_price=to_decimal(record.get("unit_price")),
        total_amount=to_decimal(record.get("total_amount")),
        payload=GenericPayload(
            provider_name=provider,
            fields={key: value for key, value in record.items() if key not in known},
        ),
    )

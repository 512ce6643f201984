"""
app/validators/row_validator.py

Row-level sanitization and validation for inventory and sales CSV rows.

Every row yields a sanitized field map plus a list of field errors; a row is
valid iff the list is empty. Numbers accept thousands separators and are kept
to four decimal places.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from app.domain.upload import FieldError
from db.models.upload import RecordType

MAX_NAME_LENGTH = 255

TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
)

_NUMBER_NOISE_RE = re.compile(r"[,\s]")
_FOUR_PLACES = Decimal("0.0001")


class _InvalidNumber(ValueError):
    pass


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse ISO 8601 (with optional trailing ``Z``) or a known date format.

    Naive values are taken as UTC. Returns None when unparseable.
    """

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None

    normalized = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        parsed = datetime.fromisoformat(normalized)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    except ValueError:
        pass

    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(raw, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


class CSVRowValidator:
    """
    Sanitizes and validates one raw CSV row for a record type.
    """

    def __init__(self) -> None:
        self._validators: dict[str, Callable[..., tuple[dict[str, Any], list[FieldError]]]] = {
            RecordType.INVENTORY: self.validate_inventory_row,
            RecordType.SALES: self.validate_sales_row,
        }

    def validate(
        self,
        *,
        record_type: str,
        raw_row: Mapping[str, Any],
        row_number: int,
    ) -> tuple[dict[str, Any], list[FieldError]]:
        validator = self._validators.get(record_type)
        if validator is None:
            raise ValueError(f"No row validator for record type {record_type!r}")
        return validator(raw_row=raw_row, row_number=row_number)

    def is_completely_empty_row(self, row: Mapping[str, Any]) -> bool:
        """
        Return True when every value in the row is empty or whitespace.
        """

        return all(self._is_blank(value) for key, value in row.items() if key is not None)

    # ------------------------------------------------------------------
    # Record types
    # ------------------------------------------------------------------

    def validate_inventory_row(
        self,
        *,
        raw_row: Mapping[str, Any],
        row_number: int,
    ) -> tuple[dict[str, Any], list[FieldError]]:
        errors: list[FieldError] = []
        data: dict[str, Any] = {}

        data["name"] = self._required_string(raw_row, "name", "Name is required", row_number, errors)
        if data["name"] is not None and len(data["name"]) > MAX_NAME_LENGTH:
            errors.append(
                FieldError(
                    row=row_number,
                    field="name",
                    message=f"Name must be {MAX_NAME_LENGTH} characters or less",
                )
            )

        data["category"] = self._required_string(
            raw_row, "category", "Category is required", row_number, errors
        )
        data["unit"] = self._required_string(raw_row, "unit", "Unit is required", row_number, errors)
        data["unit_cost"] = self._positive_number(
            raw_row, "unit_cost", "Unit cost must be a positive number", row_number, errors
        )
        data["description"] = self._required_string(
            raw_row, "description", "Description is required", row_number, errors
        )
        data["supplier_name"] = self._required_string(
            raw_row, "supplier_name", "Supplier name is required", row_number, errors
        )

        for name in ("minimum_stock", "maximum_stock", "current_stock"):
            data[name] = self._non_negative_number(raw_row, name, row_number, errors)

        for name in ("batch_number", "location", "gl_account", "sku", "vendor_item_number", "notes"):
            data[name] = self._sanitize_string(raw_row.get(name))

        return data, errors

    def validate_sales_row(
        self,
        *,
        raw_row: Mapping[str, Any],
        row_number: int,
    ) -> tuple[dict[str, Any], list[FieldError]]:
        errors: list[FieldError] = []
        data: dict[str, Any] = {}

        raw_date = self._sanitize_string(raw_row.get("transaction_date"))
        if raw_date is None:
            errors.append(
                FieldError(row=row_number, field="transaction_date", message="Transaction date is required")
            )
            data["transaction_date"] = None
        else:
            parsed = parse_timestamp(raw_date)
            if parsed is None:
                errors.append(
                    FieldError(
                        row=row_number,
                        field="transaction_date",
                        message="Transaction date must be ISO 8601 format",
                    )
                )
                data["transaction_date"] = raw_date
            else:
                data["transaction_date"] = parsed.isoformat()

        data["item_name"] = self._required_string(
            raw_row, "item_name", "Item name is required", row_number, errors
        )
        data["quantity"] = self._positive_number(
            raw_row, "quantity", "Quantity must be a positive number", row_number, errors
        )
        data["unit_price"] = self._non_negative_number(raw_row, "unit_price", row_number, errors)
        data["total_amount"] = self._non_negative_number(raw_row, "total_amount", row_number, errors)
        data["order_id"] = self._required_string(
            raw_row, "order_id", "Order ID is required", row_number, errors
        )

        for name in ("line_item_id", "modifiers", "notes", "location", "server_name"):
            data[name] = self._sanitize_string(raw_row.get(name))
        data["guest_count"] = self._non_negative_number(raw_row, "guest_count", row_number, errors)

        return data, errors

    # ------------------------------------------------------------------
    # Field helpers
    # ------------------------------------------------------------------

    def _required_string(
        self,
        raw_row: Mapping[str, Any],
        field: str,
        message: str,
        row_number: int,
        errors: list[FieldError],
    ) -> str | None:
        value = self._sanitize_string(raw_row.get(field))
        if value is None:
            errors.append(FieldError(row=row_number, field=field, message=message))
        return value

    def _positive_number(
        self,
        raw_row: Mapping[str, Any],
        field: str,
        message: str,
        row_number: int,
        errors: list[FieldError],
    ) -> float | None:
        try:
            value = self._to_number(raw_row.get(field))
        except _InvalidNumber:
            value = None
        if value is None or value <= 0:
            errors.append(FieldError(row=row_number, field=field, message=message))
            return None
        return float(value)

    def _non_negative_number(
        self,
        raw_row: Mapping[str, Any],
        field: str,
        row_number: int,
        errors: list[FieldError],
    ) -> float | None:
        try:
            value = self._to_number(raw_row.get(field))
        except _InvalidNumber:
            errors.append(FieldError(row=row_number, field=field, message=f"{field} must be a number"))
            return None
        if value is None:
            return None
        if value < 0:
            errors.append(FieldError(row=row_number, field=field, message=f"{field} cannot be negative"))
            return None
        return float(value)

    def _to_number(self, value: Any) -> Decimal | None:
        if self._is_blank(value):
            return None
        cleaned = _NUMBER_NOISE_RE.sub("", str(value))
        try:
            number = Decimal(cleaned)
            if not number.is_finite():
                raise _InvalidNumber(cleaned)
            return number.quantize(_FOUR_PLACES)
        except InvalidOperation as exc:
            raise _InvalidNumber(cleaned) from exc

    def _sanitize_string(self, value: Any) -> str | None:
        if value is None:
            return None
        stripped = str(value).strip()
        return stripped or None

    def _is_blank(self, value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

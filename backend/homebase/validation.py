from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from homebase.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .services.totals_service import LineItem, to_decimal


# Per-field input bounds; document totals are range-checked separately before storing
MAX_QUANTITY = Decimal("1000000")
MAX_UNIT_PRICE = Decimal("999999999.99")
MAX_LINE_ITEMS = 500
MAX_REASON_LENGTH = 255


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., deleting a converted estimate)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower() or '.' in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            if d is None:
                return None
            return d
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = [f for f in required if f not in payload]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(sorted(missing))}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def parse_decimal(value: Any, field: str, *, default: Decimal | None = None) -> Decimal:
    """Strict decimal parsing: rejects booleans, NaN/Infinity and non-numeric strings."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    try:
        return to_decimal(value)
    except ValueError:
        raise ValidationError(f"{field} must be a decimal number")


def parse_percent(value: Any, field: str, *, default: Decimal | None = None) -> Decimal:
    pct = parse_decimal(value, field, default=default)
    if pct < 0 or pct > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return pct


def parse_line_items(raw: Any) -> list[LineItem]:
    """
    Validate a JSON array of line items.

    quantity and unit_price must be >= 0; discount and vat_rate are
    percentages in [0, 100]. vat_rate defaults to 25 when omitted.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("line_items must be a list")
    if len(raw) > MAX_LINE_ITEMS:
        raise ValidationError(f"line_items cannot exceed {MAX_LINE_ITEMS} rows")

    items: list[LineItem] = []
    for i, row in enumerate(raw):
        label = f"line_items[{i}]"
        if not isinstance(row, dict):
            raise ValidationError(f"{label} must be an object")

        unknown = set(row) - {"description", "quantity", "unit_price", "discount", "vat_rate"}
        if unknown:
            raise ValidationError(f"{label}: unknown fields {', '.join(sorted(unknown))}")

        quantity = parse_decimal(row.get("quantity"), f"{label}.quantity")
        unit_price = parse_decimal(row.get("unit_price"), f"{label}.unit_price")
        if quantity < 0:
            raise ValidationError(f"{label}.quantity must be >= 0")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"{label}.quantity cannot exceed {MAX_QUANTITY}")
        if unit_price < 0:
            raise ValidationError(f"{label}.unit_price must be >= 0")
        if unit_price > MAX_UNIT_PRICE:
            raise ValidationError(f"{label}.unit_price cannot exceed {MAX_UNIT_PRICE}")

        items.append(LineItem(
            quantity=quantity,
            unit_price=unit_price,
            discount=parse_percent(row.get("discount"), f"{label}.discount", default=Decimal(0)),
            vat_rate=parse_percent(row.get("vat_rate"), f"{label}.vat_rate", default=Decimal(25)),
            description=str(row.get("description") or "").strip(),
        ))
    return items


def parse_status(value: Any, allowed: tuple[str, ...]) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError(f"status must be one of: {', '.join(allowed)}")
    return value


def parse_reasons(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(r, str) for r in value):
        raise ValidationError("reasons must be a list of strings")
    reasons = [r.strip() for r in value if r.strip()]
    for r in reasons:
        if len(r) > MAX_REASON_LENGTH:
            raise ValidationError(f"reasons cannot exceed {MAX_REASON_LENGTH} characters each")
    return reasons


def split_document_payload(payload: Any, allowed_statuses: tuple[str, ...]) -> tuple[dict, dict]:
    """
    Separate the computed-document fields from plain column fields.

    Returns (columns, document) where document holds parsed line_items,
    document_discount and status (only for keys present in the payload).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    columns = dict(payload)
    document: dict = {}
    if "line_items" in columns:
        document["line_items"] = parse_line_items(columns.pop("line_items"))
    if "document_discount" in columns:
        document["document_discount"] = parse_percent(
            columns.pop("document_discount"), "document_discount", default=Decimal(0)
        )
    if "status" in columns:
        document["status"] = parse_status(columns.pop("status"), allowed_statuses)
    return columns, document

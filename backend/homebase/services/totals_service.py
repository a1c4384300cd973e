# Overview: Pure monetary totals for invoices and estimates; no database access.

"""
Document totals calculation.

Order of operations:
1. per line: subtotal = quantity * unit_price, line discount, after-discount amount
2. sums over all lines
3. document discount on the after-discount sum
4. VAT per line on the line's proportional share of the discounted sum
5. total = discounted sum + VAT

Invoices and estimates share this calculation. The document discount is always
redistributed proportionally before each line's own VAT rate is applied, so
a document with mixed VAT rates gets the same VAT whichever kind it is.

All arithmetic is Decimal. Rounding to the currency minor unit happens once,
on the output fields only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping


CENT = Decimal("0.01")
HUNDRED = Decimal(100)
ZERO = Decimal(0)

DEFAULT_VAT_RATE = Decimal(25)

# Allocation base when the after-discount sum is exactly zero
ALLOCATION_EPSILON = Decimal("0.00001")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Convert a JSON-ish number to Decimal without going through binary float.

    None / "" -> default. Floats are converted through their shortest repr.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    s = str(value).strip()
    if not s:
        return default
    try:
        result = Decimal(s)
    except InvalidOperation:
        raise ValueError(f"not a decimal: {value!r}")
    if not result.is_finite():
        raise ValueError(f"not a finite decimal: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> int:
    return int((round_money(value) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def percent_to_bps(value: Decimal) -> int:
    """12.5 (%) -> 1250. Anything finer than a basis point is rounded half-up."""
    return int((value * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def bps_to_percent(bps: int | None) -> Decimal:
    return (Decimal(bps or 0) / HUNDRED).quantize(CENT)


def _format_decimal(value: Decimal) -> str:
    # Keep the stored form stable: no exponent, no trailing noise
    text = format(value.normalize(), "f")
    return text if text != "-0" else "0"


@dataclass(frozen=True)
class LineItem:
    """One billable row. discount and vat_rate are percentages."""
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = ZERO
    vat_rate: Decimal = DEFAULT_VAT_RATE
    description: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls(
            quantity=to_decimal(data.get("quantity")),
            unit_price=to_decimal(data.get("unit_price")),
            discount=to_decimal(data.get("discount")),
            # An explicit 0 is a valid rate; only a missing rate falls back
            vat_rate=to_decimal(data.get("vat_rate"), default=DEFAULT_VAT_RATE),
            description=str(data.get("description") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": _format_decimal(self.quantity),
            "unit_price": _format_decimal(self.unit_price),
            "discount": _format_decimal(self.discount),
            "vat_rate": _format_decimal(self.vat_rate),
        }


@dataclass(frozen=True)
class LineAmounts:
    """Unrounded per-line intermediates, kept for allocation."""
    item: LineItem
    line_subtotal: Decimal
    discount_amount: Decimal
    line_subtotal_after_discount: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal = ZERO
    total_discount: Decimal = ZERO
    subtotal_after_discount: Decimal = ZERO
    document_discount_amount: Decimal = ZERO
    subtotal_after_document_discount: Decimal = ZERO
    total_vat: Decimal = ZERO
    total: Decimal = ZERO

    FIELDS = (
        "subtotal",
        "total_discount",
        "subtotal_after_discount",
        "document_discount_amount",
        "subtotal_after_document_discount",
        "total_vat",
        "total",
    )

    def to_cents(self) -> dict[str, int]:
        return {name: to_cents(getattr(self, name)) for name in self.FIELDS}

    def to_dict(self) -> dict[str, str]:
        return {name: str(getattr(self, name)) for name in self.FIELDS}

    @classmethod
    def from_cents(cls, cents: Mapping[str, int | None]) -> "DocumentTotals":
        return cls(**{
            name: (Decimal(cents.get(name) or 0) / HUNDRED).quantize(CENT)
            for name in cls.FIELDS
        })


def line_amounts(item: LineItem) -> LineAmounts:
    line_subtotal = item.quantity * item.unit_price
    discount_amount = line_subtotal * (item.discount / HUNDRED)
    return LineAmounts(
        item=item,
        line_subtotal=line_subtotal,
        discount_amount=discount_amount,
        line_subtotal_after_discount=line_subtotal - discount_amount,
    )


def _allocate(lines: list[LineAmounts], subtotal_after_discount: Decimal, subtotal_after_document_discount: Decimal):
    """Yield (line, allocated_amount) with the document discount spread proportionally."""
    # Only an exactly-zero sum falls back to epsilon; a credit document keeps its negative base
    base = subtotal_after_discount if subtotal_after_discount != 0 else ALLOCATION_EPSILON
    for line in lines:
        proportion = line.line_subtotal_after_discount / base
        yield line, subtotal_after_document_discount * proportion


def calculate_totals(line_items: Iterable[LineItem], document_discount: Decimal | int | str = ZERO) -> DocumentTotals:
    """
    Compute document totals from line items and a document-level discount (%).

    Inputs are trusted: negative values or percentages outside 0..100 are not
    rejected here and propagate arithmetically.
    """
    document_discount = to_decimal(document_discount)
    lines = [line_amounts(item) for item in line_items]
    if not lines:
        return DocumentTotals()

    subtotal = sum((l.line_subtotal for l in lines), ZERO)
    total_discount = sum((l.discount_amount for l in lines), ZERO)
    subtotal_after_discount = sum((l.line_subtotal_after_discount for l in lines), ZERO)

    document_discount_amount = subtotal_after_discount * (document_discount / HUNDRED)
    subtotal_after_document_discount = subtotal_after_discount - document_discount_amount

    total_vat = ZERO
    for line, allocated in _allocate(lines, subtotal_after_discount, subtotal_after_document_discount):
        total_vat += allocated * (line.item.vat_rate / HUNDRED)

    total = subtotal_after_document_discount + total_vat

    return DocumentTotals(
        subtotal=round_money(subtotal),
        total_discount=round_money(total_discount),
        subtotal_after_discount=round_money(subtotal_after_discount),
        document_discount_amount=round_money(document_discount_amount),
        subtotal_after_document_discount=round_money(subtotal_after_document_discount),
        total_vat=round_money(total_vat),
        total=round_money(total),
    )


@dataclass
class VatGroup:
    rate: Decimal
    base: Decimal = ZERO
    vat: Decimal = ZERO
    lines: int = field(default=0)

    def to_dict(self) -> dict:
        return {
            "vat_rate": _format_decimal(self.rate),
            "base_cents": to_cents(self.base),
            "vat_cents": to_cents(self.vat),
            "lines": self.lines,
        }


def vat_breakdown(line_items: Iterable[LineItem], document_discount: Decimal | int | str = ZERO) -> list[VatGroup]:
    """
    Taxable base and VAT grouped by rate, after document-discount allocation.

    Rounding is per group, so the group VATs can differ from total_vat by a
    cent on documents with many rates.
    """
    document_discount = to_decimal(document_discount)
    lines = [line_amounts(item) for item in line_items]
    subtotal_after_discount = sum((l.line_subtotal_after_discount for l in lines), ZERO)
    discounted = subtotal_after_discount - subtotal_after_discount * (document_discount / HUNDRED)

    groups: dict[Decimal, VatGroup] = {}
    for line, allocated in _allocate(lines, subtotal_after_discount, discounted):
        rate = line.item.vat_rate
        group = groups.setdefault(rate, VatGroup(rate=rate))
        group.base += allocated
        group.vat += allocated * (rate / HUNDRED)
        group.lines += 1

    result = []
    for rate in sorted(groups, reverse=True):
        group = groups[rate]
        group.base = round_money(group.base)
        group.vat = round_money(group.vat)
        result.append(group)
    return result

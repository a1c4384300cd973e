from datetime import date
from decimal import Decimal

import pytest

from homebase.models import Invoice
from homebase.routes.invoices import INVOICE_POLICY
from homebase.validation import (
    MAX_LINE_ITEMS,
    ValidationError,
    parse_line_items,
    parse_reasons,
    split_document_payload,
    validate_payload,
)


class TestParseLineItems:
    def test_defaults(self):
        [line] = parse_line_items([{"quantity": "1.5", "unit_price": 99.9, "description": "  Hours "}])

        assert line.quantity == Decimal("1.5")
        assert line.unit_price == Decimal("99.9")
        assert line.discount == Decimal(0)
        assert line.vat_rate == Decimal(25)
        assert line.description == "Hours"

    def test_explicit_zero_vat(self):
        [line] = parse_line_items([{"quantity": 1, "unit_price": 10, "vat_rate": 0}])
        assert line.vat_rate == Decimal(0)

    def test_none_is_empty(self):
        assert parse_line_items(None) == []

    def test_too_many_rows(self):
        rows = [{"quantity": 1, "unit_price": 1}] * (MAX_LINE_ITEMS + 1)
        with pytest.raises(ValidationError):
            parse_line_items(rows)

    @pytest.mark.parametrize(
        "row",
        [
            "not an object",
            {"quantity": True, "unit_price": 1},
            {"quantity": 1, "unit_price": "NaN"},
            {"quantity": 10000001, "unit_price": 1},
        ],
    )
    def test_rejects(self, row):
        with pytest.raises(ValidationError):
            parse_line_items([row])


class TestSplitDocumentPayload:
    def test_separates_document_fields(self):
        columns, document = split_document_payload(
            {"notes": "hi", "line_items": [], "document_discount": "5", "status": "sent"},
            Invoice.STATUSES,
        )

        assert columns == {"notes": "hi"}
        assert document == {"line_items": [], "document_discount": Decimal(5), "status": "sent"}

    def test_absent_keys_stay_absent(self):
        columns, document = split_document_payload({"notes": "hi"}, Invoice.STATUSES)
        assert document == {}

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            split_document_payload(["x"], Invoice.STATUSES)


class TestValidatePayload:
    def test_coerces_dates_and_strings(self):
        patch = validate_payload(
            model=Invoice,
            payload={"issue_date": "2025-02-01", "contact_name": "  Acme ", "contact_id": "12"},
            policy=INVOICE_POLICY,
            partial=True,
        )
        assert patch == {"issue_date": date(2025, 2, 1), "contact_name": "Acme", "contact_id": 12}

    def test_rejects_computed_fields(self):
        with pytest.raises(ValidationError):
            validate_payload(model=Invoice, payload={"total_cents": 5}, policy=INVOICE_POLICY, partial=True)

    def test_rejects_too_long(self):
        with pytest.raises(ValidationError):
            validate_payload(model=Invoice, payload={"currency": "EURO"}, policy=INVOICE_POLICY, partial=True)

    def test_rejects_null_for_required_column(self):
        with pytest.raises(ValidationError):
            validate_payload(model=Invoice, payload={"notes": None}, policy=INVOICE_POLICY, partial=True)


class TestParseReasons:
    def test_strips_and_drops_blank(self):
        assert parse_reasons([" price ", "", "  "]) == ["price"]

    @pytest.mark.parametrize("value", ["price", [1, 2], ["x" * 256]])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_reasons(value)

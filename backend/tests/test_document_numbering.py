"""
Document number allocation tests.

Numbers look like <prefix><year>-<seq> and are unique per owner within each
document table. Allocation only proposes a number; the row written in the
same transaction is what reserves it.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from homebase.extensions import db
from homebase.models import Invoice, Estimate
from homebase.services import document_service
from homebase.services.document_service import (
    DocumentError,
    DocumentNumberExhaustedError,
    allocate_document_number,
    format_document_number,
    is_number_conflict,
    parse_sequence,
    preview_document_number,
    run_with_number_retry,
)


class TestNumberFormat:
    def test_format(self):
        assert format_document_number("INV", 2025, 7) == "INV2025-007"
        assert format_document_number("", 2025, 42) == "2025-042"
        assert format_document_number("INV", 2025, 1234) == "INV2025-1234"

    @pytest.mark.parametrize(
        "number,expected",
        [
            ("INV2025-007", 7),
            ("2025-120", 120),
            ("INV2025-1000", 1000),
            ("A-B2025-003", 3),
            ("INV2025-x1", None),
            ("INV2025", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_sequence(self, number, expected):
        assert parse_sequence(number) == expected


class TestAllocateDocumentNumber:
    def test_first_and_second_number(self, db_session, make_document, owner_a):
        first = allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV")
        assert first == "INV2025-001"

        make_document(Invoice, owner_a, first)

        second = allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV")
        assert second == "INV2025-002"

    def test_follows_highest_existing(self, db_session, make_document, owner_a):
        make_document(Invoice, owner_a, "INV2025-003")
        make_document(Invoice, owner_a, "INV2025-010")
        make_document(Invoice, owner_a, "INV2025-004")

        assert allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV") == "INV2025-011"

    def test_each_year_starts_over(self, db_session, make_document, owner_a):
        make_document(Invoice, owner_a, "INV2024-057")

        assert allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV") == "INV2025-001"
        assert allocate_document_number(model=Invoice, owner_id=owner_a, year=2024, prefix="INV") == "INV2024-058"

    def test_owners_are_independent(self, db_session, make_document, owner_a, owner_b):
        make_document(Invoice, owner_a, "INV2025-005")

        assert allocate_document_number(model=Invoice, owner_id=owner_b, year=2025, prefix="INV") == "INV2025-001"

    def test_invoices_and_estimates_are_independent(self, db_session, make_document, owner_a):
        make_document(Invoice, owner_a, "2025-009")

        assert allocate_document_number(model=Estimate, owner_id=owner_a, year=2025) == "2025-001"

    def test_empty_prefix(self, db_session, make_document, owner_a):
        make_document(Estimate, owner_a, "2025-001")
        assert allocate_document_number(model=Estimate, owner_id=owner_a, year=2025, prefix="") == "2025-002"

    def test_sequence_past_999_stays_numeric(self, db_session, make_document, owner_a):
        make_document(Invoice, owner_a, "INV2025-999")
        make_document(Invoice, owner_a, "INV2025-1000")

        assert allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV") == "INV2025-1001"

    def test_prefix_wildcards_are_literal(self, db_session, make_document, owner_a):
        """An underscore in the prefix must not match any character."""
        make_document(Invoice, owner_a, "AB2025-005")

        assert allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="A_") == "A_2025-001"

    def test_other_prefixes_are_ignored(self, db_session, make_document, owner_a):
        make_document(Invoice, owner_a, "CR2025-040")

        assert allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV") == "INV2025-001"

    def test_taken_candidate_moves_to_next(self, db_session, make_document, owner_a, monkeypatch):
        """A stale highest-number read is corrected by the existence check."""
        make_document(Invoice, owner_a, "INV2025-001")
        make_document(Invoice, owner_a, "INV2025-002")
        monkeypatch.setattr(document_service, "_highest_number", lambda *args: None)

        assert allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV") == "INV2025-003"

    def test_exhausted_after_bounded_attempts(self, db_session, make_document, owner_a, monkeypatch):
        for seq in (1, 2, 3):
            make_document(Invoice, owner_a, format_document_number("INV", 2025, seq))
        monkeypatch.setattr(document_service, "_highest_number", lambda *args: None)

        with pytest.raises(DocumentNumberExhaustedError) as exc:
            allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV", max_attempts=3)
        assert exc.value.details["attempts"] == 3

    def test_attempt_bound_comes_from_config(self, app, db_session, make_document, owner_a, monkeypatch):
        make_document(Invoice, owner_a, "INV2025-001")
        monkeypatch.setattr(document_service, "_highest_number", lambda *args: None)
        monkeypatch.setitem(app.config, "NUMBER_ALLOCATION_MAX_ATTEMPTS", 1)

        with pytest.raises(DocumentNumberExhaustedError):
            allocate_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV")

    def test_missing_owner_or_year(self, db_session):
        with pytest.raises(DocumentError):
            allocate_document_number(model=Invoice, owner_id=None, year=2025, prefix="INV")
        with pytest.raises(DocumentError):
            allocate_document_number(model=Invoice, owner_id=1, year=None, prefix="INV")


class TestPreviewDocumentNumber:
    def test_preview_reserves_nothing(self, db_session, make_document, owner_a):
        make_document(Invoice, owner_a, "INV2025-004")

        first = preview_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV")
        second = preview_document_number(model=Invoice, owner_id=owner_a, year=2025, prefix="INV")

        assert first == second == "INV2025-005"
        assert db_session.query(Invoice).count() == 1


class TestRunWithNumberRetry:
    def test_duplicate_on_commit_is_retried(self, db_session, make_document, owner_a):
        """First attempt writes a number someone else already holds."""
        make_document(Invoice, owner_a, "INV2025-001")
        calls = []

        def _op():
            calls.append(1)
            number = "INV2025-001" if len(calls) == 1 else allocate_document_number(
                model=Invoice, owner_id=owner_a, year=2025, prefix="INV"
            )
            invoice = Invoice(owner_id=owner_a, document_number=number, status="sent", line_items=[])
            db.session.add(invoice)
            db.session.commit()
            return invoice

        invoice = run_with_number_retry(_op, attempts=3)

        assert len(calls) == 2
        assert invoice.document_number == "INV2025-002"

    def test_persistent_duplicates_raise_exhausted(self, db_session):
        def _op():
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: invoices.owner_id, invoices.document_number"))

        with pytest.raises(DocumentNumberExhaustedError):
            run_with_number_retry(_op, attempts=2)

    def test_unrelated_integrity_error_is_not_retried(self, db_session):
        calls = []

        def _op():
            calls.append(1)
            raise IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: invoices.owner_id"))

        with pytest.raises(IntegrityError):
            run_with_number_retry(_op, attempts=5)
        assert len(calls) == 1

    def test_number_conflict_detection(self):
        assert is_number_conflict(IntegrityError(
            "INSERT", {}, Exception("UNIQUE constraint failed: estimates.owner_id, estimates.document_number")
        ))
        assert is_number_conflict(IntegrityError(
            "INSERT", {}, Exception('duplicate key value violates unique constraint "uq_invoices_owner_docnum"')
        ))
        assert not is_number_conflict(IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed")))

    def test_other_errors_roll_back_and_propagate(self, db_session, owner_a):
        def _op():
            db.session.add(Invoice(owner_id=owner_a, document_number="INV2025-001", status="sent", line_items=[]))
            db.session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_with_number_retry(_op)

        assert db_session.query(Invoice).count() == 0

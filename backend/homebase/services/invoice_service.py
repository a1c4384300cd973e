"""
Invoice Service - draft/sent/paid lifecycle with totals and numbering

Every create/update recomputes totals from the current line items. The
invoice number is allocated in the same transaction as the write that first
moves the invoice into a numbered status.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Estimate, Invoice
from homebase.time_utils import utcnow
from .totals_service import LineItem
from .document_service import (
    apply_status,
    apply_totals,
    get_owned,
    preview_document_number,
    run_with_number_retry,
)


def _prefix() -> str:
    return current_app.config.get("INVOICE_NUMBER_PREFIX", "INV")


def _check_estimate(owner_id: int, patch: dict) -> None:
    if patch.get("estimate_id") is not None:
        get_owned(Estimate, owner_id, patch["estimate_id"])


def _apply_paid_at(invoice: Invoice, previous_status: str) -> None:
    if invoice.status == "paid" and previous_status != "paid":
        invoice.paid_at = utcnow()
    elif previous_status == "paid" and invoice.status != "paid":
        invoice.paid_at = None


def list_invoices(owner_id: int, *, status: str | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).filter_by(owner_id=owner_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def get_invoice(owner_id: int, invoice_id: int) -> Invoice:
    return get_owned(Invoice, owner_id, invoice_id)


def create_invoice(
    owner_id: int,
    *,
    year: int,
    patch: dict | None = None,
    line_items: list[LineItem] | None = None,
    document_discount: Decimal | None = None,
    status: str | None = None,
) -> Invoice:
    """Create an invoice; numbered immediately only if created in a numbered status."""
    patch = dict(patch or {})
    _check_estimate(owner_id, patch)

    def _op() -> Invoice:
        issue_date = patch.get("issue_date") or utcnow().date()
        due_date = patch.get("due_date") or issue_date + timedelta(
            days=current_app.config.get("INVOICE_DUE_DAYS", 30)
        )
        invoice = Invoice(
            owner_id=owner_id,
            currency=current_app.config.get("DEFAULT_CURRENCY", "SEK"),
            status="draft",
            status_changed_at=utcnow(),
        )
        for key, value in patch.items():
            setattr(invoice, key, value)
        invoice.issue_date = issue_date
        invoice.due_date = due_date

        apply_totals(invoice, line_items or [], document_discount or Decimal(0))
        db.session.add(invoice)

        apply_status(invoice, status, year=year, prefix=_prefix())
        _apply_paid_at(invoice, "draft")

        db.session.commit()
        return invoice

    return run_with_number_retry(_op)


def update_invoice(
    owner_id: int,
    invoice_id: int,
    *,
    year: int,
    patch: dict | None = None,
    line_items: list[LineItem] | None = None,
    document_discount: Decimal | None = None,
    status: str | None = None,
) -> Invoice:
    """
    Merge the patch, recompute totals and apply any status transition.

    The number, once set, is kept; paid_at follows entry into and exit from "paid".
    """
    patch = dict(patch or {})
    _check_estimate(owner_id, patch)

    def _op() -> Invoice:
        invoice = get_owned(Invoice, owner_id, invoice_id, for_update=True)
        previous_status = invoice.status

        for key, value in patch.items():
            setattr(invoice, key, value)

        apply_totals(invoice, line_items, document_discount)
        apply_status(invoice, status, year=year, prefix=_prefix())
        _apply_paid_at(invoice, previous_status)

        db.session.commit()
        return invoice

    return run_with_number_retry(_op)


def delete_invoice(owner_id: int, invoice_id: int) -> None:
    invoice = get_owned(Invoice, owner_id, invoice_id)
    db.session.delete(invoice)
    db.session.commit()


def preview_next_invoice_number(owner_id: int, *, year: int) -> str:
    return preview_document_number(model=Invoice, owner_id=owner_id, year=year, prefix=_prefix())


def get_status_counts(owner_id: int) -> dict[str, int]:
    rows = (
        db.session.query(Invoice.status, func.count(Invoice.id))
        .filter(Invoice.owner_id == owner_id)
        .group_by(Invoice.status)
        .all()
    )
    return {status: count for status, count in rows}


"""
Estimate Service - quotes that can be sent, accepted/rejected, and converted

Estimates share the invoice totals calculation and numbering lifecycle:
no number while draft, one number on first entry into sent/accepted/rejected.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Estimate, Invoice
from ..validation import ConflictError
from homebase.time_utils import utcnow
from .totals_service import LineItem
from .document_service import (
    apply_status,
    apply_totals,
    get_owned,
    preview_document_number,
    run_with_number_retry,
)
from . import invoice_service


REASON_FIELDS = {
    "accepted": "acceptance_reasons",
    "rejected": "rejection_reasons",
}


def _prefix() -> str:
    return current_app.config.get("ESTIMATE_NUMBER_PREFIX", "")


def _append_reasons(estimate: Estimate, reasons: list[str] | None) -> None:
    field = REASON_FIELDS.get(estimate.status)
    if not field or not reasons:
        return
    # Reassign so the JSON column is marked dirty
    setattr(estimate, field, list(getattr(estimate, field) or []) + list(reasons))


def list_estimates(owner_id: int, *, status: str | None = None) -> list[Estimate]:
    query = db.session.query(Estimate).filter_by(owner_id=owner_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Estimate.created_at.desc(), Estimate.id.desc()).all()


def get_estimate(owner_id: int, estimate_id: int) -> Estimate:
    return get_owned(Estimate, owner_id, estimate_id)


def create_estimate(
    owner_id: int,
    *,
    year: int,
    patch: dict | None = None,
    line_items: list[LineItem] | None = None,
    document_discount: Decimal | None = None,
    status: str | None = None,
) -> Estimate:
    patch = dict(patch or {})

    def _op() -> Estimate:
        estimate = Estimate(
            owner_id=owner_id,
            currency=current_app.config.get("DEFAULT_CURRENCY", "SEK"),
            status="draft",
            status_changed_at=utcnow(),
            acceptance_reasons=[],
            rejection_reasons=[],
        )
        for key, value in patch.items():
            setattr(estimate, key, value)

        apply_totals(estimate, line_items or [], document_discount or Decimal(0))
        db.session.add(estimate)
        apply_status(estimate, status, year=year, prefix=_prefix())

        db.session.commit()
        return estimate

    return run_with_number_retry(_op)


def update_estimate(
    owner_id: int,
    estimate_id: int,
    *,
    year: int,
    patch: dict | None = None,
    line_items: list[LineItem] | None = None,
    document_discount: Decimal | None = None,
    status: str | None = None,
) -> Estimate:
    patch = dict(patch or {})

    def _op() -> Estimate:
        estimate = get_owned(Estimate, owner_id, estimate_id, for_update=True)
        for key, value in patch.items():
            setattr(estimate, key, value)

        apply_totals(estimate, line_items, document_discount)
        apply_status(estimate, status, year=year, prefix=_prefix())

        db.session.commit()
        return estimate

    return run_with_number_retry(_op)


def change_status(
    owner_id: int,
    estimate_id: int,
    *,
    status: str,
    year: int,
    reasons: list[str] | None = None,
) -> Estimate:
    """
    Move an estimate to status, recording acceptance/rejection reasons.

    Reasons are only recorded on an actual transition into accepted/rejected.
    """
    def _op() -> Estimate:
        estimate = get_owned(Estimate, owner_id, estimate_id, for_update=True)
        if apply_status(estimate, status, year=year, prefix=_prefix()):
            _append_reasons(estimate, reasons)
        db.session.commit()
        return estimate

    return run_with_number_retry(_op)


def delete_estimate(owner_id: int, estimate_id: int) -> None:
    estimate = get_owned(Estimate, owner_id, estimate_id)
    linked = db.session.query(Invoice.id).filter_by(estimate_id=estimate.id).first()
    if linked:
        raise ConflictError(f"Estimate has been converted to invoice {linked[0]}")
    db.session.delete(estimate)
    db.session.commit()


def preview_next_estimate_number(owner_id: int, *, year: int) -> str:
    return preview_document_number(model=Estimate, owner_id=owner_id, year=year, prefix=_prefix())


def convert_to_invoice(owner_id: int, estimate_id: int, *, year: int) -> Invoice:
    """
    Create a draft invoice from an estimate.

    Contact, currency, line items, discount and notes are copied; the invoice
    gets its own number later, when it is sent.
    """
    estimate = get_owned(Estimate, owner_id, estimate_id)
    if estimate.status == "rejected":
        raise ConflictError("Cannot convert a rejected estimate")

    invoice = invoice_service.create_invoice(
        owner_id,
        year=year,
        patch={
            "contact_id": estimate.contact_id,
            "contact_name": estimate.contact_name,
            "organization_number": estimate.organization_number,
            "currency": estimate.currency,
            "notes": estimate.notes,
            "estimate_id": estimate.id,
        },
        line_items=estimate.get_line_items(),
        document_discount=estimate.document_discount,
    )
    current_app.logger.info("Converted estimate %s to invoice %s", estimate_id, invoice.id)
    return invoice

# Overview: Public, time-limited invoice share links.

from __future__ import annotations

import secrets
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Invoice, InvoiceShare
from ..validation import ValidationError
from homebase.time_utils import utcnow
from .document_service import DocumentNotFoundError, get_owned


def generate_share_token() -> str:
    # 24 random bytes -> 32 URL-safe characters
    return secrets.token_urlsafe(24)


def create_share(owner_id: int, invoice_id: int, valid_until: datetime) -> InvoiceShare:
    if valid_until <= utcnow():
        raise ValidationError("valid_until must be in the future")

    invoice = get_owned(Invoice, owner_id, invoice_id)

    share = InvoiceShare(
        owner_id=owner_id,
        invoice_id=invoice.id,
        share_token=generate_share_token(),
        valid_until=valid_until,
        accessed_count=0,
    )
    db.session.add(share)
    db.session.commit()
    current_app.logger.info("Created share %s for invoice %s", share.id, invoice.id)
    return share


def list_shares(owner_id: int, invoice_id: int) -> list[InvoiceShare]:
    get_owned(Invoice, owner_id, invoice_id)
    return (
        db.session.query(InvoiceShare)
        .filter_by(invoice_id=invoice_id)
        .order_by(InvoiceShare.created_at.desc(), InvoiceShare.id.desc())
        .all()
    )


def revoke_share(owner_id: int, share_id: int) -> dict:
    share = db.session.query(InvoiceShare).filter_by(id=share_id, owner_id=owner_id).first()
    if not share:
        raise DocumentNotFoundError("Share not found")
    revoked = share.to_dict()
    db.session.delete(share)
    db.session.commit()
    current_app.logger.info("Revoked share %s for invoice %s", share_id, revoked["invoice_id"])
    return revoked


def get_invoice_by_share_token(token: str) -> Invoice | None:
    """
    Resolve a public token to its invoice, counting the access.

    Unknown and expired tokens both return None.
    """
    now = utcnow()
    share = (
        db.session.query(InvoiceShare)
        .filter(InvoiceShare.share_token == token, InvoiceShare.valid_until > now)
        .first()
    )
    if not share:
        return None

    share.accessed_count = InvoiceShare.accessed_count + 1
    share.last_accessed_at = now
    db.session.commit()
    return share.invoice


def clean_expired_shares() -> int:
    deleted = db.session.query(InvoiceShare).filter(InvoiceShare.valid_until < utcnow()).delete()
    db.session.commit()
    return deleted

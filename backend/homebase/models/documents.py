from __future__ import annotations

from ..extensions import db
from ..services.totals_service import DocumentTotals, LineItem, bps_to_percent
from homebase.time_utils import to_utc_z, to_iso_date


class DocumentTotalsMixin:
    """
    Monetary columns shared by invoices and estimates (all amounts in cents).

    Written only by the totals calculation; never set from request payloads.
    """
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_after_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    document_discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_after_document_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_vat_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Document-level discount in basis points (12.5% -> 1250)
    document_discount_bps = db.Column(db.Integer, nullable=False, default=0)

    def get_line_items(self) -> list[LineItem]:
        return [LineItem.from_dict(row) for row in (self.line_items or [])]

    def get_totals(self) -> DocumentTotals:
        return DocumentTotals.from_cents({
            name: getattr(self, f"{name}_cents") for name in DocumentTotals.FIELDS
        })

    def totals_dict(self) -> dict:
        return {f"{name}_cents": getattr(self, f"{name}_cents") for name in DocumentTotals.FIELDS}

    @property
    def document_discount(self):
        return bps_to_percent(self.document_discount_bps)


class Invoice(DocumentTotalsMixin, db.Model):
    """
    Invoice document.

    document_number stays NULL while the invoice is a draft and is allocated
    once, on the first transition into a numbered status. It is never cleared.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "document_number", name="uq_invoices_owner_docnum"),
        db.Index("ix_invoices_document_number", "document_number"),
        db.Index("ix_invoices_owner_status_created", "owner_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    STATUSES = ("draft", "sent", "paid", "overdue", "canceled")
    NUMBERED_STATUSES = frozenset({"sent", "paid", "overdue"})

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, nullable=False, index=True)

    # Human-readable number (e.g., "INV2025-007"), NULL while draft
    document_number = db.Column(db.String(32), nullable=True)

    contact_id = db.Column(db.Integer, nullable=True)
    contact_name = db.Column(db.String(255), nullable=False, default="")
    organization_number = db.Column(db.String(64), nullable=False, default="")
    currency = db.Column(db.String(3), nullable=False, default="SEK")

    line_items = db.Column(db.JSON, nullable=False, default=list)

    notes = db.Column(db.Text, nullable=False, default="")
    payment_terms = db.Column(db.String(255), nullable=False, default="")
    issue_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    estimate_id = db.Column(db.Integer, db.ForeignKey("estimates.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    estimate = db.relationship("Estimate", backref=db.backref("invoices", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "owner_id": self.owner_id,
            "document_number": self.document_number,
            "contact_id": self.contact_id,
            "contact_name": self.contact_name,
            "organization_number": self.organization_number,
            "currency": self.currency,
            "line_items": list(self.line_items or []),
            "document_discount": str(self.document_discount),
            "notes": self.notes,
            "payment_terms": self.payment_terms,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "status_changed_at": to_utc_z(self.status_changed_at),
            "paid_at": to_utc_z(self.paid_at),
            "estimate_id": self.estimate_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        data.update(self.totals_dict())
        return data


class Estimate(DocumentTotalsMixin, db.Model):
    """Estimate (quote) document. Numbered like invoices, without a prefix by default."""
    __tablename__ = "estimates"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "document_number", name="uq_estimates_owner_docnum"),
        db.Index("ix_estimates_document_number", "document_number"),
        db.Index("ix_estimates_owner_status_changed", "owner_id", "status", "status_changed_at"),
        {"sqlite_autoincrement": True},
    )

    STATUSES = ("draft", "sent", "accepted", "rejected")
    NUMBERED_STATUSES = frozenset({"sent", "accepted", "rejected"})

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, nullable=False, index=True)

    # e.g. "2025-007", NULL while draft
    document_number = db.Column(db.String(32), nullable=True)

    contact_id = db.Column(db.Integer, nullable=True)
    contact_name = db.Column(db.String(255), nullable=False, default="")
    organization_number = db.Column(db.String(64), nullable=False, default="")
    currency = db.Column(db.String(3), nullable=False, default="SEK")

    line_items = db.Column(db.JSON, nullable=False, default=list)

    notes = db.Column(db.Text, nullable=False, default="")
    valid_to = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    acceptance_reasons = db.Column(db.JSON, nullable=False, default=list)
    rejection_reasons = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "owner_id": self.owner_id,
            "document_number": self.document_number,
            "contact_id": self.contact_id,
            "contact_name": self.contact_name,
            "organization_number": self.organization_number,
            "currency": self.currency,
            "line_items": list(self.line_items or []),
            "document_discount": str(self.document_discount),
            "notes": self.notes,
            "valid_to": to_iso_date(self.valid_to),
            "status": self.status,
            "status_changed_at": to_utc_z(self.status_changed_at),
            "acceptance_reasons": list(self.acceptance_reasons or []),
            "rejection_reasons": list(self.rejection_reasons or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        data.update(self.totals_dict())
        return data


class InvoiceShare(db.Model):
    """Time-limited public link to a single invoice."""
    __tablename__ = "invoice_shares"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    share_token = db.Column(db.String(64), nullable=False, unique=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    accessed_count = db.Column(db.Integer, nullable=False, default=0)
    last_accessed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    invoice = db.relationship(
        "Invoice", backref=db.backref("shares", lazy=True, cascade="all, delete-orphan")
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "share_token": self.share_token,
            "valid_until": to_utc_z(self.valid_until),
            "created_at": to_utc_z(self.created_at),
            "accessed_count": self.accessed_count,
            "last_accessed_at": to_utc_z(self.last_accessed_at),
        }

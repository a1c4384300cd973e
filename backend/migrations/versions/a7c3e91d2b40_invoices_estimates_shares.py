"""Invoices, estimates and invoice share links

Revision ID: a7c3e91d2b40
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a7c3e91d2b40"
down_revision = None
branch_labels = None
depends_on = None


def _totals_columns():
    return [
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_discount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("subtotal_after_discount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("document_discount_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("subtotal_after_document_discount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_vat_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("document_discount_bps", sa.Integer(), nullable=False, server_default="0"),
    ]


def upgrade():
    op.create_table(
        "estimates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(length=32), nullable=True),
        sa.Column("contact_id", sa.Integer(), nullable=True),
        sa.Column("contact_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("organization_number", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SEK"),
        sa.Column("line_items", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("valid_to", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acceptance_reasons", sa.JSON(), nullable=False),
        sa.Column("rejection_reasons", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_totals_columns(),
        sa.UniqueConstraint("owner_id", "document_number", name="uq_estimates_owner_docnum"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_estimates_owner_id", "estimates", ["owner_id"], unique=False)
    op.create_index("ix_estimates_status", "estimates", ["status"], unique=False)
    op.create_index("ix_estimates_document_number", "estimates", ["document_number"], unique=False)
    op.create_index(
        "ix_estimates_owner_status_changed", "estimates", ["owner_id", "status", "status_changed_at"], unique=False
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(length=32), nullable=True),
        sa.Column("contact_id", sa.Integer(), nullable=True),
        sa.Column("contact_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("organization_number", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SEK"),
        sa.Column("line_items", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("payment_terms", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimate_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_totals_columns(),
        sa.ForeignKeyConstraint(["estimate_id"], ["estimates.id"]),
        sa.UniqueConstraint("owner_id", "document_number", name="uq_invoices_owner_docnum"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_invoices_owner_id", "invoices", ["owner_id"], unique=False)
    op.create_index("ix_invoices_status", "invoices", ["status"], unique=False)
    op.create_index("ix_invoices_estimate_id", "invoices", ["estimate_id"], unique=False)
    op.create_index("ix_invoices_document_number", "invoices", ["document_number"], unique=False)
    op.create_index(
        "ix_invoices_owner_status_created", "invoices", ["owner_id", "status", "created_at"], unique=False
    )

    op.create_table(
        "invoice_shares",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("share_token", sa.String(length=64), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("accessed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("share_token", name="uq_invoice_shares_token"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_invoice_shares_owner_id", "invoice_shares", ["owner_id"], unique=False)
    op.create_index("ix_invoice_shares_invoice_id", "invoice_shares", ["invoice_id"], unique=False)
    op.create_index("ix_invoice_shares_valid_until", "invoice_shares", ["valid_until"], unique=False)


def downgrade():
    op.drop_table("invoice_shares")
    op.drop_table("invoices")
    op.drop_table("estimates")

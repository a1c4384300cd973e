# Overview: Flask API routes for invoices and invoice shares; parses input and returns JSON responses.

# backend/homebase/routes/invoices.py
"""
Invoice API routes.

OWNER SCOPE: every route except the public share lookup requires the
X-Owner-Id header (see require_owner); all reads and writes are filtered
to g.owner_id.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Invoice
from ..services import invoice_service, share_service
from ..services.totals_service import vat_breakdown
from ..services.document_service import (
    DocumentError,
    DocumentNotFoundError,
    DocumentNumberExhaustedError,
)
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    split_document_payload,
    ValidationError,
)
from ..decorators import require_owner
from homebase.time_utils import current_year, parse_iso_datetime


INVOICE_POLICY = ModelValidationPolicy(
    writable_fields={
        "contact_id",
        "contact_name",
        "organization_number",
        "currency",
        "notes",
        "payment_terms",
        "issue_date",
        "due_date",
        "estimate_id",
    },
    required_on_create=set(),
)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _parse_invoice_payload(partial: bool) -> tuple[dict, dict]:
    columns, document = split_document_payload(request.get_json(silent=True), Invoice.STATUSES)
    patch = validate_payload(model=Invoice, payload=columns, policy=INVOICE_POLICY, partial=partial)
    return patch, document


def _invoice_detail(invoice: Invoice) -> dict:
    groups = vat_breakdown(invoice.get_line_items(), invoice.document_discount)
    return {
        "invoice": invoice.to_dict(),
        "vat_breakdown": [group.to_dict() for group in groups],
    }


@invoices_bp.get("")
@require_owner
def list_invoices_route():
    """
    List invoices, newest first.

    Query params:
    - status: str (optional) - filter by status
    """
    status = request.args.get("status")
    invoices = invoice_service.list_invoices(g.owner_id, status=status)
    return jsonify({"invoices": [inv.to_dict() for inv in invoices]}), 200


@invoices_bp.post("")
@require_owner
def create_invoice_route():
    """Create an invoice (draft unless a status is given). Totals are computed server-side."""
    try:
        patch, document = _parse_invoice_payload(partial=False)
        invoice = invoice_service.create_invoice(
            g.owner_id,
            year=current_year(),
            patch=patch,
            **document,
        )
        return jsonify(_invoice_detail(invoice)), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DocumentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DocumentNumberExhaustedError as e:
        current_app.logger.error("Invoice number allocation exhausted: %s", e.details)
        return jsonify({"error": str(e)}), 503
    except DocumentError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/number/next")
@require_owner
def next_invoice_number_route():
    """Preview the next invoice number. Nothing is reserved."""
    number = invoice_service.preview_next_invoice_number(g.owner_id, year=current_year())
    return jsonify({"document_number": number}), 200


@invoices_bp.get("/stats")
@require_owner
def invoice_stats_route():
    return jsonify({"status_counts": invoice_service.get_status_counts(g.owner_id)}), 200


@invoices_bp.get("/<int:invoice_id>")
@require_owner
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(g.owner_id, invoice_id)
    except DocumentNotFoundError:
        return jsonify({"error": "Invoice not found"}), 404
    return jsonify(_invoice_detail(invoice)), 200


@invoices_bp.put("/<int:invoice_id>")
@require_owner
def update_invoice_route(invoice_id: int):
    """
    Update an invoice.

    Totals are recomputed on every update. The first move into
    sent/paid/overdue assigns the invoice number.
    """
    try:
        patch, document = _parse_invoice_payload(partial=True)
        invoice = invoice_service.update_invoice(
            g.owner_id,
            invoice_id,
            year=current_year(),
            patch=patch,
            **document,
        )
        return jsonify(_invoice_detail(invoice)), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DocumentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DocumentNumberExhaustedError as e:
        current_app.logger.error("Invoice number allocation exhausted: %s", e.details)
        return jsonify({"error": str(e)}), 503
    except DocumentError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
@require_owner
def delete_invoice_route(invoice_id: int):
    try:
        invoice_service.delete_invoice(g.owner_id, invoice_id)
    except DocumentNotFoundError:
        return jsonify({"error": "Invoice not found"}), 404
    return jsonify({"ok": True}), 200


# =============================================================================
# Shares
# =============================================================================

@invoices_bp.get("/public/<token>")
def public_invoice_route(token: str):
    """Public read-only view through a share token. No owner context."""
    invoice = share_service.get_invoice_by_share_token(token)
    if not invoice:
        return jsonify({"error": "Invoice not found or link expired"}), 404
    return jsonify(_invoice_detail(invoice)), 200


@invoices_bp.post("/shares")
@require_owner
def create_share_route():
    data = request.get_json(silent=True) or {}
    invoice_id = data.get("invoice_id")
    valid_until_raw = data.get("valid_until")

    if not invoice_id or not valid_until_raw:
        return jsonify({"error": "invoice_id and valid_until required"}), 400

    try:
        valid_until = parse_iso_datetime(str(valid_until_raw))
    except ValueError:
        return jsonify({"error": "valid_until must be an ISO-8601 datetime"}), 400
    if valid_until is None:
        return jsonify({"error": "valid_until must be an ISO-8601 datetime"}), 400

    try:
        share = share_service.create_share(g.owner_id, int(invoice_id), valid_until)
        return jsonify({"share": share.to_dict()}), 201

    except (ValidationError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except DocumentNotFoundError:
        return jsonify({"error": "Invoice not found"}), 404
    except Exception:
        current_app.logger.exception("Failed to create invoice share")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/shares")
@require_owner
def list_shares_route(invoice_id: int):
    try:
        shares = share_service.list_shares(g.owner_id, invoice_id)
    except DocumentNotFoundError:
        return jsonify({"error": "Invoice not found"}), 404
    return jsonify({"shares": [s.to_dict() for s in shares]}), 200


@invoices_bp.delete("/shares/<int:share_id>")
@require_owner
def revoke_share_route(share_id: int):
    try:
        revoked = share_service.revoke_share(g.owner_id, share_id)
    except DocumentNotFoundError:
        return jsonify({"error": "Share not found"}), 404
    return jsonify({"share": revoked}), 200


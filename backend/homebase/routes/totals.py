# Overview: Stateless totals preview for document forms.

from decimal import Decimal

from flask import Blueprint, request, jsonify

from ..services.totals_service import calculate_totals, vat_breakdown
from ..validation import parse_line_items, parse_percent, ValidationError
from ..decorators import require_owner


totals_bp = Blueprint("totals", __name__, url_prefix="/api/totals")


@totals_bp.post("/preview")
@require_owner
def preview_totals_route():
    """
    Compute totals for unsaved line items.

    Body: {"line_items": [...], "document_discount": "10"}
    Amounts are returned as two-decimal strings.
    """
    data = request.get_json(silent=True) or {}
    try:
        items = parse_line_items(data.get("line_items"))
        discount = parse_percent(data.get("document_discount"), "document_discount", default=Decimal(0))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    totals = calculate_totals(items, discount)
    return jsonify({
        "totals": totals.to_dict(),
        "vat_breakdown": [group.to_dict() for group in vat_breakdown(items, discount)],
    }), 200

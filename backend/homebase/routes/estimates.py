# Overview: Flask API routes for estimates; parses input and returns JSON responses.

# backend/homebase/routes/estimates.py
"""Estimate API routes (owner scoped, see require_owner)."""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Estimate
from ..services import estimate_service
from ..services.document_service import (
    DocumentError,
    DocumentNotFoundError,
    DocumentNumberExhaustedError,
)
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    split_document_payload,
    parse_status,
    parse_reasons,
    ValidationError,
    ConflictError,
)
from ..decorators import require_owner
from homebase.time_utils import current_year


ESTIMATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "contact_id",
        "contact_name",
        "organization_number",
        "currency",
        "notes",
        "valid_to",
    },
    required_on_create=set(),
)

estimates_bp = Blueprint("estimates", __name__, url_prefix="/api/estimates")


def _parse_estimate_payload(partial: bool) -> tuple[dict, dict]:
    columns, document = split_document_payload(request.get_json(silent=True), Estimate.STATUSES)
    patch = validate_payload(model=Estimate, payload=columns, policy=ESTIMATE_POLICY, partial=partial)
    return patch, document


def _document_error_response(e: DocumentError):
    if isinstance(e, DocumentNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, DocumentNumberExhaustedError):
        current_app.logger.error("Estimate number allocation exhausted: %s", e.details)
        return jsonify({"error": str(e)}), 503
    return jsonify({"error": str(e), "details": e.details}), 400


@estimates_bp.get("")
@require_owner
def list_estimates_route():
    status = request.args.get("status")
    estimates = estimate_service.list_estimates(g.owner_id, status=status)
    return jsonify({"estimates": [est.to_dict() for est in estimates]}), 200


@estimates_bp.get("/next-number")
@require_owner
def next_estimate_number_route():
    """Preview the next estimate number. Nothing is reserved."""
    number = estimate_service.preview_next_estimate_number(g.owner_id, year=current_year())
    return jsonify({"document_number": number}), 200


@estimates_bp.post("")
@require_owner
def create_estimate_route():
    try:
        patch, document = _parse_estimate_payload(partial=False)
        estimate = estimate_service.create_estimate(
            g.owner_id,
            year=current_year(),
            patch=patch,
            **document,
        )
        return jsonify({"estimate": estimate.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DocumentError as e:
        return _document_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.get("/<int:estimate_id>")
@require_owner
def get_estimate_route(estimate_id: int):
    try:
        estimate = estimate_service.get_estimate(g.owner_id, estimate_id)
    except DocumentNotFoundError:
        return jsonify({"error": "Estimate not found"}), 404
    return jsonify({"estimate": estimate.to_dict()}), 200


@estimates_bp.put("/<int:estimate_id>")
@require_owner
def update_estimate_route(estimate_id: int):
    try:
        patch, document = _parse_estimate_payload(partial=True)
        estimate = estimate_service.update_estimate(
            g.owner_id,
            estimate_id,
            year=current_year(),
            patch=patch,
            **document,
        )
        return jsonify({"estimate": estimate.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DocumentError as e:
        return _document_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/status")
@require_owner
def change_estimate_status_route(estimate_id: int):
    """
    Change estimate status.

    Body: {"status": "accepted", "reasons": ["price", "timeline"]}
    Reasons are recorded for accepted/rejected transitions only.
    """
    data = request.get_json(silent=True) or {}
    try:
        status = parse_status(data.get("status"), Estimate.STATUSES)
        if status is None:
            return jsonify({"error": "status required"}), 400
        reasons = parse_reasons(data.get("reasons"))

        estimate = estimate_service.change_status(
            g.owner_id,
            estimate_id,
            status=status,
            year=current_year(),
            reasons=reasons,
        )
        return jsonify({"estimate": estimate.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DocumentError as e:
        return _document_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change estimate status")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.post("/<int:estimate_id>/convert")
@require_owner
def convert_estimate_route(estimate_id: int):
    """Create a draft invoice from the estimate."""
    try:
        invoice = estimate_service.convert_to_invoice(g.owner_id, estimate_id, year=current_year())
        return jsonify({"invoice": invoice.to_dict()}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except DocumentError as e:
        return _document_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to convert estimate")
        return jsonify({"error": "Internal server error"}), 500


@estimates_bp.delete("/<int:estimate_id>")
@require_owner
def delete_estimate_route(estimate_id: int):
    try:
        estimate_service.delete_estimate(g.owner_id, estimate_id)
    except DocumentNotFoundError:
        return jsonify({"error": "Estimate not found"}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200

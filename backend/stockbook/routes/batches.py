# backend/stockbook/routes/batches.py
"""
Client batch routes: saved challan drafts per client.

SECURITY: All routes require an acting user (X-User-Id).

A batch never consumes movement records or moves stock until it is issued
through POST /api/client-batches/<id>/issue.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError, ValidationError
from ..decorators import require_user
from ..validation import BATCH_FIELDS, BATCH_ISSUE_FIELDS, validate_challan_payload
from ..services import batch_service


batches_bp = Blueprint("client_batches", __name__, url_prefix="/api/client-batches")


@batches_bp.get("")
@require_user
def list_batches_route():
    """Query params: status (pending|completed|cancelled, default pending)"""
    try:
        batches = batch_service.list_batches(status=request.args.get("status", "pending"))
        return jsonify({"batches": [b.to_dict() for b in batches]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list client batches")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("")
@require_user
def create_batch_route():
    """
    Save a batch.

    Body:
    {
      "label": "Sharma Sweets - Diwali",
      "audit_ids": [1, 2],
      "line_overrides": [{"audit_id": 1, "rate": "12.50"}],
      "manual_items": [{"box_id": 3, "color": "Red", "quantity": 10}],
      "client_details": {"name": ..., "mobile": ...},
      "notes": "..."
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        kwargs = validate_challan_payload(payload, fields=BATCH_FIELDS)
        batch = batch_service.create_batch(user_id=g.user_id, **kwargs)
        return jsonify({"batch": batch.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save client batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.get("/<int:batch_id>")
@require_user
def get_batch_route(batch_id: int):
    try:
        batch = batch_service.get_batch(batch_id)
        return jsonify({"batch": batch.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get client batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/<int:batch_id>/append")
@require_user
def append_batch_route(batch_id: int):
    """Body: same keys as create except label."""
    payload = request.get_json(silent=True) or {}

    try:
        kwargs = validate_challan_payload(payload, fields=BATCH_FIELDS - {"label"})
        batch = batch_service.append_to_batch(batch_id, **kwargs)
        return jsonify({"batch": batch.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to append to client batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/<int:batch_id>/remove-audit")
@require_user
def remove_audit_route(batch_id: int):
    """Body: {"audit_id": 12}"""
    payload = request.get_json(silent=True) or {}

    try:
        if payload.get("audit_id") is None:
            raise ValidationError("audit_id is required")
        batch = batch_service.remove_audit_from_batch(batch_id, payload["audit_id"])
        return jsonify({"batch": batch.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove audit from client batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/move-audit")
@require_user
def move_audit_route():
    """Body: {"audit_id": 12, "from_batch_id": 1, "to_batch_id": 2}"""
    payload = request.get_json(silent=True) or {}

    try:
        missing = [k for k in ("audit_id", "from_batch_id", "to_batch_id") if payload.get(k) is None]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        source, target = batch_service.move_audit_between_batches(
            payload["audit_id"],
            from_batch_id=payload["from_batch_id"],
            to_batch_id=payload["to_batch_id"],
        )
        return jsonify({"from_batch": source.to_dict(), "to_batch": target.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to move audit between client batches")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.post("/<int:batch_id>/issue")
@require_user
def issue_batch_route(batch_id: int):
    """
    Issue a pending batch as a challan.

    Body (all optional): packaging_charges_overall, discount_pct, tax_type,
    inventory_mode, issued_at
    """
    payload = request.get_json(silent=True) or {}

    try:
        kwargs = validate_challan_payload(payload, fields=BATCH_ISSUE_FIELDS)
        challan = batch_service.issue_batch(batch_id, user_id=g.user_id, **kwargs)
        return jsonify({"challan": challan.to_dict(), "batch": batch_service.get_batch(batch_id).to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue client batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.delete("/<int:batch_id>")
@require_user
def cancel_batch_route(batch_id: int):
    """Abandon a pending batch; its movement records stay available."""
    try:
        batch = batch_service.cancel_batch(batch_id)
        return jsonify({"batch": batch.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel client batch")
        return jsonify({"error": "Internal server error"}), 500

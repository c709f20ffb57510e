# backend/stockbook/routes/boxes.py
"""
Per-colour stock routes for boxes.

SECURITY: All routes require an acting user (X-User-Id).

Errors are returned as {"error": kind, "message": ..., "details": {...}}
with the status code carried by the LedgerError subclass.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..models import BoxAudit
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_stock_move,
)
from ..decorators import require_user
from ..services import stock_service


boxes_bp = Blueprint("boxes", __name__, url_prefix="/api/boxes")

STOCK_MOVE_POLICY = ModelValidationPolicy(
    writable_fields={"color", "quantity", "note"},
    required_on_create={"color", "quantity"},
)


def _stock_summary(box_id: int) -> dict:
    return {
        "box_id": box_id,
        "stock": stock_service.get_stock(box_id),
        "total": stock_service.get_total_stock(box_id),
    }


@boxes_bp.get("/<int:box_id>/stock")
@require_user
def get_stock_route(box_id: int):
    """Current per-colour stock for a box."""
    try:
        summary = _stock_summary(box_id)
        summary["availability"] = stock_service.get_color_availability(box_id)
        return jsonify(summary), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read stock")
        return jsonify({"error": "Internal server error"}), 500


@boxes_bp.post("/<int:box_id>/stock/validate")
@require_user
def validate_stock_route(box_id: int):
    """
    Check requested colours/quantities against stock without changing it.

    Body: {"items": [{"color": "Red", "qty": 5}, ...]}
    """
    payload = request.get_json(silent=True) or {}
    items = payload.get("items")
    if not isinstance(items, list):
        return jsonify({"error": "validation_error", "message": "items must be a list", "details": {}}), 400

    try:
        stock_service.validate_stock(box_id, [i for i in items if isinstance(i, dict)])
        return jsonify({"valid": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate stock")
        return jsonify({"error": "Internal server error"}), 500


def _move(box_id: int, direction: str):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=BoxAudit,
            payload=payload,
            policy=STOCK_MOVE_POLICY,
            partial=False,
        )
        enforce_rules_stock_move(patch)

        mutate = stock_service.add_stock if direction == "add" else stock_service.subtract_stock
        audit = mutate(
            box_id,
            patch["color"],
            patch["quantity"],
            user_id=g.user_id,
            note=patch.get("note"),
        )
        return jsonify({"audit": audit.to_dict(), "summary": _stock_summary(box_id)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to %s stock", direction)
        return jsonify({"error": "Internal server error"}), 500


@boxes_bp.post("/<int:box_id>/stock/add")
@require_user
def add_stock_route(box_id: int):
    """Body: {"color": "Red", "quantity": 10, "note": "..."}"""
    return _move(box_id, "add")


@boxes_bp.post("/<int:box_id>/stock/subtract")
@require_user
def subtract_stock_route(box_id: int):
    """
    Body: {"color": "Red", "quantity": 3, "note": "..."}

    409 insufficient_stock when the colour bucket holds less than requested;
    stock is left untouched.
    """
    return _move(box_id, "subtract")

# backend/stockbook/routes/audits.py
"""
Movement audit log routes (read-only).

Records are created by stock mutations and consumed by challans; there is
no endpoint that edits them.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..decorators import require_user
from ..services import audit_service


audits_bp = Blueprint("audits", __name__, url_prefix="/api/audits")


@audits_bp.get("/unused")
@require_user
def list_unused_route():
    """
    Challan candidates: stock movements not yet on a challan.

    Query params: box_id, action (add|subtract), user_id, color
    """
    try:
        audits = audit_service.list_unused(
            box_id=request.args.get("box_id", type=int),
            action=request.args.get("action") or None,
            user_id=request.args.get("user_id", type=int),
            color=request.args.get("color") or None,
        )
        return jsonify({"audits": [a.to_dict() for a in audits]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list unused audits")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.get("")
@require_user
def list_audits_route():
    """Query params: box_id, used (true|false), limit (default 200)"""
    used_raw = request.args.get("used")
    used = None
    if used_raw is not None:
        used = used_raw.strip().lower() in ("1", "true", "yes")

    try:
        audits = audit_service.list_audits(
            box_id=request.args.get("box_id", type=int),
            used=used,
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"audits": [a.to_dict() for a in audits]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list audits")
        return jsonify({"error": "Internal server error"}), 500

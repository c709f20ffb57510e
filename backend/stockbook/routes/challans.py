# backend/stockbook/routes/challans.py
"""
Challan routes: issue, inspect, cancel and client lookup.

SECURITY: All routes require an acting user (X-User-Id).

Totals in responses are strings with 2 decimals (rupees), exactly as
stored at issue time; clients must not recompute them.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..decorators import require_user
from ..validation import validate_challan_payload
from ..services import challan_service, sequence_service
from stockbook.time_utils import to_utc_z


challans_bp = Blueprint("challans", __name__, url_prefix="/api/challans")


@challans_bp.post("")
@require_user
def issue_challan_route():
    """
    Issue a challan.

    Body:
    {
      "audit_ids": [1, 2],
      "line_overrides": [{"audit_id": 1, "rate": "12.50", "cavity": "8x8"}],
      "manual_items": [{"box_id": 3, "color": "Red", "quantity": 10, "rate": 9}],
      "packaging_charges_overall": 50,
      "discount_pct": 10,
      "tax_type": "GST" | "NON_GST",
      "inventory_mode": "dispatch" | "inward" | "record_only",  (inward is numbered SR/YY-YY/NNN)
      "client_details": {"name": ..., "address": ..., "mobile": ..., "gst_number": ...},
      "notes": "...",
      "issued_at": "2026-04-01T10:00:00Z"
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        kwargs = validate_challan_payload(payload)
        challan = challan_service.issue_challan(user_id=g.user_id, **kwargs)
        return jsonify({"challan": challan.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue challan")
        return jsonify({"error": "Internal server error"}), 500


@challans_bp.get("")
@require_user
def list_challans_route():
    """Query params: tax_type, financial_year, status, doc_type, limit, offset"""
    try:
        challans = challan_service.list_challans(
            tax_type=request.args.get("tax_type") or None,
            financial_year=request.args.get("financial_year") or None,
            status=request.args.get("status") or None,
            doc_type=request.args.get("doc_type") or None,
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"challans": [c.to_dict() for c in challans]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list challans")
        return jsonify({"error": "Internal server error"}), 500


@challans_bp.get("/<int:challan_id>")
@require_user
def get_challan_route(challan_id: int):
    try:
        challan = challan_service.get_challan(challan_id)
        return jsonify({"challan": challan.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get challan")
        return jsonify({"error": "Internal server error"}), 500


@challans_bp.post("/<int:challan_id>/cancel")
@require_user
def cancel_challan_route(challan_id: int):
    """
    Cancel an ACTIVE challan. Body: {"reason": "..."} (optional)

    Stock moved by the challan's manual lines is reversed; the number is
    never reused.
    """
    payload = request.get_json(silent=True) or {}

    try:
        challan = challan_service.cancel_challan(
            challan_id,
            user_id=g.user_id,
            reason=payload.get("reason"),
        )
        return jsonify({"challan": challan.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel challan")
        return jsonify({"error": "Internal server error"}), 500


@challans_bp.get("/clients")
@require_user
def search_clients_route():
    """Query params: q (name, mobile or address fragment), limit (default 10)"""
    try:
        clients = challan_service.search_clients(
            request.args.get("q", ""),
            limit=request.args.get("limit", 10, type=int),
        )
        for client in clients:
            client["last_used_at"] = to_utc_z(client["last_used_at"])
        return jsonify({"clients": clients}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to search clients")
        return jsonify({"error": "Internal server error"}), 500


@challans_bp.get("/counters/<fy>/<series>")
@require_user
def get_counter_route(fy: str, series: str):
    """
    Diagnostic peek at the last issued sequence; never use it to predict numbers.

    series: GST, NON_GST or RECEIPT (inward receipts)
    """
    try:
        series = challan_service.normalize_series(series)
        return jsonify({
            "financial_year": fy,
            "series": series,
            "last_value": sequence_service.current_sequence(fy, series),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read challan counter")
        return jsonify({"error": "Internal server error"}), 500

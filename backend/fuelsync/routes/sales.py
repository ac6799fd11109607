# Overview: Flask API routes for fuel sales; parses input and returns JSON responses.

# backend/fuelsync/routes/sales.py
"""
Sales API Routes

DESIGN:
- POST posts a sale from a new cumulative meter reading
- POST /<id>/void reverses it (compensating entry, never a delete)
- Errors carry a code and the expected vs. supplied values so the client
  can correct and resubmit

SECURITY:
- Any role may post sales
- Owners and managers void
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_role
from ..services import sales_service
from ..services.tenant_service import ROLE_MANAGER, ROLE_OWNER
from . import HANDLED_ERRORS, arg_bool, arg_datetime, arg_int, error_response


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_caller
def create_sale_route():
    """
    Request body:
    {
        "station_id": 1,
        "nozzle_id": 3,
        "cumulative_reading": "1045.50",
        "volume": "45.50",             (optional; overrides the meter delta)
        "cash_received": "100.00",
        "credit_given": "45.60",
        "credit_party_id": 7,           (required when credit_given > 0)
        "tender_type": "cash",          (cash | card | upi, default cash)
        "notes": "..."
    }

    Returns:
        201: {"sale": {...}, "warnings": [...]}
        404: nozzle or creditor not found
        409: stale meter reading or no active price
        422: non-positive volume or payment split mismatch
    """
    data = request.get_json(silent=True) or {}
    if not data.get("station_id") or not data.get("nozzle_id") or data.get("cumulative_reading") is None:
        return jsonify({"error": "station_id, nozzle_id, and cumulative_reading required"}), 400

    try:
        posted = sales_service.create_sale(
            station_id=data["station_id"],
            nozzle_id=data["nozzle_id"],
            user_id=g.caller.user_id,
            cumulative_reading=data["cumulative_reading"],
            explicit_volume=data.get("volume"),
            cash_received=data.get("cash_received", 0),
            credit_given=data.get("credit_given", 0),
            credit_party_id=data.get("credit_party_id"),
            tender_type=data.get("tender_type"),
            notes=data.get("notes"),
            schema=g.caller.tenant_schema,
        )
        return jsonify(posted.to_dict()), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_caller
def list_sales_route():
    """
    Query params:
    - station_id (required)
    - start, end: ISO-8601 window on recorded_at
    - user_id: only this attendant's sales
    - include_voided (default false)
    - limit (default 200, max 1000)
    """
    try:
        station_id = arg_int("station_id", required=True)
        sales = sales_service.list_sales(
            station_id,
            arg_datetime("start"),
            arg_datetime("end"),
            request.args.get("user_id") or None,
            arg_bool("include_voided"),
            limit=min(arg_int("limit") or 200, 1000),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"sales": [s.to_dict() for s in sales]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>")
@require_caller
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, schema=g.caller.tenant_schema)
        return jsonify({"sale": sale.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@sales_bp.post("/<int:sale_id>/void")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def void_sale_route(sale_id: int):
    """
    Request body:
    {
        "reason": "Wrong nozzle",
        "rollback_meter": false     (only allowed for the nozzle's latest sale)
    }

    Returns:
        200: voided sale
        404: sale not found
        409: already voided, day finalized, or meter rollback out of order
    """
    data = request.get_json(silent=True) or {}
    reason = data.get("reason")
    if not reason:
        return jsonify({"error": "Void reason required"}), 400
    rollback_meter = data.get("rollback_meter", False)
    if not isinstance(rollback_meter, bool):
        return jsonify({"error": "rollback_meter must be true or false"}), 400

    try:
        sale = sales_service.void_sale(
            sale_id,
            g.caller.user_id,
            reason,
            rollback_meter=rollback_meter,
            schema=g.caller.tenant_schema,
        )
        return jsonify({"sale": sale.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500

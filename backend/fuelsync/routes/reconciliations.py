# Overview: Flask API routes for end-of-day reconciliation.

# backend/fuelsync/routes/reconciliations.py
"""
Daily Reconciliation API Routes

DESIGN:
- GET /totals previews the day's computed totals
- POST saves a draft; POST /finalize locks the day
- Finalize is safe to repeat with the same totals

SECURITY:
- Owners and managers reconcile
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_role
from ..services import reconciliation_service
from ..services.tenant_service import ROLE_MANAGER, ROLE_OWNER
from . import HANDLED_ERRORS, arg_date, arg_int, body_date, error_response


reconciliations_bp = Blueprint("reconciliations", __name__, url_prefix="/api/reconciliations")


@reconciliations_bp.get("/totals")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def daily_totals_route():
    """Query params: station_id, date (YYYY-MM-DD)"""
    try:
        station_id = arg_int("station_id", required=True)
        day = arg_date("date", required=True)
        totals = reconciliation_service.compute_daily_totals(station_id, day, schema=g.caller.tenant_schema)
        entered = reconciliation_service.entered_tender_totals(station_id, day, schema=g.caller.tenant_schema)
        return jsonify({
            "totals": totals.to_dict(),
            "entered_tenders": {tender: str(amount) for tender, amount in entered.items()},
            "locked": reconciliation_service.is_day_locked(station_id, day, schema=g.caller.tenant_schema),
        }), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@reconciliations_bp.get("")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def list_reconciliations_route():
    """Query params: station_id (required), start, end (YYYY-MM-DD, inclusive)"""
    try:
        station_id = arg_int("station_id", required=True)
        records = reconciliation_service.list_reconciliations(
            station_id,
            arg_date("start"),
            arg_date("end"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"reconciliations": [r.to_dict() for r in records]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@reconciliations_bp.get("/<int:station_id>/<day>")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def get_reconciliation_route(station_id: int, day: str):
    try:
        rec = reconciliation_service.get_reconciliation(
            station_id,
            body_date({"date": day}, "date"),
            schema=g.caller.tenant_schema,
        )
        if not rec:
            return jsonify({"error": "Reconciliation not found"}), 404
        return jsonify({"reconciliation": rec.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


def _reconcile(save):
    data = request.get_json(silent=True) or {}
    if not data.get("station_id"):
        return jsonify({"error": "station_id required"}), 400
    try:
        rec = save(
            data["station_id"],
            body_date(data, "date"),
            data.get("card_total"),
            data.get("upi_total"),
            g.caller.user_id,
            data.get("notes"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"reconciliation": rec.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to save reconciliation")
        return jsonify({"error": "Internal server error"}), 500


@reconciliations_bp.post("")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def save_draft_route():
    """
    Request body:
    {
        "station_id": 1,
        "date": "2026-03-14",
        "card_total": "250.00",   (optional; defaults to card-tagged sales)
        "upi_total": "120.00",    (optional; defaults to UPI-tagged sales)
        "notes": "..."
    }
    """
    return _reconcile(reconciliation_service.save_draft)


@reconciliations_bp.post("/finalize")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def finalize_route():
    """
    Same body as the draft route.

    Returns:
        200: finalized reconciliation (also when repeated with identical totals)
        409: day already finalized with different totals
        422: tender totals do not add up to total sales
    """
    return _reconcile(reconciliation_service.finalize)

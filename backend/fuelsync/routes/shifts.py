# Overview: Flask API routes for attendant shifts and their tender entries.

# backend/fuelsync/routes/shifts.py
"""
Shift API Routes

DESIGN:
- POST opens a shift for the caller; one open shift per user
- POST /<id>/close records closing cash and freezes the shift
- Tender entries are recorded against an open shift
- GET /<id>/summary compares entered tenders with sales in the shift window

SECURITY:
- Any role may open a shift and record on its own shift
- Owners and managers may close or record on anyone's shift
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller
from ..services import shift_service
from ..services.tenant_service import ROLE_MANAGER, ROLE_OWNER
from . import HANDLED_ERRORS, arg_datetime, arg_int, error_response


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _can_act_for_others() -> bool:
    return g.caller.role in (ROLE_OWNER, ROLE_MANAGER)


@shifts_bp.post("")
@require_caller
def open_shift_route():
    """
    Request body:
    {
        "station_id": 1,
        "opening_cash": "500.00",    (optional; default 0)
        "notes": "..."               (optional)
    }

    Returns:
        201: shift opened
        409: caller already has an open shift
    """
    data = request.get_json(silent=True) or {}
    if not data.get("station_id"):
        return jsonify({"error": "station_id required"}), 400
    try:
        shift = shift_service.open_shift(
            data["station_id"],
            g.caller.user_id,
            data.get("opening_cash", 0),
            data.get("notes"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"shift": shift.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/close")
@require_caller
def close_shift_route(shift_id: int):
    """
    Request body:
    {
        "closing_cash": "1240.00",
        "notes": "..."               (optional)
    }

    Returns:
        200: shift closed
        403: attendant closing someone else's shift
        404: shift not found
        409: shift already closed
    """
    data = request.get_json(silent=True) or {}
    if data.get("closing_cash") is None:
        return jsonify({"error": "closing_cash required"}), 400
    try:
        shift = shift_service.close_shift(
            shift_id,
            g.caller.user_id,
            data["closing_cash"],
            data.get("notes"),
            allow_other=_can_act_for_others(),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"shift": shift.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/active")
@require_caller
def active_shift_route():
    shift = shift_service.get_active_shift(g.caller.user_id, schema=g.caller.tenant_schema)
    if not shift:
        return jsonify({"error": "No active shift", "code": "NO_ACTIVE_SHIFT"}), 404
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.get("")
@require_caller
def list_shifts_route():
    """Query params: station_id, status (open|closed), start, end (ISO-8601, on start_time)"""
    try:
        shifts = shift_service.list_shifts(
            arg_int("station_id"),
            request.args.get("status") or None,
            arg_datetime("start"),
            arg_datetime("end"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@shifts_bp.get("/<int:shift_id>")
@require_caller
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id, schema=g.caller.tenant_schema)
        return jsonify({"shift": shift.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


# =============================================================================
# TENDER ENTRIES
# =============================================================================

@shifts_bp.post("/<int:shift_id>/tender-entries")
@require_caller
def record_tender_entry_route(shift_id: int):
    """
    Request body:
    {
        "tender_type": "card",           (cash | card | upi | credit)
        "amount": "1520.00",
        "reference_number": "BATCH-42",  (optional)
        "notes": "..."                   (optional)
    }

    Returns:
        201: entry recorded
        409: shift closed or station-day already finalized
    """
    data = request.get_json(silent=True) or {}
    if not data.get("tender_type") or data.get("amount") is None:
        return jsonify({"error": "tender_type and amount required"}), 400
    try:
        entry = shift_service.record_tender_entry(
            shift_id,
            g.caller.user_id,
            data["tender_type"],
            data["amount"],
            data.get("reference_number"),
            data.get("notes"),
            allow_other=_can_act_for_others(),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"tender_entry": entry.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record tender entry")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>/tender-entries")
@require_caller
def list_tender_entries_route(shift_id: int):
    try:
        entries = shift_service.get_tender_entries(shift_id, schema=g.caller.tenant_schema)
        return jsonify({"shift_id": shift_id, "tender_entries": [e.to_dict() for e in entries]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@shifts_bp.get("/<int:shift_id>/summary")
@require_caller
def shift_summary_route(shift_id: int):
    try:
        summary = shift_service.get_shift_summary(shift_id, schema=g.caller.tenant_schema)
        return jsonify(summary.to_dict()), 200
    except HANDLED_ERRORS as e:
        return error_response(e)

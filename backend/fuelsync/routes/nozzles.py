# Overview: Flask API routes for nozzles and meter readings.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_role
from ..services import nozzle_service
from ..services.tenant_service import ROLE_MANAGER, ROLE_OWNER
from . import HANDLED_ERRORS, arg_int, error_response


nozzles_bp = Blueprint("nozzles", __name__, url_prefix="/api/nozzles")


@nozzles_bp.post("")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_nozzle_route():
    """
    Request body:
    {
        "pump_id": 1,
        "fuel_type": "petrol",
        "initial_reading": "1000.00"   (optional, default 0)
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("pump_id") or not data.get("fuel_type"):
        return jsonify({"error": "pump_id and fuel_type required"}), 400
    try:
        nozzle = nozzle_service.create_nozzle(
            data["pump_id"],
            data["fuel_type"],
            data.get("initial_reading", 0),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"nozzle": nozzle.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create nozzle")
        return jsonify({"error": "Internal server error"}), 500


@nozzles_bp.get("/<int:nozzle_id>")
@require_caller
def get_nozzle_route(nozzle_id: int):
    nozzle = nozzle_service.get_nozzle(nozzle_id, schema=g.caller.tenant_schema)
    if not nozzle:
        return jsonify({"error": "Nozzle not found"}), 404
    return jsonify({"nozzle": nozzle.to_dict()}), 200


@nozzles_bp.patch("/<int:nozzle_id>/active")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def set_nozzle_active_route(nozzle_id: int):
    data = request.get_json(silent=True) or {}
    active = data.get("active")
    if not isinstance(active, bool):
        return jsonify({"error": "active must be true or false"}), 400
    try:
        nozzle = nozzle_service.set_nozzle_active(nozzle_id, active, schema=g.caller.tenant_schema)
        return jsonify({"nozzle": nozzle.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


# =============================================================================
# READINGS
# =============================================================================

@nozzles_bp.post("/<int:nozzle_id>/readings")
@require_caller
def record_reading_route(nozzle_id: int):
    """
    Manual meter reading outside a sale (shift handover, calibration check).

    Request body: {"reading": "1050.00", "notes": "..."}

    Returns:
        201: reading recorded
        409: reading not above the current meter value
    """
    data = request.get_json(silent=True) or {}
    if data.get("reading") is None:
        return jsonify({"error": "reading required"}), 400
    try:
        entry = nozzle_service.record_manual_reading(
            nozzle_id,
            data["reading"],
            g.caller.user_id,
            data.get("notes"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"reading": entry.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record nozzle reading")
        return jsonify({"error": "Internal server error"}), 500


@nozzles_bp.get("/<int:nozzle_id>/readings")
@require_caller
def reading_history_route(nozzle_id: int):
    try:
        readings = nozzle_service.get_reading_history(
            nozzle_id,
            limit=min(arg_int("limit") or 100, 500),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"nozzle_id": nozzle_id, "readings": [r.to_dict() for r in readings]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)

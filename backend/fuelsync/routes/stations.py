# Overview: Flask API routes for stations and pumps.

# backend/fuelsync/routes/stations.py
"""
Station & Pump API Routes

SECURITY:
- Owners create and deactivate stations
- Owners and managers add pumps
- Any caller may read
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_role
from ..services import ledger_service, nozzle_service, station_service
from ..services.tenant_service import ROLE_MANAGER, ROLE_OWNER, bind_tenant_schema
from . import HANDLED_ERRORS, arg_bool, arg_int, error_response


stations_bp = Blueprint("stations", __name__, url_prefix="/api/stations")


@stations_bp.get("")
@require_caller
def list_stations_route():
    try:
        stations = station_service.list_stations(
            include_inactive=arg_bool("include_inactive"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"stations": [s.to_dict() for s in stations]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@stations_bp.post("")
@require_caller
@require_role(ROLE_OWNER)
def create_station_route():
    """
    Request body:
    {
        "name": "Highway 7",
        "code": "HW7",       (optional, unique)
        "address": "...",    (optional)
        "city": "..."        (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        station = station_service.create_station(
            name=data.get("name"),
            code=data.get("code"),
            address=data.get("address"),
            city=data.get("city"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"station": station.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create station")
        return jsonify({"error": "Internal server error"}), 500


@stations_bp.get("/<int:station_id>")
@require_caller
def get_station_route(station_id: int):
    station = station_service.get_station(station_id, schema=g.caller.tenant_schema)
    if not station:
        return jsonify({"error": "Station not found"}), 404
    return jsonify({"station": station.to_dict()}), 200


@stations_bp.patch("/<int:station_id>/active")
@require_caller
@require_role(ROLE_OWNER)
def set_station_active_route(station_id: int):
    data = request.get_json(silent=True) or {}
    active = data.get("active")
    if not isinstance(active, bool):
        return jsonify({"error": "active must be true or false"}), 400
    try:
        station = station_service.set_station_active(station_id, active, schema=g.caller.tenant_schema)
        return jsonify({"station": station.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


# =============================================================================
# PUMPS / NOZZLES
# =============================================================================

@stations_bp.get("/<int:station_id>/pumps")
@require_caller
def list_pumps_route(station_id: int):
    pumps = station_service.list_pumps(station_id, schema=g.caller.tenant_schema)
    return jsonify({"pumps": [p.to_dict() for p in pumps]}), 200


@stations_bp.post("/<int:station_id>/pumps")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_pump_route(station_id: int):
    data = request.get_json(silent=True) or {}
    try:
        pump = station_service.create_pump(
            station_id,
            data.get("name"),
            data.get("serial_number"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"pump": pump.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create pump")
        return jsonify({"error": "Internal server error"}), 500


@stations_bp.get("/<int:station_id>/nozzles")
@require_caller
def list_station_nozzles_route(station_id: int):
    nozzles = nozzle_service.list_station_nozzles(
        station_id,
        include_inactive=arg_bool("include_inactive"),
        schema=g.caller.tenant_schema,
    )
    return jsonify({"nozzles": [n.to_dict() for n in nozzles]}), 200


# =============================================================================
# AUDIT LEDGER
# =============================================================================

@stations_bp.get("/<int:station_id>/ledger")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def station_ledger_route(station_id: int):
    """
    Query params:
    - category: sales, nozzles, pricing, creditors, reconciliation
    - sale_id, creditor_id
    - limit (default 100, max 500)
    """
    try:
        limit = min(arg_int("limit") or 100, 500)
        bind_tenant_schema(g.caller.tenant_schema)
        events = ledger_service.get_ledger_events(
            station_id,
            event_category=request.args.get("category") or None,
            sale_id=arg_int("sale_id"),
            creditor_id=arg_int("creditor_id"),
            limit=limit,
        )
        return jsonify({"events": [e.to_dict() for e in events]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)

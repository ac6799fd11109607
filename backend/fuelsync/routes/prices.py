# Overview: Flask API routes for the fuel price registry.

# backend/fuelsync/routes/prices.py
"""
Fuel Price API Routes

DESIGN:
- POST opens a new price interval (closing the previous one)
- GET returns the open interval per fuel type
- /in-effect answers "what did this cost at time T"
- /history lists intervals overlapping a window

SECURITY:
- Owners and managers set prices
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_role
from ..services import pricing_service
from ..services.tenant_service import ROLE_MANAGER, ROLE_OWNER
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError
from . import HANDLED_ERRORS, arg_datetime, arg_int, error_response


prices_bp = Blueprint("prices", __name__, url_prefix="/api/fuel-prices")


@prices_bp.get("")
@require_caller
def current_prices_route():
    """Query params: station_id (required)"""
    try:
        station_id = arg_int("station_id", required=True)
        prices = pricing_service.get_current_prices(station_id, schema=g.caller.tenant_schema)
        return jsonify({"station_id": station_id, "prices": [p.to_dict() for p in prices]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@prices_bp.post("")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def set_price_route():
    """
    Request body:
    {
        "station_id": 1,
        "fuel_type": "diesel",
        "price_per_unit": "3.20",
        "effective_from": "2026-01-01T06:00:00Z",   (optional, default now)
        "notes": "..."                               (optional)
    }

    Returns:
        201: new open price interval
        400: invalid input or effective_from not after the current interval
    """
    data = request.get_json(silent=True) or {}
    if not data.get("station_id") or not data.get("fuel_type") or data.get("price_per_unit") is None:
        return jsonify({"error": "station_id, fuel_type, and price_per_unit required"}), 400
    try:
        try:
            effective_from = parse_iso_datetime(data.get("effective_from"))
        except (ValueError, AttributeError):
            raise ValidationError("effective_from must be an ISO-8601 datetime")

        price = pricing_service.set_price(
            data["station_id"],
            data["fuel_type"],
            data["price_per_unit"],
            effective_from,
            created_by=g.caller.user_id,
            notes=data.get("notes"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"price": price.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set fuel price")
        return jsonify({"error": "Internal server error"}), 500


@prices_bp.get("/in-effect")
@require_caller
def price_in_effect_route():
    """Query params: station_id, fuel_type (required); at (optional ISO-8601)"""
    try:
        station_id = arg_int("station_id", required=True)
        fuel_type = request.args.get("fuel_type")
        if not fuel_type:
            raise ValidationError("fuel_type query parameter is required")
        price = pricing_service.price_in_effect(
            station_id,
            fuel_type,
            arg_datetime("at"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"price": price.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@prices_bp.get("/history")
@require_caller
def price_history_route():
    """Query params: station_id (required); fuel_type, start, end (optional)"""
    try:
        station_id = arg_int("station_id", required=True)
        prices = pricing_service.get_price_history(
            station_id,
            request.args.get("fuel_type") or None,
            arg_datetime("start"),
            arg_datetime("end"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"station_id": station_id, "prices": [p.to_dict() for p in prices]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)

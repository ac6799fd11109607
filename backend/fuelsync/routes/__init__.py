# Overview: Shared JSON error mapping and query parsing for API routes.

from flask import jsonify, request

from ..services.errors import LedgerError
from ..services.station_service import StationError
from ..services.tenant_service import TenantAccessError
from ..time_utils import parse_iso_date, parse_iso_datetime
from ..validation import ConflictError, ValidationError


HANDLED_ERRORS = (LedgerError, ValidationError, ConflictError, StationError, TenantAccessError)


def error_response(e: Exception):
    """Map a known service error to (json, status)."""
    if isinstance(e, LedgerError):
        return jsonify(e.to_dict()), e.http_status
    if isinstance(e, ConflictError):
        return jsonify({"error": str(e)}), 409
    if isinstance(e, TenantAccessError):
        return jsonify({"error": str(e)}), 403
    return jsonify({"error": str(e)}), 400


def arg_int(name: str, required: bool = False) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{name} query parameter is required")
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def arg_date(name: str, required: bool = False):
    try:
        value = parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD")
    if value is None and required:
        raise ValidationError(f"{name} query parameter is required")
    return value


def arg_datetime(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def arg_bool(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes")


def body_date(data: dict, name: str):
    try:
        value = parse_iso_date(data.get(name))
    except (ValueError, AttributeError):
        raise ValidationError(f"{name} must be YYYY-MM-DD")
    if value is None:
        raise ValidationError(f"{name} is required")
    return value

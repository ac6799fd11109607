# Overview: Flask API routes for creditor accounts, balances and payments.

# backend/fuelsync/routes/creditors.py
"""
Creditor API Routes

DESIGN:
- Account CRUD (never delete; deactivate instead)
- Balance is read-only here; it moves only through sales, voids and payments
- Payments are recorded independently of any sale

SECURITY:
- Owners and managers manage accounts and record payments
- Any caller may read balances (attendants check before selling on credit)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller, require_role
from ..models import Creditor
from ..services import creditor_service
from ..services.tenant_service import ROLE_MANAGER, ROLE_OWNER
from ..validation import ModelValidationPolicy, validate_payload
from . import HANDLED_ERRORS, arg_bool, arg_int, error_response


creditors_bp = Blueprint("creditors", __name__, url_prefix="/api/creditors")


CREDITOR_POLICY = ModelValidationPolicy(
    writable_fields={
        "party_name",
        "contact_person",
        "contact_phone",
        "email",
        "address",
        "credit_limit",
        "active",
        "notes",
    },
    required_on_create={"party_name"},
)


@creditors_bp.get("")
@require_caller
def list_creditors_route():
    """Query params: station_id (required), include_inactive"""
    try:
        station_id = arg_int("station_id", required=True)
        creditors = creditor_service.list_creditors(
            station_id,
            include_inactive=arg_bool("include_inactive"),
            schema=g.caller.tenant_schema,
        )
        return jsonify({"creditors": [c.to_dict() for c in creditors]}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


@creditors_bp.post("")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_creditor_route():
    """
    Request body:
    {
        "station_id": 1,
        "party_name": "City Cabs",
        "credit_limit": "5000.00",     (optional; omit for no limit)
        "contact_person": "...", "contact_phone": "...", "email": "...",
        "address": "...", "notes": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    station_id = data.pop("station_id", None)
    if not station_id:
        return jsonify({"error": "station_id required"}), 400
    try:
        fields = validate_payload(model=Creditor, payload=data, policy=CREDITOR_POLICY, partial=False)
        fields.pop("active", None)
        creditor = creditor_service.create_creditor(
            station_id,
            fields.pop("party_name"),
            schema=g.caller.tenant_schema,
            **fields,
        )
        return jsonify({"creditor": creditor.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create creditor")
        return jsonify({"error": "Internal server error"}), 500


@creditors_bp.get("/<int:creditor_id>")
@require_caller
def get_creditor_route(creditor_id: int):
    creditor = creditor_service.get_creditor(creditor_id, schema=g.caller.tenant_schema)
    if not creditor:
        return jsonify({"error": "Creditor not found"}), 404
    warning = creditor_service.credit_limit_warning(creditor)
    return jsonify({
        "creditor": creditor.to_dict(),
        "warnings": [warning.to_dict()] if warning else [],
    }), 200


@creditors_bp.patch("/<int:creditor_id>")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def update_creditor_route(creditor_id: int):
    data = request.get_json(silent=True) or {}
    try:
        if "running_balance" in data:
            return jsonify({"error": "running_balance cannot be edited directly"}), 400
        patch = validate_payload(model=Creditor, payload=data, policy=CREDITOR_POLICY, partial=True)
        creditor = creditor_service.update_creditor(creditor_id, patch, schema=g.caller.tenant_schema)
        return jsonify({"creditor": creditor.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update creditor")
        return jsonify({"error": "Internal server error"}), 500


@creditors_bp.get("/<int:creditor_id>/balance")
@require_caller
def creditor_balance_route(creditor_id: int):
    try:
        balance = creditor_service.get_balance(creditor_id, schema=g.caller.tenant_schema)
        return jsonify({"creditor_id": creditor_id, "running_balance": str(balance)}), 200
    except HANDLED_ERRORS as e:
        return error_response(e)


# =============================================================================
# PAYMENTS
# =============================================================================

@creditors_bp.post("/<int:creditor_id>/payments")
@require_caller
@require_role(ROLE_OWNER, ROLE_MANAGER)
def record_payment_route(creditor_id: int):
    """
    Request body:
    {
        "amount": "500.00",
        "payment_method": "bank_transfer",
        "reference_number": "UTR-123",   (optional)
        "notes": "..."                   (optional)
    }

    Returns:
        201: payment recorded with the updated balance
        422: overpayment under the reject policy
    """
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None or not data.get("payment_method"):
        return jsonify({"error": "amount and payment_method required"}), 400
    try:
        payment = creditor_service.record_payment(
            creditor_id,
            data["amount"],
            data["payment_method"],
            g.caller.user_id,
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
            schema=g.caller.tenant_schema,
        )
        balance = creditor_service.get_balance(creditor_id, schema=g.caller.tenant_schema)
        return jsonify({"payment": payment.to_dict(), "running_balance": str(balance)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record creditor payment")
        return jsonify({"error": "Internal server error"}), 500


@creditors_bp.get("/<int:creditor_id>/payments")
@require_caller
def payment_history_route(creditor_id: int):
    payments = creditor_service.get_payment_history(creditor_id, schema=g.caller.tenant_schema)
    return jsonify({"creditor_id": creditor_id, "payments": [p.to_dict() for p in payments]}), 200

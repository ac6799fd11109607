# backend/fuelsync/routes/system.py
"""
System health and version endpoints.

Health covers the database and the ledger's configuration (policies and
price coverage), so a misconfigured deployment shows up as "degraded"
before the first sale fails.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import FuelPrice, Nozzle, Pump, Station
from ..services.creditor_service import (
    CREDIT_LIMIT_REJECT,
    CREDIT_LIMIT_WARN,
    OVERPAYMENT_ALLOW,
    OVERPAYMENT_CLAMP,
    OVERPAYMENT_REJECT,
)
from fuelsync.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        station_count = db.session.query(Station).count()
        nozzle_count = db.session.query(Nozzle).filter_by(active=True).count()
        open_prices = db.session.query(FuelPrice).filter(FuelPrice.effective_to.is_(None)).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stations": station_count,
                "active_nozzles": nozzle_count,
                "open_prices": open_prices,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_ledger_config_health() -> dict:
    """
    Check the ledger policies are recognized values and that every active
    nozzle's fuel type has an open price at its station.
    """
    start_time = time.time()
    problems = []

    credit_policy = current_app.config.get("CREDIT_LIMIT_POLICY")
    if credit_policy not in (CREDIT_LIMIT_WARN, CREDIT_LIMIT_REJECT):
        problems.append(f"Unknown CREDIT_LIMIT_POLICY: {credit_policy!r}")
    overpay_policy = current_app.config.get("CREDITOR_OVERPAYMENT_POLICY")
    if overpay_policy not in (OVERPAYMENT_ALLOW, OVERPAYMENT_CLAMP, OVERPAYMENT_REJECT):
        problems.append(f"Unknown CREDITOR_OVERPAYMENT_POLICY: {overpay_policy!r}")

    try:
        unpriced = (
            db.session.query(Pump.station_id, Nozzle.fuel_type)
            .join(Nozzle, Nozzle.pump_id == Pump.id)
            .outerjoin(
                FuelPrice,
                (FuelPrice.station_id == Pump.station_id)
                & (FuelPrice.fuel_type == Nozzle.fuel_type)
                & FuelPrice.effective_to.is_(None),
            )
            .filter(Nozzle.active.is_(True), FuelPrice.id.is_(None))
            .group_by(Pump.station_id, Nozzle.fuel_type)
            .all()
        )
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Ledger config health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Ledger config error"
        }

    for station_id, fuel_type in unpriced:
        problems.append(f"No open {fuel_type} price at station {station_id}")

    elapsed_ms = (time.time() - start_time) * 1000
    return {
        "status": "degraded" if problems else "healthy",
        "latency_ms": round(elapsed_ms, 2),
        "details": {
            "credit_limit_policy": credit_policy,
            "overpayment_policy": overpay_policy,
            "problems": problems,
        }
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    config_health = check_ledger_config_health()

    all_checks = [database_health, config_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "ledger_config": config_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "0.1.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }

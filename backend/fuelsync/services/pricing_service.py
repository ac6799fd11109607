# Overview: Fuel Price Registry; time-bounded price intervals per station and fuel type.

"""
Fuel Price Registry

WHY: Sales must be priced at the rate in effect when they are recorded, not
at whatever the "current price" field says by the time the row is written.
Prices are stored as [effective_from, effective_to) intervals; a price change
closes the open interval and opens a new one in the same transaction.

INVARIANTS:
- At most one open interval per (station_id, fuel_type)
- Intervals never overlap and are never edited, only closed
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import FuelPrice, Station
from fuelsync.time_utils import utcnow
from fuelsync.validation import ValidationError, parse_decimal, parse_id, require_choice, round2
from .concurrency import begin_write_transaction, lock_for_update, run_in_transaction
from .errors import NoActivePriceError
from .ledger_service import append_ledger_event
from .station_service import FUEL_TYPES
from .tenant_service import bind_tenant_schema


def price_in_effect(
    station_id: int,
    fuel_type: str,
    at: datetime | None = None,
    *,
    schema: str | None = None,
) -> FuelPrice:
    """
    Return the price row in effect at `at` (default: now).

    effective_from <= at < effective_to (open intervals match any later
    time). If more than one row qualifies the latest effective_from wins.

    Raises:
        NoActivePriceError: no interval covers `at`
    """
    bind_tenant_schema(schema)
    at = at or utcnow()
    price = (
        db.session.query(FuelPrice)
        .filter(
            FuelPrice.station_id == station_id,
            FuelPrice.fuel_type == fuel_type,
            FuelPrice.effective_from <= at,
            or_(FuelPrice.effective_to.is_(None), FuelPrice.effective_to > at),
        )
        .order_by(FuelPrice.effective_from.desc(), FuelPrice.id.desc())
        .first()
    )
    if not price:
        raise NoActivePriceError(
            f"No active {fuel_type} price for station {station_id}",
            details={"station_id": station_id, "fuel_type": fuel_type, "at": at.isoformat()},
        )
    return price


def set_price(
    station_id: int,
    fuel_type: str,
    price_per_unit,
    effective_from: datetime | None = None,
    *,
    created_by: str | None = None,
    notes: str | None = None,
    schema: str | None = None,
) -> FuelPrice:
    """
    Close the open interval for (station, fuel type) and open a new one.

    Both writes commit together or not at all. The open row is locked first
    so two concurrent price changes serialize.

    Raises:
        ValidationError: bad price/fuel type, or effective_from earlier than
            the start of the currently open interval
    """
    station_id = parse_id(station_id, "station_id")
    fuel_type = require_choice(fuel_type, "fuel_type", FUEL_TYPES)
    price = parse_decimal(price_per_unit, "price_per_unit", allow_zero=False)

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()
        starts_at = effective_from or utcnow()

        station = db.session.query(Station).filter_by(id=station_id).first()
        if not station:
            raise ValidationError(f"Station {station_id} not found")

        current = lock_for_update(
            db.session.query(FuelPrice).filter_by(
                station_id=station_id, fuel_type=fuel_type, effective_to=None
            )
        ).first()

        if current is not None:
            if starts_at <= current.effective_from:
                raise ValidationError(
                    "effective_from must be later than the current price's effective_from "
                    f"({current.effective_from.isoformat()})"
                )
            current.effective_to = starts_at
            # Close before insert so the open-interval unique index never sees two open rows
            db.session.flush()

        new_price = FuelPrice(
            station_id=station_id,
            fuel_type=fuel_type,
            price_per_unit=price,
            effective_from=starts_at,
            effective_to=None,
            created_by=created_by,
            notes=notes,
        )
        db.session.add(new_price)
        db.session.flush()

        append_ledger_event(
            station_id=station_id,
            event_type="price.changed",
            event_category="pricing",
            entity_type="fuel_price",
            entity_id=new_price.id,
            actor_user_id=created_by,
            occurred_at=starts_at,
            payload=(
                f"fuel_type={fuel_type},price={price},"
                f"previous={current.price_per_unit if current is not None else None}"
            ),
        )

        db.session.commit()
        current_app.logger.info(
            "Price set station=%s fuel_type=%s price=%s from=%s",
            station_id, fuel_type, price, starts_at.isoformat(),
        )
        return new_price

    return run_in_transaction(_op)


def get_current_prices(station_id: int, *, schema: str | None = None) -> list[FuelPrice]:
    """Open intervals for every fuel type at the station."""
    bind_tenant_schema(schema)
    return (
        db.session.query(FuelPrice)
        .filter_by(station_id=station_id, effective_to=None)
        .order_by(FuelPrice.fuel_type.asc())
        .all()
    )


def get_price_history(
    station_id: int,
    fuel_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    schema: str | None = None,
) -> list[FuelPrice]:
    """
    Price intervals overlapping [start, end], newest first per fuel type.
    """
    bind_tenant_schema(schema)
    query = db.session.query(FuelPrice).filter(FuelPrice.station_id == station_id)
    if fuel_type:
        query = query.filter(FuelPrice.fuel_type == fuel_type)
    if start is not None:
        query = query.filter(or_(FuelPrice.effective_to.is_(None), FuelPrice.effective_to > start))
    if end is not None:
        query = query.filter(FuelPrice.effective_from <= end)
    return query.order_by(FuelPrice.fuel_type.asc(), FuelPrice.effective_from.desc()).all()


def quote_amount(volume: Decimal, price: Decimal) -> Decimal:
    """Sale amount for a volume at a unit price, rounded to 2 dp right after multiplying."""
    return round2(volume * price)

# Overview: Nozzle Meter Tracker; cumulative meter readings per nozzle.

"""
Nozzle Meter Tracker

WHY: Sale volume is the difference between two cumulative meter readings, so
the stored current_reading is the single most contended value in the system.
Everything that moves it runs under a row lock on the nozzle and inside the
caller's transaction.

INVARIANTS:
- current_reading >= initial_reading
- current_reading strictly increases on every advance
- it only moves back through rollback(), and only to undo the nozzle's most
  recent sale
- every movement is appended to nozzle_readings
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Nozzle, NozzleReading, Pump, Sale
from fuelsync.time_utils import utcnow
from fuelsync.validation import ValidationError, parse_decimal, parse_id, require_choice
from .concurrency import begin_write_transaction, lock_for_update, run_in_transaction
from .errors import NonMonotonicReadingError, NozzleNotFoundError, OutOfOrderVoidError
from .ledger_service import append_ledger_event
from .station_service import FUEL_TYPES, StationError
from .tenant_service import bind_tenant_schema


READING_SOURCE_SALE = "sale"
READING_SOURCE_MANUAL = "manual"
READING_SOURCE_VOID_ROLLBACK = "void_rollback"


def create_nozzle(
    pump_id: int,
    fuel_type: str,
    initial_reading=0,
    *,
    schema: str | None = None,
) -> Nozzle:
    """Register a nozzle; its meter starts at initial_reading."""
    pump_id = parse_id(pump_id, "pump_id")
    fuel_type = require_choice(fuel_type, "fuel_type", FUEL_TYPES)
    initial = parse_decimal(initial_reading, "initial_reading")

    def _op():
        bind_tenant_schema(schema)
        pump = db.session.query(Pump).filter_by(id=pump_id).first()
        if not pump:
            raise StationError("Pump not found")

        nozzle = Nozzle(
            pump_id=pump_id,
            fuel_type=fuel_type,
            initial_reading=initial,
            current_reading=initial,
            active=True,
        )
        db.session.add(nozzle)
        db.session.commit()
        return nozzle

    return run_in_transaction(_op)


def get_nozzle(nozzle_id: int, *, schema: str | None = None) -> Nozzle | None:
    bind_tenant_schema(schema)
    return db.session.query(Nozzle).filter_by(id=nozzle_id).first()


def list_station_nozzles(station_id: int, *, include_inactive: bool = False, schema: str | None = None) -> list[Nozzle]:
    bind_tenant_schema(schema)
    query = db.session.query(Nozzle).join(Pump, Pump.id == Nozzle.pump_id).filter(Pump.station_id == station_id)
    if not include_inactive:
        query = query.filter(Nozzle.active.is_(True))
    return query.order_by(Pump.name.asc(), Nozzle.fuel_type.asc()).all()


def set_nozzle_active(nozzle_id: int, active: bool, *, schema: str | None = None) -> Nozzle:
    def _op():
        bind_tenant_schema(schema)
        nozzle = lock_for_update(db.session.query(Nozzle).filter_by(id=nozzle_id)).first()
        if not nozzle:
            raise NozzleNotFoundError(f"Nozzle {nozzle_id} not found", details={"nozzle_id": nozzle_id})
        nozzle.active = active
        db.session.commit()
        return nozzle

    return run_in_transaction(_op)


def lock_nozzle(nozzle_id: int, *, require_active: bool = True) -> Nozzle:
    """
    Load a nozzle with a row lock held until the current transaction ends.

    Raises:
        NozzleNotFoundError: missing, or inactive when require_active
    """
    nozzle = lock_for_update(db.session.query(Nozzle).filter_by(id=nozzle_id)).first()
    if not nozzle or (require_active and not nozzle.active):
        raise NozzleNotFoundError(
            f"Nozzle {nozzle_id} not found or inactive",
            details={"nozzle_id": nozzle_id},
        )
    return nozzle


def advance(
    nozzle_id: int,
    new_reading: Decimal,
    *,
    source: str = READING_SOURCE_SALE,
    sale_id: int | None = None,
    recorded_by: str | None = None,
    notes: str | None = None,
) -> NozzleReading:
    """
    Move the meter forward to new_reading inside the caller's transaction.

    Does not commit.

    Raises:
        NonMonotonicReadingError: new_reading <= current_reading
    """
    nozzle = lock_nozzle(nozzle_id)
    previous = nozzle.current_reading
    if new_reading <= previous:
        raise NonMonotonicReadingError(
            "New reading must be greater than the current meter reading",
            details={
                "nozzle_id": nozzle_id,
                "current_reading": str(previous),
                "new_reading": str(new_reading),
            },
        )

    nozzle.current_reading = new_reading
    reading = NozzleReading(
        nozzle_id=nozzle_id,
        previous_reading=previous,
        reading=new_reading,
        source=source,
        sale_id=sale_id,
        recorded_by=recorded_by,
        recorded_at=utcnow(),
        notes=notes,
    )
    db.session.add(reading)
    db.session.flush()
    return reading


def rollback(
    nozzle_id: int,
    to_reading: Decimal,
    *,
    sale_id: int,
    recorded_by: str | None = None,
    notes: str | None = None,
) -> NozzleReading:
    """
    Move the meter back to a voided sale's previous_reading.

    Only the nozzle's most recent sale can be undone this way: the sale must
    be the latest posted sale on the nozzle and the meter must still sit at
    that sale's cumulative_reading. Does not commit.

    Raises:
        OutOfOrderVoidError: a later sale or reading exists
    """
    nozzle = lock_nozzle(nozzle_id, require_active=False)
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None or sale.nozzle_id != nozzle_id:
        raise OutOfOrderVoidError(
            "Sale does not belong to this nozzle",
            details={"nozzle_id": nozzle_id, "sale_id": sale_id},
        )

    later_sale = (
        db.session.query(Sale.id)
        .filter(Sale.nozzle_id == nozzle_id, Sale.id > sale_id, Sale.status == "posted")
        .first()
    )
    if later_sale is not None or nozzle.current_reading != sale.cumulative_reading:
        raise OutOfOrderVoidError(
            "Meter can only be rolled back for the nozzle's most recent sale",
            details={
                "nozzle_id": nozzle_id,
                "sale_id": sale_id,
                "later_sale_id": later_sale[0] if later_sale is not None else None,
                "current_reading": str(nozzle.current_reading),
                "sale_cumulative_reading": str(sale.cumulative_reading),
            },
        )

    if to_reading < nozzle.initial_reading:
        raise ValidationError("Cannot roll the meter back below its initial reading")

    previous = nozzle.current_reading
    nozzle.current_reading = to_reading
    reading = NozzleReading(
        nozzle_id=nozzle_id,
        previous_reading=previous,
        reading=to_reading,
        source=READING_SOURCE_VOID_ROLLBACK,
        sale_id=sale_id,
        recorded_by=recorded_by,
        recorded_at=utcnow(),
        notes=notes,
    )
    db.session.add(reading)
    db.session.flush()
    return reading


def record_manual_reading(
    nozzle_id: int,
    reading,
    recorded_by: str,
    notes: str | None = None,
    *,
    schema: str | None = None,
) -> NozzleReading:
    """
    Attendant-entered meter reading outside a sale (e.g. shift handover).

    Same monotonic rule as a sale; commits on success.
    """
    new_reading = parse_decimal(reading, "reading")

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()
        entry = advance(
            nozzle_id,
            new_reading,
            source=READING_SOURCE_MANUAL,
            recorded_by=recorded_by,
            notes=notes,
        )
        nozzle = entry.nozzle
        append_ledger_event(
            station_id=nozzle.pump.station_id,
            event_type="nozzle.manual_reading",
            event_category="nozzles",
            entity_type="nozzle_reading",
            entity_id=entry.id,
            actor_user_id=recorded_by,
            nozzle_id=nozzle_id,
            occurred_at=entry.recorded_at,
            note=notes,
            payload=f"previous={entry.previous_reading},reading={entry.reading}",
        )
        db.session.commit()
        return entry

    return run_in_transaction(_op)


def get_reading_history(nozzle_id: int, *, limit: int = 100, schema: str | None = None) -> list[NozzleReading]:
    """Newest first."""
    bind_tenant_schema(schema)
    return (
        db.session.query(NozzleReading)
        .filter_by(nozzle_id=nozzle_id)
        .order_by(NozzleReading.id.desc())
        .limit(limit)
        .all()
    )

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from fuelsync.extensions import db
from fuelsync.models import Station, Pump
from fuelsync.validation import ConflictError, ValidationError
from fuelsync.services.concurrency import lock_for_update, run_in_transaction
from fuelsync.services.tenant_service import bind_tenant_schema


FUEL_TYPES = {"petrol", "diesel", "premium", "super", "cng", "lpg"}


class StationError(Exception):
    """Raised when station or pump operations fail."""
    pass


def create_station(
    name: str,
    code: str | None = None,
    address: str | None = None,
    city: str | None = None,
    *,
    schema: str | None = None,
) -> Station:
    def _op():
        bind_tenant_schema(schema)
        if not name or not name.strip():
            raise ValidationError("Station name is required")

        station = Station(name=name.strip(), code=code, address=address, city=city, active=True)
        db.session.add(station)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Station code {code!r} already exists")

        db.session.commit()
        return station

    return run_in_transaction(_op)


def set_station_active(station_id: int, active: bool, *, schema: str | None = None) -> Station:
    def _op():
        bind_tenant_schema(schema)
        station = lock_for_update(db.session.query(Station).filter_by(id=station_id)).first()
        if not station:
            raise StationError("Station not found")

        station.active = active
        db.session.commit()
        return station

    return run_in_transaction(_op)


def get_station(station_id: int, *, schema: str | None = None) -> Station | None:
    bind_tenant_schema(schema)
    return db.session.query(Station).filter_by(id=station_id).first()


def list_stations(*, include_inactive: bool = False, schema: str | None = None) -> list[Station]:
    bind_tenant_schema(schema)
    query = db.session.query(Station)
    if not include_inactive:
        query = query.filter_by(active=True)
    return query.order_by(Station.name.asc()).all()


def create_pump(
    station_id: int,
    name: str,
    serial_number: str | None = None,
    *,
    schema: str | None = None,
) -> Pump:
    def _op():
        bind_tenant_schema(schema)
        if not name or not name.strip():
            raise ValidationError("Pump name is required")

        station = db.session.query(Station).filter_by(id=station_id).first()
        if not station:
            raise StationError("Station not found")
        if not station.active:
            raise StationError("Cannot add pumps to an inactive station")

        existing = db.session.query(Pump).filter_by(station_id=station_id, name=name.strip()).first()
        if existing:
            raise ConflictError(f"Pump {name!r} already exists at this station")

        pump = Pump(station_id=station_id, name=name.strip(), serial_number=serial_number, active=True)
        db.session.add(pump)
        db.session.commit()
        return pump

    return run_in_transaction(_op)


def list_pumps(station_id: int, *, schema: str | None = None) -> list[Pump]:
    bind_tenant_schema(schema)
    return db.session.query(Pump).filter_by(station_id=station_id).order_by(Pump.name.asc()).all()

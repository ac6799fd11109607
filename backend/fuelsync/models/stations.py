from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z
from fuelsync.validation import money_str


class Station(db.Model):
    """
    Fuel station (the tenant's unit of business).

    Every price, sale, creditor and reconciliation is scoped to one station.
    """
    __tablename__ = "stations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Station id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "city": self.city,
            "active": self.active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Pump(db.Model):
    """Dispenser unit on a station forecourt. Owns one or more nozzles."""
    __tablename__ = "pumps"
    __table_args__ = (
        db.UniqueConstraint("station_id", "name", name="uq_pumps_station_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    serial_number = db.Column(db.String(64), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    station = db.relationship("Station", backref=db.backref("pumps", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "name": self.name,
            "serial_number": self.serial_number,
            "active": self.active,
            "created_at": to_utc_z(self.created_at),
        }


class Nozzle(db.Model):
    """
    Single dispensing outlet with a cumulative lifetime meter.

    INVARIANTS:
    - current_reading >= initial_reading
    - current_reading only moves forward, except a validated void rollback
    - only the sale engine (and manual reading entry) mutates current_reading
    """
    __tablename__ = "nozzles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    pump_id = db.Column(db.Integer, db.ForeignKey("pumps.id"), nullable=False, index=True)
    fuel_type = db.Column(db.String(16), nullable=False)

    initial_reading = db.Column(db.Numeric(12, 2), nullable=False)
    current_reading = db.Column(db.Numeric(12, 2), nullable=False)

    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    pump = db.relationship("Pump", backref=db.backref("nozzles", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def station_id(self) -> int:
        return self.pump.station_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pump_id": self.pump_id,
            "station_id": self.station_id,
            "fuel_type": self.fuel_type,
            "initial_reading": money_str(self.initial_reading),
            "current_reading": money_str(self.current_reading),
            "active": self.active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class NozzleReading(db.Model):
    """
    Append-only meter reading history.

    SOURCES:
    - sale: meter advanced by a posted sale
    - manual: attendant-entered reading outside a sale
    - void_rollback: meter moved back by voiding the latest sale

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "nozzle_readings"
    __table_args__ = (
        db.Index("ix_nozzle_readings_nozzle_recorded", "nozzle_id", "recorded_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    nozzle_id = db.Column(db.Integer, db.ForeignKey("nozzles.id"), nullable=False, index=True)

    previous_reading = db.Column(db.Numeric(12, 2), nullable=False)
    reading = db.Column(db.Numeric(12, 2), nullable=False)
    source = db.Column(db.String(16), nullable=False, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    recorded_by = db.Column(db.String(64), nullable=True)
    recorded_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    notes = db.Column(db.Text, nullable=True)

    nozzle = db.relationship("Nozzle", backref=db.backref("readings", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "nozzle_id": self.nozzle_id,
            "previous_reading": money_str(self.previous_reading),
            "reading": money_str(self.reading),
            "source": self.source,
            "sale_id": self.sale_id,
            "recorded_by": self.recorded_by,
            "recorded_at": to_utc_z(self.recorded_at),
            "notes": self.notes,
        }

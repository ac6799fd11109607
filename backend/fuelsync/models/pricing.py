from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z
from fuelsync.validation import money_str


class FuelPrice(db.Model):
    """
    Time-bounded price per unit for one fuel type at one station.

    WHY: Price changes are modeled as closed intervals instead of a mutable
    "current price" so in-flight sales and price updates never race, and the
    full history stays auditable.

    INVARIANTS:
    - At most one open row (effective_to IS NULL) per (station_id, fuel_type)
    - Rows never overlap: [effective_from, effective_to)
    - Rows are never edited, only closed by setting effective_to
    """
    __tablename__ = "fuel_prices"
    __table_args__ = (
        db.Index(
            "uq_fuel_prices_open_interval",
            "station_id",
            "fuel_type",
            unique=True,
            sqlite_where=db.text("effective_to IS NULL"),
            postgresql_where=db.text("effective_to IS NULL"),
        ),
        db.Index("ix_fuel_prices_lookup", "station_id", "fuel_type", "effective_from"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    fuel_type = db.Column(db.String(16), nullable=False)

    price_per_unit = db.Column(db.Numeric(12, 2), nullable=False)

    effective_from = db.Column(db.DateTime, nullable=False)
    effective_to = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    station = db.relationship("Station", backref=db.backref("fuel_prices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "fuel_type": self.fuel_type,
            "price_per_unit": money_str(self.price_per_unit),
            "effective_from": to_utc_z(self.effective_from),
            "effective_to": to_utc_z(self.effective_to) if self.effective_to else None,
            "created_by": self.created_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }

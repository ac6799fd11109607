from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z
from fuelsync.validation import money_str


class Shift(db.Model):
    """
    One attendant's working period at a station.

    LIFECYCLE:
    - open: tender entries may be recorded against it
    - closed: end_time and closing_cash are set; no further entries

    A user has at most one open shift at a time.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_user_open",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="open", index=True)

    opening_cash = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    closing_cash = db.Column(db.Numeric(12, 2), nullable=True)
    closed_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station = db.relationship("Station", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "station_name": self.station.name if self.station else None,
            "user_id": self.user_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "status": self.status,
            "opening_cash": money_str(self.opening_cash),
            "closing_cash": money_str(self.closing_cash),
            "closed_by": self.closed_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TenderEntry(db.Model):
    """
    Money counted or settled during a shift (cash, card, upi or credit).

    Entries are append-only; a wrong entry is corrected by the manual
    totals at reconciliation, not by editing the row.
    """
    __tablename__ = "tender_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False)

    tender_type = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    recorded_at = db.Column(db.DateTime, nullable=False, index=True)
    reference_number = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    shift = db.relationship("Shift", backref=db.backref("tender_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "station_id": self.station_id,
            "user_id": self.user_id,
            "tender_type": self.tender_type,
            "amount": money_str(self.amount),
            "recorded_at": to_utc_z(self.recorded_at),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }

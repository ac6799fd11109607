from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z
from fuelsync.validation import money_str


class DayReconciliation(db.Model):
    """
    End-of-day tender reconciliation for one station.

    LIFECYCLE:
    - draft (finalized=False): totals may be re-saved in place
    - final (finalized=True): frozen; the day's sales are locked

    INVARIANT: cash_total + credit_total + card_total + upi_total equals
    total_sales within 0.01 for every finalized row.
    """
    __tablename__ = "day_reconciliations"
    __table_args__ = (
        db.UniqueConstraint("station_id", "date", name="uq_day_reconciliations_station_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)

    total_sales = db.Column(db.Numeric(12, 2), nullable=False)
    cash_total = db.Column(db.Numeric(12, 2), nullable=False)
    credit_total = db.Column(db.Numeric(12, 2), nullable=False)
    card_total = db.Column(db.Numeric(12, 2), nullable=False)
    upi_total = db.Column(db.Numeric(12, 2), nullable=False)

    sale_count = db.Column(db.Integer, nullable=False, default=0)
    total_volume = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    finalized = db.Column(db.Boolean, nullable=False, default=False, index=True)
    finalized_at = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station = db.relationship("Station", backref=db.backref("day_reconciliations", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def tender_total(self):
        return self.cash_total + self.credit_total + self.card_total + self.upi_total

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "date": self.date.isoformat() if self.date else None,
            "total_sales": money_str(self.total_sales),
            "cash_total": money_str(self.cash_total),
            "credit_total": money_str(self.credit_total),
            "card_total": money_str(self.card_total),
            "upi_total": money_str(self.upi_total),
            "sale_count": self.sale_count,
            "total_volume": money_str(self.total_volume),
            "finalized": self.finalized,
            "finalized_at": to_utc_z(self.finalized_at) if self.finalized_at else None,
            "created_by": self.created_by,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

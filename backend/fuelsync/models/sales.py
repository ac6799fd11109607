from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z
from fuelsync.validation import money_str


class Sale(db.Model):
    """
    Meter-driven fuel sale.

    WHY: A sale is the delta between two cumulative nozzle readings, priced at
    the rate in effect when it was recorded. The row carries its own payment
    split so the day can be reconciled without joining payment tables.

    INVARIANTS:
    - sale_volume > 0
    - amount = round2(sale_volume * fuel_price)
    - |cash_received + credit_given - amount| <= 0.01
    - credit_given > 0 implies credit_party_id

    LIFECYCLE:
    - posted: counted in daily totals, may be voided
    - voided: terminal; void metadata set exactly once
    Once the owning day is finalized, reconciliation_id is set and the sale
    can no longer be voided.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_station_status_recorded", "station_id", "status", "recorded_at"),
        db.Index("ix_sales_nozzle_recorded", "nozzle_id", "recorded_at"),
        db.CheckConstraint("sale_volume > 0", name="ck_sales_volume_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    nozzle_id = db.Column(db.Integer, db.ForeignKey("nozzles.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    recorded_at = db.Column(db.DateTime, nullable=False, index=True)

    # Meter snapshot
    previous_reading = db.Column(db.Numeric(12, 2), nullable=False)
    cumulative_reading = db.Column(db.Numeric(12, 2), nullable=False)
    sale_volume = db.Column(db.Numeric(12, 2), nullable=False)

    # Pricing
    fuel_price = db.Column(db.Numeric(12, 2), nullable=False)
    fuel_price_id = db.Column(db.Integer, db.ForeignKey("fuel_prices.id"), nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    # Payment split
    cash_received = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    credit_given = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    credit_party_id = db.Column(db.Integer, db.ForeignKey("creditors.id"), nullable=True, index=True)
    tender_type = db.Column(db.String(8), nullable=False, default="cash")  # cash, card, upi
    payment_method = db.Column(db.String(8), nullable=False, index=True)  # cash, card, upi, credit, mixed

    status = db.Column(db.String(16), nullable=False, default="posted", index=True)  # posted, voided
    reconciliation_id = db.Column(db.Integer, db.ForeignKey("day_reconciliations.id"), nullable=True, index=True)

    # Void audit trail
    voided_by = db.Column(db.String(64), nullable=True)
    voided_at = db.Column(db.DateTime, nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    nozzle = db.relationship("Nozzle", backref=db.backref("sales", lazy=True))
    credit_party = db.relationship("Creditor", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_locked(self) -> bool:
        return self.reconciliation_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "nozzle_id": self.nozzle_id,
            "user_id": self.user_id,
            "recorded_at": to_utc_z(self.recorded_at),
            "previous_reading": money_str(self.previous_reading),
            "cumulative_reading": money_str(self.cumulative_reading),
            "sale_volume": money_str(self.sale_volume),
            "fuel_price": money_str(self.fuel_price),
            "fuel_price_id": self.fuel_price_id,
            "amount": money_str(self.amount),
            "cash_received": money_str(self.cash_received),
            "credit_given": money_str(self.credit_given),
            "credit_party_id": self.credit_party_id,
            "tender_type": self.tender_type,
            "payment_method": self.payment_method,
            "status": self.status,
            "reconciliation_id": self.reconciliation_id,
            "locked": self.is_locked,
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z
from fuelsync.validation import money_str


class Creditor(db.Model):
    """
    Customer account allowed to buy fuel on credit.

    running_balance = credit given on non-voided sales - payments received.
    It is only changed with single-statement SQL increments so concurrent
    sales and payments never lose updates. credit_limit is advisory unless
    CREDIT_LIMIT_POLICY is "reject".
    """
    __tablename__ = "creditors"
    __table_args__ = (
        db.UniqueConstraint("station_id", "party_name", name="uq_creditors_station_party"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    party_name = db.Column(db.String(255), nullable=False)

    contact_person = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    credit_limit = db.Column(db.Numeric(12, 2), nullable=True)
    running_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station = db.relationship("Station", backref=db.backref("creditors", lazy=True))

    @property
    def available_credit(self):
        if self.credit_limit is None:
            return None
        return self.credit_limit - self.running_balance

    def to_dict(self) -> dict:
        available = self.available_credit
        return {
            "id": self.id,
            "station_id": self.station_id,
            "party_name": self.party_name,
            "contact_person": self.contact_person,
            "contact_phone": self.contact_phone,
            "email": self.email,
            "address": self.address,
            "credit_limit": money_str(self.credit_limit),
            "running_balance": money_str(self.running_balance),
            "available_credit": money_str(available),
            "active": self.active,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CreditorPayment(db.Model):
    """
    Money received from a creditor against their balance.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "creditor_payments"
    __table_args__ = (
        db.Index("ix_creditor_payments_creditor_created", "creditor_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    creditor_id = db.Column(db.Integer, db.ForeignKey("creditors.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    # Portion of amount actually taken off the balance (differs under the clamp policy)
    applied_amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    reference_number = db.Column(db.String(100), nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    creditor = db.relationship("Creditor", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "creditor_id": self.creditor_id,
            "amount": money_str(self.amount),
            "applied_amount": money_str(self.applied_amount),
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "recorded_by": self.recorded_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }

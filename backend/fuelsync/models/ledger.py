from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z


class LedgerEvent(db.Model):
    """
    Append-only audit log of sales-ledger events (postings, voids, payments,
    price changes, reconciliations, meter gaps).

    Written inside the same transaction as the change it records.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_station_occurred", "station_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., sale.posted, creditor.payment_recorded
    event_category = db.Column(db.String(32), nullable=False, index=True)  # sales, creditors, pricing, nozzles, reconciliation

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    # Actor and cross-module references
    actor_user_id = db.Column(db.String(64), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    nozzle_id = db.Column(db.Integer, db.ForeignKey("nozzles.id"), nullable=True, index=True)
    creditor_id = db.Column(db.Integer, db.ForeignKey("creditors.id"), nullable=True, index=True)
    reconciliation_id = db.Column(db.Integer, db.ForeignKey("day_reconciliations.id"), nullable=True, index=True)

    # Business vs system time
    occurred_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # Optional structured metadata (keep small; do not denormalize domain state)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "sale_id": self.sale_id,
            "nozzle_id": self.nozzle_id,
            "creditor_id": self.creditor_id,
            "reconciliation_id": self.reconciliation_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }

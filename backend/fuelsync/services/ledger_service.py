# Overview: Append-only audit ledger for sales, credit, pricing and reconciliation events.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
from fuelsync.time_utils import utcnow
"""
FuelSync Ledger Invariants (authoritative)

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain event they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    station_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: str | None = None,
    sale_id: int | None = None,
    nozzle_id: int | None = None,
    creditor_id: int | None = None,
    reconciliation_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[str] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - occurred_at is business time; created_at is system time (db default).
    """
    ev = LedgerEvent(
        station_id=station_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        sale_id=sale_id,
        nozzle_id=nozzle_id,
        creditor_id=creditor_id,
        reconciliation_id=reconciliation_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else note,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def get_ledger_events(
    station_id: int,
    *,
    event_category: str | None = None,
    sale_id: int | None = None,
    creditor_id: int | None = None,
    limit: int = 100,
) -> list[LedgerEvent]:
    """Most recent events first."""
    query = db.session.query(LedgerEvent).filter_by(station_id=station_id)
    if event_category:
        query = query.filter_by(event_category=event_category)
    if sale_id is not None:
        query = query.filter_by(sale_id=sale_id)
    if creditor_id is not None:
        query = query.filter_by(creditor_id=creditor_id)
    return query.order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc()).limit(limit).all()

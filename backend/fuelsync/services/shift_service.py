# Overview: Shift and Tender Entries; per-attendant shifts and the money counted in them.

"""
Shift and Tender Entries

WHY: Card and UPI settlements are not known from the sale rows. Attendants
open a shift, record what the terminals settled (and the cash they counted)
as tender entries, then close the shift. The day's card/UPI entries feed the
reconciliation when the manager does not type the totals in by hand.

DESIGN PRINCIPLES:
- One open shift per user at a time (partial unique index backs the check)
- Closed shifts are frozen: no further tender entries
- Entries are append-only and cannot land on a finalized station-day
- The summary compares entered tenders with the sales posted during the shift
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale, Shift, Station, TenderEntry
from fuelsync.time_utils import utcnow
from fuelsync.validation import ValidationError, parse_decimal, parse_id, require_choice, round2
from .concurrency import begin_write_transaction, lock_for_update, run_in_transaction
from .errors import (
    ActiveShiftExistsError,
    ReconciliationLockedError,
    ShiftClosedError,
    ShiftNotFoundError,
    ShiftOwnershipError,
)
from .ledger_service import append_ledger_event
from .reconciliation_service import is_day_locked
from .tenant_service import bind_tenant_schema


SHIFT_OPEN = "open"
SHIFT_CLOSED = "closed"
SHIFT_STATUSES = {SHIFT_OPEN, SHIFT_CLOSED}

TENDER_TYPES = ("cash", "card", "upi", "credit")


@dataclass(frozen=True)
class ShiftSummary:
    shift: Shift
    tender_totals: dict
    sales_count: int
    sales_volume: Decimal
    sales_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "shift": self.shift.to_dict(),
            "tender_totals": {k: str(v) for k, v in self.tender_totals.items()},
            "sales_count": self.sales_count,
            "sales_volume": str(self.sales_volume),
            "sales_amount": str(self.sales_amount),
        }


def _require_shift(shift_id: int, *, lock: bool = False) -> Shift:
    query = db.session.query(Shift).filter_by(id=shift_id)
    if lock:
        query = lock_for_update(query)
    shift = query.first()
    if not shift:
        raise ShiftNotFoundError(f"Shift {shift_id} not found", details={"shift_id": shift_id})
    return shift


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

def open_shift(
    station_id: int,
    user_id: str,
    opening_cash=0,
    notes: str | None = None,
    *,
    schema: str | None = None,
) -> Shift:
    """
    Open a shift for `user_id` at a station.

    Raises:
        ActiveShiftExistsError: the user already has an open shift
        ValidationError: unknown or inactive station, bad opening cash
    """
    station_id = parse_id(station_id, "station_id")
    if not user_id:
        raise ValidationError("user_id is required")
    cash = parse_decimal(opening_cash if opening_cash is not None else 0, "opening_cash")

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()

        station = db.session.query(Station).filter_by(id=station_id).first()
        if not station or not station.active:
            raise ValidationError(f"Station {station_id} not found or inactive")

        existing = get_active_shift(user_id)
        if existing is not None:
            raise ActiveShiftExistsError(
                "User already has an open shift",
                details={"shift_id": existing.id, "user_id": str(user_id)},
            )

        shift = Shift(
            station_id=station_id,
            user_id=str(user_id),
            start_time=utcnow(),
            status=SHIFT_OPEN,
            opening_cash=cash,
            notes=notes,
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ActiveShiftExistsError(
                "User already has an open shift",
                details={"user_id": str(user_id)},
            ) from exc

        append_ledger_event(
            station_id=station_id,
            event_type="shift.opened",
            event_category="shift",
            entity_type="shift",
            entity_id=shift.id,
            actor_user_id=str(user_id),
            occurred_at=shift.start_time,
            payload=f"opening_cash={cash}",
        )
        db.session.commit()
        current_app.logger.info("Shift opened id=%s station=%s user=%s", shift.id, station_id, user_id)
        return shift

    return run_in_transaction(_op)


def close_shift(
    shift_id: int,
    closed_by: str,
    closing_cash,
    notes: str | None = None,
    *,
    allow_other: bool = False,
    schema: str | None = None,
) -> Shift:
    """
    Close an open shift.

    Only the shift's owner may close it unless allow_other is set (managers
    and owners). Notes replace the opening notes only when given.

    Raises:
        ShiftNotFoundError, ShiftOwnershipError, ShiftClosedError
    """
    shift_id = parse_id(shift_id, "shift_id")
    if not closed_by:
        raise ValidationError("closed_by is required")
    if closing_cash is None:
        raise ValidationError("closing_cash is required")
    cash = parse_decimal(closing_cash, "closing_cash")

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()
        shift = _require_shift(shift_id, lock=True)

        if shift.user_id != str(closed_by) and not allow_other:
            raise ShiftOwnershipError(
                "Only the shift owner may close this shift",
                details={"shift_id": shift.id, "owner": shift.user_id},
            )
        if shift.status != SHIFT_OPEN:
            raise ShiftClosedError("Shift is already closed", details={"shift_id": shift.id})

        shift.status = SHIFT_CLOSED
        shift.end_time = utcnow()
        shift.closing_cash = cash
        shift.closed_by = str(closed_by)
        if notes is not None:
            shift.notes = notes

        append_ledger_event(
            station_id=shift.station_id,
            event_type="shift.closed",
            event_category="shift",
            entity_type="shift",
            entity_id=shift.id,
            actor_user_id=str(closed_by),
            occurred_at=shift.end_time,
            note=notes,
            payload=f"opening_cash={round2(shift.opening_cash)},closing_cash={cash}",
        )
        db.session.commit()
        return shift

    return run_in_transaction(_op)


# =============================================================================
# TENDER ENTRIES
# =============================================================================

def record_tender_entry(
    shift_id: int,
    user_id: str,
    tender_type: str,
    amount,
    reference_number: str | None = None,
    notes: str | None = None,
    *,
    allow_other: bool = False,
    schema: str | None = None,
) -> TenderEntry:
    """
    Record money counted or settled during an open shift.

    Attendants record against their own shift; allow_other lets managers
    and owners record on anyone's.

    Raises:
        ShiftNotFoundError, ShiftClosedError, ShiftOwnershipError,
        ReconciliationLockedError: the station-day is already finalized
    """
    shift_id = parse_id(shift_id, "shift_id")
    if not user_id:
        raise ValidationError("user_id is required")
    tender = require_choice(tender_type, "tender_type", TENDER_TYPES)
    value = parse_decimal(amount, "amount", allow_zero=False)

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()
        shift = _require_shift(shift_id, lock=True)
        if shift.user_id != str(user_id) and not allow_other:
            raise ShiftOwnershipError(
                "Only the shift owner may record tenders on this shift",
                details={"shift_id": shift.id, "owner": shift.user_id},
            )
        if shift.status != SHIFT_OPEN:
            raise ShiftClosedError(
                "Tender entries can only be recorded on an open shift",
                details={"shift_id": shift.id, "status": shift.status},
            )

        recorded_at = utcnow()
        if is_day_locked(shift.station_id, recorded_at.date()):
            raise ReconciliationLockedError(
                "Station day is already finalized",
                details={"station_id": shift.station_id, "date": recorded_at.date().isoformat()},
            )

        entry = TenderEntry(
            shift_id=shift.id,
            station_id=shift.station_id,
            user_id=str(user_id),
            tender_type=tender,
            amount=value,
            recorded_at=recorded_at,
            reference_number=reference_number,
            notes=notes,
        )
        db.session.add(entry)
        db.session.flush()

        append_ledger_event(
            station_id=shift.station_id,
            event_type="tender.recorded",
            event_category="shift",
            entity_type="tender_entry",
            entity_id=entry.id,
            actor_user_id=str(user_id),
            occurred_at=recorded_at,
            note=reference_number,
            payload=f"shift={shift.id},type={tender},amount={value}",
        )
        db.session.commit()
        return entry

    return run_in_transaction(_op)


# =============================================================================
# READS
# =============================================================================

def get_shift(shift_id: int, *, schema: str | None = None) -> Shift:
    bind_tenant_schema(schema)
    return _require_shift(shift_id)


def get_active_shift(user_id: str, *, schema: str | None = None) -> Shift | None:
    bind_tenant_schema(schema)
    return (
        db.session.query(Shift)
        .filter_by(user_id=str(user_id), status=SHIFT_OPEN)
        .order_by(Shift.start_time.desc())
        .first()
    )


def list_shifts(
    station_id: int | None = None,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    schema: str | None = None,
) -> list[Shift]:
    """Filter on start_time (inclusive both ends), newest first."""
    bind_tenant_schema(schema)
    query = db.session.query(Shift)
    if station_id is not None:
        query = query.filter(Shift.station_id == station_id)
    if status:
        query = query.filter(Shift.status == require_choice(status, "status", SHIFT_STATUSES))
    if start is not None:
        query = query.filter(Shift.start_time >= start)
    if end is not None:
        query = query.filter(Shift.start_time <= end)
    return query.order_by(Shift.start_time.desc(), Shift.id.desc()).all()


def get_tender_entries(shift_id: int, *, schema: str | None = None) -> list[TenderEntry]:
    bind_tenant_schema(schema)
    _require_shift(shift_id)
    return (
        db.session.query(TenderEntry)
        .filter_by(shift_id=shift_id)
        .order_by(TenderEntry.recorded_at.desc(), TenderEntry.id.desc())
        .all()
    )


def get_shift_summary(shift_id: int, *, schema: str | None = None) -> ShiftSummary:
    """
    Entered tender totals next to the non-voided sales posted at the
    station between the shift's start and its end (or now, while open).
    """
    bind_tenant_schema(schema)
    shift = _require_shift(shift_id)

    totals = {tender: Decimal("0.00") for tender in TENDER_TYPES}
    rows = (
        db.session.query(TenderEntry.tender_type, func.coalesce(func.sum(TenderEntry.amount), 0))
        .filter(TenderEntry.shift_id == shift.id)
        .group_by(TenderEntry.tender_type)
        .all()
    )
    for tender, amount in rows:
        totals[tender] = round2(amount)
    totals["total"] = round2(sum(totals.values(), Decimal("0")))

    end = shift.end_time or utcnow()
    count, volume, amount = (
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.sale_volume), 0),
            func.coalesce(func.sum(Sale.amount), 0),
        )
        .filter(
            Sale.station_id == shift.station_id,
            Sale.status == "posted",
            Sale.recorded_at >= shift.start_time,
            Sale.recorded_at <= end,
        )
        .one()
    )
    return ShiftSummary(
        shift=shift,
        tender_totals=totals,
        sales_count=int(count or 0),
        sales_volume=round2(volume),
        sales_amount=round2(amount),
    )

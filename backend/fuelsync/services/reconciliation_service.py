# Overview: Daily Reconciliation Aggregator; station-day tender totals and day locking.

"""
Daily Reconciliation Aggregator

WHY: At close of day the manager confirms that the tenders collected add up
to what the meters sold. Cash and credit are known from the sale rows; card
and UPI settlement totals come from the terminals, typed in by the manager
or recorded as shift tender entries. Once the day is finalized its sales are
locked against voiding and posting.

DESIGN:
- One row per (station_id, date), enforced by a unique constraint
- Totals are always recomputed inside the finalize transaction
- Draft rows may be re-saved; finalized rows are frozen
- A second finalize with identical totals returns the existing row
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DayReconciliation, Sale, Station, TenderEntry
from fuelsync.time_utils import day_bounds, utcnow
from fuelsync.validation import PAYMENT_TOLERANCE, ValidationError, parse_id, parse_optional_decimal, round2
from .concurrency import begin_write_transaction, lock_for_update, run_in_transaction
from .errors import ConcurrentUpdateError, ReconciliationLockedError, ReconciliationMismatchError
from .ledger_service import append_ledger_event
from .tenant_service import bind_tenant_schema


@dataclass(frozen=True)
class DailyTotals:
    """
    Aggregates over a station-day's posted sales.

    card_recorded / upi_recorded are what attendants tagged at the pump; they
    are suggestions for the manually entered card/UPI totals.
    """
    station_id: int
    date: date
    total_sales: Decimal
    cash_total: Decimal
    credit_total: Decimal
    card_recorded: Decimal
    upi_recorded: Decimal
    sale_count: int
    total_volume: Decimal

    def to_dict(self) -> dict:
        return {
            "station_id": self.station_id,
            "date": self.date.isoformat(),
            "total_sales": str(self.total_sales),
            "cash_total": str(self.cash_total),
            "credit_total": str(self.credit_total),
            "card_recorded": str(self.card_recorded),
            "upi_recorded": str(self.upi_recorded),
            "sale_count": self.sale_count,
            "total_volume": str(self.total_volume),
        }


def _tender_sum(tender: str):
    return func.coalesce(
        func.sum(case((Sale.tender_type == tender, Sale.cash_received), else_=0)), 0
    )


def compute_daily_totals(station_id: int, day: date, *, schema: str | None = None) -> DailyTotals:
    """Sum non-voided sales whose recorded_at falls on `day` (UTC)."""
    bind_tenant_schema(schema)
    start, end = day_bounds(day)
    row = (
        db.session.query(
            func.coalesce(func.sum(Sale.amount), 0),
            _tender_sum("cash"),
            func.coalesce(func.sum(Sale.credit_given), 0),
            _tender_sum("card"),
            _tender_sum("upi"),
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.sale_volume), 0),
        )
        .filter(
            Sale.station_id == station_id,
            Sale.status == "posted",
            Sale.recorded_at >= start,
            Sale.recorded_at < end,
        )
        .one()
    )
    total, cash, credit, card, upi, count, volume = row
    return DailyTotals(
        station_id=station_id,
        date=day,
        total_sales=round2(total),
        cash_total=round2(cash),
        credit_total=round2(credit),
        card_recorded=round2(card),
        upi_recorded=round2(upi),
        sale_count=int(count or 0),
        total_volume=round2(volume),
    )


def entered_tender_totals(station_id: int, day: date, *, schema: str | None = None) -> dict[str, Decimal]:
    """Shift tender entries recorded at the station on `day`, summed per type."""
    bind_tenant_schema(schema)
    start, end = day_bounds(day)
    rows = (
        db.session.query(TenderEntry.tender_type, func.coalesce(func.sum(TenderEntry.amount), 0))
        .filter(
            TenderEntry.station_id == station_id,
            TenderEntry.recorded_at >= start,
            TenderEntry.recorded_at < end,
        )
        .group_by(TenderEntry.tender_type)
        .all()
    )
    return {tender: round2(amount) for tender, amount in rows}


def _manual_totals(totals: DailyTotals, card_total, upi_total) -> tuple[Decimal, Decimal]:
    """
    Card/UPI totals for the day: the value given, else what shifts entered
    for that tender, else what attendants tagged at the pump.
    """
    card = parse_optional_decimal(card_total, "card_total")
    upi = parse_optional_decimal(upi_total, "upi_total")
    entered = entered_tender_totals(totals.station_id, totals.date)
    if card is None:
        card = entered.get("card", totals.card_recorded)
    if upi is None:
        upi = entered.get("upi", totals.upi_recorded)
    return card, upi


def day_tolerance(sale_count: int) -> Decimal:
    """Each sale may be tendered up to PAYMENT_TOLERANCE short or over."""
    return PAYMENT_TOLERANCE * max(sale_count, 1)


def _same_totals(rec: DayReconciliation, totals: DailyTotals, card: Decimal, upi: Decimal) -> bool:
    return (
        round2(rec.total_sales) == totals.total_sales
        and round2(rec.cash_total) == totals.cash_total
        and round2(rec.credit_total) == totals.credit_total
        and round2(rec.card_total) == card
        and round2(rec.upi_total) == upi
    )


def _apply_totals(rec: DayReconciliation, totals: DailyTotals, card: Decimal, upi: Decimal) -> None:
    rec.total_sales = totals.total_sales
    rec.cash_total = totals.cash_total
    rec.credit_total = totals.credit_total
    rec.card_total = card
    rec.upi_total = upi
    rec.sale_count = totals.sale_count
    rec.total_volume = totals.total_volume


def _upsert(station_id: int, day: date, totals: DailyTotals, card: Decimal, upi: Decimal, created_by: str, notes):
    """Locked existing row or a freshly inserted one. Returns (row, created)."""
    station = db.session.query(Station).filter_by(id=station_id).first()
    if not station:
        raise ValidationError(f"Station {station_id} not found")

    rec = lock_for_update(
        db.session.query(DayReconciliation).filter_by(station_id=station_id, date=day)
    ).first()
    if rec is not None:
        return rec, False

    rec = DayReconciliation(
        station_id=station_id,
        date=day,
        created_by=str(created_by),
        notes=notes,
        finalized=False,
    )
    _apply_totals(rec, totals, card, upi)
    db.session.add(rec)
    # Unique (station_id, date): a concurrent loser fails here
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConcurrentUpdateError(
            "Reconciliation for this day is being saved concurrently; retry the request",
            details={"station_id": station_id, "date": day.isoformat()},
        ) from exc
    return rec, True


# =============================================================================
# DRAFT / FINALIZE
# =============================================================================

def save_draft(
    station_id: int,
    day: date,
    card_total=None,
    upi_total=None,
    created_by: str | None = None,
    notes: str | None = None,
    *,
    schema: str | None = None,
) -> DayReconciliation:
    """
    Store the day's current totals without locking anything.

    No balance check is made; drafts are working copies.

    Raises:
        ReconciliationLockedError: the day is already finalized
    """
    if not created_by:
        raise ValidationError("created_by is required")
    station_id = parse_id(station_id, "station_id")

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()
        totals = compute_daily_totals(station_id, day)
        card, upi = _manual_totals(totals, card_total, upi_total)

        rec, created = _upsert(station_id, day, totals, card, upi, created_by, notes)
        if rec.finalized:
            raise ReconciliationLockedError(
                "Reconciliation is already finalized",
                details={"reconciliation_id": rec.id, "station_id": station_id, "date": day.isoformat()},
            )
        if not created:
            _apply_totals(rec, totals, card, upi)
            if notes is not None:
                rec.notes = notes

        append_ledger_event(
            station_id=station_id,
            event_type="reconciliation.draft_saved",
            event_category="reconciliation",
            entity_type="day_reconciliation",
            entity_id=rec.id,
            actor_user_id=str(created_by),
            reconciliation_id=rec.id,
            payload=f"date={day.isoformat()},total={totals.total_sales}",
        )
        db.session.commit()
        return rec

    return run_in_transaction(_op)


def finalize(
    station_id: int,
    day: date,
    card_total=None,
    upi_total=None,
    created_by: str | None = None,
    notes: str | None = None,
    *,
    schema: str | None = None,
) -> DayReconciliation:
    """
    Finalize a station-day and lock its sales.

    card_total / upi_total default to the day's shift tender entries, then to
    what attendants tagged at the pump.

    Raises:
        ReconciliationMismatchError: tenders do not add up to total sales
        ReconciliationLockedError: day already finalized with other totals
    """
    if not created_by:
        raise ValidationError("created_by is required")
    station_id = parse_id(station_id, "station_id")

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()
        totals = compute_daily_totals(station_id, day)
        card, upi = _manual_totals(totals, card_total, upi_total)

        tender_total = round2(totals.cash_total + totals.credit_total + card + upi)
        difference = round2(abs(tender_total - totals.total_sales))
        allowed = day_tolerance(totals.sale_count)
        if difference > allowed:
            raise ReconciliationMismatchError(
                "Tender totals do not reconcile to total sales",
                details={
                    "total_sales": str(totals.total_sales),
                    "cash_total": str(totals.cash_total),
                    "credit_total": str(totals.credit_total),
                    "card_total": str(card),
                    "upi_total": str(upi),
                    "tender_total": str(tender_total),
                    "difference": str(difference),
                    "allowed_difference": str(allowed),
                },
            )

        rec, created = _upsert(station_id, day, totals, card, upi, created_by, notes)

        if rec.finalized:
            if not _same_totals(rec, totals, card, upi):
                raise ReconciliationLockedError(
                    "Reconciliation is already finalized with different totals",
                    details={
                        "reconciliation_id": rec.id,
                        "finalized": rec.to_dict(),
                        "recomputed": totals.to_dict(),
                    },
                )
            if notes is not None and notes != rec.notes:
                rec.notes = notes
            db.session.commit()
            return rec

        if not created:
            _apply_totals(rec, totals, card, upi)
            if notes is not None:
                rec.notes = notes

        rec.finalized = True
        rec.finalized_at = utcnow()
        db.session.flush()

        start, end = day_bounds(day)
        locked = (
            db.session.query(Sale)
            .filter(
                Sale.station_id == station_id,
                Sale.status == "posted",
                Sale.recorded_at >= start,
                Sale.recorded_at < end,
                Sale.reconciliation_id.is_(None),
            )
            .update(
                {Sale.reconciliation_id: rec.id, Sale.version_id: Sale.version_id + 1},
                synchronize_session=False,
            )
        )

        append_ledger_event(
            station_id=station_id,
            event_type="reconciliation.finalized",
            event_category="reconciliation",
            entity_type="day_reconciliation",
            entity_id=rec.id,
            actor_user_id=str(created_by),
            reconciliation_id=rec.id,
            occurred_at=rec.finalized_at,
            note=notes,
            payload=(
                f"date={day.isoformat()},total={totals.total_sales},cash={totals.cash_total},"
                f"credit={totals.credit_total},card={card},upi={upi},locked_sales={locked}"
            ),
        )

        db.session.commit()
        current_app.logger.info(
            "Reconciliation finalized id=%s station=%s date=%s total=%s locked_sales=%s",
            rec.id, station_id, day.isoformat(), totals.total_sales, locked,
        )
        return rec

    return run_in_transaction(_op)


# =============================================================================
# READS
# =============================================================================

def get_reconciliation(station_id: int, day: date, *, schema: str | None = None) -> DayReconciliation | None:
    bind_tenant_schema(schema)
    return db.session.query(DayReconciliation).filter_by(station_id=station_id, date=day).first()


def list_reconciliations(
    station_id: int,
    start: date | None = None,
    end: date | None = None,
    *,
    schema: str | None = None,
) -> list[DayReconciliation]:
    """Inclusive date range, newest first."""
    bind_tenant_schema(schema)
    query = db.session.query(DayReconciliation).filter(DayReconciliation.station_id == station_id)
    if start is not None:
        query = query.filter(DayReconciliation.date >= start)
    if end is not None:
        query = query.filter(DayReconciliation.date <= end)
    return query.order_by(DayReconciliation.date.desc()).all()


def is_day_locked(station_id: int, day: date, *, schema: str | None = None) -> bool:
    bind_tenant_schema(schema)
    return (
        db.session.query(DayReconciliation.id)
        .filter_by(station_id=station_id, date=day, finalized=True)
        .first()
        is not None
    )

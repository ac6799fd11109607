# Overview: Sale Transaction Engine; meter-driven sale posting and void.

"""
Sale Transaction Engine

WHY: A fuel sale touches four things at once: the nozzle meter, the sale row,
the price registry and (for credit) the creditor balance. They must move
together or not at all, so each operation below is one transaction with the
nozzle row locked before its meter value is read.

POSTING SEQUENCE (create_sale), refused once the station-day is finalized:
1. Lock nozzle; previous_reading = current_reading
2. sale_volume = explicit_volume or cumulative_reading - previous_reading
3. Resolve the price in effect now
4. amount = round2(sale_volume * price)
5. |cash_received + credit_given - amount| <= 0.01
6. Derive payment_method
7. Insert sale, advance meter, increment creditor balance

VOID:
- posted -> voided exactly once
- the day must not be finalized
- credit is reversed; the meter is left alone unless rollback_meter=True
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Sale
from fuelsync.time_utils import utcnow
from fuelsync.validation import (
    PAYMENT_TOLERANCE,
    ValidationError,
    parse_decimal,
    parse_id,
    parse_optional_decimal,
    require_choice,
    round2,
)
from .concurrency import begin_write_transaction, lock_for_update, run_in_transaction
from .creditor_service import apply_credit, enforce_credit_limit, require_creditor_for_station, reverse_credit
from .errors import (
    CreditLimitExceededWarning,
    NonPositiveVolumeError,
    NozzleNotFoundError,
    PaymentMismatchError,
    ReconciliationLockedError,
    SaleAlreadyVoidedError,
    SaleNotFoundError,
)
from .ledger_service import append_ledger_event
from .nozzle_service import advance, lock_nozzle, rollback
from .pricing_service import price_in_effect, quote_amount
from .reconciliation_service import is_day_locked
from .tenant_service import bind_tenant_schema


# =============================================================================
# STATUS / TENDER CONSTANTS
# =============================================================================

STATUS_POSTED = "posted"
STATUS_VOIDED = "voided"

TENDER_CASH = "cash"
TENDER_CARD = "card"
TENDER_UPI = "upi"
TENDER_TYPES = {TENDER_CASH, TENDER_CARD, TENDER_UPI}

METHOD_CREDIT = "credit"
METHOD_MIXED = "mixed"


@dataclass(frozen=True)
class PostedSale:
    """A committed sale plus any advisory raised while posting it."""
    sale: Sale
    credit_warning: CreditLimitExceededWarning | None = None

    def to_dict(self) -> dict:
        data = {"sale": self.sale.to_dict(), "warnings": []}
        if self.credit_warning is not None:
            data["warnings"].append(self.credit_warning.to_dict())
        return data


def derive_payment_method(cash_received: Decimal, credit_given: Decimal, tender_type: str = TENDER_CASH) -> str:
    """
    credit only -> credit; credit plus anything else -> mixed;
    otherwise the tender tag (cash unless the caller said card/upi).
    """
    if credit_given > 0:
        return METHOD_MIXED if cash_received > 0 else METHOD_CREDIT
    return tender_type


def _validate_split(amount: Decimal, cash_received: Decimal, credit_given: Decimal) -> None:
    supplied = round2(cash_received + credit_given)
    difference = round2(abs(supplied - amount))
    if difference > PAYMENT_TOLERANCE:
        raise PaymentMismatchError(
            "Payment split does not add up to the sale amount",
            details={
                "amount": str(amount),
                "cash_received": str(cash_received),
                "credit_given": str(credit_given),
                "supplied_total": str(supplied),
                "difference": str(difference),
            },
        )


# =============================================================================
# POSTING
# =============================================================================

def create_sale(
    station_id: int,
    nozzle_id: int,
    user_id: str,
    cumulative_reading,
    explicit_volume=None,
    cash_received=0,
    credit_given=0,
    credit_party_id: int | None = None,
    tender_type: str | None = None,
    notes: str | None = None,
    *,
    schema: str | None = None,
) -> PostedSale:
    """
    Post a sale from a new cumulative meter reading.

    Raises:
        NozzleNotFoundError, NonPositiveVolumeError, NoActivePriceError,
        NonMonotonicReadingError, PaymentMismatchError, CreditorNotFoundError,
        CreditLimitExceededWarning (reject policy only), ReconciliationLockedError,
        ConcurrentUpdateError, ValidationError
    """
    station_id = parse_id(station_id, "station_id")
    nozzle_id = parse_id(nozzle_id, "nozzle_id")
    if credit_party_id is not None:
        credit_party_id = parse_id(credit_party_id, "credit_party_id")
    if not user_id:
        raise ValidationError("user_id is required")
    reading = parse_decimal(cumulative_reading, "cumulative_reading")
    volume_override = parse_optional_decimal(explicit_volume, "explicit_volume", allow_negative=True)
    cash = parse_decimal(cash_received if cash_received is not None else 0, "cash_received")
    credit = parse_decimal(credit_given if credit_given is not None else 0, "credit_given")
    tender = require_choice(tender_type or TENDER_CASH, "tender_type", TENDER_TYPES)

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()
        recorded_at = utcnow()

        if is_day_locked(station_id, recorded_at.date()):
            raise ReconciliationLockedError(
                "Station day is already finalized; no further sales can be posted",
                details={"station_id": station_id, "date": recorded_at.date().isoformat()},
            )

        # 1. Lock the meter before reading it
        nozzle = lock_nozzle(nozzle_id)
        if nozzle.pump.station_id != station_id:
            raise NozzleNotFoundError(
                f"Nozzle {nozzle_id} does not belong to station {station_id}",
                details={"nozzle_id": nozzle_id, "station_id": station_id},
            )
        previous = nozzle.current_reading

        # 2. Volume
        volume = volume_override if volume_override is not None else round2(reading - previous)
        if volume <= 0:
            raise NonPositiveVolumeError(
                "Sale volume must be greater than zero",
                details={
                    "previous_reading": str(previous),
                    "cumulative_reading": str(reading),
                    "sale_volume": str(volume),
                },
            )

        # 3-4. Price and amount
        price = price_in_effect(station_id, nozzle.fuel_type, recorded_at)
        amount = quote_amount(volume, price.price_per_unit)

        # 5-6. Payment split
        _validate_split(amount, cash, credit)
        if credit > 0:
            require_creditor_for_station(credit_party_id, station_id)
        method = derive_payment_method(cash, credit, tender)

        # 7. Persist
        sale = Sale(
            station_id=station_id,
            nozzle_id=nozzle_id,
            user_id=str(user_id),
            recorded_at=recorded_at,
            previous_reading=previous,
            cumulative_reading=reading,
            sale_volume=volume,
            fuel_price=price.price_per_unit,
            fuel_price_id=price.id,
            amount=amount,
            cash_received=cash,
            credit_given=credit,
            credit_party_id=credit_party_id if credit > 0 else None,
            tender_type=tender,
            payment_method=method,
            status=STATUS_POSTED,
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()

        advance(nozzle_id, reading, sale_id=sale.id, recorded_by=str(user_id))

        warning = None
        if credit > 0:
            apply_credit(credit_party_id, credit)
            warning = enforce_credit_limit(credit_party_id)

        append_ledger_event(
            station_id=station_id,
            event_type="sale.posted",
            event_category="sales",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=str(user_id),
            sale_id=sale.id,
            nozzle_id=nozzle_id,
            creditor_id=sale.credit_party_id,
            occurred_at=recorded_at,
            payload=f"volume={volume},price={price.price_per_unit},amount={amount},method={method}",
        )

        db.session.commit()
        current_app.logger.info(
            "Sale posted id=%s station=%s nozzle=%s volume=%s amount=%s method=%s",
            sale.id, station_id, nozzle_id, volume, amount, method,
        )
        return PostedSale(sale=sale, credit_warning=warning)

    return run_in_transaction(_op)


# =============================================================================
# VOID
# =============================================================================

def void_sale(
    sale_id: int,
    user_id: str,
    reason: str,
    rollback_meter: bool = False,
    *,
    schema: str | None = None,
) -> Sale:
    """
    Void a posted sale (compensating reversal).

    The meter stays where it is by default and a nozzle.reading_gap event
    records the voided range. rollback_meter=True moves it back instead, which
    only works for the nozzle's most recent sale.

    Raises:
        SaleNotFoundError, SaleAlreadyVoidedError, ReconciliationLockedError,
        OutOfOrderVoidError (rollback_meter only)
    """
    if not user_id:
        raise ValidationError("user_id is required")
    if not reason or not str(reason).strip():
        raise ValidationError("Void reason is required")
    reason = str(reason).strip()

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()

        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if sale.status == STATUS_VOIDED:
            raise SaleAlreadyVoidedError(
                "Sale is already voided",
                details={"sale_id": sale_id, "voided_at": sale.voided_at.isoformat() if sale.voided_at else None},
            )

        sale_day = sale.recorded_at.date()
        if sale.is_locked or is_day_locked(sale.station_id, sale_day):
            raise ReconciliationLockedError(
                "Sale belongs to a finalized reconciliation day",
                details={
                    "sale_id": sale_id,
                    "station_id": sale.station_id,
                    "date": sale_day.isoformat(),
                    "reconciliation_id": sale.reconciliation_id,
                },
            )

        now = utcnow()
        sale.status = STATUS_VOIDED
        sale.voided_by = str(user_id)
        sale.voided_at = now
        sale.void_reason = reason[:255]

        if sale.credit_given and sale.credit_given > 0 and sale.credit_party_id:
            reverse_credit(sale.credit_party_id, sale.credit_given)

        db.session.flush()

        if rollback_meter:
            rollback(
                sale.nozzle_id,
                sale.previous_reading,
                sale_id=sale.id,
                recorded_by=str(user_id),
                notes=reason,
            )
        else:
            append_ledger_event(
                station_id=sale.station_id,
                event_type="nozzle.reading_gap",
                event_category="nozzles",
                entity_type="nozzle",
                entity_id=sale.nozzle_id,
                actor_user_id=str(user_id),
                sale_id=sale.id,
                nozzle_id=sale.nozzle_id,
                occurred_at=now,
                note=reason,
                payload=f"from={sale.previous_reading},to={sale.cumulative_reading},volume={sale.sale_volume}",
            )

        append_ledger_event(
            station_id=sale.station_id,
            event_type="sale.voided",
            event_category="sales",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=str(user_id),
            sale_id=sale.id,
            nozzle_id=sale.nozzle_id,
            creditor_id=sale.credit_party_id,
            occurred_at=now,
            note=reason,
            payload=f"amount={sale.amount},credit_reversed={sale.credit_given},meter_rolled_back={rollback_meter}",
        )

        db.session.commit()
        current_app.logger.info(
            "Sale voided id=%s by=%s rollback_meter=%s", sale.id, user_id, rollback_meter,
        )
        return sale

    return run_in_transaction(_op)


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int, *, schema: str | None = None) -> Sale:
    bind_tenant_schema(schema)
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    station_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    user_id: str | None = None,
    include_voided: bool = False,
    *,
    limit: int = 200,
    schema: str | None = None,
) -> list[Sale]:
    """Sales at a station in [start, end), newest first."""
    bind_tenant_schema(schema)
    query = db.session.query(Sale).filter(Sale.station_id == station_id)
    if start is not None:
        query = query.filter(Sale.recorded_at >= start)
    if end is not None:
        query = query.filter(Sale.recorded_at < end)
    if user_id:
        query = query.filter(Sale.user_id == str(user_id))
    if not include_voided:
        query = query.filter(Sale.status == STATUS_POSTED)
    return query.order_by(Sale.recorded_at.desc(), Sale.id.desc()).limit(limit).all()

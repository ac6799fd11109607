# Overview: Creditor Ledger; running balances for customers buying on credit.

"""
Creditor Ledger

WHY: Fleet and account customers fill up on credit and settle later. Their
running balance is touched by concurrent sales, voids and payments, so every
change is a single UPDATE ... SET running_balance = running_balance +/- :amount
statement rather than a read-modify-write in Python.

DESIGN:
- apply_credit / reverse_credit participate in the caller's transaction
  (the sale engine) and never commit
- record_payment is a standalone operation with its own transaction
- credit_limit is advisory unless CREDIT_LIMIT_POLICY = "reject"
- overpayment handling follows CREDITOR_OVERPAYMENT_POLICY
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import case
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Creditor, CreditorPayment, Station
from fuelsync.time_utils import utcnow
from fuelsync.validation import ConflictError, ValidationError, parse_decimal, parse_id, require_choice, round2
from .concurrency import begin_write_transaction, lock_for_update, run_in_transaction
from .errors import CreditLimitExceededWarning, CreditorNotFoundError, OverpaymentError
from .ledger_service import append_ledger_event
from .tenant_service import bind_tenant_schema


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

PAYMENT_METHODS = {
    "cash",
    "bank_transfer",
    "check",
    "upi",
    "credit_card",
    "debit_card",
}


# =============================================================================
# POLICIES
# =============================================================================

CREDIT_LIMIT_WARN = "warn"
CREDIT_LIMIT_REJECT = "reject"

OVERPAYMENT_ALLOW = "allow"
OVERPAYMENT_CLAMP = "clamp"
OVERPAYMENT_REJECT = "reject"


def _credit_limit_policy() -> str:
    policy = current_app.config.get("CREDIT_LIMIT_POLICY", CREDIT_LIMIT_WARN)
    if policy not in (CREDIT_LIMIT_WARN, CREDIT_LIMIT_REJECT):
        raise ValueError(f"Unknown CREDIT_LIMIT_POLICY: {policy!r}")
    return policy


def _overpayment_policy() -> str:
    policy = current_app.config.get("CREDITOR_OVERPAYMENT_POLICY", OVERPAYMENT_ALLOW)
    if policy not in (OVERPAYMENT_ALLOW, OVERPAYMENT_CLAMP, OVERPAYMENT_REJECT):
        raise ValueError(f"Unknown CREDITOR_OVERPAYMENT_POLICY: {policy!r}")
    return policy


# =============================================================================
# CREDITOR ACCOUNTS
# =============================================================================

def create_creditor(
    station_id: int,
    party_name: str,
    *,
    credit_limit=None,
    contact_person: str | None = None,
    contact_phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    notes: str | None = None,
    schema: str | None = None,
) -> Creditor:
    station_id = parse_id(station_id, "station_id")
    if not party_name or not party_name.strip():
        raise ValidationError("party_name is required")
    limit = parse_decimal(credit_limit, "credit_limit") if credit_limit is not None else None

    def _op():
        bind_tenant_schema(schema)
        station = db.session.query(Station).filter_by(id=station_id).first()
        if not station:
            raise ValidationError(f"Station {station_id} not found")

        creditor = Creditor(
            station_id=station_id,
            party_name=party_name.strip(),
            credit_limit=limit,
            running_balance=Decimal("0.00"),
            contact_person=contact_person,
            contact_phone=contact_phone,
            email=email,
            address=address,
            notes=notes,
            active=True,
        )
        db.session.add(creditor)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Creditor {party_name!r} already exists at this station")

        db.session.commit()
        return creditor

    return run_in_transaction(_op)


def update_creditor(creditor_id: int, patch: dict, *, schema: str | None = None) -> Creditor:
    """
    Apply a validated patch (see routes.creditors policy).

    running_balance is never patchable; it only moves through the ledger.
    """
    if "running_balance" in patch:
        raise ValidationError("running_balance cannot be edited directly")

    def _op():
        bind_tenant_schema(schema)
        creditor = lock_for_update(db.session.query(Creditor).filter_by(id=creditor_id)).first()
        if not creditor:
            raise CreditorNotFoundError(f"Creditor {creditor_id} not found", details={"creditor_id": creditor_id})

        for key, value in patch.items():
            setattr(creditor, key, value)

        db.session.commit()
        return creditor

    return run_in_transaction(_op)


def get_creditor(creditor_id: int, *, schema: str | None = None) -> Creditor | None:
    bind_tenant_schema(schema)
    return db.session.query(Creditor).filter_by(id=creditor_id).first()


def list_creditors(station_id: int, *, include_inactive: bool = False, schema: str | None = None) -> list[Creditor]:
    bind_tenant_schema(schema)
    query = db.session.query(Creditor).filter_by(station_id=station_id)
    if not include_inactive:
        query = query.filter_by(active=True)
    return query.order_by(Creditor.party_name.asc()).all()


def get_balance(creditor_id: int, *, schema: str | None = None) -> Decimal:
    """Committed running balance, read straight from the row."""
    bind_tenant_schema(schema)
    balance = db.session.query(Creditor.running_balance).filter_by(id=creditor_id).scalar()
    if balance is None:
        raise CreditorNotFoundError(f"Creditor {creditor_id} not found", details={"creditor_id": creditor_id})
    return round2(balance)


def require_creditor_for_station(creditor_id: int | None, station_id: int) -> Creditor:
    """
    Resolve the credit party for a sale.

    Raises:
        CreditorNotFoundError: missing, inactive, or belongs to another station
    """
    creditor = None
    if creditor_id is not None:
        creditor = db.session.query(Creditor).filter_by(id=creditor_id).first()
    if creditor is None or not creditor.active or creditor.station_id != station_id:
        raise CreditorNotFoundError(
            "Credit party not found for this station",
            details={"credit_party_id": creditor_id, "station_id": station_id},
        )
    return creditor


# =============================================================================
# BALANCE MOVEMENTS
# =============================================================================

def _shift_balance(creditor_id: int, delta: Decimal) -> None:
    updated = (
        db.session.query(Creditor)
        .filter(Creditor.id == creditor_id)
        .update(
            {
                Creditor.running_balance: Creditor.running_balance + delta,
                Creditor.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    if not updated:
        raise CreditorNotFoundError(f"Creditor {creditor_id} not found", details={"creditor_id": creditor_id})
    _expire_creditor(creditor_id)


def _expire_creditor(creditor_id: int) -> None:
    # Bulk UPDATE bypasses the identity map; force the next read to hit the row
    creditor = db.session.get(Creditor, creditor_id)
    if creditor is not None:
        db.session.expire(creditor, ["running_balance", "updated_at"])


def apply_credit(creditor_id: int, amount: Decimal) -> None:
    """Atomically add credit to the balance. Caller owns the transaction."""
    amount = parse_decimal(amount, "amount", allow_zero=False)
    _shift_balance(creditor_id, amount)


def reverse_credit(creditor_id: int, amount: Decimal) -> None:
    """Atomically take credit off the balance. Caller owns the transaction."""
    amount = parse_decimal(amount, "amount", allow_zero=False)
    _shift_balance(creditor_id, -amount)


def credit_limit_warning(creditor: Creditor) -> CreditLimitExceededWarning | None:
    """Advisory for a creditor whose balance is above its limit, else None."""
    if creditor.credit_limit is None:
        return None
    balance = round2(creditor.running_balance)
    limit = round2(creditor.credit_limit)
    if balance <= limit:
        return None
    return CreditLimitExceededWarning(
        f"Creditor {creditor.party_name!r} is over the credit limit",
        details={
            "creditor_id": creditor.id,
            "credit_limit": str(limit),
            "running_balance": str(balance),
            "excess": str(balance - limit),
        },
    )


def enforce_credit_limit(creditor_id: int) -> CreditLimitExceededWarning | None:
    """
    Check the balance after a credit was applied in this transaction.

    Under the reject policy the warning is raised (aborting the sale);
    otherwise it is logged and returned.
    """
    creditor = db.session.query(Creditor).filter_by(id=creditor_id).first()
    warning = credit_limit_warning(creditor)
    if warning is None:
        return None
    if _credit_limit_policy() == CREDIT_LIMIT_REJECT:
        raise warning
    current_app.logger.warning("%s %s", warning, warning.details)
    return warning


# =============================================================================
# PAYMENTS
# =============================================================================

def record_payment(
    creditor_id: int,
    amount,
    method: str,
    received_by: str,
    *,
    reference_number: str | None = None,
    notes: str | None = None,
    schema: str | None = None,
) -> CreditorPayment:
    """
    Record money received from a creditor and take it off the balance.

    Independent of any sale. Overpayment (amount > balance):
    - allow: balance goes negative (credit in the customer's favor)
    - clamp: balance floors at zero; applied_amount records what was used
    - reject: OverpaymentError

    Raises:
        CreditorNotFoundError, OverpaymentError, ValidationError
    """
    amount = parse_decimal(amount, "amount", allow_zero=False)
    method = require_choice(method, "payment_method", PAYMENT_METHODS)
    if not received_by:
        raise ValidationError("received_by is required")
    policy = _overpayment_policy()

    def _op():
        bind_tenant_schema(schema)
        begin_write_transaction()

        creditor = lock_for_update(db.session.query(Creditor).filter_by(id=creditor_id)).first()
        if not creditor:
            raise CreditorNotFoundError(f"Creditor {creditor_id} not found", details={"creditor_id": creditor_id})

        balance = round2(creditor.running_balance)
        applied = amount

        if policy == OVERPAYMENT_REJECT and amount > balance:
            raise OverpaymentError(
                "Payment exceeds the outstanding balance",
                details={"creditor_id": creditor_id, "amount": str(amount), "running_balance": str(balance)},
            )

        if policy == OVERPAYMENT_CLAMP:
            applied = min(amount, max(balance, Decimal("0.00")))
            # Floor at zero inside the UPDATE itself
            db.session.query(Creditor).filter(Creditor.id == creditor_id).update(
                {
                    Creditor.running_balance: case(
                        (Creditor.running_balance - amount < 0, 0),
                        else_=Creditor.running_balance - amount,
                    ),
                    Creditor.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
            _expire_creditor(creditor_id)
        else:
            _shift_balance(creditor_id, -amount)

        payment = CreditorPayment(
            creditor_id=creditor_id,
            amount=amount,
            applied_amount=applied,
            payment_method=method,
            reference_number=reference_number,
            recorded_by=received_by,
            notes=notes,
            created_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        append_ledger_event(
            station_id=creditor.station_id,
            event_type="creditor.payment_recorded",
            event_category="creditors",
            entity_type="creditor_payment",
            entity_id=payment.id,
            actor_user_id=received_by,
            creditor_id=creditor_id,
            occurred_at=payment.created_at,
            note=notes,
            payload=f"amount={amount},applied={applied},method={method}",
        )

        db.session.commit()
        current_app.logger.info(
            "Creditor payment creditor=%s amount=%s applied=%s method=%s",
            creditor_id, amount, applied, method,
        )
        return payment

    return run_in_transaction(_op)


def get_payment_history(creditor_id: int, *, schema: str | None = None) -> list[CreditorPayment]:
    """Newest first."""
    bind_tenant_schema(schema)
    return (
        db.session.query(CreditorPayment)
        .filter_by(creditor_id=creditor_id)
        .order_by(CreditorPayment.created_at.desc(), CreditorPayment.id.desc())
        .all()
    )

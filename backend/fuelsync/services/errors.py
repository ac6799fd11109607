# Overview: Error taxonomy for the sales/reconciliation ledger.

"""
Ledger errors

Every error aborts the transaction it was raised in and reaches the caller
with a machine-readable code and enough detail (expected vs. actual values)
for the client to correct and resubmit. Nothing here is retried
automatically.
"""


class LedgerError(Exception):
    """Base class for ledger operation errors."""
    code = "LEDGER_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class NozzleNotFoundError(LedgerError):
    code = "NOZZLE_NOT_FOUND"
    http_status = 404


class SaleNotFoundError(LedgerError):
    code = "SALE_NOT_FOUND"
    http_status = 404


class CreditorNotFoundError(LedgerError):
    code = "CREDITOR_NOT_FOUND"
    http_status = 404


class NonMonotonicReadingError(LedgerError):
    code = "NON_MONOTONIC_READING"
    http_status = 409


class NonPositiveVolumeError(LedgerError):
    code = "NON_POSITIVE_VOLUME"
    http_status = 422


class NoActivePriceError(LedgerError):
    code = "NO_ACTIVE_PRICE"
    http_status = 409


class PaymentMismatchError(LedgerError):
    code = "PAYMENT_MISMATCH"
    http_status = 422


class SaleAlreadyVoidedError(LedgerError):
    code = "SALE_ALREADY_VOIDED"
    http_status = 409


class ReconciliationLockedError(LedgerError):
    code = "RECONCILIATION_LOCKED"
    http_status = 409


class ReconciliationMismatchError(LedgerError):
    code = "RECONCILIATION_MISMATCH"
    http_status = 422


class OutOfOrderVoidError(LedgerError):
    code = "OUT_OF_ORDER_VOID"
    http_status = 409


class OverpaymentError(LedgerError):
    code = "OVERPAYMENT"
    http_status = 422


class CreditLimitExceededWarning(LedgerError):
    """
    Advisory by default: the sale posts and this is reported alongside it.
    Raised as an error only when CREDIT_LIMIT_POLICY is "reject".
    """
    code = "CREDIT_LIMIT_EXCEEDED"
    http_status = 422


class ConcurrentUpdateError(LedgerError):
    """Lock timeout or version conflict; the whole request may be retried."""
    code = "CONCURRENT_UPDATE"
    http_status = 409


class ShiftNotFoundError(LedgerError):
    code = "SHIFT_NOT_FOUND"
    http_status = 404


class ActiveShiftExistsError(LedgerError):
    code = "ACTIVE_SHIFT_EXISTS"
    http_status = 409


class ShiftClosedError(LedgerError):
    code = "SHIFT_CLOSED"
    http_status = 409


class ShiftOwnershipError(LedgerError):
    """Attendants may only close their own shift."""
    code = "SHIFT_NOT_OWNED"
    http_status = 403

from .stations import Station, Pump, Nozzle, NozzleReading
from .pricing import FuelPrice
from .sales import Sale
from .creditors import Creditor, CreditorPayment
from .reconciliation import DayReconciliation
from .shifts import Shift, TenderEntry
from .ledger import LedgerEvent

__all__ = [
    'Station', 'Pump', 'Nozzle', 'NozzleReading',
    'FuelPrice',
    'Sale',
    'Creditor', 'CreditorPayment',
    'DayReconciliation',
    'Shift', 'TenderEntry',
    'LedgerEvent',
]

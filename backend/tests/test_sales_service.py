# Overview: Pytest coverage for sale posting and void.

"""
Sale Transaction Engine Tests

Covers:
- Volume and amount computation from meter deltas
- Payment split validation and payment method derivation
- Creditor balance movement on post and void
- Atomicity: a failed posting leaves meter, sales and balance untouched
- Void rules: once only, locked days, meter rollback ordering
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from fuelsync.extensions import db
from fuelsync.models import Creditor, LedgerEvent, Nozzle, NozzleReading, Sale
from fuelsync.services import reconciliation_service
from fuelsync.services.errors import (
    CreditLimitExceededWarning,
    CreditorNotFoundError,
    NoActivePriceError,
    NonMonotonicReadingError,
    NonPositiveVolumeError,
    NozzleNotFoundError,
    OutOfOrderVoidError,
    PaymentMismatchError,
    ReconciliationLockedError,
    SaleAlreadyVoidedError,
    SaleNotFoundError,
)
from fuelsync.services.sales_service import create_sale, derive_payment_method, list_sales, void_sale
from fuelsync.time_utils import utcnow
from fuelsync.validation import ValidationError


def _meter(nozzle_id: int) -> Decimal:
    return db.session.get(Nozzle, nozzle_id).current_reading


def _balance(creditor_id: int) -> Decimal:
    return db.session.get(Creditor, creditor_id).running_balance


# =============================================================================
# POSTING
# =============================================================================


class TestCreateSale:

    def test_volume_and_amount_from_meter_delta(self, db_session, forecourt):
        posted = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1",
            "1045.50", cash_received="145.60",
        )
        sale = posted.sale

        assert sale.previous_reading == Decimal("1000.00")
        assert sale.cumulative_reading == Decimal("1045.50")
        assert sale.sale_volume == Decimal("45.50")
        assert sale.fuel_price == Decimal("3.20")
        assert sale.amount == Decimal("145.60")
        assert sale.payment_method == "cash"
        assert sale.status == "posted"
        assert posted.credit_warning is None
        assert _meter(forecourt["nozzle_id"]) == Decimal("1045.50")

    def test_mixed_payment_increments_creditor(self, db_session, forecourt):
        sale = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1",
            "1045.50", cash_received="100.00", credit_given="45.60",
            credit_party_id=forecourt["creditor_id"],
        ).sale

        assert sale.payment_method == "mixed"
        assert sale.credit_party_id == forecourt["creditor_id"]
        assert _balance(forecourt["creditor_id"]) == Decimal("45.60")

    def test_credit_only_payment_method(self, db_session, forecourt):
        sale = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1",
            "1045.50", credit_given="145.60", credit_party_id=forecourt["creditor_id"],
        ).sale

        assert sale.payment_method == "credit"
        assert _balance(forecourt["creditor_id"]) == Decimal("145.60")

    def test_card_tender_tag(self, db_session, forecourt):
        sale = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1",
            "1010.00", cash_received="32.00", tender_type="card",
        ).sale

        assert sale.payment_method == "card"
        assert sale.tender_type == "card"

    def test_payment_mismatch_reports_difference(self, db_session, forecourt):
        with pytest.raises(PaymentMismatchError) as exc:
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1",
                "1045.50", cash_received="100.00", credit_given="40.00",
                credit_party_id=forecourt["creditor_id"],
            )

        details = exc.value.details
        assert details["amount"] == "145.60"
        assert details["supplied_total"] == "140.00"
        assert details["difference"] == "5.60"

    def test_within_tolerance_is_accepted(self, db_session, forecourt):
        sale = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1",
            "1045.50", cash_received="145.59",
        ).sale
        assert abs(sale.cash_received + sale.credit_given - sale.amount) <= Decimal("0.01")

    def test_failed_posting_changes_nothing(self, db_session, forecourt):
        with pytest.raises(PaymentMismatchError):
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1",
                "1045.50", cash_received="10.00",
            )

        assert _meter(forecourt["nozzle_id"]) == Decimal("1000.00")
        assert db.session.query(Sale).count() == 0
        assert db.session.query(NozzleReading).count() == 0

    def test_stale_reading_is_non_positive_volume(self, db_session, forecourt):
        with pytest.raises(NonPositiveVolumeError):
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1",
                "1000.00", cash_received="0",
            )

    def test_explicit_volume_still_requires_meter_to_advance(self, db_session, forecourt):
        with pytest.raises(NonMonotonicReadingError):
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1",
                "999.00", explicit_volume="10.00", cash_received="32.00",
            )
        assert db.session.query(Sale).count() == 0

    def test_explicit_volume_overrides_delta(self, db_session, forecourt):
        sale = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1",
            "1010.50", explicit_volume="10.00", cash_received="32.00",
        ).sale
        assert sale.sale_volume == Decimal("10.00")
        assert sale.amount == Decimal("32.00")
        assert _meter(forecourt["nozzle_id"]) == Decimal("1010.50")

    def test_consecutive_sales_chain_readings(self, db_session, forecourt):
        first = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1", "1010.00", cash_received="32.00",
        ).sale
        second = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att2", "1025.00", cash_received="48.00",
        ).sale

        assert second.previous_reading == first.cumulative_reading
        assert second.sale_volume == Decimal("15.00")

    def test_nozzle_from_other_station_rejected(self, db_session, forecourt, other_station):
        with pytest.raises(NozzleNotFoundError):
            create_sale(other_station.id, forecourt["nozzle_id"], "att1", "1010.00", cash_received="32.00")

    def test_inactive_nozzle_rejected(self, db_session, forecourt):
        db.session.get(Nozzle, forecourt["nozzle_id"]).active = False
        db.session.commit()

        with pytest.raises(NozzleNotFoundError):
            create_sale(forecourt["station_id"], forecourt["nozzle_id"], "att1", "1010.00", cash_received="32.00")

    def test_no_price_rejected(self, db_session, station, nozzle):
        with pytest.raises(NoActivePriceError):
            create_sale(station.id, nozzle.id, "att1", "1010.00", cash_received="32.00")
        assert _meter(nozzle.id) == Decimal("1000.00")

    def test_credit_requires_creditor_of_same_station(self, db_session, forecourt, other_station):
        stranger = Creditor(station_id=other_station.id, party_name="Elsewhere Ltd", running_balance=0)
        db.session.add(stranger)
        db.session.commit()

        with pytest.raises(CreditorNotFoundError):
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1",
                "1045.50", credit_given="145.60", credit_party_id=stranger.id,
            )
        with pytest.raises(CreditorNotFoundError):
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1",
                "1045.50", credit_given="145.60",
            )

    def test_negative_cash_rejected(self, db_session, forecourt):
        with pytest.raises(ValidationError):
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1", "1045.50", cash_received="-1",
            )

    def test_posting_writes_ledger_event(self, db_session, forecourt):
        sale = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1", "1010.00", cash_received="32.00",
        ).sale
        event = db.session.query(LedgerEvent).filter_by(event_type="sale.posted").one()
        assert event.sale_id == sale.id
        assert event.actor_user_id == "att1"


class TestCreditLimitPolicy:

    def test_warn_policy_posts_and_returns_warning(self, app, db_session, forecourt, monkeypatch):
        monkeypatch.setitem(app.config, "CREDIT_LIMIT_POLICY", "warn")
        # 320.00 litres at 3.20 = 1024.00 > 1000.00 limit
        posted = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1",
            "1320.00", credit_given="1024.00", credit_party_id=forecourt["creditor_id"],
        )

        assert posted.sale.id is not None
        assert isinstance(posted.credit_warning, CreditLimitExceededWarning)
        assert posted.credit_warning.details["excess"] == "24.00"
        assert _balance(forecourt["creditor_id"]) == Decimal("1024.00")

    def test_reject_policy_refuses_sale(self, app, db_session, forecourt, monkeypatch):
        monkeypatch.setitem(app.config, "CREDIT_LIMIT_POLICY", "reject")

        with pytest.raises(CreditLimitExceededWarning):
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1",
                "1320.00", credit_given="1024.00", credit_party_id=forecourt["creditor_id"],
            )

        assert _balance(forecourt["creditor_id"]) == Decimal("0.00")
        assert _meter(forecourt["nozzle_id"]) == Decimal("1000.00")


# =============================================================================
# VOID
# =============================================================================


class TestVoidSale:

    def _credit_sale(self, forecourt):
        return create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1",
            "1045.50", cash_received="100.00", credit_given="45.60",
            credit_party_id=forecourt["creditor_id"],
        ).sale

    def test_void_reverses_credit_exactly(self, db_session, forecourt):
        sale = self._credit_sale(forecourt)
        voided = void_sale(sale.id, "mgr1", "Wrong customer")

        assert voided.status == "voided"
        assert voided.voided_by == "mgr1"
        assert voided.voided_at is not None
        assert voided.void_reason == "Wrong customer"
        assert _balance(forecourt["creditor_id"]) == Decimal("0.00")

    def test_void_twice_fails(self, db_session, forecourt):
        sale = self._credit_sale(forecourt)
        void_sale(sale.id, "mgr1", "Wrong customer")

        with pytest.raises(SaleAlreadyVoidedError):
            void_sale(sale.id, "mgr1", "Again")
        assert _balance(forecourt["creditor_id"]) == Decimal("0.00")

    def test_void_missing_sale(self, db_session):
        with pytest.raises(SaleNotFoundError):
            void_sale(424242, "mgr1", "Nope")

    def test_void_requires_reason(self, db_session, forecourt):
        sale = self._credit_sale(forecourt)
        with pytest.raises(ValidationError):
            void_sale(sale.id, "mgr1", "  ")

    def test_default_void_leaves_meter_and_records_gap(self, db_session, forecourt):
        sale = self._credit_sale(forecourt)
        void_sale(sale.id, "mgr1", "Test pour")

        assert _meter(forecourt["nozzle_id"]) == Decimal("1045.50")
        gap = db.session.query(LedgerEvent).filter_by(event_type="nozzle.reading_gap").one()
        assert gap.sale_id == sale.id
        assert "from=1000.00" in gap.payload

    def test_rollback_meter_on_latest_sale(self, db_session, forecourt):
        sale = self._credit_sale(forecourt)
        void_sale(sale.id, "mgr1", "Test pour", rollback_meter=True)

        assert _meter(forecourt["nozzle_id"]) == Decimal("1000.00")
        rollback = db.session.query(NozzleReading).filter_by(source="void_rollback").one()
        assert rollback.previous_reading == Decimal("1045.50")
        assert rollback.reading == Decimal("1000.00")

    def test_rollback_meter_out_of_order(self, db_session, forecourt):
        first = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1", "1010.00", cash_received="32.00",
        ).sale
        create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1", "1020.00", cash_received="32.00",
        )

        with pytest.raises(OutOfOrderVoidError):
            void_sale(first.id, "mgr1", "Wrong nozzle", rollback_meter=True)

        # Whole void rolled back
        assert db.session.get(Sale, first.id).status == "posted"
        assert _meter(forecourt["nozzle_id"]) == Decimal("1020.00")

    def test_void_on_finalized_day_is_locked(self, db_session, forecourt):
        sale = self._credit_sale(forecourt)
        reconciliation_service.finalize(
            forecourt["station_id"], utcnow().date(), card_total="0", upi_total="0", created_by="mgr1",
        )

        with pytest.raises(ReconciliationLockedError):
            void_sale(sale.id, "mgr1", "Too late")
        assert db.session.get(Sale, sale.id).status == "posted"
        assert _balance(forecourt["creditor_id"]) == Decimal("45.60")

    def test_posting_into_finalized_day_is_locked(self, db_session, forecourt):
        self._credit_sale(forecourt)
        reconciliation_service.finalize(
            forecourt["station_id"], utcnow().date(), card_total="0", upi_total="0", created_by="mgr1",
        )

        with pytest.raises(ReconciliationLockedError) as exc:
            create_sale(
                forecourt["station_id"], forecourt["nozzle_id"], "att1", "1055.50",
                cash_received="32.00",
            )

        assert exc.value.details["date"] == utcnow().date().isoformat()
        assert db.session.query(Sale).count() == 1
        assert _meter(forecourt["nozzle_id"]) == Decimal("1045.50")
        assert db.session.query(NozzleReading).count() == 1


class TestSaleReads:

    def test_list_sales_excludes_voided_by_default(self, db_session, forecourt):
        keep = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att1", "1010.00", cash_received="32.00",
        ).sale
        drop = create_sale(
            forecourt["station_id"], forecourt["nozzle_id"], "att2", "1020.00", cash_received="32.00",
        ).sale
        void_sale(drop.id, "mgr1", "Duplicate")

        assert [s.id for s in list_sales(forecourt["station_id"])] == [keep.id]
        assert len(list_sales(forecourt["station_id"], include_voided=True)) == 2
        assert list_sales(forecourt["station_id"], user_id="att2", include_voided=True)[0].id == drop.id

        tomorrow = utcnow() + timedelta(days=1)
        assert list_sales(forecourt["station_id"], start=tomorrow) == []


def test_derive_payment_method():
    assert derive_payment_method(Decimal("10"), Decimal("0")) == "cash"
    assert derive_payment_method(Decimal("0"), Decimal("10")) == "credit"
    assert derive_payment_method(Decimal("5"), Decimal("5")) == "mixed"
    assert derive_payment_method(Decimal("10"), Decimal("0"), "upi") == "upi"
    assert derive_payment_method(Decimal("5"), Decimal("5"), "card") == "mixed"

# Overview: Pytest coverage for shifts, tender entries and their effect on reconciliation.

"""
Shift and Tender Entry Tests

Covers:
- One open shift per user; ownership rules on close and record
- Closed shifts and finalized days refuse tender entries
- Summary totals per tender and sales inside the shift window
- Entered card/UPI tenders feed the reconciliation defaults
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from fuelsync.extensions import db
from fuelsync.models import LedgerEvent, TenderEntry
from fuelsync.services import reconciliation_service
from fuelsync.services.errors import (
    ActiveShiftExistsError,
    ReconciliationLockedError,
    ShiftClosedError,
    ShiftNotFoundError,
    ShiftOwnershipError,
)
from fuelsync.services.sales_service import create_sale, void_sale
from fuelsync.services.shift_service import (
    close_shift,
    get_active_shift,
    get_shift_summary,
    get_tender_entries,
    list_shifts,
    open_shift,
    record_tender_entry,
)
from fuelsync.time_utils import utcnow
from fuelsync.validation import ValidationError


@pytest.fixture
def open_att1_shift(db_session, forecourt):
    return open_shift(forecourt["station_id"], "att1", "500.00", "Morning")


class TestShiftLifecycle:

    def test_open_and_close(self, open_att1_shift):
        shift = open_att1_shift
        assert shift.status == "open"
        assert shift.opening_cash == Decimal("500.00")
        assert get_active_shift("att1").id == shift.id

        closed = close_shift(shift.id, "att1", "1240.00")

        assert closed.status == "closed"
        assert closed.end_time is not None
        assert closed.closing_cash == Decimal("1240.00")
        assert closed.notes == "Morning"
        assert get_active_shift("att1") is None

        events = db.session.query(LedgerEvent).filter_by(entity_type="shift").all()
        assert sorted(e.event_type for e in events) == ["shift.closed", "shift.opened"]

    def test_second_open_shift_rejected(self, open_att1_shift, forecourt):
        with pytest.raises(ActiveShiftExistsError) as exc:
            open_shift(forecourt["station_id"], "att1")
        assert exc.value.details["shift_id"] == open_att1_shift.id

        # Another user is unaffected
        assert open_shift(forecourt["station_id"], "att2").status == "open"

    def test_reopen_after_close(self, open_att1_shift, forecourt):
        close_shift(open_att1_shift.id, "att1", "0")
        again = open_shift(forecourt["station_id"], "att1")
        assert again.id != open_att1_shift.id

    def test_only_owner_closes_unless_allowed(self, open_att1_shift):
        with pytest.raises(ShiftOwnershipError):
            close_shift(open_att1_shift.id, "att2", "100.00")

        closed = close_shift(open_att1_shift.id, "mgr1", "100.00", "Closed by manager", allow_other=True)
        assert closed.closed_by == "mgr1"
        assert closed.notes == "Closed by manager"

    def test_close_twice_rejected(self, open_att1_shift):
        close_shift(open_att1_shift.id, "att1", "100.00")
        with pytest.raises(ShiftClosedError):
            close_shift(open_att1_shift.id, "att1", "100.00")

    def test_close_requires_cash(self, open_att1_shift):
        with pytest.raises(ValidationError):
            close_shift(open_att1_shift.id, "att1", None)

    def test_unknown_station_and_shift(self, db_session):
        with pytest.raises(ValidationError):
            open_shift(9999, "att1")
        with pytest.raises(ShiftNotFoundError):
            close_shift(9999, "att1", "0")

    def test_list_filters(self, open_att1_shift, forecourt, other_station):
        other = open_shift(other_station.id, "att2")
        close_shift(other.id, "att2", "0")

        assert [s.id for s in list_shifts(forecourt["station_id"])] == [open_att1_shift.id]
        assert [s.id for s in list_shifts(status="closed")] == [other.id]
        assert list_shifts(start=utcnow() + timedelta(hours=1)) == []
        with pytest.raises(ValidationError):
            list_shifts(status="reconciled")


class TestTenderEntries:

    def test_record_and_list_newest_first(self, open_att1_shift):
        first = record_tender_entry(open_att1_shift.id, "att1", "card", "150.00", "BATCH-1")
        second = record_tender_entry(open_att1_shift.id, "att1", "UPI", "40.00")

        assert second.tender_type == "upi"
        assert [e.id for e in get_tender_entries(open_att1_shift.id)] == [second.id, first.id]
        assert db.session.query(LedgerEvent).filter_by(event_type="tender.recorded").count() == 2

    def test_closed_shift_refuses_entries(self, open_att1_shift):
        close_shift(open_att1_shift.id, "att1", "0")
        with pytest.raises(ShiftClosedError):
            record_tender_entry(open_att1_shift.id, "att1", "cash", "10.00")
        assert db.session.query(TenderEntry).count() == 0

    def test_other_attendant_cannot_record(self, open_att1_shift):
        with pytest.raises(ShiftOwnershipError):
            record_tender_entry(open_att1_shift.id, "att2", "cash", "10.00")
        entry = record_tender_entry(open_att1_shift.id, "mgr1", "cash", "10.00", allow_other=True)
        assert entry.user_id == "mgr1"

    @pytest.mark.parametrize("tender,amount", [("cheque", "10.00"), ("cash", "0"), ("cash", "-5")])
    def test_bad_entries_rejected(self, open_att1_shift, tender, amount):
        with pytest.raises(ValidationError):
            record_tender_entry(open_att1_shift.id, "att1", tender, amount)

    def test_finalized_day_refuses_entries(self, open_att1_shift, forecourt):
        reconciliation_service.finalize(forecourt["station_id"], utcnow().date(), "0", "0", "mgr1")
        with pytest.raises(ReconciliationLockedError):
            record_tender_entry(open_att1_shift.id, "att1", "card", "10.00")


class TestShiftSummary:

    def test_tender_totals_and_sales_window(self, open_att1_shift, forecourt):
        s, n = forecourt["station_id"], forecourt["nozzle_id"]
        create_sale(s, n, "att1", "1010.00", cash_received="32.00")
        voided = create_sale(s, n, "att1", "1020.00", cash_received="32.00").sale
        void_sale(voided.id, "mgr1", "Test")
        create_sale(s, n, "att1", "1025.00", cash_received="16.00", tender_type="card")

        record_tender_entry(open_att1_shift.id, "att1", "cash", "32.00")
        record_tender_entry(open_att1_shift.id, "att1", "card", "10.00")
        record_tender_entry(open_att1_shift.id, "att1", "card", "6.00")

        summary = get_shift_summary(open_att1_shift.id)

        assert summary.tender_totals["cash"] == Decimal("32.00")
        assert summary.tender_totals["card"] == Decimal("16.00")
        assert summary.tender_totals["upi"] == Decimal("0.00")
        assert summary.tender_totals["total"] == Decimal("48.00")
        assert summary.sales_count == 2
        assert summary.sales_volume == Decimal("15.00")
        assert summary.sales_amount == Decimal("48.00")

        body = summary.to_dict()
        assert body["tender_totals"]["credit"] == "0.00"
        assert body["shift"]["id"] == open_att1_shift.id

    def test_closed_shift_excludes_later_sales(self, open_att1_shift, forecourt):
        close_shift(open_att1_shift.id, "att1", "0")
        create_sale(forecourt["station_id"], forecourt["nozzle_id"], "att2", "1010.00", cash_received="32.00")

        assert get_shift_summary(open_att1_shift.id).sales_count == 0


class TestReconciliationDefaults:

    def test_entered_card_tenders_feed_finalize(self, open_att1_shift, forecourt):
        s, n = forecourt["station_id"], forecourt["nozzle_id"]
        create_sale(s, n, "att1", "1010.00", cash_received="32.00", tender_type="card")
        record_tender_entry(open_att1_shift.id, "att1", "card", "20.00")
        record_tender_entry(open_att1_shift.id, "att1", "card", "12.01")

        today = utcnow().date()
        assert reconciliation_service.entered_tender_totals(s, today) == {"card": Decimal("32.01")}

        rec = reconciliation_service.finalize(s, today, None, None, "mgr1")
        assert rec.card_total == Decimal("32.01")
        assert rec.upi_total == Decimal("0.00")

    def test_explicit_totals_win_over_entries(self, open_att1_shift, forecourt):
        s, n = forecourt["station_id"], forecourt["nozzle_id"]
        create_sale(s, n, "att1", "1010.00", cash_received="32.00", tender_type="card")
        record_tender_entry(open_att1_shift.id, "att1", "card", "30.00")

        today = utcnow().date()
        draft = reconciliation_service.save_draft(s, today, created_by="mgr1")
        assert draft.card_total == Decimal("30.00")

        rec = reconciliation_service.finalize(s, today, "32.00", None, "mgr1")
        assert rec.card_total == Decimal("32.00")

# Overview: Pytest coverage for the JSON API, caller identity and role checks.

"""
API route tests.

Verifies:
- Requests without a caller identity return 401
- Attendants are denied manager operations (403)
- Ledger errors map to their HTTP status with code and details
- A full day flows through the API: sale, void, finalize
- Shifts open, take tender entries and close
"""

import pytest

from fuelsync.time_utils import utcnow


# =============================================================================
# CALLER IDENTITY (401 / 403)
# =============================================================================


class TestCallerIdentity:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/stations"),
            ("POST", "/api/sales"),
            ("GET", "/api/creditors?station_id=1"),
            ("POST", "/api/reconciliations/finalize"),
            ("POST", "/api/fuel-prices"),
            ("POST", "/api/shifts"),
        ],
    )
    def test_requires_caller(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path, json={})
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_role(self, client, db_session):
        resp = client.get("/api/stations", headers={"X-User-Id": "x", "X-User-Role": "cashier"})
        assert resp.status_code == 401

    def test_bad_schema_header(self, client, db_session):
        resp = client.get(
            "/api/stations",
            headers={"X-User-Id": "x", "X-User-Role": "owner", "X-Tenant-Schema": "x; drop"},
        )
        assert resp.status_code == 401

    def test_attendant_cannot_void(self, client, forecourt, attendant_headers):
        resp = client.post("/api/sales/1/void", json={"reason": "x"}, headers=attendant_headers)
        assert resp.status_code == 403

    def test_attendant_cannot_set_price(self, client, forecourt, attendant_headers):
        resp = client.post(
            "/api/fuel-prices",
            json={"station_id": forecourt["station_id"], "fuel_type": "petrol", "price_per_unit": "1"},
            headers=attendant_headers,
        )
        assert resp.status_code == 403

    def test_manager_cannot_create_station(self, client, db_session, manager_headers):
        resp = client.post("/api/stations", json={"name": "New"}, headers=manager_headers)
        assert resp.status_code == 403


# =============================================================================
# SALES API
# =============================================================================


class TestSalesApi:

    def test_post_sale(self, client, forecourt, attendant_headers):
        resp = client.post(
            "/api/sales",
            json={
                "station_id": forecourt["station_id"],
                "nozzle_id": forecourt["nozzle_id"],
                "cumulative_reading": "1045.50",
                "cash_received": "100.00",
                "credit_given": "45.60",
                "credit_party_id": forecourt["creditor_id"],
            },
            headers=attendant_headers,
        )
        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["amount"] == "145.60"
        assert sale["sale_volume"] == "45.50"
        assert sale["payment_method"] == "mixed"
        assert sale["user_id"] == "att1"
        assert resp.json["warnings"] == []

        balance = client.get(
            f"/api/creditors/{forecourt['creditor_id']}/balance", headers=attendant_headers,
        )
        assert balance.json["running_balance"] == "45.60"

    def test_payment_mismatch_is_422_with_details(self, client, forecourt, attendant_headers):
        resp = client.post(
            "/api/sales",
            json={
                "station_id": forecourt["station_id"],
                "nozzle_id": forecourt["nozzle_id"],
                "cumulative_reading": "1045.50",
                "cash_received": "100.00",
                "credit_given": "40.00",
                "credit_party_id": forecourt["creditor_id"],
            },
            headers=attendant_headers,
        )
        assert resp.status_code == 422
        assert resp.json["code"] == "PAYMENT_MISMATCH"
        assert resp.json["details"]["difference"] == "5.60"

    def test_stale_reading_is_422(self, client, forecourt, attendant_headers):
        resp = client.post(
            "/api/sales",
            json={
                "station_id": forecourt["station_id"],
                "nozzle_id": forecourt["nozzle_id"],
                "cumulative_reading": "990.00",
            },
            headers=attendant_headers,
        )
        assert resp.status_code == 422
        assert resp.json["code"] == "NON_POSITIVE_VOLUME"

    def test_missing_fields_is_400(self, client, forecourt, attendant_headers):
        resp = client.post("/api/sales", json={"station_id": forecourt["station_id"]}, headers=attendant_headers)
        assert resp.status_code == 400

    def test_unknown_sale_is_404(self, client, db_session, attendant_headers):
        resp = client.get("/api/sales/9999", headers=attendant_headers)
        assert resp.status_code == 404
        assert resp.json["code"] == "SALE_NOT_FOUND"


# =============================================================================
# END-TO-END DAY
# =============================================================================


def test_day_flow(client, forecourt, attendant_headers, manager_headers):
    station_id = forecourt["station_id"]

    def post_sale(reading, cash):
        resp = client.post(
            "/api/sales",
            json={
                "station_id": station_id,
                "nozzle_id": forecourt["nozzle_id"],
                "cumulative_reading": reading,
                "cash_received": cash,
            },
            headers=attendant_headers,
        )
        assert resp.status_code == 201
        return resp.json["sale"]["id"]

    keep_id = post_sale("1010.00", "32.00")
    void_id = post_sale("1020.00", "32.00")

    voided = client.post(f"/api/sales/{void_id}/void", json={"reason": "Drive-off"}, headers=manager_headers)
    assert voided.status_code == 200
    assert voided.json["sale"]["status"] == "voided"

    again = client.post(f"/api/sales/{void_id}/void", json={"reason": "Again"}, headers=manager_headers)
    assert again.status_code == 409
    assert again.json["code"] == "SALE_ALREADY_VOIDED"

    today = utcnow().date().isoformat()
    totals = client.get(
        f"/api/reconciliations/totals?station_id={station_id}&date={today}", headers=manager_headers,
    )
    assert totals.json["totals"]["total_sales"] == "32.00"
    assert totals.json["locked"] is False

    body = {"station_id": station_id, "date": today, "card_total": "0", "upi_total": "0"}
    first = client.post("/api/reconciliations/finalize", json=body, headers=manager_headers)
    second = client.post("/api/reconciliations/finalize", json=body, headers=manager_headers)
    assert first.status_code == 200
    assert second.json["reconciliation"]["id"] == first.json["reconciliation"]["id"]

    listed = client.get(f"/api/reconciliations?station_id={station_id}", headers=manager_headers)
    assert len(listed.json["reconciliations"]) == 1

    locked = client.post(f"/api/sales/{keep_id}/void", json={"reason": "Late"}, headers=manager_headers)
    assert locked.status_code == 409
    assert locked.json["code"] == "RECONCILIATION_LOCKED"

    mismatch = client.post(
        "/api/reconciliations/finalize",
        json={**body, "card_total": "5.00"},
        headers=manager_headers,
    )
    assert mismatch.status_code == 422

    late = client.post(
        "/api/sales",
        json={
            "station_id": station_id,
            "nozzle_id": forecourt["nozzle_id"],
            "cumulative_reading": "1030.00",
            "cash_received": "32.00",
        },
        headers=attendant_headers,
    )
    assert late.status_code == 409
    assert late.json["code"] == "RECONCILIATION_LOCKED"


@pytest.mark.parametrize("flag", ["false", "true", 0, 1, None])
def test_void_rollback_meter_must_be_boolean(client, forecourt, attendant_headers, manager_headers, flag):
    posted = client.post(
        "/api/sales",
        json={
            "station_id": forecourt["station_id"],
            "nozzle_id": forecourt["nozzle_id"],
            "cumulative_reading": "1010.00",
            "cash_received": "32.00",
        },
        headers=attendant_headers,
    )
    sale_id = posted.json["sale"]["id"]

    resp = client.post(
        f"/api/sales/{sale_id}/void",
        json={"reason": "Wrong nozzle", "rollback_meter": flag},
        headers=manager_headers,
    )
    assert resp.status_code == 400

    sale = client.get(f"/api/sales/{sale_id}", headers=manager_headers)
    assert sale.json["sale"]["status"] == "posted"

    voided = client.post(
        f"/api/sales/{sale_id}/void",
        json={"reason": "Wrong nozzle", "rollback_meter": False},
        headers=manager_headers,
    )
    assert voided.status_code == 200


class TestCreditorsAndPrices:

    def test_create_creditor_and_record_payment(self, client, station, manager_headers):
        created = client.post(
            "/api/creditors",
            json={"station_id": station.id, "party_name": "Blue Trucks", "credit_limit": "500.00"},
            headers=manager_headers,
        )
        assert created.status_code == 201
        creditor_id = created.json["creditor"]["id"]

        unknown = client.patch(f"/api/creditors/{creditor_id}", json={"running_balance": "0"}, headers=manager_headers)
        assert unknown.status_code == 400

        paid = client.post(
            f"/api/creditors/{creditor_id}/payments",
            json={"amount": "20.00", "payment_method": "cash"},
            headers=manager_headers,
        )
        assert paid.status_code == 201
        assert paid.json["running_balance"] == "-20.00"

        history = client.get(f"/api/creditors/{creditor_id}/payments", headers=manager_headers)
        assert len(history.json["payments"]) == 1

    def test_set_and_read_price(self, client, station, manager_headers, attendant_headers):
        created = client.post(
            "/api/fuel-prices",
            json={"station_id": station.id, "fuel_type": "diesel", "price_per_unit": "2.95"},
            headers=manager_headers,
        )
        assert created.status_code == 201

        current = client.get(f"/api/fuel-prices?station_id={station.id}", headers=attendant_headers)
        assert [p["price_per_unit"] for p in current.json["prices"]] == ["2.95"]

        missing = client.get(
            f"/api/fuel-prices/in-effect?station_id={station.id}&fuel_type=petrol", headers=attendant_headers,
        )
        assert missing.status_code == 409
        assert missing.json["code"] == "NO_ACTIVE_PRICE"


def test_station_setup_flow(client, db_session, owner_headers, attendant_headers):
    station = client.post("/api/stations", json={"name": "Ring Road", "code": "RR1"}, headers=owner_headers)
    assert station.status_code == 201
    station_id = station.json["station"]["id"]

    pump = client.post(f"/api/stations/{station_id}/pumps", json={"name": "P1"}, headers=owner_headers)
    assert pump.status_code == 201

    nozzle = client.post(
        "/api/nozzles",
        json={"pump_id": pump.json["pump"]["id"], "fuel_type": "diesel", "initial_reading": "500.00"},
        headers=owner_headers,
    )
    assert nozzle.status_code == 201
    nozzle_id = nozzle.json["nozzle"]["id"]
    assert nozzle.json["nozzle"]["station_id"] == station_id

    reading = client.post(
        f"/api/nozzles/{nozzle_id}/readings", json={"reading": "505.00"}, headers=attendant_headers,
    )
    assert reading.status_code == 201
    assert reading.json["reading"]["previous_reading"] == "500.00"

    stale = client.post(
        f"/api/nozzles/{nozzle_id}/readings", json={"reading": "501.00"}, headers=attendant_headers,
    )
    assert stale.status_code == 409
    assert stale.json["code"] == "NON_MONOTONIC_READING"

    listed = client.get(f"/api/stations/{station_id}/nozzles", headers=attendant_headers)
    assert [n["current_reading"] for n in listed.json["nozzles"]] == ["505.00"]


def test_health(client, db_session):
    resp = client.get("/api/system/health")
    assert resp.status_code == 200
    assert resp.json["checks"]["database"]["status"] == "healthy"


def test_shift_flow(client, forecourt, attendant_headers, manager_headers):
    station_id = forecourt["station_id"]

    opened = client.post(
        "/api/shifts", json={"station_id": station_id, "opening_cash": "200.00"}, headers=attendant_headers,
    )
    assert opened.status_code == 201
    shift_id = opened.json["shift"]["id"]
    assert opened.json["shift"]["station_name"] == "Station A"

    duplicate = client.post("/api/shifts", json={"station_id": station_id}, headers=attendant_headers)
    assert duplicate.status_code == 409
    assert duplicate.json["code"] == "ACTIVE_SHIFT_EXISTS"

    active = client.get("/api/shifts/active", headers=attendant_headers)
    assert active.json["shift"]["id"] == shift_id
    assert client.get("/api/shifts/active", headers=manager_headers).status_code == 404

    entry = client.post(
        f"/api/shifts/{shift_id}/tender-entries",
        json={"tender_type": "card", "amount": "75.00", "reference_number": "B-7"},
        headers=attendant_headers,
    )
    assert entry.status_code == 201
    assert entry.json["tender_entry"]["amount"] == "75.00"

    bad = client.post(
        f"/api/shifts/{shift_id}/tender-entries", json={"tender_type": "card"}, headers=attendant_headers,
    )
    assert bad.status_code == 400

    entries = client.get(f"/api/shifts/{shift_id}/tender-entries", headers=manager_headers)
    assert len(entries.json["tender_entries"]) == 1

    summary = client.get(f"/api/shifts/{shift_id}/summary", headers=manager_headers)
    assert summary.json["tender_totals"]["card"] == "75.00"
    assert summary.json["tender_totals"]["total"] == "75.00"

    today = utcnow().date().isoformat()
    totals = client.get(
        f"/api/reconciliations/totals?station_id={station_id}&date={today}", headers=manager_headers,
    )
    assert totals.json["entered_tenders"] == {"card": "75.00"}

    stranger = client.post(
        f"/api/shifts/{shift_id}/close",
        json={"closing_cash": "0"},
        headers={"X-User-Id": "att9", "X-User-Role": "attendant"},
    )
    assert stranger.status_code == 403
    assert stranger.json["code"] == "SHIFT_NOT_OWNED"

    closed = client.post(f"/api/shifts/{shift_id}/close", json={"closing_cash": "260.00"}, headers=manager_headers)
    assert closed.status_code == 200
    assert closed.json["shift"]["status"] == "closed"
    assert closed.json["shift"]["closed_by"] == "mgr1"

    late = client.post(
        f"/api/shifts/{shift_id}/tender-entries",
        json={"tender_type": "cash", "amount": "5.00"},
        headers=attendant_headers,
    )
    assert late.status_code == 409
    assert late.json["code"] == "SHIFT_CLOSED"

    listed = client.get(f"/api/shifts?station_id={station_id}&status=closed", headers=manager_headers)
    assert [s["id"] for s in listed.json["shifts"]] == [shift_id]

    missing = client.get("/api/shifts/9999", headers=manager_headers)
    assert missing.status_code == 404
    assert missing.json["code"] == "SHIFT_NOT_FOUND"

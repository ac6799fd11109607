"""
Pytest fixtures for FuelSync backend tests.

Provides test database setup, a station with one pump/nozzle/price, a
creditor, and caller header helpers for the test client.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from fuelsync import create_app
from fuelsync.extensions import db
from fuelsync.models import Creditor, FuelPrice, Nozzle, Pump, Station
from fuelsync.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def station(db_session):
    """Station A with no pumps yet."""
    station = Station(name="Station A", code="STA", city="Pune", active=True)
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def other_station(db_session):
    """Second station, used to prove cross-station checks."""
    station = Station(name="Station B", code="STB", active=True)
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def pump(db_session, station):
    pump = Pump(station_id=station.id, name="P1", active=True)
    db_session.add(pump)
    db_session.commit()
    return pump


@pytest.fixture(scope='function')
def nozzle(db_session, pump):
    """Petrol nozzle with the meter at 1000.00."""
    nozzle = Nozzle(
        pump_id=pump.id,
        fuel_type="petrol",
        initial_reading=Decimal("1000.00"),
        current_reading=Decimal("1000.00"),
        active=True,
    )
    db_session.add(nozzle)
    db_session.commit()
    return nozzle


@pytest.fixture(scope='function')
def petrol_price(db_session, station):
    """Open petrol price of 3.20, effective since yesterday."""
    price = FuelPrice(
        station_id=station.id,
        fuel_type="petrol",
        price_per_unit=Decimal("3.20"),
        effective_from=utcnow() - timedelta(days=1),
        effective_to=None,
        created_by="owner1",
    )
    db_session.add(price)
    db_session.commit()
    return price


@pytest.fixture(scope='function')
def creditor(db_session, station):
    """Creditor with a 1000.00 limit and zero balance."""
    creditor = Creditor(
        station_id=station.id,
        party_name="City Cabs",
        credit_limit=Decimal("1000.00"),
        running_balance=Decimal("0.00"),
        active=True,
    )
    db_session.add(creditor)
    db_session.commit()
    return creditor


@pytest.fixture(scope='function')
def forecourt(station, pump, nozzle, petrol_price, creditor):
    """Everything needed to post a sale."""
    return {
        "station_id": station.id,
        "pump_id": pump.id,
        "nozzle_id": nozzle.id,
        "price_id": petrol_price.id,
        "creditor_id": creditor.id,
    }


@pytest.fixture
def attendant_headers():
    """Trusted caller identity headers for an attendant."""
    return {'X-User-Id': 'att1', 'X-User-Role': 'attendant'}


@pytest.fixture
def manager_headers():
    return {'X-User-Id': 'mgr1', 'X-User-Role': 'manager'}


@pytest.fixture
def owner_headers():
    return {'X-User-Id': 'own1', 'X-User-Role': 'owner'}

# Overview: Flask CLI command groups for bootstrap, station setup, pricing and reconciliation.

# backend/fuelsync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Station setup:
# - python -m flask stations list
#   List stations with pump and nozzle counts.
# - python -m flask stations create --name "Highway 7" --code HW7
#   Create a station.
# - python -m flask stations add-pump --station-id 1 --name "P1"
#   Add a pump to a station.
# - python -m flask stations add-nozzle --pump-id 1 --fuel-type petrol --initial-reading 1000.00
#   Add a nozzle to a pump.
#
# Pricing:
# - python -m flask prices set --station-id 1 --fuel-type petrol --price 3.20
#   Open a new price interval (closes the current one).
# - python -m flask prices show --station-id 1
#   Show the open price per fuel type.
#
# Reconciliation:
# - python -m flask reconcile totals --station-id 1 --date 2026-03-14
#   Print the computed totals for a station-day.
# - python -m flask reconcile finalize --station-id 1 --date 2026-03-14 --card 250.00 --upi 120.00 --user manager1
#   Finalize the day and lock its sales.
#
# All commands accept --schema <tenant_schema> (PostgreSQL schema-per-tenant).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Nozzle, Pump, Station
from .services import nozzle_service, pricing_service, reconciliation_service, station_service
from .services.errors import LedgerError
from .services.station_service import StationError
from .time_utils import parse_iso_date
from .validation import ConflictError, ValidationError


schema_option = click.option('--schema', default=None, help='Tenant schema (PostgreSQL only)')


def _fail(message: str):
    click.echo(f"FAIL {message}")
    raise SystemExit(1)


def _date(value: str):
    try:
        return parse_iso_date(value)
    except ValueError:
        _fail(f"Invalid date {value!r}; expected YYYY-MM-DD")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
    click.echo("START Creating tables...")
    db.create_all()
    click.echo("PASS Tables ready")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


# =============================================================================
# STATIONS
# =============================================================================

@click.group('stations')
def stations_group():
    """Station, pump and nozzle setup."""


@stations_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive stations')
@schema_option
@with_appcontext
def list_stations_cli(include_inactive, schema):
    stations = station_service.list_stations(include_inactive=include_inactive, schema=schema)
    if not stations:
        click.echo("No stations found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<10} {'Active':<8} {'Pumps':<6} {'Nozzles'}")
    click.echo("=" * 70)
    for station in stations:
        pump_count = db.session.query(Pump).filter_by(station_id=station.id).count()
        nozzle_count = (
            db.session.query(Nozzle)
            .join(Pump, Pump.id == Nozzle.pump_id)
            .filter(Pump.station_id == station.id)
            .count()
        )
        active_str = "yes" if station.active else "no"
        click.echo(
            f"{station.id:<5} {station.name:<30} {station.code or '-':<10} {active_str:<8} {pump_count:<6} {nozzle_count}"
        )
    click.echo("=" * 70 + "\n")


@stations_group.command('create')
@click.option('--name', required=True, help='Station name')
@click.option('--code', default=None, help='Short code (unique)')
@click.option('--city', default=None)
@click.option('--address', default=None)
@schema_option
@with_appcontext
def create_station_cli(name, code, city, address, schema):
    try:
        station = station_service.create_station(name, code, address, city, schema=schema)
    except (ValidationError, ConflictError) as e:
        _fail(str(e))
    click.echo(f"PASS Created station: {station.name} (ID: {station.id}, Code: {station.code or '-'})")


@stations_group.command('add-pump')
@click.option('--station-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--serial', 'serial_number', default=None)
@schema_option
@with_appcontext
def add_pump_cli(station_id, name, serial_number, schema):
    try:
        pump = station_service.create_pump(station_id, name, serial_number, schema=schema)
    except (ValidationError, ConflictError, StationError) as e:
        _fail(str(e))
    click.echo(f"PASS Created pump: {pump.name} (ID: {pump.id}, Station: {station_id})")


@stations_group.command('add-nozzle')
@click.option('--pump-id', type=int, required=True)
@click.option('--fuel-type', required=True)
@click.option('--initial-reading', default="0")
@schema_option
@with_appcontext
def add_nozzle_cli(pump_id, fuel_type, initial_reading, schema):
    try:
        nozzle = nozzle_service.create_nozzle(pump_id, fuel_type, initial_reading, schema=schema)
    except (ValidationError, StationError) as e:
        _fail(str(e))
    click.echo(
        f"PASS Created nozzle: ID {nozzle.id} ({nozzle.fuel_type}) on pump {pump_id}, meter at {nozzle.current_reading}"
    )


# =============================================================================
# PRICES
# =============================================================================

@click.group('prices')
def prices_group():
    """Fuel price registry."""


@prices_group.command('set')
@click.option('--station-id', type=int, required=True)
@click.option('--fuel-type', required=True)
@click.option('--price', required=True, help='Price per unit, e.g. 3.20')
@click.option('--user', 'created_by', default='cli')
@schema_option
@with_appcontext
def set_price_cli(station_id, fuel_type, price, created_by, schema):
    try:
        row = pricing_service.set_price(station_id, fuel_type, price, created_by=created_by, schema=schema)
    except ValidationError as e:
        _fail(str(e))
    click.echo(f"PASS {row.fuel_type} at station {station_id} now {row.price_per_unit} (price ID: {row.id})")


@prices_group.command('show')
@click.option('--station-id', type=int, required=True)
@schema_option
@with_appcontext
def show_prices_cli(station_id, schema):
    prices = pricing_service.get_current_prices(station_id, schema=schema)
    if not prices:
        click.echo("No open prices.")
        return
    for row in prices:
        click.echo(f"{row.fuel_type:<10} {row.price_per_unit:>10}  since {row.effective_from.isoformat()}")


# =============================================================================
# RECONCILIATION
# =============================================================================

@click.group('reconcile')
def reconcile_group():
    """End-of-day reconciliation."""


@reconcile_group.command('totals')
@click.option('--station-id', type=int, required=True)
@click.option('--date', 'day', required=True, help='YYYY-MM-DD')
@schema_option
@with_appcontext
def totals_cli(station_id, day, schema):
    totals = reconciliation_service.compute_daily_totals(station_id, _date(day), schema=schema)
    locked = reconciliation_service.is_day_locked(station_id, totals.date, schema=schema)

    click.echo("\n" + "=" * 40)
    click.echo(f"Station {station_id}  {totals.date.isoformat()}  {'LOCKED' if locked else 'open'}")
    click.echo("=" * 40)
    click.echo(f"{'Sales':<16} {totals.sale_count:>12}")
    click.echo(f"{'Volume':<16} {totals.total_volume:>12}")
    click.echo(f"{'Total':<16} {totals.total_sales:>12}")
    click.echo(f"{'Cash':<16} {totals.cash_total:>12}")
    click.echo(f"{'Credit':<16} {totals.credit_total:>12}")
    click.echo(f"{'Card (tagged)':<16} {totals.card_recorded:>12}")
    click.echo(f"{'UPI (tagged)':<16} {totals.upi_recorded:>12}")
    click.echo("=" * 40 + "\n")


@reconcile_group.command('finalize')
@click.option('--station-id', type=int, required=True)
@click.option('--date', 'day', required=True, help='YYYY-MM-DD')
@click.option('--card', 'card_total', default=None, help='Card settlement total')
@click.option('--upi', 'upi_total', default=None, help='UPI settlement total')
@click.option('--user', 'created_by', required=True)
@click.option('--notes', default=None)
@schema_option
@with_appcontext
def finalize_cli(station_id, day, card_total, upi_total, created_by, notes, schema):
    try:
        rec = reconciliation_service.finalize(
            station_id, _date(day), card_total, upi_total, created_by, notes, schema=schema,
        )
    except (LedgerError, ValidationError) as e:
        _fail(f"{e} {getattr(e, 'details', '')}")
    click.echo(f"PASS Finalized {rec.date.isoformat()} for station {station_id}: total {rec.total_sales} (ID: {rec.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stations_group)
    app.cli.add_command(prices_group)
    app.cli.add_command(reconcile_group)

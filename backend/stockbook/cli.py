# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockbook (PowerShell: $env:FLASK_APP="stockbook").
# - Use: python -m flask <group> <command> [options]
#
# Boxes:
# - python -m flask boxes create --code BX-101 --title "Cake Box 8x8" --colour Red --colour "Dark Green" --price-paise 1250
#   Create a box with an empty stock bucket per colour.
# - python -m flask boxes stock BX-101
#   Show per-colour stock for a box.
#
# Challan counters:
# - python -m flask challans counter 25-26 GST
#   Show the last issued sequence for a financial year and series (GST, NON_GST, RECEIPT).
# - python -m flask challans reset-counter 25-26 GST --value 0 --yes
#   MAINTENANCE: set the last issued sequence (next challan gets value + 1).
#   Refused below a sequence already printed on a challan.
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Box
from .validation import ModelValidationPolicy, validate_payload, enforce_rules_box
from .services import sequence_service, stock_service
from .services.challan_service import normalize_series


# CLI actions are attributed to this user id unless --user-id is given
SYSTEM_USER_ID = 1

BOX_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "title", "category", "colours", "price_paise", "assembly_charge_paise", "inner_size"},
    required_on_create={"code", "title"},
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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


@click.group('boxes')
def boxes_group():
    """Box bootstrap and stock inspection."""


@boxes_group.command('create')
@click.option('--code', required=True, help='Box code (stored uppercase)')
@click.option('--title', required=True, help='Display title')
@click.option('--category', default=None, help='Catalog category')
@click.option('--colour', 'colours', multiple=True, help='Colour name (repeatable)')
@click.option('--price-paise', type=int, default=None, help='Default rate in paise')
@click.option('--assembly-paise', type=int, default=0, help='Assembly charge per unit in paise')
@click.option('--inner-size', default=None, help='Default cavity shown on challan lines')
@click.option('--user-id', type=int, default=SYSTEM_USER_ID, help='Acting user id')
@with_appcontext
def create_box_command(code, title, category, colours, price_paise, assembly_paise, inner_size, user_id):
    """Create a box with an empty stock bucket per colour."""
    payload = {"code": code, "title": title, "colours": list(colours), "assembly_charge_paise": assembly_paise}
    if category is not None:
        payload["category"] = category
    if price_paise is not None:
        payload["price_paise"] = price_paise
    if inner_size is not None:
        payload["inner_size"] = inner_size

    try:
        patch = validate_payload(model=Box, payload=payload, policy=BOX_CREATE_POLICY, partial=False)
        enforce_rules_box(patch)
        box = stock_service.create_box(user_id=user_id, **patch)
    except LedgerError as e:
        click.echo(f"FAIL {e.message}", err=True)
        raise SystemExit(1)

    click.echo(f"PASS Created box {box.code} (ID: {box.id}) colours: {', '.join(box.colours) or '-'}")


@boxes_group.command('stock')
@click.argument('code')
@with_appcontext
def show_stock(code):
    """Show per-colour stock for a box."""
    try:
        box = stock_service.get_box_by_code(code)
        stock = stock_service.get_stock(box.id)
    except LedgerError as e:
        click.echo(f"FAIL {e.message}", err=True)
        raise SystemExit(1)

    click.echo(f"\n{box.code}  {box.title}")
    click.echo("-" * 40)
    if not stock:
        click.echo("  (no colours)")
    for color, qty in stock.items():
        click.echo(f"  {color:<28} {qty:>8}")
    click.echo("-" * 40)
    click.echo(f"  {'total':<28} {sum(stock.values()):>8}")


@click.group('challans')
def challans_group():
    """Challan counter inspection and maintenance."""


@challans_group.command('counter')
@click.argument('financial_year')
@click.argument('series')
@with_appcontext
def show_counter(financial_year, series):
    """Show the last issued sequence for FINANCIAL_YEAR (YY-YY) and SERIES (GST, NON_GST, RECEIPT)."""
    try:
        series = normalize_series(series)
        value = sequence_service.current_sequence(financial_year, series)
    except LedgerError as e:
        click.echo(f"FAIL {e.message}", err=True)
        raise SystemExit(1)

    prefix = sequence_service.prefix_for(series)
    click.echo(f"{financial_year} {series}: last issued {value}")
    click.echo(f"  next number: {sequence_service.format_document_number(prefix, financial_year, value + 1)}")


@challans_group.command('reset-counter')
@click.argument('financial_year')
@click.argument('series')
@click.option('--value', type=int, default=0, help='Last issued sequence to set (next = value + 1)')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_counter(financial_year, series, value, yes):
    """
    MAINTENANCE: Reset a challan counter.

    Only after purging challans. A value below the highest sequence already
    on a challan in the series is refused.
    """
    if not yes:
        click.confirm(
            f"WARN Reset {financial_year} {series} counter to {value}?",
            abort=True,
        )

    try:
        series = normalize_series(series)
        sequence_service.reset_sequence(financial_year, series, value)
    except LedgerError as e:
        click.echo(f"FAIL {e.message}", err=True)
        raise SystemExit(1)

    click.echo(f"PASS {financial_year} {series} counter set to {value}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(boxes_group)
    app.cli.add_command(challans_group)

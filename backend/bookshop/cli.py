# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bookshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "bookshop:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Idempotently add a few sample books and a demo customer.
#
# Inventory:
# - python -m flask items list [--all] [--category Fiction]
#   List items with price and stock.
# - python -m flask items restock BK-0001 25
#   Add received stock to an item.
#
# Bills:
# - python -m flask bills list [--status PENDING] [--limit 20]
#   List recent bills.
# - python -m flask bills recalc B000001
#   Rewrite a bill's stored totals from its lines.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Bill, Customer, Item, PaymentStatus
from .services import bill_service, item_service
from .validation import NotFoundError, ValidationError

SAMPLE_ITEMS = [
    ("BK-0001", "Madol Doova", "Fiction", Decimal("850.00"), 40),
    ("BK-0002", "Gamperaliya", "Fiction", Decimal("1200.00"), 25),
    ("BK-0003", "Introduction to Algorithms", "Computing", Decimal("9500.00"), 6),
    ("ST-0001", "A4 Exercise Book (80 pages)", "Stationery", Decimal("120.00"), 300),
]


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for sample data.")


@system_group.command('seed')
@with_appcontext
def seed():
    """Add sample items and a demo customer (skips rows that already exist)."""
    created = 0
    for code, name, category, price, stock in SAMPLE_ITEMS:
        if db.session.query(Item).filter_by(item_code=code).first():
            continue
        db.session.add(Item(
            item_code=code,
            item_name=name,
            category=category,
            unit_price=price,
            stock_quantity=stock,
        ))
        created += 1

    if not db.session.query(Customer).filter_by(account_number="C000000").first():
        db.session.add(Customer(
            account_number="C000000",
            name="Walk-in Customer",
            address="Pahana Edu Bookshop, Colombo",
            telephone_number="+94112345678",
        ))
        created += 1

    db.session.commit()
    click.echo(f"PASS Seed complete ({created} rows created)")


@click.group('items')
def items_group():
    """Inventory inspection and stock commands."""


@items_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive items too')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_items_cli(show_all, category):
    """
    List items.

    Example:
        flask items list
        flask items list --category Fiction
    """
    query = db.session.query(Item)
    if category:
        query = query.filter_by(category=category)
    if not show_all:
        query = query.filter_by(is_active=True)

    rows = query.order_by(Item.item_code).all()
    if not rows:
        click.echo("No items found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'Code':<10} {'Name':<40} {'Category':<14} {'Price':>12} {'Stock':>8}")
    click.echo("="*90)
    for item in rows:
        flag = "" if item.is_active else " (inactive)"
        click.echo(
            f"{item.item_code:<10} {item.item_name[:40]:<40} {(item.category or '-')[:14]:<14} "
            f"{item.unit_price:>12} {item.stock_quantity:>8}{flag}"
        )
    click.echo("="*90)


@items_group.command('restock')
@click.argument('item_code')
@click.argument('quantity', type=int)
@with_appcontext
def restock_cli(item_code, quantity):
    """Add QUANTITY units to the item with ITEM_CODE."""
    item = item_service.get_item_by_code(item_code)
    if not item:
        raise click.ClickException(f"Item '{item_code}' not found")
    try:
        item = item_service.restock_item(item_id=item.id, quantity=quantity)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {item.item_code} stock is now {item.stock_quantity}")


@click.group('bills')
def bills_group():
    """Bill inspection and repair commands."""


@bills_group.command('list')
@click.option('--status', type=click.Choice(PaymentStatus.ALL), help='Filter by payment status')
@click.option('--limit', default=20, help='Number of bills to show')
@with_appcontext
def list_bills_cli(status, limit):
    """List recent bills, newest first."""
    query = db.session.query(Bill)
    if status:
        query = query.filter_by(payment_status=status)
    rows = query.order_by(Bill.id.desc()).limit(limit).all()

    if not rows:
        click.echo("No bills found.")
        return

    click.echo(f"{'Number':<10} {'Date':<12} {'Account':<12} {'Units':>10} {'Total':>12} {'Status'}")
    for bill in rows:
        click.echo(
            f"{bill.bill_number:<10} {bill.bill_date.isoformat():<12} {bill.customer.account_number:<12} "
            f"{bill.units_billed:>10} {bill.total_amount:>12} {bill.payment_status}"
        )


@bills_group.command('recalc')
@click.argument('bill_number')
@with_appcontext
def recalc_cli(bill_number):
    """Rewrite the stored totals of BILL_NUMBER from its lines."""
    bill = bill_service.get_bill_by_number(bill_number)
    if not bill:
        raise click.ClickException(f"Bill '{bill_number}' not found")
    before = (bill.total_amount, bill.units_billed)
    try:
        bill = bill_service.recalculate_totals(bill.id)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS {bill.bill_number}: total {before[0]} -> {bill.total_amount}, "
        f"units {before[1]} -> {bill.units_billed}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(items_group)
    app.cli.add_command(bills_group)

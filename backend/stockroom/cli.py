# Overview: Flask CLI command group for database bootstrap and ledger inspection.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask stock <command> [options]
#
# - python -m flask stock init-db
#   Create all tables (no-op for tables that already exist).
# - python -m flask stock reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask stock seed
#   Insert a few demo products with opening stock (booked through the ledger).
# - python -m flask stock verify-ledger
#   Compare each product's quantity with the sum of its ledger rows; exits 1 on mismatch.
# - python -m flask stock low-stock
#   List active products at or under their min_stock threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product
from .services.ledger_service import Ledger
from .services.products_service import ProductRegistry


DEMO_PRODUCTS = [
    {"name": "Copy Paper A4", "sku": "PAP-A4", "barcode": "8991234500011", "price": 4.5, "cost_price": 3.1, "quantity": 120, "min_stock": 20},
    {"name": "Stapler", "sku": "STP-01", "barcode": "8991234500028", "price": 7.25, "cost_price": 4.0, "quantity": 8, "min_stock": 10},
    {"name": "Ink Cartridge Black", "sku": "INK-BK", "barcode": "8991234500035", "price": 22.0, "cost_price": 15.5, "quantity": 0, "min_stock": 5},
]


@click.group('stock')
def stock_group():
    """Stock ledger bootstrap and inspection commands."""


@stock_group.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@stock_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset.')
@with_appcontext
def reset_db_command(yes):
    """Drop and recreate all tables (DEV/TEST only)."""
    if not yes:
        raise click.UsageError("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@stock_group.command('seed')
@with_appcontext
def seed_command():
    """Insert demo products; skips SKUs that already exist."""
    registry = ProductRegistry()
    created = 0
    for data in DEMO_PRODUCTS:
        if registry.session.query(Product.id).filter_by(sku=data["sku"]).first():
            continue
        registry.create_product(dict(data), user_id="seed")
        created += 1
    click.echo(f"Seeded {created} product(s).")


@stock_group.command('verify-ledger')
@with_appcontext
def verify_ledger_command():
    """Check quantity == SUM(ledger changes) for every product."""
    mismatches = Ledger().verify()
    if not mismatches:
        click.echo("Ledger OK: every product quantity matches its transaction history.")
        return
    for m in mismatches:
        click.echo(
            f"MISMATCH {m['product_id']}: stored={m['stored_quantity']} ledger={m['ledger_quantity']}",
            err=True,
        )
    raise SystemExit(1)


@stock_group.command('low-stock')
@with_appcontext
def low_stock_command():
    """List products at or under their reorder threshold."""
    products = ProductRegistry().list_low_stock()
    if not products:
        click.echo("No low-stock products.")
        return
    for p in products:
        click.echo(f"{p.id}\t{p.sku or '-'}\t{p.name}\t{p.quantity}/{p.min_stock}")


def register_commands(app):
    app.cli.add_command(stock_group)

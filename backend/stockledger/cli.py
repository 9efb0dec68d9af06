# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent; use Alembic migrations in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory inspection:
# - python -m flask inventory low-stock [--vendor-id 3]
#   List stock records at or below their reorder level.
# - python -m flask inventory movements size 12 [--limit 20]
#   Show the newest stock movements for a size or product.
#
# Offer administration:
# - python -m flask offers reactivate deal 7 [--force]
#   Reactivate an auto-deactivated deal or promotion.
#
# Maintenance:
# - python -m flask maintenance sweep-payment-contexts
#   Delete checkout contexts older than PAYMENT_CONTEXT_TTL_HOURS (cron-friendly).

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import inventory_service, movement_service, offer_service, payment_context_service
from .services.stock_service import OWNER_PRODUCT, OWNER_SIZE, StockOwner
from .validation import ConflictError, NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('inventory')
def inventory_group():
    """Stock inspection commands."""


@inventory_group.command('low-stock')
@click.option('--vendor-id', type=int, default=None, help='Only this vendor\'s products')
@with_appcontext
def low_stock(vendor_id):
    """List stock records at or below their reorder level."""
    records = inventory_service.list_low_stock(vendor_id=vendor_id)
    if not records:
        click.echo("No low-stock items.")
        return

    click.echo(f"{'Owner':<16} {'Available':>9} {'Reserved':>8} {'Reorder':>7}")
    click.echo("-" * 44)
    for r in records:
        owner = f"size {r.product_size_id}" if r.product_size_id is not None else f"product {r.product_id}"
        click.echo(f"{owner:<16} {r.quantity_available:>9} {r.quantity_reserved:>8} {r.reorder_level:>7}")


@inventory_group.command('movements')
@click.argument('kind', type=click.Choice([OWNER_SIZE, OWNER_PRODUCT]))
@click.argument('owner_id', type=int)
@click.option('--limit', type=int, default=movement_service.DEFAULT_HISTORY_LIMIT, show_default=True)
@with_appcontext
def movements(kind, owner_id, limit):
    """Show the newest stock movements for a size or product."""
    owner = StockOwner(kind, owner_id)
    rows = movement_service.list_movements(owner, limit=limit)
    if not rows:
        click.echo(f"No movements for {owner}.")
        return
    for m in rows:
        ref = f"{m.reference_type}:{m.reference_id}" if m.reference_type else "-"
        click.echo(f"{m.created_at}  {m.movement_type:<10} {m.quantity_delta:>6}  {ref:<20} {m.reason or ''}")


@click.group('offers')
def offers_group():
    """Deal and promotion administration."""


@offers_group.command('reactivate')
@click.argument('kind', type=click.Choice(sorted(offer_service.OFFER_MODELS)))
@click.argument('offer_id', type=int)
@click.option('--force', is_flag=True, help='Reactivate even if a constituent is out of stock')
@with_appcontext
def reactivate_offer(kind, offer_id, force):
    """Reactivate an auto-deactivated deal or promotion."""
    try:
        offer = offer_service.reactivate(kind, offer_id, force=force)
    except (ValidationError, NotFoundError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {offer.OFFER_LABEL} {offer.id} is active.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('sweep-payment-contexts')
@with_appcontext
def sweep_payment_contexts_cli():
    """Delete checkout contexts older than PAYMENT_CONTEXT_TTL_HOURS."""
    deleted = payment_context_service.sweep_expired_contexts()
    click.echo(f"Deleted {deleted} expired payment contexts.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(offers_group)
    app.cli.add_command(maintenance_group)

# Overview: Flask CLI command group for ledger bootstrap, inspection and repair.

# backend/barberpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create all tables on an empty database (dev only; use flask db upgrade elsewhere).
# - python -m flask ledger reconcile [--fix] [--actor-id 1]
#   Report drift between stored aggregates and history; --fix overwrites them.
# - python -m flask ledger snapshot --actor-id 1 [--notes "month close"]
#   Take an inventory snapshot.
# - python -m flask ledger low-stock
#   List active products at or below min_stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import inventory_service, reconcile_service, snapshot_service
from .services.errors import LedgerError


@click.group('ledger')
def ledger_group():
    """Inventory ledger maintenance commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create every table that does not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@ledger_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Overwrite drifting aggregates with recomputed values')
@click.option('--actor-id', type=int, default=None, help='Actor recorded on the fix event')
@with_appcontext
def reconcile_cmd(fix, actor_id):
    """Compare stored aggregates with movement/sale history."""
    report = reconcile_service.reconcile(
        mode=reconcile_service.MODE_FIX if fix else reconcile_service.MODE_REPORT,
        actor_id=actor_id,
    )

    click.echo(f"Checked {report.checked_count} products")
    for entry in report.entries:
        click.echo(
            f"  DRIFT product={entry.product_id} ({entry.product_name}) "
            f"stored={entry.stored_expected} recomputed={entry.recomputed_expected} delta={entry.delta:+d}"
        )
    for conflict in report.conflicts:
        click.echo(
            f"  CONFLICT product={conflict.product_id} ({conflict.product_name}) "
            f"recomputed={conflict.recomputed_expected}: {conflict.reason}"
        )
    for variance in report.count_variances:
        click.echo(
            f"  COUNT product={variance.product_id} real={variance.real_stock} "
            f"expected={variance.expected_stock} difference={variance.difference:+d}"
        )

    if fix:
        click.echo(f"PASS Fixed {report.fixed_count} products")
    elif report.is_consistent:
        click.echo("PASS Ledger is consistent")
    else:
        click.echo("WARN Drift found; rerun with --fix to repair")


@ledger_group.command('snapshot')
@click.option('--actor-id', type=int, required=True, help='Actor taking the snapshot')
@click.option('--notes', default=None, help='Free-text note')
@with_appcontext
def snapshot_cmd(actor_id, notes):
    """Take an inventory snapshot."""
    try:
        snapshot = snapshot_service.create_snapshot(actor_id=actor_id, notes=notes)
    except LedgerError as e:
        raise click.ClickException(e.message)

    click.echo(
        f"PASS Snapshot {snapshot.id}: {snapshot.total_products} products, "
        f"{snapshot.total_expected_units} units, value {snapshot.total_value_cents}"
    )


@ledger_group.command('low-stock')
@with_appcontext
def low_stock_cmd():
    """List active products at or below their reorder threshold."""
    products = inventory_service.list_low_stock()
    if not products:
        click.echo("No low-stock products")
        return

    click.echo(f"{'ID':<6} {'Code':<16} {'Name':<30} {'Expected':>8} {'Min':>6}")
    click.echo("-" * 70)
    for p in products:
        click.echo(f"{p.id:<6} {p.code:<16} {p.name[:30]:<30} {p.expected_stock:>8} {p.min_stock:>6}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)

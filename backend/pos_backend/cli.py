# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/pos_backend/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent, keeps data).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Purchasing maintenance:
# - python -m flask purchasing resync-balances
#   Recompute purchase order payment_amount/balance from completed payments.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services.concurrency import transaction
from .services.payment_service import resync_all_purchase_order_balances


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is up to date.")


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


@click.group('purchasing')
def purchasing_group():
    """Purchase order maintenance commands."""


@purchasing_group.command('resync-balances')
@with_appcontext
def resync_balances():
    """Rewrite every purchase order's payment_amount/balance from its completed payments."""
    with transaction(db.session):
        changed = resync_all_purchase_order_balances(db.session)
    click.echo(f"PASS Resynced purchase order balances ({changed} changed).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(purchasing_group)

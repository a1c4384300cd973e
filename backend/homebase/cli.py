# Overview: Flask CLI command groups for bootstrap and document maintenance.

# backend/homebase/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use "flask db upgrade" for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Documents:
# - python -m flask documents recalc-totals [--owner-id 1]
#   Recompute stored invoice/estimate totals from their line items.
# - python -m flask documents clean-expired-shares
#   Delete invoice share links past their valid_until.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Estimate, Invoice
from .services import share_service
from .services.document_service import recalculate_totals


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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


@click.group('documents')
def documents_group():
    """Invoice and estimate maintenance."""


@documents_group.command('recalc-totals')
@click.option('--owner-id', type=int, help='Only documents of this owner')
@with_appcontext
def recalc_totals(owner_id):
    """Recompute totals from stored line items and discounts."""
    invoices_changed = recalculate_totals(Invoice, owner_id)
    estimates_changed = recalculate_totals(Estimate, owner_id)

    click.echo(f"PASS Recalculated totals: {invoices_changed} invoice(s), {estimates_changed} estimate(s) changed.")


@documents_group.command('clean-expired-shares')
@with_appcontext
def clean_expired_shares():
    """Delete expired invoice share links."""
    deleted = share_service.clean_expired_shares()
    click.echo(f"PASS Deleted {deleted} expired share(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(documents_group)

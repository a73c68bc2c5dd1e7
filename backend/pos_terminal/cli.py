# Overview: Flask CLI command groups for bootstrap and stored-cart maintenance.

# backend/pos_terminal/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create the cart storage tables (idempotent).
#
# Stored carts:
# - python -m flask carts list
#   List stored carts with operator key, line count, status and last update.
# - python -m flask carts clear cart_maria
#   Drop one operator's stored cart.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services.cart_store import SQLCartStore


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Cart storage tables ready")


@click.group('carts')
def carts_group():
    """Inspect and clear stored operator carts."""


@carts_group.command('list')
@with_appcontext
def list_carts():
    entries = SQLCartStore().list_entries()
    if not entries:
        click.echo("No stored carts")
        return

    click.echo(f"{'KEY':<30} {'OPERATOR':<20} {'LINES':>5}  {'STATUS':<10} UPDATED")
    for entry in entries:
        updated = entry.to_dict()["updated_at"] or "-"
        click.echo(
            f"{entry.storage_key:<30} {(entry.operator_username or '-'):<20} "
            f"{entry.line_count:>5}  {entry.status:<10} {updated}"
        )


@carts_group.command('clear')
@click.argument('storage_key')
@with_appcontext
def clear_cart(storage_key):
    """Drop the stored cart under STORAGE_KEY (e.g. cart_maria)."""
    if SQLCartStore().delete(storage_key):
        click.echo(f"PASS Cleared {storage_key}")
    else:
        click.echo(f"FAIL No stored cart under {storage_key}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(carts_group)

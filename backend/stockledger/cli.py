# Overview: Flask CLI command groups for bootstrap and backups.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Database bootstrap:
# - python -m flask db init [--admin-username admin] [--admin-password ...]
#   Create tables, seed default settings and the administrator account (idempotent).
# - python -m flask db reset --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Backups:
# - python -m flask backup export backup.json
#   Write the whole dataset to a JSON snapshot.
# - python -m flask backup restore backup.json --yes
#   Replace the whole dataset from a snapshot (all-or-nothing).

import json

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import settings_service, snapshot_service
from .services.auth_service import ensure_admin_user, PasswordValidationError


@click.group('db')
def db_group():
    """Database bootstrap commands."""


@db_group.command('init')
@click.option('--admin-username', default='admin', show_default=True)
@click.option('--admin-password', default='Admin12345', show_default=True, help='Change in production')
@with_appcontext
def init_db(admin_username, admin_password):
    """Create tables, default settings and the first administrator."""
    click.echo("START Initializing database...")
    db.create_all()
    click.echo("PASS Tables created")

    seeded = settings_service.ensure_defaults_seeded()
    click.echo(f"PASS Seeded {seeded} default settings")

    try:
        if ensure_admin_user(admin_username, admin_password):
            click.echo(f"PASS Created administrator '{admin_username}'")
        else:
            click.echo("WARN  Users already exist, skipping administrator")
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")


@db_group.command('reset')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """Drop and recreate every table."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('backup')
def backup_group():
    """Snapshot export and restore."""


@backup_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def export_cli(path):
    doc = snapshot_service.export_snapshot()
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(doc, fh, indent=2)
    counts = ", ".join(f"{name}={len(rows)}" for name, rows in doc["data"].items())
    click.echo(f"PASS Exported snapshot to {path} ({counts})")


@backup_group.command('restore')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Confirm replacing the whole dataset')
@with_appcontext
def restore_cli(path, yes):
    """Replace the whole dataset with the snapshot at PATH."""
    if not yes:
        raise click.ClickException("Restore replaces all data; rerun with --yes")
    with open(path, encoding="utf-8") as fh:
        try:
            doc = json.load(fh)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Not a JSON snapshot: {e}")
    try:
        counts = snapshot_service.restore_snapshot(doc)
    except LedgerError as e:
        raise click.ClickException(f"{e.message} {e.details or ''}".strip())
    click.echo(f"PASS Restored snapshot from {path}: {counts}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(db_group)
    app.cli.add_command(backup_group)

# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/labstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create-admin --email admin@pasteur.tn --password "secret1" --first-name Admin
#   Create an active admin account.
# - python -m flask users list
#
# Depots:
# - python -m flask depots create --id 43 --name "Labo A" --password "secret1"
#   Create a depot and its "<id>@<domain>" login.
# - python -m flask depots list
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired and revoked sessions older than 30 days.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .errors import StockError
from .services import auth_service, depot_service, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate every table."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('create-admin')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--first-name', default='')
@click.option('--last-name', default='')
@with_appcontext
def create_admin(email, password, first_name, last_name):
    """Create an active admin account."""
    try:
        user = auth_service.create_user(
            email,
            password,
            first_name=first_name,
            last_name=last_name,
        )
    except StockError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created admin {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and status."""
    for user in User.query.order_by(User.id.asc()).all():
        depot = f" depot={user.depot_id}" if user.depot_id else ""
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<6} {user.status}{depot}")


@click.group('depots')
def depots_group():
    """Depot bootstrap."""


@depots_group.command('create')
@click.option('--id', 'depot_id', required=True, help='Numeric depot id')
@click.option('--name', required=True)
@click.option('--color', default=None)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_depot(depot_id, name, color, password):
    """Create a depot and its login account."""
    try:
        depot = depot_service.create_depot(depot_id, name, color=color, password=password)
        user = depot.accounts[0]
    except StockError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created depot {depot.name} (ID: {depot.id}), login {user.email}")


@depots_group.command('list')
@with_appcontext
def list_depots():
    for depot in depot_service.list_depots():
        state = "active" if depot.active else "inactive"
        click.echo(f"{depot.id:>6}  {depot.name:<32} {state}")


@click.group('maintenance')
def maintenance_group():
    """Periodic cleanup."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(depots_group)
    app.cli.add_command(maintenance_group)

# Overview: Flask CLI command groups for bootstrap, user setup and bulk stock loads.

# backend/almoxarifado/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --admin-email admin@almoxarifado.local --admin-password "Password123!"
#   Idempotent bootstrap: creates tables and the first admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --email ana@example.com --name "Ana" --password "Password123!" --role withdrawer
#
# Materials:
# - python -m flask materials import stock.xlsx --as-email admin@almoxarifado.local
#   Run a bulk stock load (.csv, .json or .xlsx) as the given admin.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, USER_ROLES
from .services.auth_service import create_user
from .services import import_service, movement_service
from .services.permission_service import AuthorizationError
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@almoxarifado.local', help='First admin email')
@click.option('--admin-password', default='Password123!', help='First admin password')
@click.option('--admin-name', default='Administrator', help='First admin display name')
@with_appcontext
def init_system(admin_email, admin_password, admin_name):
    """
    Create tables and the first admin user.

    Safe to run repeatedly; an existing admin email is left untouched.
    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing Almoxarifado...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists, skipping...")
        return

    try:
        user = create_user(email=admin_email, name=admin_name, password=admin_password, role="admin")
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(f"Failed to create admin: {e}")

    click.echo(f"PASS Created admin: {user.email}")
    click.echo("\nSECURITY Change the admin password immediately in production!")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(email, name, password, role):
    """Create a user."""
    try:
        user = create_user(email=email, name=name, password=password, role=role)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<20} {'Role':<12} {'Active'}")
    click.echo("="*80)
    for user in users:
        click.echo(f"{user.id:<5} {user.email:<35} {user.name[:20]:<20} {user.role:<12} {'yes' if user.is_active else 'no'}")


@click.group('materials')
def materials_group():
    """Material and stock commands."""


@materials_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--as-email', 'as_email', required=True, help='Admin account the load is attributed to')
@with_appcontext
def import_materials_cli(path, as_email):
    """Bulk stock load from a .csv, .json or .xlsx file."""
    actor = db.session.query(User).filter_by(email=as_email.strip().lower()).first()
    if actor is None:
        raise click.ClickException(f"No user with email {as_email}")

    try:
        with open(path, "rb") as fh:
            lines = import_service.rows_from_upload(path, fh)
        result = movement_service.bulk_import(actor, lines)
    except (ValidationError, AuthorizationError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS created={result.created_count} updated={result.updated_count} errors={len(result.errors)}")
    for error in result.errors:
        click.echo(f"FAIL line {error['line']} [{error['code']}]: {error['message']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(materials_group)

# Overview: Flask CLI command groups for database bootstrap and admin accounts.

# backend/smart_retail/cli.py
# Commands Legend (run from the backend directory):
# Prereqs: install the package (pip install -e .), export FLASK_APP=wsgi.py,
# then run: flask <group> <command> [options]
#
# System bootstrap:
# - flask system init-db
#   Create all tables (idempotent).
# - flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - flask users create-admin --name "Admin" --email admin@shop.local --phone 0712345678 --password "Password123"
#   Create an admin account. Self-registration only ever creates customers.
# - flask users list
#   List all users with role and active status.

import click
from flask.cli import with_appcontext

from .errors import RetailError
from .extensions import db
from .models import User
from .services.auth_service import create_user
from .validation import normalize_phone


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
    Drop every table and create the schema again. Development and tests only.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--phone', prompt=True, help='Phone number (07XXXXXXXX or 2547XXXXXXXX)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(name, email, phone, password):
    """
    Create an admin user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    try:
        user = create_user(
            name=name,
            email=email,
            phone=normalize_phone(phone),
            password=password,
            role="admin",
        )
    except RetailError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<9} {status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)

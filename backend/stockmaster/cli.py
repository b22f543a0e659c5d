# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockmaster/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--email admin@stockmaster.local] [--password "Password123!"]
#   Idempotent bootstrap: creates tables and the default admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role staff]
#   List all users with role and active status.
# - python -m flask users create --first-name Ada --last-name Admin --email ada@example.com --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).
#
# Inventory maintenance:
# - python -m flask inventory recalculate-status
#   Re-derive every item's stock status and reconcile its alerts.
#
# Alert maintenance:
# - python -m flask alerts cleanup --days 90
#   Delete resolved alerts older than the window plus expired alerts.

import click
from flask.cli import with_appcontext

from .errors import AppError
from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, USER_ROLES
from .services import alert_service, stock_service
from .services.auth_service import create_user, find_by_email

DEFAULT_ADMIN_EMAIL = "admin@stockmaster.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--email', default=DEFAULT_ADMIN_EMAIL, help='Default admin email')
@click.option('--password', default=DEFAULT_ADMIN_PASSWORD, help='Default admin password')
@with_appcontext
def init_system(email, password):
    """
    Initialize StockMaster: create tables and the default admin user.

    Safe to run repeatedly; an existing admin email is left untouched.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing StockMaster...")

    db.create_all()
    click.echo("PASS Tables created")

    if find_by_email(email) is not None:
        click.echo(f"WARN  User '{email}' already exists, skipping...")
    else:
        try:
            user = create_user(
                first_name="System",
                last_name="Administrator",
                email=email,
                password=password,
                role=ROLE_ADMIN,
            )
            user.is_email_verified = True
            db.session.commit()
            click.echo(f"PASS Created admin user: {user.email}")
        except AppError as e:
            db.session.rollback()
            click.echo(f"FAIL Could not create admin user: {e.message}")
            return

    click.echo("\n" + "=" * 60)
    click.echo("DONE StockMaster Initialized Successfully!")
    click.echo("=" * 60)
    click.echo(f"\nDefault Credentials (CHANGE IN PRODUCTION!): {email}")
    click.echo("Password requirements: 8+ chars, uppercase, lowercase, digit, special char")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(USER_ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(first_name, last_name, email, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
            role=role,
        )
        db.session.commit()
    except AppError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.full_name} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@click.option('--role', type=click.Choice(USER_ROLES), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their role."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<35} {'Active':<8} {'Role'}")
    click.echo("=" * 90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.full_name:<25} {user.email:<35} {active_str:<8} {user.role}")
    click.echo("=" * 90 + "\n")


@click.group('inventory')
def inventory_group():
    """Inventory maintenance commands."""


@inventory_group.command('recalculate-status')
@with_appcontext
def recalculate_status():
    """Re-derive every item's stock status and reconcile its alerts."""
    result = stock_service.recalculate_all()
    click.echo(
        f"PASS Checked {result['checked']} item(s): {result['updated']} status change(s), "
        f"{result['alerts_created']} alert(s) created"
    )


@click.group('alerts')
def alerts_group():
    """Alert maintenance commands."""


@alerts_group.command('cleanup')
@click.option('--days', default=90, show_default=True, type=int, help='Retention window for resolved alerts')
@with_appcontext
def cleanup_alerts(days):
    """Delete resolved alerts older than --days plus every expired alert."""
    result = alert_service.cleanup_alerts(days=days)
    click.echo(f"PASS Removed {result['deleted']} alert(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(alerts_group)

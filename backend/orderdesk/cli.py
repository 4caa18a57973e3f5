# Overview: Flask CLI command groups for bootstrap, users and inventory checks.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-username admin --admin-email admin@orderdesk.local --admin-password "Password123"]
#   Idempotent bootstrap: creates tables, the settings row, the order sequence and an optional admin user.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username anna --email anna@example.com --password "Password123" --role waitress
#
# Inventory:
# - python -m flask inventory check-sync [--product-id 7]
#   Compare Product.stock with the sum of its inventory transactions (exit code 1 on mismatch).

import click
from flask.cli import with_appcontext

from .errors import NotFoundError, ValidationError
from .extensions import db
from .models import ROLES, User
from .services import inventory_service
from .services.auth_service import create_user
from .services.sequence_service import ensure_order_sequence
from .services.settings_service import ensure_business_settings


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-username', default=None, help='Create this admin user if no users exist')
@click.option('--admin-email', default=None, help='Admin email')
@click.option('--admin-password', default=None, help='Admin password')
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Initialize tables, business settings and the order number sequence.

    Safe to run repeatedly: existing rows are left untouched.
    """
    click.echo("START Initializing OrderDesk...")

    db.create_all()
    click.echo("PASS Tables ready")

    settings = ensure_business_settings()
    click.echo(f"PASS Business settings: {settings.business_name} (tax {settings.tax_rate_bps} bps, {settings.currency})")

    seq = ensure_order_sequence()
    click.echo(f"PASS Order sequence: next number {seq.next_value}")

    if admin_username:
        if db.session.query(User).count():
            click.echo("SKIP Users already exist; admin not created")
        else:
            try:
                create_user(admin_username, admin_email or f"{admin_username}@orderdesk.local", admin_password, "admin")
                click.echo(f"PASS Created admin user: {admin_username}")
            except ValidationError as e:
                raise click.ClickException(f"Failed to create admin: {e.message}")

    click.echo("DONE")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.email:<32} {user.role:<9} {status}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, name):
    """
    Create a new user.

    Password must be 8+ characters with upper, lower and a digit.
    """
    try:
        user = create_user(username, email, password, role, name=name)
    except ValidationError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@click.group('inventory')
def inventory_group():
    """Inventory consistency commands."""


@inventory_group.command('check-sync')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def check_sync(product_id):
    """Verify Product.stock equals the sum of its inventory transactions."""
    if product_id is not None:
        try:
            report = inventory_service.reconcile_product(product_id)
        except NotFoundError as e:
            raise click.ClickException(e.message)
        rows = [] if report["in_sync"] else [report]
    else:
        rows = inventory_service.find_stock_discrepancies()

    if not rows:
        click.echo("PASS Stock is in sync with the inventory log")
        return

    click.echo(f"FAIL {len(rows)} product(s) out of sync:")
    for row in rows:
        click.echo(
            f"  product {row['product_id']} ({row['name']}): "
            f"stock={row['stock']} ledger={row['ledger_quantity']} diff={row['difference']:+d}"
        )
    click.get_current_context().exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)

# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to storefront (PowerShell: $env:FLASK_APP="storefront").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, a default admin, and a starter menu.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles and restriction status.
# - python -m flask users create --email admin@storefront.local --password "Password123" --role admin
#   Create a user (prompts if options are omitted).
#
# Role bootstrap:
# - python -m flask roles assign admin@storefront.local employee
#   Grant a role without going through the admin API (first admin, recovery).

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .errors import StorefrontError
from .extensions import db
from .models import Product, User, UserRole
from .roles import GRANTABLE_ROLES, ROLE_ADMIN, ROLE_USER
from .services.auth_service import create_user
from .time_utils import utcnow


DEFAULT_ADMIN_EMAIL = "admin@storefront.local"
DEFAULT_PASSWORD = "Password123"

STARTER_MENU = [
    ("Chicken Burger", "Grilled chicken, lettuce, house sauce", 35000, "burgers"),
    ("Beef Burger", "Double patty with cheddar", 42000, "burgers"),
    ("Margherita Pizza", "Tomato, mozzarella, basil", 65000, "pizza"),
    ("French Fries", None, 15000, "sides"),
    ("Iced Tea", None, 9000, "drinks"),
]


def _grant(user: User, role: str) -> bool:
    """Insert a grant directly. Returns False if the user already holds it."""
    db.session.add(UserRole(user_id=user.id, role=role, assigned_at=utcnow()))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False
    return True


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the storefront: schema, a default admin, and a starter menu.

    Creates:
    - All tables (if missing)
    - User: admin@storefront.local with the admin role
    - Five starter products, only if the menu is empty
    - Password defaults to: "Password123"

    SECURITY: Change the password immediately in production!
    """
    click.echo("START Initializing storefront...")
    db.create_all()

    admin = db.session.query(User).filter_by(email=DEFAULT_ADMIN_EMAIL).first()
    if admin:
        click.echo(f"WARN  User '{DEFAULT_ADMIN_EMAIL}' already exists, skipping...")
    else:
        admin = create_user(DEFAULT_ADMIN_EMAIL, DEFAULT_PASSWORD, full_name="Store Admin")
        click.echo(f"PASS Created user: {DEFAULT_ADMIN_EMAIL}")
    if _grant(admin, ROLE_ADMIN):
        click.echo(f"PASS Granted '{ROLE_ADMIN}' to {DEFAULT_ADMIN_EMAIL}")

    if db.session.query(Product).count() == 0:
        for name, description, price_cents, category in STARTER_MENU:
            db.session.add(Product(name=name, description=description, price_cents=price_cents, category=category))
        db.session.commit()
        click.echo(f"PASS Created {len(STARTER_MENU)} starter products")
    else:
        click.echo("WARN  Menu already has products, skipping...")

    click.echo("\n" + "="*60)
    click.echo("DONE Storefront Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   admin -> {DEFAULT_ADMIN_EMAIL} / {DEFAULT_PASSWORD}")
    click.echo("")


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
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--full-name', default=None, help='Display name')
@click.option('--role', type=click.Choice([ROLE_USER, *GRANTABLE_ROLES]), default=ROLE_USER, show_default=True, help='Role')
@with_appcontext
def create_user_cli(email, password, full_name, role):
    """
    Create a new user.

    Password must be 8+ characters with at least one letter and one digit.
    Role 'user' means no grant.
    """
    try:
        user = create_user(email, password, full_name=full_name)
    except StorefrontError as e:
        raise click.ClickException(str(e))

    if role != ROLE_USER:
        _grant(user, role)

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    grants: dict[int, list[str]] = {}
    for user_id, role in db.session.query(UserRole.user_id, UserRole.role).all():
        grants.setdefault(user_id, []).append(role)

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Restricted':<11} {'Roles'}")
    click.echo("="*90)

    for user in users:
        roles_str = ", ".join(sorted(grants.get(user.id, []))) or ROLE_USER
        restricted_str = "Yes" if user.is_restricted else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {(user.full_name or ''):<25} {restricted_str:<11} {roles_str}")

    click.echo("="*90 + "\n")


@click.group('roles')
def roles_group():
    """Role bootstrap commands."""


@roles_group.command('assign')
@click.argument('email')
@click.argument('role', type=click.Choice(list(GRANTABLE_ROLES)))
@with_appcontext
def assign_role_cli(email, role):
    """Grant ROLE to the user with EMAIL."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found")

    if _grant(user, role):
        click.echo(f"PASS Granted '{role}' to {user.email}")
    else:
        click.echo(f"WARN  {user.email} already has '{role}'")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(roles_group)

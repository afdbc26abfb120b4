# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/pdv/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` where migrations are managed).
# - python -m flask system seed
#   Idempotent demo data: manager user, payment methods, a product group and a few products.
#
# Users:
# - python -m flask users create --username maria --role operator --password "secret1"
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#
# Cash sessions:
# - python -m flask sessions list --status open --limit 20
#
# Inventory:
# - python -m flask inventory low-stock
#   Items below their minimum quantity.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import PaymentMethod, Product, ProductGroup, User
from .models.auth import VALID_ROLES, ROLE_MANAGER
from .models.inventory import SALE_TYPE_UNIT, SALE_TYPE_WEIGHT
from .models.sales import TENDER_CASH, TENDER_CARD, TENDER_PIX, TENDER_CREDIT
from .services import auth_service, cash_session_service, inventory_service
from .validation import PdvError


DEFAULT_PAYMENT_METHODS = [
    ("Dinheiro", TENDER_CASH),
    ("Cartão", TENDER_CARD),
    ("PIX", TENDER_PIX),
    ("Fiado", TENDER_CREDIT),
]

DEMO_PRODUCTS = [
    # description, barcode, price_cents, sale_type, stock
    ("Pão francês (kg)", "2000001000001", 1599, SALE_TYPE_WEIGHT, 20000),
    ("Leite integral 1L", "7891000100103", 549, SALE_TYPE_UNIT, 48),
    ("Café 500g", "7896005800027", 1890, SALE_TYPE_UNIT, 24),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed')
@click.option('--manager-password', default='admin123', show_default=True, help='Password for the default manager')
@with_appcontext
def seed(manager_password):
    """
    Seed a fresh database with a manager account, payment methods and demo products.

    Safe to run twice: existing rows are left alone.
    """
    click.echo("START Seeding PDV data...")

    if not db.session.query(User).filter_by(username="admin").first():
        profile = auth_service.upsert_user(username="admin", role=ROLE_MANAGER, password=manager_password)
        click.echo(f"PASS Created manager: {profile['username']} (ID: {profile['id']})")
    else:
        click.echo("PASS Using existing manager: admin")

    for name, kind in DEFAULT_PAYMENT_METHODS:
        if not db.session.query(PaymentMethod).filter_by(name=name).first():
            db.session.add(PaymentMethod(name=name, kind=kind))
    db.session.commit()
    click.echo(f"PASS Payment methods: {', '.join(name for name, _ in DEFAULT_PAYMENT_METHODS)}")

    group = db.session.query(ProductGroup).filter_by(name="Mercearia").first()
    if not group:
        group = ProductGroup(name="Mercearia")
        db.session.add(group)
        db.session.flush()

    created = 0
    for description, barcode, price_cents, sale_type, stock in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(barcode=barcode).first():
            continue
        db.session.add(Product(
            description=description,
            barcode=barcode,
            price_cents=price_cents,
            sale_type=sale_type,
            stock=stock,
            group_id=group.id,
        ))
        created += 1
    db.session.commit()
    click.echo(f"PASS Demo products created: {created}")

    click.echo("\nWARN Change the manager password before using this database for real sales.")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, password, role):
    """Create a new user. Password must have at least PASSWORD_MIN_LENGTH characters."""
    try:
        profile = auth_service.upsert_user(username=username, role=role, password=password)
    except PdvError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {profile['username']} with role '{profile['role']}' (ID: {profile['id']})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<10} {'Active':<8} {'Last login'}")
    click.echo("="*70)

    for user in users:
        active_str = "Yes" if user.active else "No"
        last_login = str(user.last_login_at)[:19] if user.last_login_at else "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.role:<10} {active_str:<8} {last_login}")

    click.echo("="*70 + "\n")


# =============================================================================
# CASH SESSIONS
# =============================================================================

@click.group('sessions')
def sessions_group():
    """Cash session inspection."""


@sessions_group.command('list')
@click.option('--status', type=click.Choice(['open', 'closed']), help='Filter by status')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_sessions_cli(status, limit):
    """List recent cash sessions, newest first."""
    sessions = cash_session_service.list_sessions(status=status, limit=limit)

    if not sessions:
        click.echo("No cash sessions found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Operator':<15} {'Status':<8} {'Opened':<20} {'Initial':>10} {'Expected':>10} {'Diff':>10}")
    click.echo("="*100)

    for session in sessions:
        username = session.opened_by.username if session.opened_by else "?"
        expected = session.expected_amount_cents
        if expected is None:
            expected = cash_session_service.compute_expected_amount(session)
        diff_str = "-" if session.difference_cents is None else f"{session.difference_cents / 100:+.2f}"

        click.echo(f"{session.id:<5} {username:<15} {session.status:<8} "
                   f"{str(session.open_time)[:19]:<20} {session.initial_amount_cents / 100:>10.2f} "
                   f"{expected / 100:>10.2f} {diff_str:>10}")

    click.echo("="*100 + "\n")


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory inspection."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    """Items whose current quantity is below their minimum."""
    items = inventory_service.list_items_below_minimum()

    if not items:
        click.echo("PASS No items below minimum.")
        return

    for item in items:
        click.echo(f"WARN {item.code:<12} {item.name:<30} {item.current_quantity:>6} / min {item.minimum_quantity} {item.unit_of_measure}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(inventory_group)

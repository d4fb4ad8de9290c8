# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/clinicpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: creates tables (if missing) and the default admin/cashier users.
#
# Users:
# - python -m flask users create --username maria --full-name "Maria Lopez" --role cashier
#   Create a user (prompts for the password).
#
# Doctors:
# - python -m flask doctors create --name "Dra. Ana Ruiz"
# - python -m flask doctors list [--all]
#
# Ledger:
# - python -m flask ledger set-initial-balance --amount-cents 1000000 --username admin
#   Register (or replace) the initial bank balance; rebalances every entry.
# - python -m flask ledger recompute
#   Rewrite every running balance from the active initial balance.
#
# Shifts:
# - python -m flask shifts list --status OPEN --limit 20

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLES
from .services import commission_service, ledger_service, shift_service
from .services.auth_service import create_user


def _money(cents) -> str:
    if cents is None:
        return "-"
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--password', default='Password123!', help='Password for the default users')
@with_appcontext
def init_system(password):
    """
    Initialize the back office: tables and default users.

    Creates:
    - admin   (role admin)
    - cashier (role cashier)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing clinic POS...")

    db.create_all()

    for username, full_name, role in (
        ("admin", "Administrator", ROLE_ADMIN),
        ("cashier", "Cashier", ROLE_CASHIER),
    ):
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username=username, password=password, full_name=full_name, role=role)
            click.echo(f"PASS Created user: {username} with role '{role}'")
        except DomainError as e:
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")

    if ledger_service.get_active_initial_balance() is None:
        click.echo("\nWARN  No initial balance registered. Run: flask ledger set-initial-balance")

    click.echo("DONE System initialized")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--full-name', prompt=True)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_CASHIER, show_default=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_cli(username, full_name, role, password):
    try:
        user = create_user(username=username, password=password, full_name=full_name, role=role)
    except DomainError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@click.group('doctors')
def doctors_group():
    """Doctor management commands."""


@doctors_group.command('create')
@click.option('--name', prompt=True)
@with_appcontext
def create_doctor_cli(name):
    try:
        doctor = commission_service.create_doctor(name)
    except DomainError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created doctor {doctor.name} (ID: {doctor.id})")


@doctors_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive doctors')
@with_appcontext
def list_doctors_cli(show_all):
    doctors = commission_service.list_doctors(include_inactive=show_all)
    if not doctors:
        click.echo("No doctors found.")
        return

    pending = {row["doctor_id"]: row["pending_cents"] for row in commission_service.pending_by_doctor()}

    click.echo(f"{'ID':<5} {'Name':<35} {'Active':<8} {'Pending commission'}")
    click.echo("-" * 70)
    for doctor in doctors:
        click.echo(
            f"{doctor.id:<5} {doctor.name:<35} {'yes' if doctor.is_active else 'no':<8} "
            f"{_money(pending.get(doctor.id, 0))}"
        )


@click.group('ledger')
def ledger_group():
    """Bank ledger maintenance commands."""


@ledger_group.command('set-initial-balance')
@click.option('--amount-cents', type=int, required=True, help='Opening bank balance in cents')
@click.option('--username', required=True, help='User registering the balance')
@click.option('--notes', default=None)
@with_appcontext
def set_initial_balance_cli(amount_cents, username, notes):
    user = db.session.query(User).filter_by(username=username.lower()).first()
    if user is None:
        raise click.ClickException(f"User '{username}' not found")

    try:
        initial = ledger_service.register_initial_balance(amount_cents, user.id, notes=notes)
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Initial balance {_money(initial.amount_cents)} registered (ID: {initial.id})")
    click.echo(f"     Current balance: {_money(ledger_service.current_balance())}")


@ledger_group.command('recompute')
@with_appcontext
def recompute_cli():
    try:
        result = ledger_service.recompute_all()
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(
        f"PASS Recomputed {result['entry_count']} entries "
        f"({result['updated_count']} changed). Final balance: {_money(result['final_balance_cents'])}"
    )


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(status, limit):
    shifts = shift_service.list_shifts(status=status, limit=limit)
    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo(f"{'ID':<5} {'Status':<8} {'Operator':<10} {'Opened':<22} {'Opening':>12} {'Expected':>12} {'Counted':>12} {'Diff':>10}")
    click.echo("-" * 100)
    for shift in shifts:
        click.echo(
            f"{shift.id:<5} {shift.status:<8} {shift.operator_user_id:<10} "
            f"{shift.opened_at.strftime('%Y-%m-%d %H:%M'):<22} "
            f"{_money(shift.opening_cash_cents):>12} {_money(shift.expected_cash_cents):>12} "
            f"{_money(shift.closing_cash_cents):>12} {_money(shift.cash_discrepancy_cents):>10}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(doctors_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(shifts_group)

# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/dealernet/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions --retention-days 30
#   Delete expired/revoked session tokens older than the retention window.
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
# - python -m flask companies create --name "Acme Dealer" --type dealer [--status active]
#
# User inspection/bootstrap:
# - python -m flask users list [--company-id 1]
# - python -m flask users create --company-id 1 --email admin@acme.test --password "Password123!" --role admin
#
# Payments maintenance:
# - python -m flask payments recompute --company-id 1
#   Rebuild order/invoice payment aggregates from the payments table.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company, User
from .models.tenancy import COMPANY_STATUSES, COMPANY_STATUS_ACTIVE, COMPANY_TYPES
from .roles import ROLES, ROLE_STAFF
from .services import session_service
from .services.auth_service import create_user, PasswordValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables from the model metadata."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@system_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True, help='Keep dead sessions this long')
@with_appcontext
def cleanup_sessions(retention_days):
    """Delete expired and revoked session tokens older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} session token(s)")


@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    """List all companies."""
    companies = db.session.query(Company).order_by(Company.id).all()

    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Type':<10} {'Status':<22} {'Users'}")
    click.echo("="*80)

    for company in companies:
        user_count = db.session.query(User).filter_by(company_id=company.id).count()
        click.echo(f"{company.id:<5} {company.name:<30} {company.type:<10} {company.status:<22} {user_count}")

    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--type', 'company_type', type=click.Choice(COMPANY_TYPES), required=True, help='dealer or supplier')
@click.option('--status', type=click.Choice(COMPANY_STATUSES), default=COMPANY_STATUS_ACTIVE, show_default=True)
@with_appcontext
def create_company_cli(name, company_type, status):
    """Create a new company (tenant)."""
    company = Company(name=name, type=company_type, status=status)
    db.session.add(company)
    db.session.commit()

    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Type: {company.type}, Status: {company.status})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), default=ROLE_STAFF, show_default=True, help='Role')
@click.option('--first-name', help='First name')
@click.option('--last-name', help='Last name')
@with_appcontext
def create_user_cli(company_id, email, password, role, first_name, last_name):
    """
    Create a new user within a company.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            email=email,
            password=password,
            company_id=company_id,
            role=role,
            first_name=first_name,
            last_name=last_name,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.email} with role '{user.role}' in company {company_id}")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--company-id', type=int, help='Filter by company ID')
@with_appcontext
def list_users(company_id):
    """List users with their role and status."""
    query = db.session.query(User)

    if company_id:
        query = query.filter_by(company_id=company_id)

    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Company':<8} {'Email':<40} {'Role':<10} {'Status'}")
    click.echo("="*90)

    for user in users:
        click.echo(f"{user.id:<5} {user.company_id or '-':<8} {user.email:<40} {user.role:<10} {user.status}")

    click.echo("="*90 + "\n")


@click.group('payments')
def payments_group():
    """Payment aggregate maintenance commands."""


@payments_group.command('recompute')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def recompute_payments(company_id):
    """Rebuild order payment_status and invoice paid amount/status from payments."""
    from . import get_services

    if db.session.get(Company, company_id) is None:
        click.echo(f"FAIL Company ID {company_id} not found")
        return

    result = get_services().reconciliation.recompute_all(company_id)
    if not result.ok:
        click.echo(f"FAIL {result.failure.kind.value}: {result.failure.reason}")
        return

    summary = result.value
    click.echo(
        f"PASS Checked {summary['orders_checked']} order(s), {summary['orders_changed']} changed; "
        f"{summary['invoices_checked']} invoice(s), {summary['invoices_changed']} changed"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(users_group)
    app.cli.add_command(payments_group)

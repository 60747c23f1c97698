# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/farmgate/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app farmgate <group> <command> [options]
#
# Database:
# - python -m flask --app farmgate db upgrade
#   Apply migrations (Flask-Migrate).
#
# Identity bootstrap/inspection:
# - python -m flask --app farmgate users bootstrap-admin --phone 9876543210 --name "Owner"
#   Create (or promote) the first super_admin; prompts for the PIN.
# - python -m flask --app farmgate users list [--include-inactive]
#   List staff identities with roles and active status.
# - python -m flask --app farmgate users check-phone 9876543210 [--customer]
#   Classify a phone across the credential store and the session provider.
#
# Maintenance:
# - python -m flask --app farmgate maintenance cleanup-orphans [--dry-run]
#   Delete provider identities that have no internal account.
# - python -m flask --app farmgate maintenance clear-lockout 9876543210 [--customer]
#   Reset the failed-attempt counter for a phone.
# - python -m flask --app farmgate maintenance purge-lockouts --idle-days 1
#   Delete idle, unlocked ledger rows.
# - python -m flask --app farmgate maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.

import click
from flask.cli import with_appcontext

from .services import account_service
from .services import credential_store
from .services import lockout_service
from .services import maintenance_service
from .services.session_provider import ProviderUnavailableError
from .validation import KIND_CUSTOMER, KIND_STAFF, ValidationError, validate_phone


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """Identity inspection and bootstrap commands."""


@users_group.command('bootstrap-admin')
@click.option('--phone', prompt=True, help='10-digit phone number')
@click.option('--name', 'full_name', prompt=True, help='Full name')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='6-digit PIN')
@with_appcontext
def bootstrap_admin_cli(phone, full_name, pin):
    """
    Create the first super_admin (or promote an existing staff phone).

    Refused if another identity already holds super_admin.
    """
    result = account_service.bootstrap_super_admin(phone, pin, full_name)
    if not result.ok:
        raise click.ClickException(f"{result.error}: {result.message}")

    staff = result.data["staff"]
    click.echo(f"PASS Super admin ready: {staff['full_name']} (ID: {staff['id']})")
    if not staff.get("external_user_id"):
        click.echo("WARN  Session provider identity not created; it will be created at first login")


@users_group.command('list')
@click.option('--include-inactive', is_flag=True, help='Include deactivated staff')
@with_appcontext
def list_users(include_inactive):
    """List staff identities with their roles."""
    staff = credential_store.list_staff(include_inactive=include_inactive)

    if not staff:
        click.echo("No staff found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<25} {'Phone':<12} {'Role':<16} {'Active':<8} {'Provider'}")
    click.echo("="*90)

    for member in staff:
        active_str = "Yes" if member.is_active else "No"
        provider_str = "linked" if member.external_user_id else "-"
        click.echo(
            f"{member.id:<5} {member.full_name[:24]:<25} {member.phone:<12} "
            f"{(member.role or 'none'):<16} {active_str:<8} {provider_str}"
        )

    click.echo("="*90 + "\n")


@users_group.command('check-phone')
@click.argument('phone')
@click.option('--customer', is_flag=True, help='Check the customer login instead of staff')
@with_appcontext
def check_phone_cli(phone, customer):
    """Report availability of a phone number for provisioning."""
    kind = KIND_CUSTOMER if customer else KIND_STAFF
    try:
        availability = account_service.check_phone_availability(phone, kind)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint='PHONE')
    except ProviderUnavailableError as e:
        raise click.ClickException(f"Session provider unavailable: {e}")

    click.echo(f"{availability['phone']} ({kind}): {availability['status']}")
    if availability.get("identity_id"):
        click.echo(f"     Internal ID: {availability['identity_id']}")
    if availability.get("external_user_id"):
        click.echo(f"     Provider ID: {availability['external_user_id']}")


# =============================================================================
# MAINTENANCE COMMANDS
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-orphans')
@click.option('--dry-run', is_flag=True, help='List orphans without deleting them')
@with_appcontext
def cleanup_orphans_cli(dry_run):
    """Delete provider identities under our domain with no internal account."""
    try:
        summary = account_service.delete_orphaned_identities(dry_run=dry_run)
    except ProviderUnavailableError as e:
        raise click.ClickException(f"Session provider unavailable: {e}")

    for orphan in summary["orphans"]:
        click.echo(f"  {orphan['kind']:<9} {orphan['address']}")
    if dry_run:
        click.echo(f"DRY RUN {len(summary['orphans'])} orphaned identities found.")
    else:
        click.echo(f"Deleted {summary['deleted']} orphaned identities.")


@maintenance_group.command('clear-lockout')
@click.argument('phone')
@click.option('--customer', is_flag=True, help='Clear the customer ledger instead of staff')
@with_appcontext
def clear_lockout_cli(phone, customer):
    """Reset failed attempts and any active lockout for a phone."""
    try:
        phone = validate_phone(phone)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint='PHONE')

    lockout_service.clear_lockout(phone, kind=KIND_CUSTOMER if customer else KIND_STAFF)
    click.echo(f"Cleared lockout for {phone}.")


@maintenance_group.command('purge-lockouts')
@click.option('--idle-days', type=int, default=1, show_default=True)
@with_appcontext
def purge_lockouts_cli(idle_days):
    """Delete ledger rows with no recent attempt and no active lockout."""
    deleted = maintenance_service.purge_stale_lockouts(idle_days=idle_days)
    click.echo(f"Deleted {deleted} idle lockout records.")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)

# Overview: Flask CLI command groups for bootstrap, inspection, and periodic jobs.

# backend/attendguard/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"] [--org-code DEFAULT]
#   Idempotent bootstrap: creates default org, roles, permissions, and an admin user.
# - python -m flask system init-permissions
#   Initialize permissions and assign defaults to every organization's roles.
#
# User bootstrap:
# - python -m flask users create --org-id 1 --name "Ada" --email ada@example.com --password "Password123!" --role member
#   Create a user (prompts if options are omitted).
# - python -m flask users list [--org-id 1]
#   List users with roles and active status.
#
# Sessions:
# - python -m flask sessions create --org-id 1 --title "Lecture 1" --start 2026-01-05T09:00:00Z --end 2026-01-05T10:00:00Z --lat 6.5244 --lng 3.3792
#   Create a scheduled session (there is no HTTP endpoint for this).
# - python -m flask sessions list [--org-id 1]
# - python -m flask sessions sync-status
#   Cron: scheduled -> active -> completed by wall-clock time.
#
# QR tokens:
# - python -m flask qr rotate-due [--window-seconds 30]
#   Cron: rotate tokens for active sessions whose token is missing or about to expire.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Role, Organization, Session, SessionStatus
from .permissions import DEFAULT_ROLES
from .services.auth_service import create_user, create_default_roles, assign_role, PasswordValidationError
from .services import permission_service, qr_service, session_service
from .services.concurrency import run_with_retry
from .time_utils import parse_iso_datetime


ROLE_NAMES = [name for name, _ in DEFAULT_ROLES]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--admin-email', default='admin@attendguard.local', help='Email for the bootstrap admin')
@with_appcontext
def init_system(org_name, org_code, admin_email):
    """
    Initialize the system: organization, roles, permissions and an admin user.

    Safe to re-run; existing rows are kept.

    SECURITY: The admin password defaults to "Password123!". Change it
    immediately in production!
    """
    click.echo("START Initializing AttendGuard...")

    # 1. Ensure organization exists
    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    # 2. Roles
    click.echo("\nLIST Creating roles...")
    create_default_roles(org.id)
    roles = db.session.query(Role).filter_by(org_id=org.id).all()
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)}")

    # 3. Permissions
    click.echo("\nSECURITY Initializing permissions...")
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions(org.id)
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    # 4. Admin user
    click.echo("\nUSERS Creating admin user...")
    existing = db.session.query(User).filter_by(org_id=org.id, email=admin_email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{admin_email}' already exists in org, skipping...")
    else:
        try:
            user = create_user(name="Administrator", email=admin_email, password="Password123!", org_id=org.id)
            assign_role(user.id, "super_admin")
            click.echo(f"PASS Created user: {user.email} with role 'super_admin'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed: {str(e)}")
        except ValueError as e:
            click.echo(f"FAIL Failed to create admin user: {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE AttendGuard Initialized Successfully!")
    click.echo("="*60)
    click.echo(f"\nOrganization: {org.name} (ID: {org.id})")
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   super_admin -> {admin_email} / Password123!")
    click.echo("")


@system_group.command('init-permissions')
@with_appcontext
def init_permissions():
    """Create missing permissions and grant role defaults in every organization."""
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, help='Organization ID (uses the first organization if not specified)')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLE_NAMES), default='member', show_default=True, help='Role')
@with_appcontext
def create_user_cli(org_id, name, email, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    if org_id:
        org = db.session.get(Organization, org_id)
        if not org:
            click.echo(f"FAIL Organization ID {org_id} not found")
            return
    else:
        org = db.session.query(Organization).order_by(Organization.id).first()
        if not org:
            click.echo("FAIL No organization found. Run 'python -m flask system init' first.")
            return

    try:
        create_default_roles(org.id)
        user = create_user(name=name, email=email, password=password, org_id=org.id)
        assign_role(user.id, role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.email} with role '{role}'")
    click.echo(f"     Organization: {org.name} (ID: {org.id})")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List users with their roles."""
    query = db.session.query(User)
    if org_id:
        query = query.filter_by(org_id=org_id)

    users = query.order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Org':<5} {'Name':<25} {'Email':<35} {'Active':<8} {'Roles'}")
    click.echo("="*100)

    for user in users:
        role_names = permission_service.get_user_role_names(user.id)
        roles_str = ", ".join(role_names) if role_names else "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.org_id:<5} {user.name:<25} {user.email:<35} {active_str:<8} {roles_str}")

    click.echo("="*100 + "\n")


# =============================================================================
# SESSION COMMANDS
# =============================================================================

@click.group('sessions')
def sessions_group():
    """Attendance session bootstrap and periodic jobs."""


@sessions_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--title', required=True)
@click.option('--start', 'start', required=True, help='ISO-8601 start time (UTC if no offset)')
@click.option('--end', 'end', required=True, help='ISO-8601 end time (UTC if no offset)')
@click.option('--lat', type=float, required=True, help='Venue latitude')
@click.option('--lng', type=float, required=True, help='Venue longitude')
@click.option('--radius', type=int, help='Geofence radius in meters')
@click.option('--capacity', type=int, help='Maximum counted attendees')
@click.option('--late-minutes', type=int, help='Late threshold after start')
@click.option('--created-by', type=int, help='Creating user ID (defaults to the first user in the org)')
@with_appcontext
def create_session_cli(org_id, title, start, end, lat, lng, radius, capacity, late_minutes, created_by):
    """Create a scheduled session."""
    try:
        start_time = parse_iso_datetime(start)
        end_time = parse_iso_datetime(end)
    except ValueError as e:
        click.echo(f"FAIL {str(e)}")
        return

    if end_time <= start_time:
        click.echo("FAIL --end must be after --start")
        return

    creator_query = db.session.query(User).filter_by(org_id=org_id)
    creator = creator_query.filter_by(id=created_by).first() if created_by else creator_query.order_by(User.id).first()
    if not creator:
        click.echo(f"FAIL No user found in organization {org_id}")
        return

    session = Session(
        org_id=org_id,
        title=title,
        start_time=start_time,
        end_time=end_time,
        location_lat=lat,
        location_lng=lng,
        radius_meters=radius or current_app.config["DEFAULT_RADIUS_METERS"],
        capacity=capacity,
        late_threshold_minutes=(
            late_minutes if late_minutes is not None else current_app.config["DEFAULT_LATE_THRESHOLD_MINUTES"]
        ),
        status=SessionStatus.SCHEDULED,
        created_by_user_id=creator.id,
    )
    db.session.add(session)
    db.session.commit()
    click.echo(f"PASS Created session {session.id}: {session.title}")


@sessions_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_sessions(org_id):
    """List sessions, newest first."""
    query = db.session.query(Session)
    if org_id:
        query = query.filter_by(org_id=org_id)

    sessions = query.order_by(Session.start_time.desc()).all()
    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Org':<5} {'Title':<30} {'Status':<11} {'Start':<22} {'Count'}")
    click.echo("="*100)
    for session in sessions:
        capacity = session.capacity if session.capacity else "-"
        click.echo(
            f"{session.id:<5} {session.org_id:<5} {session.title[:30]:<30} {session.status.value:<11} "
            f"{session.start_time.isoformat():<22} {session.current_count}/{capacity}"
        )
    click.echo("="*100 + "\n")


@sessions_group.command('sync-status')
@with_appcontext
def sync_session_status():
    """Move sessions between scheduled, active and completed by time."""
    result = run_with_retry(session_service.sync_session_statuses)
    click.echo(f"PASS {result['activated']} activated, {result['completed']} completed")


# =============================================================================
# QR COMMANDS
# =============================================================================

@click.group('qr')
def qr_group():
    """QR token jobs."""


@qr_group.command('rotate-due')
@click.option('--window-seconds', type=int, default=30, show_default=True,
              help='Rotate tokens expiring within this many seconds')
@with_appcontext
def rotate_due(window_seconds):
    """Rotate QR tokens for active sessions that are missing one or about to lose theirs."""
    rotated = run_with_retry(lambda: qr_service.rotate_due_tokens(window_seconds=window_seconds))
    click.echo(f"PASS Rotated {len(rotated)} QR token(s)")
    for token in rotated:
        click.echo(f"     session {token.session_id}: token {token.id} expires {token.to_dict()['expires_at']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(qr_group)

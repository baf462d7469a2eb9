"""initial attendance schema

Revision ID: ag001
Revises:
Create Date: 2026-10-01 00:00:00.000000

This migration creates the complete AttendGuard schema from scratch:
- organizations, users: tenant root and accounts (soft-delete via deactivated_at)
- roles, permissions, user_roles, role_permissions: org-scoped RBAC
- auth_tokens: hashed bearer tokens with tenant context
- sessions, qr_tokens: scheduled events and their rotating check-in codes
- face_enrollments: encrypted face descriptors (one active per user)
- attendances, attendance_logs: verification records and their change history
- location_logs: GPS trail
- audit_logs: append-only security/audit spine
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'ag001'
down_revision = None
branch_labels = None
depends_on = None


ATTENDANCE_STATUSES = ('present', 'late', 'pending', 'absent', 'rejected')
ATTENDANCE_ACTIONS = ('created', 'approved', 'rejected', 'override', 'deleted')


def _enum(name, values):
    return sa.Enum(*values, name=name, native_enum=False, length=16)


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    """
    Create all tables.

    WHY: Uniqueness and counter bounds live in the database (unique
    constraints, partial unique index, check constraints) so concurrent
    requests cannot break them.
    """

    # ============================================================================
    # organizations: Tenant root
    # ============================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_deactivated_at', 'organizations', ['deactivated_at'])

    # ============================================================================
    # users: Accounts (email unique per organization)
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('face_consent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('face_consent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'email', name='uq_users_org_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_org_id', 'users', ['org_id'])
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_deactivated_at', 'users', ['deactivated_at'])

    # ============================================================================
    # RBAC
    # ============================================================================
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_roles_org_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_roles_org_id', 'roles', ['org_id'])

    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_permissions_code', 'permissions', ['code'], unique=True)
    op.create_index('ix_permissions_category', 'permissions', ['category'])

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_roles'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])
    op.create_index('ix_user_roles_role_id', 'user_roles', ['role_id'])

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('granted_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permissions'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'])
    op.create_index('ix_role_permissions_permission_id', 'role_permissions', ['permission_id'])

    # ============================================================================
    # auth_tokens: Hashed bearer tokens
    # ============================================================================
    op.create_table(
        'auth_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _created_at(),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_auth_tokens_token_hash', 'auth_tokens', ['token_hash'], unique=True)
    op.create_index('ix_auth_tokens_user_id', 'auth_tokens', ['user_id'])
    op.create_index('ix_auth_tokens_org_id', 'auth_tokens', ['org_id'])
    op.create_index('ix_auth_tokens_expires_at', 'auth_tokens', ['expires_at'])
    op.create_index('ix_auth_tokens_is_revoked', 'auth_tokens', ['is_revoked'])
    op.create_index('ix_auth_tokens_user_active', 'auth_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # sessions: Scheduled events with geofence and capacity
    # ============================================================================
    op.create_table(
        'sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('location_lat', sa.Float(), nullable=False),
        sa.Column('location_lng', sa.Float(), nullable=False),
        sa.Column('location_name', sa.String(length=255), nullable=True),
        sa.Column('radius_meters', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('capacity', sa.Integer(), nullable=True),
        sa.Column('current_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('late_threshold_minutes', sa.Integer(), nullable=False, server_default='15'),
        sa.Column('allow_entry_exit', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('recurrence_type',
                  _enum('session_recurrence_type', ('one_time', 'daily', 'weekly', 'monthly')),
                  nullable=False, server_default='one_time'),
        sa.Column('recurrence_end_date', sa.Date(), nullable=True),
        sa.Column('parent_session_id', sa.Integer(), nullable=True),
        sa.Column('status',
                  _enum('session_status', ('draft', 'scheduled', 'active', 'completed', 'cancelled')),
                  nullable=False, server_default='draft'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.CheckConstraint('end_time > start_time', name='ck_sessions_time_window'),
        sa.CheckConstraint('current_count >= 0', name='ck_sessions_count_non_negative'),
        sa.CheckConstraint('capacity IS NULL OR current_count <= capacity',
                           name='ck_sessions_count_within_capacity'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['parent_session_id'], ['sessions.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sessions_org_id', 'sessions', ['org_id'])
    op.create_index('ix_sessions_status', 'sessions', ['status'])
    op.create_index('ix_sessions_parent_session_id', 'sessions', ['parent_session_id'])
    op.create_index('ix_sessions_created_by_user_id', 'sessions', ['created_by_user_id'])
    op.create_index('ix_sessions_org_start', 'sessions', ['org_id', 'start_time'])
    op.create_index('ix_sessions_status_start', 'sessions', ['status', 'start_time'])

    op.create_table(
        'qr_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=128), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('rotation_interval_seconds', sa.Integer(), nullable=False, server_default='300'),
        _created_at(),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_qr_tokens_code', 'qr_tokens', ['code'], unique=True)
    op.create_index('ix_qr_tokens_session_id', 'qr_tokens', ['session_id'])
    op.create_index('ix_qr_tokens_expires_at', 'qr_tokens', ['expires_at'])
    op.create_index('ix_qr_tokens_session_active', 'qr_tokens', ['session_id', 'is_active'])

    # ============================================================================
    # face_enrollments: Encrypted descriptors
    # ============================================================================
    # WHY partial unique index: at most one active enrollment per user while
    # retired enrollments stay for audit.
    op.create_table(
        'face_enrollments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('encrypted_descriptor', sa.Text(), nullable=False),
        sa.Column('encryption_key_id', sa.String(length=32), nullable=False),
        sa.Column('image_ref', sa.String(length=512), nullable=True),
        sa.Column('confidence_threshold', sa.Float(), nullable=False, server_default='0.7'),
        sa.Column('verification_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requires_reverification', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_face_enrollments_user_id', 'face_enrollments', ['user_id'])
    op.create_index(
        'uq_face_enrollments_active_user',
        'face_enrollments',
        ['user_id'],
        unique=True,
        sqlite_where=sa.text('requires_reverification = 0'),
        postgresql_where=sa.text('requires_reverification = false'),
    )

    # ============================================================================
    # attendances: One record per (user, session)
    # ============================================================================
    op.create_table(
        'attendances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('qr_token_id', sa.Integer(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('face_match_score', sa.Float(), nullable=True),
        sa.Column('face_match', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('gps_valid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('location_lat', sa.Float(), nullable=True),
        sa.Column('location_lng', sa.Float(), nullable=True),
        sa.Column('distance_from_venue', sa.Float(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('device_info', sa.JSON(), nullable=True),
        sa.Column('webauthn_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verification_method', sa.String(length=64), nullable=False),
        sa.Column('status', _enum('attendance_status', ATTENDANCE_STATUSES),
                  nullable=False, server_default='pending'),
        sa.Column('entry_type', _enum('attendance_entry_type', ('entry', 'exit')),
                  nullable=False, server_default='entry'),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['qr_token_id'], ['qr_tokens.id'], ),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'session_id', name='uq_attendances_user_session'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_attendances_user_id', 'attendances', ['user_id'])
    op.create_index('ix_attendances_session_id', 'attendances', ['session_id'])
    op.create_index('ix_attendances_status', 'attendances', ['status'])
    op.create_index('ix_attendances_session_status', 'attendances', ['session_id', 'status'])
    op.create_index('ix_attendances_user_verified', 'attendances', ['user_id', 'verified_at'])

    # ============================================================================
    # attendance_logs: Append-only change history
    # ============================================================================
    # attendance_id is nulled when the attendance is deleted; the history
    # stays reachable through original_attendance_id.
    op.create_table(
        'attendance_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('attendance_id', sa.Integer(), nullable=True),
        sa.Column('original_attendance_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', _enum('attendance_log_action', ATTENDANCE_ACTIONS), nullable=False),
        sa.Column('old_status', _enum('attendance_log_old_status', ATTENDANCE_STATUSES), nullable=True),
        sa.Column('new_status', _enum('attendance_log_new_status', ATTENDANCE_STATUSES), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['attendance_id'], ['attendances.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_attendance_logs_attendance_id', 'attendance_logs', ['attendance_id'])
    op.create_index('ix_attendance_logs_user_id', 'attendance_logs', ['user_id'])
    op.create_index('ix_attendance_logs_original', 'attendance_logs', ['original_attendance_id', 'created_at'])

    # ============================================================================
    # location_logs: GPS trail
    # ============================================================================
    op.create_table(
        'location_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('accuracy', sa.Float(), nullable=True),
        sa.Column('altitude', sa.Float(), nullable=True),
        sa.Column('heading', sa.Float(), nullable=True),
        sa.Column('speed', sa.Float(), nullable=True),
        sa.Column('distance_from_venue', sa.Float(), nullable=False),
        sa.Column('within_radius', sa.Boolean(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_location_logs_user_id', 'location_logs', ['user_id'])
    op.create_index('ix_location_logs_session_id', 'location_logs', ['session_id'])
    op.create_index('ix_location_logs_user_session', 'location_logs', ['user_id', 'session_id', 'recorded_at'])

    # ============================================================================
    # audit_logs: Append-only audit spine
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('subject_type', sa.String(length=64), nullable=True),
        sa.Column('subject_id', sa.Integer(), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_org_id', 'audit_logs', ['org_id'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_user_action', 'audit_logs', ['user_id', 'action'])
    op.create_index('ix_audit_logs_org_created', 'audit_logs', ['org_id', 'created_at'])
    op.create_index('ix_audit_logs_subject', 'audit_logs', ['subject_type', 'subject_id'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('location_logs')
    op.drop_table('attendance_logs')
    op.drop_table('attendances')
    op.drop_table('face_enrollments')
    op.drop_table('qr_tokens')
    op.drop_table('sessions')
    op.drop_table('auth_tokens')
    op.drop_table('role_permissions')
    op.drop_table('user_roles')
    op.drop_table('permissions')
    op.drop_table('roles')
    op.drop_table('users')
    op.drop_table('organizations')

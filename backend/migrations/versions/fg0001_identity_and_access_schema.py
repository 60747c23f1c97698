"""identity and access schema

Revision ID: fg0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the tables owned by the identity/access core:
- customers: business customer records (placeholder rows for pending registrations)
- staff_identities / customer_identities: phone + bcrypt PIN credentials
- role_assignments: authoritative role per staff identity
- lockout_records: consecutive failed verifications per (kind, phone)
- security_events: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'fg0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # customers: business customer master (owned by billing; read here)
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'])

    # ============================================================================
    # staff_identities: staff credentials
    # ============================================================================
    op.create_table(
        'staff_identities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('pin_hash', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('external_user_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone', name='uq_staff_identities_phone'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_identities_phone', 'staff_identities', ['phone'])
    op.create_index('ix_staff_identities_external_user_id', 'staff_identities', ['external_user_id'])

    # ============================================================================
    # customer_identities: customer portal credentials + approval state
    # ============================================================================
    op.create_table(
        'customer_identities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('pin_hash', sa.String(length=255), nullable=True),
        sa.Column('approval_state', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('external_user_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['approved_by_id'], ['staff_identities.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone', name='uq_customer_identities_phone'),
        sa.CheckConstraint(
            "approval_state IN ('pending', 'approved', 'rejected')",
            name='ck_customer_identities_approval_state'
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customer_identities_customer_id', 'customer_identities', ['customer_id'])
    op.create_index('ix_customer_identities_phone', 'customer_identities', ['phone'])
    op.create_index('ix_customer_identities_external_user_id', 'customer_identities', ['external_user_id'])

    # ============================================================================
    # role_assignments: the only input to authorization decisions
    # ============================================================================
    op.create_table(
        'role_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('identity_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('assigned_by_id', sa.Integer(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['identity_id'], ['staff_identities.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assigned_by_id'], ['staff_identities.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('identity_id', name='uq_role_assignments_identity'),
        sa.CheckConstraint(
            "role IN ('super_admin', 'manager', 'accountant', 'delivery_staff', "
            "'farm_worker', 'vet_staff', 'auditor')",
            name='ck_role_assignments_role'
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_role_assignments_identity_id', 'role_assignments', ['identity_id'])

    # ============================================================================
    # lockout_records: brute-force ledger
    # ============================================================================
    op.create_table(
        'lockout_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('identity_kind', sa.String(length=16), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('failed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('identity_kind', 'phone', name='uq_lockout_records_kind_phone'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_lockout_records_phone', 'lockout_records', ['phone'])

    # ============================================================================
    # security_events: audit trail
    # ============================================================================
    op.create_table(
        'security_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_kind', sa.String(length=16), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_security_events_actor_id', 'security_events', ['actor_id'])
    op.create_index('ix_security_events_event_type', 'security_events', ['event_type'])
    op.create_index('ix_security_events_success', 'security_events', ['success'])
    op.create_index('ix_security_events_actor_type', 'security_events', ['actor_id', 'event_type'])
    op.create_index('ix_security_events_occurred', 'security_events', ['occurred_at'])


def downgrade():
    op.drop_table('security_events')
    op.drop_table('lockout_records')
    op.drop_table('role_assignments')
    op.drop_table('customer_identities')
    op.drop_table('staff_identities')
    op.drop_table('customers')

"""Create tenant, user, RBAC, audit_log, number_sequence and notification tables

Revision ID: 001
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB(astext_type=sa.Text())


def _id():
    return sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]


def _tenant_id(nullable=False, ondelete='CASCADE'):
    return [
        sa.Column('tenant_id', UUID, nullable=nullable),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], ondelete=ondelete),
    ]


def _updated_at_trigger(table):
    op.execute(f"""
        CREATE TRIGGER update_{table}_updated_at
        BEFORE UPDATE ON "{table}"
        FOR EACH ROW
        EXECUTE FUNCTION update_updated_at_column();
    """)


def upgrade():
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # Reused by every table with an updated_at column
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
          NEW.updated_at = NOW();
          RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    op.create_table(
        'tenant',
        _id(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=False),
        sa.Column('subdomain', sa.Text(), nullable=True),
        sa.Column('domain', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        sa.Column('owner_user_id', UUID, nullable=True),
        sa.Column('settings', JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug', name='uq_tenant_slug'),
        sa.UniqueConstraint('subdomain', name='uq_tenant_subdomain'),
        sa.UniqueConstraint('domain', name='uq_tenant_domain'),
        sa.CheckConstraint("status IN ('active', 'suspended', 'inactive')", name='ck_tenant_status'),
    )
    _updated_at_trigger('tenant')

    op.create_table(
        'user',
        _id(),
        *_tenant_id(nullable=True, ondelete='RESTRICT'),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), server_default='ACTIVE', nullable=False),
        sa.Column('is_super_admin', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('last_login_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'email', name='uq_user_tenant_email'),
        sa.CheckConstraint("status IN ('ACTIVE', 'DISABLED')", name='ck_user_status'),
    )
    op.create_index('ix_user_tenant_id', 'user', ['tenant_id'])
    # Platform operators (tenant_id NULL) are unique by email too
    op.create_index('uq_user_platform_email', 'user', ['email'], unique=True,
                    postgresql_where=sa.text('tenant_id IS NULL'))
    _updated_at_trigger('user')

    op.create_table(
        'permission',
        _id(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('module', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_permission_name'),
    )

    op.create_table(
        'role',
        _id(),
        *_tenant_id(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'slug', name='uq_role_tenant_slug'),
    )
    op.create_index('ix_role_tenant_id', 'role', ['tenant_id'])
    _updated_at_trigger('role')

    op.create_table(
        'role_permission',
        sa.Column('role_id', UUID, nullable=False),
        sa.Column('permission_id', UUID, nullable=False),
        sa.PrimaryKeyConstraint('role_id', 'permission_id'),
        sa.ForeignKeyConstraint(['role_id'], ['role.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permission.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'user_role',
        _id(),
        *_tenant_id(),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('role_id', UUID, nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['role.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )
    op.create_index('ix_user_role_tenant_id', 'user_role', ['tenant_id'])
    op.create_index('ix_user_role_user_id', 'user_role', ['user_id'])
    op.create_index('ix_user_role_role_id', 'user_role', ['role_id'])

    op.create_table(
        'audit_log',
        _id(),
        *_tenant_id(),
        sa.Column('actor_id', UUID, nullable=True),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('model_type', sa.Text(), nullable=True),
        sa.Column('model_id', UUID, nullable=True),
        sa.Column('model_name', sa.Text(), nullable=True),
        sa.Column('old_values', JSONB, nullable=True),
        sa.Column('new_values', JSONB, nullable=True),
        sa.Column('metadata_json', JSONB, nullable=True),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('method', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.Text(), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('request_id', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['actor_id'], ['user.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_audit_log_tenant_id', 'audit_log', ['tenant_id'])
    op.create_index('ix_audit_log_tenant_id_created_at', 'audit_log', ['tenant_id', 'created_at'])
    op.create_index('ix_audit_log_model', 'audit_log', ['model_type', 'model_id'])

    op.create_table(
        'number_sequence',
        _id(),
        *_tenant_id(),
        sa.Column('code', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('prefix', sa.Text(), server_default='', nullable=False),
        sa.Column('suffix', sa.Text(), nullable=True),
        sa.Column('next_number', sa.Integer(), server_default='1', nullable=False),
        sa.Column('min_length', sa.Integer(), server_default='5', nullable=False),
        sa.Column('format', sa.Text(), server_default='{PREFIX}-{NUMBER}', nullable=False),
        sa.Column('reset_frequency', sa.Text(), nullable=True),
        sa.Column('last_reset_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_number_sequence_tenant_code'),
        sa.CheckConstraint(
            "reset_frequency IS NULL OR reset_frequency IN ('yearly', 'monthly', 'daily')",
            name='ck_number_sequence_reset_frequency',
        ),
        sa.CheckConstraint('next_number >= 1', name='ck_number_sequence_next_number'),
    )
    op.create_index('ix_number_sequence_tenant_id', 'number_sequence', ['tenant_id'])
    _updated_at_trigger('number_sequence')

    op.create_table(
        'notification',
        _id(),
        *_tenant_id(),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('entity_type', sa.Text(), nullable=True),
        sa.Column('entity_id', UUID, nullable=True),
        sa.Column('type', sa.Text(), server_default='info', nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata_json', JSONB, nullable=True),
        sa.Column('read_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_notification_tenant_id', 'notification', ['tenant_id'])
    op.create_index('ix_notification_user_read', 'notification', ['user_id', 'read_at'])
    _updated_at_trigger('notification')


def downgrade():
    for table in ('notification', 'number_sequence', 'audit_log', 'user_role', 'role_permission',
                  'role', 'permission', 'user', 'tenant'):
        op.drop_table(table)
    op.execute('DROP FUNCTION IF EXISTS update_updated_at_column()')

"""Create HR attendance and website tables

Revision ID: 004
Revises: 003
Create Date: 2026-03-01 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '004'
down_revision = '003'
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB(astext_type=sa.Text())

TABLES_WITH_UPDATED_AT = ('employee', 'attendance', 'website_site', 'website_page')


def _common(timestamps=True):
    columns = [
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], ondelete='CASCADE'),
    ]
    if timestamps:
        columns += [
            sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        ]
    return columns


def upgrade():
    op.create_table(
        'employee',
        *_common(),
        sa.Column('user_id', UUID, nullable=True),
        sa.Column('first_name', sa.Text(), nullable=False),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('biotime_emp_code', sa.Text(), nullable=True),
        sa.Column('hire_date', sa.Date(), nullable=True),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('tenant_id', 'biotime_emp_code', name='uq_employee_tenant_biotime_code'),
    )
    op.create_index('ix_employee_tenant_id', 'employee', ['tenant_id'])

    op.create_table(
        'attendance_record',
        *_common(timestamps=False),
        sa.Column('employee_id', UUID, nullable=False),
        sa.Column('source', sa.Text(), nullable=False),
        sa.Column('external_id', sa.Text(), nullable=False),
        sa.Column('punch_time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('punch_type', sa.Text(), nullable=True),
        sa.Column('raw', JSONB, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.ForeignKeyConstraint(['employee_id'], ['employee.id'], ondelete='CASCADE'),
        # Re-running a sync over the same window must not duplicate punches
        sa.UniqueConstraint('tenant_id', 'employee_id', 'source', 'external_id',
                            name='uq_attendance_record_source_external'),
    )
    op.create_index('ix_attendance_record_tenant_id', 'attendance_record', ['tenant_id'])
    op.create_index('ix_attendance_record_employee_time', 'attendance_record', ['employee_id', 'punch_time'])

    op.create_table(
        'attendance',
        *_common(),
        sa.Column('employee_id', UUID, nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('check_in', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('check_out', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('status', sa.Text(), server_default='present', nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['employee_id'], ['employee.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('tenant_id', 'employee_id', 'date', name='uq_attendance_employee_date'),
    )
    op.create_index('ix_attendance_tenant_id', 'attendance', ['tenant_id'])
    op.create_index('ix_attendance_employee_id', 'attendance', ['employee_id'])

    op.create_table(
        'website_site',
        *_common(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=False),
        sa.Column('domain', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='draft', nullable=False),
        sa.Column('settings', JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.UniqueConstraint('tenant_id', name='uq_website_site_tenant'),
        sa.UniqueConstraint('slug', name='uq_website_site_slug'),
        sa.UniqueConstraint('domain', name='uq_website_site_domain'),
        sa.CheckConstraint("status IN ('draft', 'published', 'archived')", name='ck_website_site_status'),
    )

    op.create_table(
        'website_page',
        *_common(),
        sa.Column('site_id', UUID, nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=False),
        sa.Column('page_type', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='draft', nullable=False),
        sa.Column('content', JSONB, nullable=True),
        sa.Column('published_content', JSONB, nullable=True),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('meta', JSONB, nullable=True),
        sa.ForeignKeyConstraint(['site_id'], ['website_site.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('site_id', 'slug', name='uq_website_page_site_slug'),
        sa.CheckConstraint("status IN ('draft', 'published')", name='ck_website_page_status'),
    )
    op.create_index('ix_website_page_tenant_id', 'website_page', ['tenant_id'])
    op.create_index('ix_website_page_site_id', 'website_page', ['site_id'])

    for table in TABLES_WITH_UPDATED_AT:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON "{table}"
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade():
    for table in ('website_page', 'website_site', 'attendance', 'attendance_record', 'employee'):
        op.drop_table(table)

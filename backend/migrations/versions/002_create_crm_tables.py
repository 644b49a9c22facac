"""Create CRM tables: leads, contacts, activities, pipelines and deals

Revision ID: 002
Revises: 001
Create Date: 2026-03-01 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB(astext_type=sa.Text())

TABLES_WITH_UPDATED_AT = ('lead', 'lead_assignment_rule', 'contact', 'activity', 'pipeline', 'deal')


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


def _user_fk(column, nullable=True):
    return [
        sa.Column(column, UUID, nullable=nullable),
        sa.ForeignKeyConstraint([column], ['user.id'], ondelete='SET NULL'),
    ]


def upgrade():
    op.create_table(
        'lead',
        *_common(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('source', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='new', nullable=False),
        sa.Column('score', sa.Integer(), server_default='0', nullable=False),
        sa.Column('score_calculated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_user_fk('assigned_to'),
        *_user_fk('created_by'),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'unqualified', 'converted', 'lost')",
            name='ck_lead_status',
        ),
    )
    op.create_index('ix_lead_tenant_id', 'lead', ['tenant_id'])
    op.create_index('ix_lead_assigned_to', 'lead', ['assigned_to'])
    # Active-lead listings filter on deleted_at IS NULL
    op.create_index('ix_lead_tenant_active', 'lead', ['tenant_id', 'status'],
                    postgresql_where=sa.text('deleted_at IS NULL'))

    op.create_table(
        'lead_score',
        *_common(timestamps=False),
        sa.Column('lead_id', UUID, nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('breakdown', JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('calculated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.ForeignKeyConstraint(['lead_id'], ['lead.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_lead_score_tenant_id', 'lead_score', ['tenant_id'])
    op.create_index('ix_lead_score_lead_id', 'lead_score', ['lead_id'])

    op.create_table(
        'lead_assignment_rule',
        *_common(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('conditions', JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('assignment_type', sa.Text(), server_default='user', nullable=False),
        *_user_fk('assigned_user_id'),
        sa.Column('priority', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.CheckConstraint("assignment_type IN ('user', 'round_robin')", name='ck_lead_assignment_rule_type'),
    )
    op.create_index('ix_lead_assignment_rule_tenant_id', 'lead_assignment_rule', ['tenant_id'])

    op.create_table(
        'contact',
        *_common(),
        sa.Column('first_name', sa.Text(), nullable=False),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('lead_id', UUID, nullable=True),
        *_user_fk('created_by'),
        sa.ForeignKeyConstraint(['lead_id'], ['lead.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_contact_tenant_id', 'contact', ['tenant_id'])

    op.create_table(
        'activity',
        *_common(),
        sa.Column('type', sa.Text(), server_default='task', nullable=False),
        sa.Column('subject', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('due_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('priority', sa.Text(), server_default='medium', nullable=False),
        sa.Column('status', sa.Text(), server_default='pending', nullable=False),
        sa.Column('related_type', sa.Text(), nullable=True),
        sa.Column('related_id', UUID, nullable=True),
        *_user_fk('assigned_to'),
        *_user_fk('created_by'),
    )
    op.create_index('ix_activity_tenant_id', 'activity', ['tenant_id'])
    op.create_index('ix_activity_related_id', 'activity', ['related_id'])

    op.create_table(
        'pipeline',
        *_common(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false(), nullable=False),
    )
    op.create_index('ix_pipeline_tenant_id', 'pipeline', ['tenant_id'])

    op.create_table(
        'pipeline_stage',
        *_common(timestamps=False),
        sa.Column('pipeline_id', UUID, nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('probability', sa.Integer(), server_default='0', nullable=False),
        sa.ForeignKeyConstraint(['pipeline_id'], ['pipeline.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_pipeline_stage_tenant_id', 'pipeline_stage', ['tenant_id'])
    op.create_index('ix_pipeline_stage_pipeline_id', 'pipeline_stage', ['pipeline_id'])

    op.create_table(
        'deal',
        *_common(),
        sa.Column('pipeline_id', UUID, nullable=False),
        sa.Column('stage_id', UUID, nullable=False),
        sa.Column('lead_id', UUID, nullable=True),
        sa.Column('contact_id', UUID, nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), server_default='0', nullable=False),
        sa.Column('currency', sa.Text(), server_default='USD', nullable=False),
        sa.Column('probability', sa.Integer(), server_default='0', nullable=False),
        sa.Column('expected_close_date', sa.Date(), nullable=True),
        sa.Column('status', sa.Text(), server_default='open', nullable=False),
        *_user_fk('assigned_to'),
        *_user_fk('created_by'),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['pipeline_id'], ['pipeline.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stage_id'], ['pipeline_stage.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['lead_id'], ['lead.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['contact_id'], ['contact.id'], ondelete='SET NULL'),
        sa.CheckConstraint("status IN ('open', 'won', 'lost')", name='ck_deal_status'),
        sa.CheckConstraint('probability >= 0 AND probability <= 100', name='ck_deal_probability'),
    )
    op.create_index('ix_deal_tenant_id', 'deal', ['tenant_id'])
    op.create_index('ix_deal_pipeline_id', 'deal', ['pipeline_id'])
    op.create_index('ix_deal_stage_id', 'deal', ['stage_id'])
    op.create_index('ix_deal_assigned_to', 'deal', ['assigned_to'])

    op.create_table(
        'deal_history',
        *_common(timestamps=False),
        sa.Column('deal_id', UUID, nullable=False),
        sa.Column('field', sa.Text(), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        *_user_fk('changed_by'),
        sa.Column('changed_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.ForeignKeyConstraint(['deal_id'], ['deal.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_deal_history_tenant_id', 'deal_history', ['tenant_id'])
    op.create_index('ix_deal_history_deal_id', 'deal_history', ['deal_id'])

    for table in TABLES_WITH_UPDATED_AT:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON "{table}"
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade():
    for table in ('deal_history', 'deal', 'pipeline_stage', 'pipeline', 'activity', 'contact',
                  'lead_assignment_rule', 'lead_score', 'lead'):
        op.drop_table(table)

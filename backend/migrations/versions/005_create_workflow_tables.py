"""Create workflow and workflow_run tables

Revision ID: 005
Revises: 004
Create Date: 2026-03-01 13:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '005'
down_revision = '004'
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB(astext_type=sa.Text())


def upgrade():
    op.create_table(
        'workflow',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('event', sa.Text(), nullable=False),
        sa.Column('conditions', JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('actions', JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('priority', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_by', UUID, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['user.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_workflow_tenant_id', 'workflow', ['tenant_id'])
    op.create_index('ix_workflow_tenant_event_active', 'workflow', ['tenant_id', 'event', 'is_active'])
    op.execute("""
        CREATE TRIGGER update_workflow_updated_at
        BEFORE UPDATE ON "workflow"
        FOR EACH ROW
        EXECUTE FUNCTION update_updated_at_column();
    """)

    op.create_table(
        'workflow_run',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tenant_id', UUID, nullable=False),
        sa.Column('workflow_id', UUID, nullable=False),
        sa.Column('event', sa.Text(), nullable=False),
        sa.Column('entity_type', sa.Text(), nullable=True),
        sa.Column('entity_id', UUID, nullable=True),
        sa.Column('status', sa.Text(), server_default='running', nullable=False),
        sa.Column('trigger_data', JSONB, nullable=True),
        sa.Column('results', JSONB, nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenant.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflow.id'], ondelete='CASCADE'),
        sa.CheckConstraint(
            "status IN ('running', 'completed', 'failed', 'skipped')",
            name='ck_workflow_run_status',
        ),
    )
    op.create_index('ix_workflow_run_tenant_id', 'workflow_run', ['tenant_id'])
    op.create_index('ix_workflow_run_workflow_id', 'workflow_run', ['workflow_id'])


def downgrade():
    op.drop_table('workflow_run')
    op.drop_table('workflow')

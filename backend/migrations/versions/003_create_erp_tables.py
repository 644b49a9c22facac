"""Create ERP tables: products, sales invoices, payments and webhooks

Revision ID: 003
Revises: 002
Create Date: 2026-03-01 11:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '003'
down_revision = '002'
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB(astext_type=sa.Text())

TABLES_WITH_UPDATED_AT = ('product', 'sales_invoice', 'payment', 'webhook', 'webhook_delivery')


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


def _user_fk(column):
    return [
        sa.Column(column, UUID, nullable=True),
        sa.ForeignKeyConstraint([column], ['user.id'], ondelete='SET NULL'),
    ]


def _money(name):
    return sa.Column(name, sa.Numeric(15, 2), server_default='0', nullable=False)


def upgrade():
    op.create_table(
        'product',
        *_common(),
        sa.Column('sku', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _money('unit_price'),
        sa.Column('tax_rate', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_product_tenant_sku'),
    )
    op.create_index('ix_product_tenant_id', 'product', ['tenant_id'])
    op.create_index('ix_product_tenant_active', 'product', ['tenant_id', 'is_active'])

    op.create_table(
        'sales_invoice',
        *_common(),
        sa.Column('invoice_number', sa.Text(), nullable=True),
        sa.Column('customer_name', sa.Text(), nullable=False),
        sa.Column('customer_email', sa.Text(), nullable=True),
        sa.Column('contact_id', UUID, nullable=True),
        sa.Column('issue_date', sa.Date(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('currency', sa.Text(), server_default='USD', nullable=False),
        _money('subtotal'),
        _money('tax_total'),
        _money('total'),
        _money('amount_paid'),
        sa.Column('status', sa.Text(), server_default='draft', nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_user_fk('created_by'),
        *_user_fk('issued_by'),
        sa.Column('issued_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['contact_id'], ['contact.id'], ondelete='SET NULL'),
        sa.CheckConstraint(
            "status IN ('draft', 'issued', 'partially_paid', 'paid', 'cancelled')",
            name='ck_sales_invoice_status',
        ),
    )
    op.create_index('ix_sales_invoice_tenant_id', 'sales_invoice', ['tenant_id'])
    # Drafts carry no number; issued invoices are unique per tenant
    op.create_index('uq_sales_invoice_tenant_number', 'sales_invoice', ['tenant_id', 'invoice_number'],
                    unique=True)
    op.create_index('ix_sales_invoice_tenant_status', 'sales_invoice', ['tenant_id', 'status'])

    op.create_table(
        'sales_invoice_item',
        *_common(timestamps=False),
        sa.Column('invoice_id', UUID, nullable=False),
        sa.Column('product_id', UUID, nullable=True),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('quantity', sa.Numeric(15, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(15, 2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(5, 2), server_default='0', nullable=False),
        _money('line_total'),
        _money('tax_amount'),
        sa.ForeignKeyConstraint(['invoice_id'], ['sales_invoice.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['product.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_sales_invoice_item_tenant_id', 'sales_invoice_item', ['tenant_id'])
    op.create_index('ix_sales_invoice_item_invoice_id', 'sales_invoice_item', ['invoice_id'])

    op.create_table(
        'payment',
        *_common(),
        sa.Column('payment_number', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), server_default='incoming', nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('currency', sa.Text(), server_default='USD', nullable=False),
        sa.Column('payment_method', sa.Text(), nullable=True),
        sa.Column('reference_number', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_user_fk('created_by'),
        sa.UniqueConstraint('tenant_id', 'payment_number', name='uq_payment_tenant_number'),
        sa.CheckConstraint("type IN ('incoming', 'outgoing')", name='ck_payment_type'),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
    )
    op.create_index('ix_payment_tenant_id', 'payment', ['tenant_id'])

    op.create_table(
        'payment_allocation',
        *_common(timestamps=False),
        sa.Column('payment_id', UUID, nullable=False),
        sa.Column('invoice_id', UUID, nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False),
        sa.ForeignKeyConstraint(['payment_id'], ['payment.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['invoice_id'], ['sales_invoice.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('amount > 0', name='ck_payment_allocation_amount_positive'),
    )
    op.create_index('ix_payment_allocation_tenant_id', 'payment_allocation', ['tenant_id'])
    op.create_index('ix_payment_allocation_payment_id', 'payment_allocation', ['payment_id'])
    op.create_index('ix_payment_allocation_invoice_id', 'payment_allocation', ['invoice_id'])

    op.create_table(
        'webhook',
        *_common(),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('secret', sa.Text(), nullable=True),
        sa.Column('module', sa.Text(), nullable=True),
        sa.Column('event_types', JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('last_delivery_status', sa.Text(), nullable=True),
        sa.Column('last_delivery_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('ix_webhook_tenant_id', 'webhook', ['tenant_id'])

    op.create_table(
        'webhook_delivery',
        *_common(),
        sa.Column('webhook_id', UUID, nullable=False),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('payload', JSONB, nullable=False),
        sa.Column('status', sa.Text(), server_default='pending', nullable=False),
        sa.Column('response_code', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('delivered_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['webhook_id'], ['webhook.id'], ondelete='CASCADE'),
        sa.CheckConstraint("status IN ('pending', 'success', 'failed')", name='ck_webhook_delivery_status'),
    )
    op.create_index('ix_webhook_delivery_tenant_id', 'webhook_delivery', ['tenant_id'])
    op.create_index('ix_webhook_delivery_webhook_id', 'webhook_delivery', ['webhook_id'])

    for table in TABLES_WITH_UPDATED_AT:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON "{table}"
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade():
    for table in ('webhook_delivery', 'webhook', 'payment_allocation', 'payment',
                  'sales_invoice_item', 'sales_invoice', 'product'):
        op.drop_table(table)

"""Initial schema: organizations, pricebook, pricing rules, usage, invoices, payments

Revision ID: a41c7e2b9d10
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a41c7e2b9d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables for the usage billing engine."""
    # Enum columns store member names, matching the ORM's SQLEnum default
    organization_status = sa.Enum('ACTIVE', 'SUSPENDED', name='organizationstatus')
    billing_strategy = sa.Enum('PER_EVENT', 'MONTHLY_RECURRING', 'ANNUAL_RECURRING', 'ONE_TIME', name='billingstrategy')
    rule_scope = sa.Enum('GLOBAL', 'ORGANIZATION', 'ITEM', name='rulescope')
    rule_type = sa.Enum('PERCENT_DISCOUNT', 'FIXED_DISCOUNT', 'OVERRIDE_PRICE', name='ruletype')
    invoice_status = sa.Enum('DRAFT', 'OPEN', 'PAID', 'VOID', 'UNCOLLECTIBLE', name='invoicestatus')
    payment_status = sa.Enum('PENDING', 'SUCCEEDED', 'FAILED', 'REFUNDED', 'CANCELED', name='paymentstatus')

    # 1. Organizations (no dependencies)
    op.create_table(
        'organizations',
        *_timestamps(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('billing_email', sa.String(length=255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('segment', sa.String(length=100), nullable=True),
        sa.Column('status', organization_status, nullable=False, server_default='ACTIVE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_organizations_stripe_customer_id'), 'organizations', ['stripe_customer_id'], unique=True)
    op.create_index(op.f('ix_organizations_segment'), 'organizations', ['segment'])
    op.create_index(op.f('ix_organizations_status'), 'organizations', ['status'])

    # 2. Pricebook items (no dependencies)
    op.create_table(
        'pricebook_items',
        *_timestamps(),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('base_unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('billing_strategy', billing_strategy, nullable=False, server_default='PER_EVENT'),
        sa.Column('billing_period_months', sa.Integer(), nullable=True),
        sa.Column('extra_metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_pricebook_items_code'), 'pricebook_items', ['code'], unique=True)

    # 3. Pricing rules (depends on organizations, pricebook_items)
    op.create_table(
        'pricing_rules',
        *_timestamps(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('scope_type', rule_scope, nullable=False, server_default='GLOBAL'),
        sa.Column('organization_id', sa.Uuid(), nullable=True),
        sa.Column('pricebook_item_id', sa.Uuid(), nullable=True),
        sa.Column('rule_type', rule_type, nullable=False),
        sa.Column('value', sa.Integer(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active_from', sa.DateTime(), nullable=False),
        sa.Column('active_to', sa.DateTime(), nullable=True),
        sa.CheckConstraint('value >= 0', name='ck_pricing_rules_value_non_negative'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['pricebook_item_id'], ['pricebook_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_pricing_rules_scope_type'), 'pricing_rules', ['scope_type'])
    op.create_index(op.f('ix_pricing_rules_organization_id'), 'pricing_rules', ['organization_id'])
    op.create_index(op.f('ix_pricing_rules_pricebook_item_id'), 'pricing_rules', ['pricebook_item_id'])
    op.create_index(op.f('ix_pricing_rules_priority'), 'pricing_rules', ['priority'])
    op.create_index(op.f('ix_pricing_rules_active_from'), 'pricing_rules', ['active_from'])

    # 4. Pricing rule conditions (depends on pricing_rules)
    op.create_table(
        'pricing_rule_conditions',
        *_timestamps(),
        sa.Column('pricing_rule_id', sa.Uuid(), nullable=False),
        sa.Column('condition_type', sa.String(length=50), nullable=False),
        sa.Column('operator', sa.String(length=20), nullable=False),
        sa.Column('value', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('group_id', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['pricing_rule_id'], ['pricing_rules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_pricing_rule_conditions_pricing_rule_id'), 'pricing_rule_conditions', ['pricing_rule_id'])

    # 5. Pricing rule usage counters (depends on pricing_rules)
    op.create_table(
        'pricing_rule_usage',
        *_timestamps(),
        sa.Column('pricing_rule_id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=True),
        sa.Column('pricebook_item_id', sa.Uuid(), nullable=True),
        sa.Column('scope_key', sa.String(length=80), nullable=False),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['pricing_rule_id'], ['pricing_rules.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('pricing_rule_id', 'scope_key', name='uq_pricing_rule_usage_scope'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_pricing_rule_usage_pricing_rule_id'), 'pricing_rule_usage', ['pricing_rule_id'])

    # 6. Usage events (depends on organizations)
    op.create_table(
        'usage_events',
        *_timestamps(),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('effective_at', sa.DateTime(), nullable=False),
        sa.Column('related_ids', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.CheckConstraint('quantity >= 1', name='ck_usage_events_quantity_positive'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_usage_events_organization_id'), 'usage_events', ['organization_id'])
    op.create_index(op.f('ix_usage_events_code'), 'usage_events', ['code'])
    op.create_index(op.f('ix_usage_events_effective_at'), 'usage_events', ['effective_at'])
    # Aggregation scans one organization's events over a period
    op.create_index('ix_usage_events_org_effective_at', 'usage_events', ['organization_id', 'effective_at'])

    # 7. Invoices (depends on organizations)
    op.create_table(
        'invoices',
        *_timestamps(),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=True),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('period_key', sa.String(length=120), nullable=True),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='usd'),
        sa.Column('status', invoice_status, nullable=False, server_default='DRAFT'),
        sa.Column('stripe_invoice_id', sa.String(length=255), nullable=True),
        sa.Column('finalized_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('voided_at', sa.DateTime(), nullable=True),
        sa.Column('extra_metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('period_key'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invoices_organization_id'), 'invoices', ['organization_id'])
    op.create_index(op.f('ix_invoices_order_id'), 'invoices', ['order_id'])
    op.create_index(op.f('ix_invoices_status'), 'invoices', ['status'])
    op.create_index(op.f('ix_invoices_stripe_invoice_id'), 'invoices', ['stripe_invoice_id'], unique=True)

    # 8. Invoice items (depends on invoices, pricebook_items, pricing_rules)
    op.create_table(
        'invoice_items',
        *_timestamps(),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('pricebook_item_id', sa.Uuid(), nullable=False),
        sa.Column('pricing_rule_id', sa.Uuid(), nullable=True),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('base_unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Integer(), nullable=True),
        sa.Column('discount_amount_cents', sa.Integer(), nullable=True),
        sa.Column('final_unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('period', sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['pricebook_item_id'], ['pricebook_items.id']),
        sa.ForeignKeyConstraint(['pricing_rule_id'], ['pricing_rules.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_invoice_items_invoice_id'), 'invoice_items', ['invoice_id'])
    op.create_index(op.f('ix_invoice_items_organization_id'), 'invoice_items', ['organization_id'])
    op.create_index(op.f('ix_invoice_items_pricebook_item_id'), 'invoice_items', ['pricebook_item_id'])

    # 9. Payments (depends on organizations, invoices)
    op.create_table(
        'payments',
        *_timestamps(),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='usd'),
        sa.Column('status', payment_status, nullable=False, server_default='PENDING'),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_charge_id', sa.String(length=255), nullable=True),
        sa.Column('receipt_url', sa.String(length=1000), nullable=True),
        sa.Column('failure_message', sa.String(length=1000), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_organization_id'), 'payments', ['organization_id'])
    op.create_index(op.f('ix_payments_invoice_id'), 'payments', ['invoice_id'])
    op.create_index(op.f('ix_payments_status'), 'payments', ['status'])
    op.create_index(op.f('ix_payments_stripe_payment_intent_id'), 'payments', ['stripe_payment_intent_id'])
    op.create_index(op.f('ix_payments_stripe_charge_id'), 'payments', ['stripe_charge_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('payments')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('usage_events')
    op.drop_table('pricing_rule_usage')
    op.drop_table('pricing_rule_conditions')
    op.drop_table('pricing_rules')
    op.drop_table('pricebook_items')
    op.drop_table('organizations')

    op.execute('DROP TYPE IF EXISTS paymentstatus')
    op.execute('DROP TYPE IF EXISTS invoicestatus')
    op.execute('DROP TYPE IF EXISTS ruletype')
    op.execute('DROP TYPE IF EXISTS rulescope')
    op.execute('DROP TYPE IF EXISTS billingstrategy')
    op.execute('DROP TYPE IF EXISTS organizationstatus')

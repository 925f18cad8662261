"""Billing core tables

Revision ID: 20261019_1200_billing_core
Revises:
Create Date: 2026-10-19 12:00:00.000000

This migration creates the billing schema:
- plans: subscription catalog with flat feature columns
- organizations: credit ledger, subscription state, usage counters
- admins: organization administrators
- invoices: subscription and credit-purchase invoices with Paystack fields

Enum columns are stored as VARCHAR(32) holding the enum values.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '20261019_1200_billing_core'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create billing tables."""

    op.create_table(
        'plans',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('billing_cycle', sa.String(32), nullable=False),
        sa.Column('max_participants', sa.Integer(), nullable=False),
        sa.Column('max_events_per_month', sa.Integer(), nullable=False, comment='-1 means unlimited'),
        sa.Column('templates', sa.String(32), nullable=False),
        sa.Column('email_delivery', sa.Boolean(), nullable=False),
        sa.Column('bulk_generation', sa.Boolean(), nullable=False),
        sa.Column('analytics', sa.String(32), nullable=False),
        sa.Column('priority_support', sa.Boolean(), nullable=False),
        sa.Column('api_access', sa.Boolean(), nullable=False),
        sa.Column('team_collaboration', sa.Boolean(), nullable=False),
        sa.Column('custom_branding', sa.Boolean(), nullable=False),
        sa.Column('white_label', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_popular', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_plans'),
        sa.UniqueConstraint('name', name='uq_plans_name'),
    )

    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('plan_type', sa.String(32), nullable=False),
        sa.Column('current_plan_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('credits_available', sa.Integer(), nullable=False),
        sa.Column('credits_used', sa.Integer(), nullable=False),
        sa.Column('credit_rate', sa.Integer(), nullable=False, comment='Price of one credit in Naira'),
        sa.Column('subscription_status', sa.String(32), nullable=False),
        sa.Column('subscription_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subscription_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('auto_renew', sa.Boolean(), nullable=False),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False),
        sa.Column('next_billing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_billing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('usage_period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('month_credentials_issued', sa.Integer(), nullable=False),
        sa.Column('month_events_created', sa.Integer(), nullable=False),
        sa.Column('month_participants_added', sa.Integer(), nullable=False),
        sa.Column('lifetime_credentials_issued', sa.Integer(), nullable=False),
        sa.Column('lifetime_events_created', sa.Integer(), nullable=False),
        sa.Column('lifetime_participants_added', sa.Integer(), nullable=False),
        sa.Column('paystack_customer_id', sa.String(100), nullable=True),
        sa.Column('paystack_subscription_code', sa.String(100), nullable=True),
        sa.Column('paystack_authorization_code', sa.String(100), nullable=True),
        sa.Column('card_last_four', sa.String(4), nullable=True),
        sa.Column('card_type', sa.String(50), nullable=True),
        sa.Column('card_bank', sa.String(100), nullable=True),
        sa.Column('invoice_sequence', sa.Integer(), nullable=False, comment='Last allocated invoice ordinal'),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_organizations'),
        sa.ForeignKeyConstraint(
            ['current_plan_id'], ['plans.id'],
            name='fk_organizations_current_plan_id_plans',
            ondelete='SET NULL',
        ),
        sa.CheckConstraint('credits_available >= 0', name='ck_organizations_credits_available_non_negative'),
        sa.CheckConstraint('credits_used >= 0', name='ck_organizations_credits_used_non_negative'),
    )
    op.create_index('ix_organizations_email', 'organizations', ['email'], unique=True)

    op.create_table(
        'admins',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('organization_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_superuser', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_admins'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_admins_organization_id_organizations',
            ondelete='SET NULL',
        ),
    )
    op.create_index('ix_admins_email', 'admins', ['email'], unique=True)
    op.create_index('ix_admins_organization_id', 'admins', ['organization_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('invoice_number', sa.String(32), nullable=False),
        sa.Column('organization_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('plan_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('credit_quantity', sa.Integer(), nullable=True),
        sa.Column('bonus_credits', sa.Integer(), nullable=True),
        sa.Column('total_credits', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('tax_amount', sa.Integer(), nullable=False),
        sa.Column('discount_amount', sa.Integer(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('issue_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('paid_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('paystack_reference', sa.String(100), nullable=True),
        sa.Column('authorization_url', sa.String(500), nullable=True),
        sa.Column('access_code', sa.String(100), nullable=True),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('channel', sa.String(50), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('fees_kobo', sa.Integer(), nullable=True),
        sa.Column('card_type', sa.String(50), nullable=True),
        sa.Column('last_four_digits', sa.String(4), nullable=True),
        sa.Column('bank', sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_invoices'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_invoices_organization_id_organizations',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['plan_id'], ['plans.id'],
            name='fk_invoices_plan_id_plans',
            ondelete='SET NULL',
        ),
        sa.UniqueConstraint('organization_id', 'invoice_number', name='uq_invoices_organization_number'),
        sa.UniqueConstraint('paystack_reference', name='uq_invoices_paystack_reference'),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'])
    op.create_index('ix_invoices_organization_id', 'invoices', ['organization_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])


def downgrade() -> None:
    """Drop billing tables."""
    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_index('ix_invoices_organization_id', table_name='invoices')
    op.drop_index('ix_invoices_invoice_number', table_name='invoices')
    op.drop_table('invoices')

    op.drop_index('ix_admins_organization_id', table_name='admins')
    op.drop_index('ix_admins_email', table_name='admins')
    op.drop_table('admins')

    op.drop_index('ix_organizations_email', table_name='organizations')
    op.drop_table('organizations')

    op.drop_table('plans')

"""Billing schema: tenants, plans, wallets and ledger, subscriptions, invoices,
allocations, coupons, ticketing read tables, audit trail

Revision ID: 001_billing_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_billing_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _tenant_fk(table: str) -> sa.Column:
    return sa.Column(
        'tenant_id', sa.UUID(),
        sa.ForeignKey('tenants.id', name=op.f(f'fk_{table}_tenant_id_tenants')),
        nullable=False,
    )


def _app_id() -> sa.Column:
    return sa.Column('app_id', sa.String(255), nullable=False, server_default='public')


def upgrade() -> None:
    op.create_table(
        'tenants',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('app_id', sa.String(255), nullable=False, server_default='public'),
        sa.Column('is_pro', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('pro_activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('primary_domain', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='active'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_tenants')),
    )
    op.create_index(op.f('ix_tenants_user_id'), 'tenants', ['user_id'], unique=True)
    op.create_index(op.f('ix_tenants_app_id'), 'tenants', ['app_id'])

    # The platform catalogue owner; system plans hang off this row
    op.execute(
        "INSERT INTO tenants (id, user_id, app_id, is_pro, status) "
        "VALUES ('00000000-0000-0000-0000-000000000000', 'system', 'public', false, 'active')"
    )

    op.create_table(
        'billing_plans',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('billing_plans'),
        _app_id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='INR'),
        sa.Column('billing_cycle', sa.String(50), nullable=False, server_default='monthly'),
        sa.Column('initial_tickets', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('features', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_billing_plans')),
    )
    op.create_index(op.f('ix_billing_plans_tenant_id'), 'billing_plans', ['tenant_id'])
    op.create_index(op.f('ix_billing_plans_app_id'), 'billing_plans', ['app_id'])

    op.create_table(
        'user_wallets',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('user_wallets'),
        _app_id(),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('ticket_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(10), nullable=False, server_default='INR'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_user_wallets')),
        sa.UniqueConstraint('tenant_id', 'user_id', name='uq_user_wallets_tenant_user'),
        sa.CheckConstraint('ticket_balance >= 0', name=op.f('ck_user_wallets_balance_non_negative')),
    )
    op.create_index(op.f('ix_user_wallets_tenant_id'), 'user_wallets', ['tenant_id'])
    op.create_index(op.f('ix_user_wallets_user_id'), 'user_wallets', ['user_id'])
    op.create_index(op.f('ix_user_wallets_app_id'), 'user_wallets', ['app_id'])

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('wallet_transactions'),
        _app_id(),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column(
            'wallet_id', sa.UUID(),
            sa.ForeignKey('user_wallets.id', name=op.f('fk_wallet_transactions_wallet_id_user_wallets')),
            nullable=False,
        ),
        sa.Column('transaction_type', sa.String(50), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='INR'),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('reference_id', sa.String(255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_wallet_transactions')),
    )
    op.create_index(op.f('ix_wallet_transactions_tenant_id'), 'wallet_transactions', ['tenant_id'])
    op.create_index(op.f('ix_wallet_transactions_user_id'), 'wallet_transactions', ['user_id'])
    op.create_index(op.f('ix_wallet_transactions_wallet_id'), 'wallet_transactions', ['wallet_id'])
    op.create_index(op.f('ix_wallet_transactions_transaction_type'), 'wallet_transactions', ['transaction_type'])
    op.create_index(op.f('ix_wallet_transactions_created_at'), 'wallet_transactions', ['created_at'])
    op.create_index(op.f('ix_wallet_transactions_app_id'), 'wallet_transactions', ['app_id'])

    op.create_table(
        'user_subscriptions',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('user_subscriptions'),
        _app_id(),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column(
            'plan_id', sa.UUID(),
            sa.ForeignKey('billing_plans.id', name=op.f('fk_user_subscriptions_plan_id_billing_plans')),
            nullable=False,
        ),
        sa.Column('status', sa.String(50), nullable=False, server_default='active'),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_method_id', sa.String(255), nullable=True),
        sa.Column('external_subscription_id', sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_user_subscriptions')),
    )
    op.create_index(op.f('ix_user_subscriptions_tenant_id'), 'user_subscriptions', ['tenant_id'])
    op.create_index(op.f('ix_user_subscriptions_user_id'), 'user_subscriptions', ['user_id'])
    op.create_index(op.f('ix_user_subscriptions_status'), 'user_subscriptions', ['status'])
    op.create_index(op.f('ix_user_subscriptions_app_id'), 'user_subscriptions', ['app_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('invoices'),
        _app_id(),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('invoice_number', sa.String(255), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='pending'),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(5, 4), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='INR'),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_method', sa.String(100), nullable=True),
        sa.Column('external_payment_id', sa.String(255), nullable=True),
        sa.Column('billing_address', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_invoices')),
        sa.UniqueConstraint('invoice_number', name=op.f('uq_invoices_invoice_number')),
    )
    op.create_index(op.f('ix_invoices_tenant_id'), 'invoices', ['tenant_id'])
    op.create_index(op.f('ix_invoices_user_id'), 'invoices', ['user_id'])
    op.create_index(op.f('ix_invoices_status'), 'invoices', ['status'])
    op.create_index(op.f('ix_invoices_app_id'), 'invoices', ['app_id'])

    op.create_table(
        'invoice_items',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column(
            'invoice_id', sa.UUID(),
            sa.ForeignKey('invoices.id', name=op.f('fk_invoice_items_invoice_id_invoices'), ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('item_type', sa.String(50), nullable=False),
        sa.Column('item_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='INR'),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_invoice_items')),
    )
    op.create_index(op.f('ix_invoice_items_invoice_id'), 'invoice_items', ['invoice_id'])

    op.create_table(
        'tickets',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('tickets'),
        _app_id(),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('currency', sa.String(10), nullable=False, server_default='INR'),
        sa.Column('status', sa.String(50), nullable=False, server_default='draft'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_tickets')),
    )
    op.create_index(op.f('ix_tickets_tenant_id'), 'tickets', ['tenant_id'])
    op.create_index(op.f('ix_tickets_app_id'), 'tickets', ['app_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('orders'),
        _app_id(),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column(
            'ticket_id', sa.UUID(),
            sa.ForeignKey('tickets.id', name=op.f('fk_orders_ticket_id_tickets')),
            nullable=True,
        ),
        sa.Column('order_number', sa.String(255), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='pending'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False, server_default='INR'),
        sa.Column('customer_email', sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_orders')),
        sa.UniqueConstraint('order_number', name=op.f('uq_orders_order_number')),
    )
    op.create_index(op.f('ix_orders_tenant_id'), 'orders', ['tenant_id'])
    op.create_index(op.f('ix_orders_user_id'), 'orders', ['user_id'])
    op.create_index(op.f('ix_orders_ticket_id'), 'orders', ['ticket_id'])
    op.create_index(op.f('ix_orders_status'), 'orders', ['status'])
    op.create_index(op.f('ix_orders_app_id'), 'orders', ['app_id'])

    op.create_table(
        'email_access_grants',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('email_access_grants'),
        _app_id(),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column(
            'ticket_id', sa.UUID(),
            sa.ForeignKey('tickets.id', name=op.f('fk_email_access_grants_ticket_id_tickets')),
            nullable=False,
        ),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='active'),
        sa.Column('granted_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_email_access_grants')),
        sa.UniqueConstraint('ticket_id', 'email', name='uq_email_access_grants_ticket_email'),
    )
    op.create_index(op.f('ix_email_access_grants_tenant_id'), 'email_access_grants', ['tenant_id'])
    op.create_index(op.f('ix_email_access_grants_ticket_id'), 'email_access_grants', ['ticket_id'])
    op.create_index(op.f('ix_email_access_grants_email'), 'email_access_grants', ['email'])
    op.create_index(op.f('ix_email_access_grants_app_id'), 'email_access_grants', ['app_id'])

    op.create_table(
        'ticket_wallet_allocations',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('ticket_wallet_allocations'),
        _app_id(),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column(
            'ticket_id', sa.UUID(),
            sa.ForeignKey('tickets.id', name=op.f('fk_ticket_wallet_allocations_ticket_id_tickets')),
            nullable=False,
        ),
        sa.Column('allocated_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(50), nullable=False, server_default='active'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_ticket_wallet_allocations')),
        sa.UniqueConstraint('tenant_id', 'user_id', 'ticket_id', name='uq_allocations_tenant_user_ticket'),
        sa.CheckConstraint(
            'available_quantity >= 0 AND available_quantity <= allocated_quantity',
            name=op.f('ck_ticket_wallet_allocations_available_bounds'),
        ),
    )
    op.create_index(op.f('ix_ticket_wallet_allocations_tenant_id'), 'ticket_wallet_allocations', ['tenant_id'])
    op.create_index(op.f('ix_ticket_wallet_allocations_user_id'), 'ticket_wallet_allocations', ['user_id'])
    op.create_index(op.f('ix_ticket_wallet_allocations_ticket_id'), 'ticket_wallet_allocations', ['ticket_id'])
    op.create_index(op.f('ix_ticket_wallet_allocations_app_id'), 'ticket_wallet_allocations', ['app_id'])

    op.create_table(
        'coupon_codes',
        sa.Column('id', sa.UUID(), nullable=False),
        _tenant_fk('coupon_codes'),
        _app_id(),
        sa.Column('code', sa.String(100), nullable=False),
        sa.Column('discount_type', sa.String(20), nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('max_discount', sa.Numeric(10, 2), nullable=True),
        sa.Column('min_purchase', sa.Numeric(10, 2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_coupon_codes')),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_coupon_codes_tenant_code'),
    )
    op.create_index(op.f('ix_coupon_codes_tenant_id'), 'coupon_codes', ['tenant_id'])
    op.create_index(op.f('ix_coupon_codes_app_id'), 'coupon_codes', ['app_id'])

    op.create_table(
        'audit_events',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.UUID(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('actor_id', sa.String(255), nullable=True),
        sa.Column('actor_type', sa.String(50), nullable=False, server_default='user'),
        sa.Column('category', sa.String(100), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('resource_type', sa.String(100), nullable=True),
        sa.Column('resource_id', sa.String(255), nullable=True),
        sa.Column('correlation_id', sa.String(255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='success'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_audit_events')),
    )
    op.create_index(op.f('ix_audit_events_tenant_id'), 'audit_events', ['tenant_id'])
    op.create_index(op.f('ix_audit_events_category'), 'audit_events', ['category'])
    op.create_index(op.f('ix_audit_events_action'), 'audit_events', ['action'])
    op.create_index(op.f('ix_audit_events_correlation_id'), 'audit_events', ['correlation_id'])


def downgrade() -> None:
    op.drop_table('audit_events')
    op.drop_table('coupon_codes')
    op.drop_table('ticket_wallet_allocations')
    op.drop_table('email_access_grants')
    op.drop_table('orders')
    op.drop_table('tickets')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('user_subscriptions')
    op.drop_table('wallet_transactions')
    op.drop_table('user_wallets')
    op.drop_table('billing_plans')
    op.drop_table('tenants')

"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(20, 8)


def _now():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now())


def _created():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())


def _company():
    return sa.Column('company_id', sa.Integer(), nullable=False, index=True)


def upgrade():
    # --- authz / tenancy ---
    op.create_table('permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True, index=True),
        sa.Column('service', sa.String(length=32), nullable=False, index=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('description_i18n', sa.JSON(), nullable=True),
        _now(),
    )
    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('description_i18n', sa.JSON(), nullable=True),
        _now(),
    )
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True, index=True),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('locale', sa.String(length=8), nullable=False, server_default='ru'),
        sa.Column('tz', sa.String(length=64), nullable=False, server_default='Europe/Moscow'),
        _now(),
    )
    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )
    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )
    op.create_table('companies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        _created(),
    )
    op.create_table('team_members',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='member'),
        _created(),
        sa.UniqueConstraint('user_id', 'company_id', name='uq_team_member'),
    )
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), nullable=True, index=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False, index=True),
        sa.Column('viewer_admin_user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False, index=True),
        sa.Column('module', sa.String(length=32), nullable=True, index=True),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('perms_snapshot', sa.JSON(), nullable=True),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        _created(),
    )
    op.create_table('company_invites',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=128), nullable=False, index=True),
        sa.Column('company_name', sa.String(length=128), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True)),
        sa.Column('used_by', sa.Integer()),
        sa.Column('company_id', sa.Integer()),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )

    # --- contacts ---
    op.create_table('contacts',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('first_name', sa.String(length=64)),
        sa.Column('last_name', sa.String(length=64)),
        sa.Column('nickname', sa.String(length=64)),
        sa.Column('organization', sa.String(length=128)),
        sa.Column('display_name', sa.String(length=255), nullable=False, index=True),
        sa.Column('email', sa.String(length=128)),
        sa.Column('extra_phones', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text()),
        sa.Column('source_module', sa.String(length=32)),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )
    op.create_table('contact_channels',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('contact_id', sa.Integer(), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='phone'),
        sa.Column('value', sa.String(length=64), nullable=False),
        sa.Column('normalized', sa.String(length=64), nullable=False, index=True),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.text('0')),
    )
    op.create_table('contact_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('contact_id', sa.Integer(), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('module', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=64)),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        _created(),
    )

    # --- cash / fx ---
    op.create_table('cashbox_locations',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        _now(),
    )
    op.create_table('cashboxes',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('currency', sa.String(length=8), nullable=False, index=True),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('initial_balance', MONEY, nullable=False, server_default='0'),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('cashbox_locations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('holder_name', sa.String(length=128)),
        sa.Column('holder_phone', sa.String(length=32)),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )
    op.create_table('cashbox_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('balance_after', MONEY, nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, index=True),
        sa.Column('description', sa.Text()),
        sa.Column('reference_id', sa.String(length=64), index=True),
        sa.Column('created_by', sa.Integer()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        _now(),
    )
    op.create_table('currency_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('from_currency', sa.String(length=8), nullable=False, index=True),
        sa.Column('to_currency', sa.String(length=8), nullable=False, index=True),
        sa.Column('rate', MONEY, nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='api'),
        sa.Column('valid_from', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )
    op.create_table('system_currency_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=8), nullable=False, unique=True),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('symbol', sa.String(length=8)),
        sa.Column('rate_to_rub', MONEY, nullable=False, server_default='1'),
        sa.Column('rate_to_usd', MONEY, nullable=False, server_default='1'),
        sa.Column('prev_rate_to_rub', MONEY),
        sa.Column('change_24h', sa.Numeric(12, 4)),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        _now(),
    )
    op.create_table('currency_rate_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=8), nullable=False, index=True),
        sa.Column('rate_to_rub', MONEY, nullable=False),
        sa.Column('rate_to_usd', MONEY),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='manual'),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False, index=True),
    )
    op.create_table('exchange_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('from_cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id'), nullable=False),
        sa.Column('to_cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id'), nullable=False),
        sa.Column('sent_amount', MONEY, nullable=False),
        sa.Column('sent_currency', sa.String(length=8), nullable=False),
        sa.Column('received_amount', MONEY, nullable=False),
        sa.Column('received_currency', sa.String(length=8), nullable=False),
        sa.Column('rate', MONEY, nullable=False),
        sa.Column('fee_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('fee_currency', sa.String(length=8)),
        sa.Column('description', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )

    # --- client exchange ---
    op.create_table('client_exchange_operations',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('operation_number', sa.String(length=32), nullable=False, server_default='', index=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed', index=True),
        sa.Column('base_currency', sa.String(length=8), nullable=False),
        sa.Column('total_client_gives_base', MONEY, nullable=False, server_default='0'),
        sa.Column('total_client_receives_base', MONEY, nullable=False, server_default='0'),
        sa.Column('profit_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('profit_currency', sa.String(length=8), nullable=False),
        sa.Column('client_name', sa.String(length=255)),
        sa.Column('client_phone', sa.String(length=32)),
        sa.Column('contact_id', sa.Integer(), sa.ForeignKey('contacts.id'), nullable=True),
        sa.Column('beneficiary_contact_id', sa.Integer(), sa.ForeignKey('contacts.id'), nullable=True),
        sa.Column('handover_contact_id', sa.Integer(), sa.ForeignKey('contacts.id'), nullable=True),
        sa.Column('followup_at', sa.DateTime(timezone=True)),
        sa.Column('followup_note', sa.Text()),
        sa.Column('rates_snapshot', sa.JSON(), nullable=True),
        sa.Column('visibility_mode', sa.String(length=16), nullable=False, server_default='public'),
        sa.Column('allowed_role_codes', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.Integer()),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('cancelled_at', sa.DateTime(timezone=True)),
        sa.Column('cancelled_by', sa.Integer()),
        sa.Column('cancel_reason', sa.Text()),
        _now(),
    )
    op.create_table('client_exchange_details',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('operation_id', sa.Integer(), sa.ForeignKey('client_exchange_operations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('direction', sa.String(length=8), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('applied_rate', MONEY),
        sa.Column('market_rate', MONEY),
        sa.Column('amount_in_base', MONEY),
        sa.Column('cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id'), nullable=False),
    )
    op.create_table('client_exchange_participants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('operation_id', sa.Integer(), sa.ForeignKey('client_exchange_operations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('contact_id', sa.Integer(), sa.ForeignKey('contacts.id'), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('note', sa.Text()),
    )

    # --- hr ---
    op.create_table('employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('full_name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('email', sa.String(length=128)),
        sa.Column('position', sa.String(length=64), index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('hired_at', sa.Date()),
        sa.Column('module_access', sa.JSON(), nullable=True),
        sa.Column('modules', sa.JSON(), nullable=True),
        sa.Column('module_visibility', sa.JSON(), nullable=True),
        sa.Column('salary_balance', MONEY, nullable=False, server_default='0'),
        _now(),
    )
    op.create_table('employee_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('employee_id', 'role_id', name='uq_employee_role'),
    )
    op.create_table('position_default_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('position', sa.String(length=64), nullable=False, index=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
    )
    op.create_table('employee_invites',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('email', sa.String(length=128), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='sent'),
        sa.Column('token', sa.String(length=64), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        _created(),
    )
    op.create_table('salary_operations',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('operation_type', sa.String(length=16), nullable=False, index=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('balance_after', MONEY, nullable=False),
        sa.Column('cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id')),
        sa.Column('description', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _created(),
    )

    # --- auto / stock ---
    op.create_table('cars',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('vin', sa.String(length=32), index=True),
        sa.Column('brand', sa.String(length=64), nullable=False),
        sa.Column('model', sa.String(length=64), nullable=False),
        sa.Column('year', sa.Integer()),
        sa.Column('color', sa.String(length=32)),
        sa.Column('mileage', sa.Integer()),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='IN_STOCK', index=True),
        sa.Column('purchase_price', MONEY, nullable=False, server_default='0'),
        sa.Column('purchase_currency', sa.String(length=8), nullable=False, server_default='USD'),
        sa.Column('cost_price', MONEY, nullable=False, server_default='0'),
        sa.Column('list_price', MONEY),
        sa.Column('notes', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )
    op.create_table('stock_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('category', sa.String(length=64)),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('quantity', MONEY, nullable=False, server_default='0'),
        sa.Column('min_quantity', MONEY, nullable=False, server_default='0'),
        sa.Column('avg_purchase_price', MONEY, nullable=False, server_default='0'),
        sa.Column('sale_price', MONEY),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='RUB'),
        sa.Column('location', sa.String(length=128)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        _now(),
        sa.UniqueConstraint('company_id', 'sku', name='uq_stock_item_sku'),
    )
    op.create_table('stock_batches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('stock_items.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('remaining_quantity', MONEY, nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('batch_date', sa.Date(), nullable=False),
        sa.Column('supplier', sa.String(length=128)),
    )
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('stock_items.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('movement_type', sa.String(length=16), nullable=False, index=True),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('unit_price', MONEY),
        sa.Column('total_cost', MONEY),
        sa.Column('cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id')),
        sa.Column('car_id', sa.Integer(), sa.ForeignKey('cars.id')),
        sa.Column('reason', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )
    op.create_table('car_expenses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('car_id', sa.Integer(), sa.ForeignKey('cars.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('expense_type', sa.String(length=32), nullable=False, server_default='OTHER'),
        sa.Column('source', sa.String(length=8), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id')),
        sa.Column('stock_item_id', sa.Integer(), sa.ForeignKey('stock_items.id')),
        sa.Column('quantity', MONEY),
        sa.Column('description', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _created(),
    )
    op.create_table('car_timeline',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('car_id', sa.Integer(), sa.ForeignKey('cars.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.Integer()),
        _created(),
    )
    op.create_table('auto_deals',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('deal_number', sa.String(length=32), nullable=False, server_default='', index=True),
        sa.Column('car_id', sa.Integer(), sa.ForeignKey('cars.id'), nullable=False, index=True),
        sa.Column('buyer_contact_id', sa.Integer(), sa.ForeignKey('contacts.id')),
        sa.Column('deal_type', sa.String(length=24), nullable=False, server_default='CASH_SALE'),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='NEW', index=True),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('paid_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('margin', MONEY),
        sa.Column('description', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )
    op.create_table('auto_deal_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('deal_id', sa.Integer(), sa.ForeignKey('auto_deals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('payment_type', sa.String(length=8), nullable=False, server_default='PAYMENT'),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('rate', MONEY, nullable=False, server_default='1'),
        sa.Column('amount_in_deal_currency', MONEY, nullable=False),
        sa.Column('cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id')),
        sa.Column('description', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _created(),
    )

    # --- assets ---
    op.create_table('assets',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('asset_type', sa.String(length=32), nullable=False, server_default='other', index=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active', index=True),
        sa.Column('owner_contact_id', sa.Integer(), sa.ForeignKey('contacts.id')),
        sa.Column('location', sa.String(length=128)),
        sa.Column('description', sa.Text()),
        sa.Column('units', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('pledged_units', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )
    op.create_table('asset_valuations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('valuation_amount', MONEY, nullable=False),
        sa.Column('valuation_currency', sa.String(length=8), nullable=False),
        sa.Column('base_amount', MONEY, nullable=False),
        sa.Column('base_currency', sa.String(length=8), nullable=False, server_default='USD'),
        sa.Column('fx_rate', MONEY, nullable=False, server_default='1'),
        sa.Column('valued_at', sa.Date(), nullable=False),
        sa.Column('note', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _created(),
    )
    op.create_table('asset_moves',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('from_location', sa.String(length=128)),
        sa.Column('to_location', sa.String(length=128), nullable=False),
        sa.Column('moved_at', sa.Date(), nullable=False),
        sa.Column('note', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _created(),
    )

    # --- finance ---
    op.create_table('core_deals',
        sa.Column('id', sa.Integer(), primary_key=True),
        _company(),
        sa.Column('deal_number', sa.String(length=32), nullable=False, server_default='', index=True),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='finance'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='NEW', index=True),
        sa.Column('contact_id', sa.Integer(), sa.ForeignKey('contacts.id')),
        sa.Column('created_by', sa.Integer()),
        _now(),
    )
    op.create_table('finance_deals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('core_deal_id', sa.Integer(), sa.ForeignKey('core_deals.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('principal_amount', MONEY, nullable=False),
        sa.Column('contract_currency', sa.String(length=8), nullable=False),
        sa.Column('term_months', sa.Integer(), nullable=False),
        sa.Column('rate_percent', MONEY, nullable=False, server_default='0'),
        sa.Column('schedule_type', sa.String(length=16), nullable=False, server_default='annuity'),
        sa.Column('start_date', sa.Date(), nullable=False),
    )
    op.create_table('finance_payment_schedule',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('finance_deal_id', sa.Integer(), sa.ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('period', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('principal_due', MONEY, nullable=False),
        sa.Column('interest_due', MONEY, nullable=False),
        sa.Column('total_due', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PLANNED'),
    )
    op.create_table('finance_pause_periods',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('finance_deal_id', sa.Integer(), sa.ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.Text()),
        sa.Column('created_by', sa.Integer()),
    )
    op.create_table('finance_ledger',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('finance_deal_id', sa.Integer(), sa.ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('cashbox_id', sa.Integer(), sa.ForeignKey('cashboxes.id')),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id')),
        sa.Column('note', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _created(),
    )
    op.create_table('finance_participants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('finance_deal_id', sa.Integer(), sa.ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('contact_id', sa.Integer(), sa.ForeignKey('contacts.id')),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id')),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('note', sa.Text()),
    )
    op.create_table('finance_collateral_links',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('finance_deal_id', sa.Integer(), sa.ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id'), nullable=False, index=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active', index=True),
        sa.Column('pledged_units', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('note', sa.Text()),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('released_at', sa.DateTime(timezone=True)),
    )
    op.create_table('finance_collateral_chain',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('finance_deal_id', sa.Integer(), sa.ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('old_link_id', sa.Integer(), sa.ForeignKey('finance_collateral_links.id'), nullable=False),
        sa.Column('new_link_id', sa.Integer(), sa.ForeignKey('finance_collateral_links.id'), nullable=False),
        sa.Column('reason', sa.Text()),
        sa.Column('created_by', sa.Integer()),
        _created(),
    )


TABLES = (
    'finance_collateral_chain', 'finance_collateral_links', 'finance_participants', 'finance_ledger',
    'finance_pause_periods', 'finance_payment_schedule', 'finance_deals', 'core_deals',
    'asset_moves', 'asset_valuations', 'assets',
    'auto_deal_payments', 'auto_deals', 'car_timeline', 'car_expenses', 'stock_movements', 'stock_batches',
    'stock_items', 'cars',
    'salary_operations', 'employee_invites', 'position_default_roles', 'employee_roles', 'employees',
    'client_exchange_participants', 'client_exchange_details', 'client_exchange_operations',
    'exchange_logs', 'currency_rate_history', 'system_currency_rates', 'currency_rates',
    'cashbox_transactions', 'cashboxes', 'cashbox_locations',
    'contact_events', 'contact_channels', 'contacts',
    'company_invites', 'audit_logs', 'team_members', 'companies', 'user_roles', 'role_permissions',
    'users', 'roles', 'permissions',
)


def downgrade():
    for name in TABLES:
        op.drop_table(name)

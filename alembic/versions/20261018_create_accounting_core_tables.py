"""Create accounting core tables.

Revision ID: create_accounting_core
Revises:
Create Date: 2026-10-18

Tables:
- banks, windows, sellers (hierarchy + commission policy documents)
- draws, tickets, bet_lines (sales source tables)
- account_statements, account_payments (daily ledger)
- monthly_closing_balances (audit recomputation, nil-UUID keyed upsert)
- settlement_config (singleton)
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision: str = 'create_accounting_core'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column():
    return sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _timestamp(name: str):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()'))


def _money(name: str, nullable: bool = False):
    return sa.Column(name, sa.Numeric(15, 2), nullable=nullable, server_default='0')


def upgrade() -> None:
    """Create accounting core tables."""

    conn = op.get_bind()
    inspector = sa.inspect(conn)
    if 'account_statements' in inspector.get_table_names():
        print("Accounting core tables already exist, skipping...")
        return

    # ==================== Hierarchy ====================
    op.create_table(
        'banks',
        _id_column(),
        sa.Column('code', sa.String(30), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('commission_policy', JSONB, nullable=True),
        _timestamp('created_at'),
    )
    op.create_index('ix_banks_is_active', 'banks', ['is_active'])

    op.create_table(
        'windows',
        _id_column(),
        sa.Column('bank_id', UUID(as_uuid=True), sa.ForeignKey('banks.id'), nullable=False),
        sa.Column('code', sa.String(30), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('commission_policy', JSONB, nullable=True),
        _timestamp('created_at'),
    )
    op.create_index('ix_windows_bank_id', 'windows', ['bank_id'])
    op.create_index('ix_windows_is_active', 'windows', ['is_active'])

    op.create_table(
        'sellers',
        _id_column(),
        sa.Column('window_id', UUID(as_uuid=True), sa.ForeignKey('windows.id'), nullable=True),
        sa.Column('code', sa.String(30), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('commission_policy', JSONB, nullable=True),
        _timestamp('created_at'),
    )
    op.create_index('ix_sellers_window_id', 'sellers', ['window_id'])
    op.create_index('ix_sellers_is_active', 'sellers', ['is_active'])

    # ==================== Sales source tables ====================
    op.create_table(
        'draws',
        _id_column(),
        sa.Column('lottery_id', UUID(as_uuid=True), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='SCHEDULED'),
        sa.Column('evaluated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_draws_lottery_id', 'draws', ['lottery_id'])
    op.create_index('ix_draws_status', 'draws', ['status'])

    op.create_table(
        'tickets',
        _id_column(),
        sa.Column('draw_id', UUID(as_uuid=True), sa.ForeignKey('draws.id'), nullable=False),
        sa.Column('lottery_id', UUID(as_uuid=True), nullable=False),
        sa.Column('bank_id', UUID(as_uuid=True), sa.ForeignKey('banks.id'), nullable=False),
        sa.Column('window_id', UUID(as_uuid=True), sa.ForeignKey('windows.id'), nullable=False),
        sa.Column('seller_id', UUID(as_uuid=True), sa.ForeignKey('sellers.id'), nullable=True),
        sa.Column('business_date', sa.Date, nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='ACTIVE'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _money('total_amount'),
        _money('total_payout'),
        _money('total_commission'),
        _timestamp('created_at'),
    )
    op.create_index('ix_tickets_draw_id', 'tickets', ['draw_id'])
    op.create_index('ix_tickets_bank_id', 'tickets', ['bank_id'])
    op.create_index('ix_tickets_business_date_seller', 'tickets', ['business_date', 'seller_id'])
    op.create_index('ix_tickets_business_date_window', 'tickets', ['business_date', 'window_id'])

    op.create_table(
        'bet_lines',
        _id_column(),
        sa.Column('ticket_id', UUID(as_uuid=True), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('bet_type', sa.String(50), nullable=False, server_default='NUMERO'),
        sa.Column('number', sa.String(10), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('final_multiplier_x', sa.Numeric(15, 2), nullable=True),
        sa.Column('is_excluded', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('commission_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('commission_amount'),
        sa.Column('commission_origin', sa.String(50), nullable=True),
        sa.Column('commission_rule_id', sa.String(100), nullable=True),
        sa.Column('window_commission_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('window_commission_amount'),
        sa.Column('window_commission_origin', sa.String(50), nullable=True),
        sa.Column('window_commission_rule_id', sa.String(100), nullable=True),
    )
    op.create_index('ix_bet_lines_ticket_id', 'bet_lines', ['ticket_id'])

    # ==================== Ledger ====================
    op.create_table(
        'account_statements',
        _id_column(),
        sa.Column('statement_date', sa.Date, nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('dimension', sa.String(50), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('bank_id', UUID(as_uuid=True), sa.ForeignKey('banks.id'), nullable=True),
        sa.Column('window_id', UUID(as_uuid=True), sa.ForeignKey('windows.id'), nullable=True),
        sa.Column('seller_id', UUID(as_uuid=True), sa.ForeignKey('sellers.id'), nullable=True),
        sa.Column('ticket_count', sa.Integer, nullable=False, server_default='0'),
        _money('total_sales'),
        _money('total_payouts'),
        _money('seller_commission'),
        _money('window_commission'),
        _money('balance'),
        _money('total_paid'),
        _money('total_collected'),
        _money('remaining_balance'),
        _money('accumulated_balance'),
        sa.Column('is_settled', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('can_edit', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('settled_by', sa.String(100), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.UniqueConstraint('statement_date', 'dimension', 'entity_id', name='uq_account_statement_day_entity'),
    )
    op.create_index('ix_account_statements_month', 'account_statements', ['month'])
    op.create_index('ix_account_statements_settle_queue', 'account_statements', ['is_settled', 'statement_date'])
    op.create_index(
        'ix_account_statements_entity_date', 'account_statements', ['dimension', 'entity_id', 'statement_date']
    )

    op.create_table(
        'account_payments',
        _id_column(),
        sa.Column(
            'account_statement_id', UUID(as_uuid=True), sa.ForeignKey('account_statements.id'), nullable=False
        ),
        sa.Column('payment_date', sa.Date, nullable=False),
        sa.Column('dimension', sa.String(50), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('bank_id', UUID(as_uuid=True), sa.ForeignKey('banks.id'), nullable=True),
        sa.Column('window_id', UUID(as_uuid=True), sa.ForeignKey('windows.id'), nullable=True),
        sa.Column('seller_id', UUID(as_uuid=True), sa.ForeignKey('sellers.id'), nullable=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('is_reversed', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('reversed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reversed_by', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        _timestamp('created_at'),
    )
    op.create_index('ix_account_payments_account_statement_id', 'account_payments', ['account_statement_id'])
    op.create_index('ix_account_payments_entity_date', 'account_payments', ['dimension', 'entity_id', 'payment_date'])

    op.create_table(
        'monthly_closing_balances',
        _id_column(),
        sa.Column('closing_month', sa.String(7), nullable=False),
        sa.Column('dimension', sa.String(50), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('bank_id', UUID(as_uuid=True), sa.ForeignKey('banks.id'), nullable=True),
        sa.Column('window_id', UUID(as_uuid=True), sa.ForeignKey('windows.id'), nullable=True),
        sa.Column('seller_id', UUID(as_uuid=True), sa.ForeignKey('sellers.id'), nullable=True),
        _money('closing_balance'),
        _money('total_sales'),
        _money('total_payouts'),
        _money('total_commission'),
        _money('total_paid'),
        _money('total_collected'),
        sa.Column('ticket_count', sa.Integer, nullable=False, server_default='0'),
        _timestamp('closing_date'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.UniqueConstraint('closing_month', 'dimension', 'entity_id', name='uq_monthly_closing_entity'),
    )
    op.create_index('ix_monthly_closing_balances_closing_month', 'monthly_closing_balances', ['closing_month'])
    op.create_index('ix_monthly_closing_balances_closing_date', 'monthly_closing_balances', ['closing_date'])
    op.create_index('ix_monthly_closing_dimension_entity', 'monthly_closing_balances', ['dimension', 'entity_id'])

    op.create_table(
        'settlement_config',
        _id_column(),
        sa.Column('enabled', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('settlement_age_days', sa.Integer, nullable=False, server_default='7'),
        sa.Column('batch_size', sa.Integer, nullable=False, server_default='1000'),
        sa.Column('cron_schedule', sa.String(100), nullable=True),
        sa.Column('last_execution', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_settled_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_skipped_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error_message', sa.Text, nullable=True),
        sa.Column('updated_by', sa.String(100), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )

    print("Created accounting core tables")


def downgrade() -> None:
    """Drop accounting core tables."""
    for table in (
        'settlement_config',
        'monthly_closing_balances',
        'account_payments',
        'account_statements',
        'bet_lines',
        'tickets',
        'draws',
        'sellers',
        'windows',
        'banks',
    ):
        op.drop_table(table)

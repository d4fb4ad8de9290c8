"""Initial schema: users, shifts, sales, commissions and the bank ledger

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration creates:
1. Users and bearer session tokens
2. Initial balance and bank ledger entries (single active initial balance)
3. Shifts (single OPEN shift) and their expenses, card vouchers, bank
   transfers and deposits
4. Doctors, sales, sale lines and commission payments
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _shift_child_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('recorded_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['recorded_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    ]


def upgrade():
    # ==========================================================================
    # 1. IDENTITY
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'], unique=False)
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'], unique=False)
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. SHIFTS
    # ==========================================================================
    op.create_table('shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('operator_user_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('opened_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('opening_bills', sa.JSON(), nullable=False),
        sa.Column('opening_coins', sa.JSON(), nullable=False),
        sa.Column('opening_cash_cents', sa.Integer(), nullable=False),
        sa.Column('closing_bills', sa.JSON(), nullable=True),
        sa.Column('closing_coins', sa.JSON(), nullable=True),
        sa.Column('closing_cash_cents', sa.Integer(), nullable=True),
        sa.Column('sales_count', sa.Integer(), nullable=True),
        sa.Column('total_sales_cents', sa.Integer(), nullable=True),
        sa.Column('cash_sales_cents', sa.Integer(), nullable=True),
        sa.Column('card_sales_cents', sa.Integer(), nullable=True),
        sa.Column('transfer_sales_cents', sa.Integer(), nullable=True),
        sa.Column('deposit_sales_cents', sa.Integer(), nullable=True),
        sa.Column('expense_total_cents', sa.Integer(), nullable=True),
        sa.Column('commission_payout_cents', sa.Integer(), nullable=True),
        sa.Column('voucher_total_cents', sa.Integer(), nullable=True),
        sa.Column('transfer_total_cents', sa.Integer(), nullable=True),
        sa.Column('deposit_total_cents', sa.Integer(), nullable=True),
        sa.Column('tax_cash_cents', sa.Integer(), nullable=True),
        sa.Column('tax_card_cents', sa.Integer(), nullable=True),
        sa.Column('tax_transfer_cents', sa.Integer(), nullable=True),
        sa.Column('tax_deposit_cents', sa.Integer(), nullable=True),
        sa.Column('net_sales_cents', sa.Integer(), nullable=True),
        sa.Column('amount_to_deposit_cents', sa.Integer(), nullable=True),
        sa.Column('expected_cash_cents', sa.Integer(), nullable=True),
        sa.Column('cash_discrepancy_cents', sa.Integer(), nullable=True),
        sa.Column('voucher_discrepancy_cents', sa.Integer(), nullable=True),
        sa.Column('transfer_discrepancy_cents', sa.Integer(), nullable=True),
        sa.Column('requires_authorization', sa.Boolean(), nullable=False),
        sa.Column('authorized_by_user_id', sa.Integer(), nullable=True),
        sa.Column('authorization_note', sa.Text(), nullable=True),
        sa.Column('authorized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['operator_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['closed_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['authorized_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_shifts_operator_user_id', 'shifts', ['operator_user_id'], unique=False)
    op.create_index('ix_shifts_status', 'shifts', ['status'], unique=False)
    op.create_index('ix_shifts_opened_at', 'shifts', ['opened_at'], unique=False)
    # At most one OPEN shift system-wide
    op.create_index(
        'uq_shifts_single_open', 'shifts', ['status'], unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    # ==========================================================================
    # 3. SALES AND COMMISSIONS
    # ==========================================================================
    op.create_table('doctors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_doctors_is_active', 'doctors', ['is_active'], unique=False)

    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=128), nullable=False),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('cash_cents', sa.Integer(), nullable=False),
        sa.Column('card_cents', sa.Integer(), nullable=False),
        sa.Column('transfer_cents', sa.Integer(), nullable=False),
        sa.Column('deposit_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['voided_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sales_shift_id', 'sales', ['shift_id'], unique=False)
    op.create_index('ix_sales_invoice_number', 'sales', ['invoice_number'], unique=False)
    op.create_index('ix_sales_sale_date', 'sales', ['sale_date'], unique=False)
    op.create_index('ix_sales_status', 'sales', ['status'], unique=False)
    op.create_index('ix_sales_shift_status', 'sales', ['shift_id', 'status'], unique=False)

    op.create_table('commission_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('line_count', sa.Integer(), nullable=False),
        sa.Column('sale_count', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('overrode_existing', sa.Boolean(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('paid_by_user_id', sa.Integer(), nullable=False),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id']),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['paid_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['voided_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_commission_payments_doctor_id', 'commission_payments', ['doctor_id'], unique=False)
    op.create_index('ix_commission_payments_shift_id', 'commission_payments', ['shift_id'], unique=False)
    op.create_index('ix_commission_payments_voided_at', 'commission_payments', ['voided_at'], unique=False)
    op.create_index(
        'ix_commission_payments_doctor_period', 'commission_payments',
        ['doctor_id', 'period_start', 'period_end'], unique=False,
    )

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('product_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=True),
        sa.Column('commission_rate_bps', sa.Integer(), nullable=False),
        sa.Column('commission_cents', sa.Integer(), nullable=False),
        sa.Column('settlement_state', sa.String(length=16), nullable=False),
        sa.Column('commission_payment_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id']),
        sa.ForeignKeyConstraint(['commission_payment_id'], ['commission_payments.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'], unique=False)
    op.create_index('ix_sale_lines_doctor_id', 'sale_lines', ['doctor_id'], unique=False)
    op.create_index('ix_sale_lines_settlement_state', 'sale_lines', ['settlement_state'], unique=False)
    op.create_index('ix_sale_lines_commission_payment_id', 'sale_lines', ['commission_payment_id'], unique=False)
    op.create_index('ix_sale_lines_doctor_state', 'sale_lines', ['doctor_id', 'settlement_state'], unique=False)

    # ==========================================================================
    # 4. SHIFT CHILD RECORDS
    # ==========================================================================
    op.create_table('expenses',
        *_shift_child_columns(),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('payee', sa.String(length=128), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_expenses_shift_id', 'expenses', ['shift_id'], unique=False)

    op.create_table('card_vouchers',
        *_shift_child_columns(),
        sa.Column('voucher_number', sa.String(length=64), nullable=False),
        sa.Column('payer_name', sa.String(length=128), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.UniqueConstraint('shift_id', 'voucher_number', name='uq_card_vouchers_shift_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_card_vouchers_shift_id', 'card_vouchers', ['shift_id'], unique=False)

    op.create_table('bank_transfers',
        *_shift_child_columns(),
        sa.Column('slip_number', sa.String(length=64), nullable=False),
        sa.Column('payer_name', sa.String(length=128), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.UniqueConstraint('shift_id', 'slip_number', name='uq_bank_transfers_shift_slip'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_bank_transfers_shift_id', 'bank_transfers', ['shift_id'], unique=False)

    op.create_table('deposits',
        *_shift_child_columns(),
        sa.Column('slip_number', sa.String(length=64), nullable=False),
        sa.Column('payer_name', sa.String(length=128), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.UniqueConstraint('shift_id', 'slip_number', name='uq_deposits_shift_slip'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_deposits_shift_id', 'deposits', ['shift_id'], unique=False)

    # ==========================================================================
    # 5. BANK LEDGER
    # ==========================================================================
    op.create_table('initial_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('registered_by_user_id', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['registered_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    # At most one active initial balance
    op.create_index(
        'uq_initial_balances_single_active', 'initial_balances', ['is_active'], unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table('ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('payee', sa.String(length=128), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('classification', sa.String(length=64), nullable=True),
        sa.Column('direction', sa.String(length=16), nullable=False),
        sa.Column('income_cents', sa.Integer(), nullable=False),
        sa.Column('expense_cents', sa.Integer(), nullable=False),
        sa.Column('running_balance_cents', sa.Integer(), nullable=False),
        sa.Column('check_number', sa.String(length=64), nullable=True),
        sa.Column('deposit_number', sa.String(length=64), nullable=True),
        sa.Column('source_key', sa.String(length=64), nullable=True),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('recorded_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            '(income_cents > 0 AND expense_cents = 0) OR (expense_cents > 0 AND income_cents = 0)',
            name='ck_ledger_entries_single_side',
        ),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.ForeignKeyConstraint(['recorded_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_key'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_ledger_entries_entry_date', 'ledger_entries', ['entry_date'], unique=False)
    op.create_index('ix_ledger_entries_classification', 'ledger_entries', ['classification'], unique=False)
    op.create_index('ix_ledger_entries_shift_id', 'ledger_entries', ['shift_id'], unique=False)
    op.create_index('ix_ledger_entries_date_id', 'ledger_entries', ['entry_date', 'id'], unique=False)


def downgrade():
    op.drop_table('ledger_entries')
    op.drop_index('uq_initial_balances_single_active', table_name='initial_balances')
    op.drop_table('initial_balances')
    op.drop_table('deposits')
    op.drop_table('bank_transfers')
    op.drop_table('card_vouchers')
    op.drop_table('expenses')
    op.drop_table('sale_lines')
    op.drop_table('commission_payments')
    op.drop_table('sales')
    op.drop_table('doctors')
    op.drop_index('uq_shifts_single_open', table_name='shifts')
    op.drop_table('shifts')
    op.drop_table('session_tokens')
    op.drop_table('users')

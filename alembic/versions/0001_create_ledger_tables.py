"""create ledger tables

Revision ID: 0001_create_ledger_tables
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0001_create_ledger_tables'
down_revision = None
branch_labels = None
depends_on = None


LOAN_STATUS = sa.Enum('active', 'closed', 'defaulted', name='loanstatus', native_enum=False)
PAYMENT_STATUS = sa.Enum('pending', 'approved', 'rejected', name='paymentstatus', native_enum=False)


def upgrade():
    op.create_table(
        'lender_profile',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('upi_id', sa.String(100), nullable=False),
        sa.Column('upi_qr_code_url', sa.String(500), nullable=False),
        sa.Column('total_amount_lent', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('active_loans_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_lender_profile_phone_number', 'lender_profile', ['phone_number'], unique=True)

    op.create_table(
        'borrower_profile',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('credit_score', sa.Integer(), nullable=False, server_default='500'),
        sa.Column('total_borrowed', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_borrower_profile_phone_number', 'borrower_profile', ['phone_number'], unique=True)

    op.create_table(
        'loan',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('loan_id', sa.String(32), nullable=False),
        sa.Column('borrower_id', sa.Uuid(), sa.ForeignKey('borrower_profile.id'), nullable=False),
        sa.Column('lender_id', sa.Uuid(), sa.ForeignKey('lender_profile.id'), nullable=False),
        sa.Column('principal_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_days', sa.Integer(), nullable=False),
        sa.Column('emi_per_day', sa.Numeric(12, 2), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', LOAN_STATUS, nullable=False, server_default='active'),
        sa.Column('total_amount_repaid', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('remaining_balance', sa.Numeric(12, 2), nullable=False),
        sa.Column('next_due_date', sa.Date(), nullable=False),
        sa.Column('days_overdue', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('admin_notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_loan_loan_id', 'loan', ['loan_id'], unique=True)
    op.create_index('ix_loan_borrower_id', 'loan', ['borrower_id'])
    op.create_index('ix_loan_lender_id', 'loan', ['lender_id'])
    op.create_index('idx_loan_lender_status', 'loan', ['lender_id', 'status'])
    op.create_index('idx_loan_status_next_due', 'loan', ['status', 'next_due_date'])
    # One active loan per borrower
    op.create_index(
        'uq_loan_borrower_active', 'loan', ['borrower_id'], unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        'payment',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('loan_id', sa.Uuid(), sa.ForeignKey('loan.id'), nullable=False),
        sa.Column('borrower_id', sa.Uuid(), sa.ForeignKey('borrower_profile.id'), nullable=False),
        sa.Column('lender_id', sa.Uuid(), sa.ForeignKey('lender_profile.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('for_days', sa.Integer(), nullable=False),
        sa.Column('screenshot_url', sa.String(500), nullable=False),
        sa.Column('utr_number', sa.String(100), nullable=True),
        sa.Column('status', PAYMENT_STATUS, nullable=False, server_default='pending'),
        sa.Column('payment_date', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('admin_approval_date', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.Uuid(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
    )
    op.create_index('ix_payment_loan_id', 'payment', ['loan_id'])
    op.create_index('ix_payment_borrower_id', 'payment', ['borrower_id'])
    op.create_index('ix_payment_lender_id', 'payment', ['lender_id'])
    op.create_index('idx_payment_loan_status', 'payment', ['loan_id', 'status'])

    op.create_table(
        'loan_id_sequence',
        sa.Column('day', sa.Date(), primary_key=True),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade():
    op.drop_table('loan_id_sequence')
    op.drop_table('payment')
    op.drop_table('loan')
    op.drop_table('borrower_profile')
    op.drop_table('lender_profile')

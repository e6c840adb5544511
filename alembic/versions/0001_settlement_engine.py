"""Create payment, wallet and settlement tables.

Revision ID: 0001_settlement_engine
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_settlement_engine'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=True, unique=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(32), nullable=False, server_default='student', index=True),
        sa.Column('referral_code', sa.String(16), nullable=True, unique=True, index=True),
        sa.Column('total_referrals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tier', sa.String(10), nullable=False, server_default='tier1'),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False, server_default='1'),
        *_timestamps(),
    )

    op.create_table(
        'payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', sa.String(64), nullable=False, unique=True),
        sa.Column('payment_id', sa.String(64), nullable=True, unique=True),
        sa.Column('signature', sa.String(255), nullable=True),
        sa.Column('payer_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('teacher_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('university_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending', index=True),
        sa.Column('payment_method', sa.String(16), nullable=False, server_default='razorpay'),
        sa.Column('coupon_code', sa.String(50), nullable=True),
        sa.Column('coupon_discount', sa.Numeric(12, 2), nullable=True),
        sa.Column('coupon_discount_type', sa.String(16), nullable=True),
        sa.Column('referral_partner_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='SET NULL'),
                  nullable=True, index=True),
        sa.Column('referral_commission', sa.Numeric(12, 2), nullable=True),
        sa.Column('referral_commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('teacher_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('university_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('platform_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('referral_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('teacher_settled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('university_settled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('referral_settled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('settlement_computed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('refund_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('refund_reason', sa.String(500), nullable=True),
        sa.Column('refund_id', sa.String(64), nullable=True),
        sa.Column('refund_processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_processed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False, index=True),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
    )

    op.create_table(
        'wallets',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, unique=True, index=True),
        sa.Column('owner_role', sa.String(32), nullable=False),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('min_settlement_amount', sa.Numeric(12, 2), nullable=False, server_default='1000'),
        sa.Column('auto_settlement', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('settlement_frequency', sa.String(16), nullable=False, server_default='monthly'),
        *_timestamps(),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('balance >= 0', name='ck_wallets_balance_non_negative'),
    )

    op.create_table(
        'wallet_transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('wallet_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('wallets.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('reference', sa.String(64), nullable=False, index=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='completed'),
        sa.Column('metadata', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('processed_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False, index=True),
    )

    op.create_table(
        'settlement_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('wallet_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('wallets.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending', index=True),
        sa.Column('account_number', sa.String(34), nullable=True),
        sa.Column('ifsc_code', sa.String(11), nullable=True),
        sa.Column('bank_name', sa.String(255), nullable=True),
        sa.Column('account_holder_name', sa.String(255), nullable=True),
        sa.Column('upi_id', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('amount > 0', name='ck_settlement_requests_amount_positive'),
    )

    # Settlement queue is read oldest-pending-first
    op.create_index(
        'ix_settlement_requests_pending',
        'settlement_requests',
        ['requested_at'],
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index('ix_settlement_requests_pending', table_name='settlement_requests')
    op.drop_table('settlement_requests')
    op.drop_table('wallet_transactions')
    op.drop_table('wallets')
    op.drop_table('payments')
    op.drop_table('users')

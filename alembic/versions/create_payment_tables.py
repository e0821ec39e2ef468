"""Create payment_transactions and payment_refunds tables.

Revision ID: create_payment_tables
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_payment_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        # Enum values stored as plain strings
        sa.Column('gateway', sa.String(20), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False,
                  server_default='pending', index=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NPR'),
        sa.Column('merchant_reference_id', sa.String(255), nullable=False, unique=True),
        sa.Column('gateway_transaction_id', sa.String(255), nullable=True, unique=True),
        sa.Column('gateway_payload', sa.JSON(), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('payable_type', sa.String(255), nullable=True),
        sa.Column('payable_id', sa.String(255), nullable=True),
        sa.Column('initiated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False, index=True),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # Payable lookups
    op.create_index(
        'ix_payment_transactions_payable',
        'payment_transactions',
        ['payable_type', 'payable_id'],
    )

    op.create_table(
        'payment_refunds',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('payment_id', sa.Uuid(as_uuid=True),
                  sa.ForeignKey('payment_transactions.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('refund_reason', sa.String(20), nullable=False,
                  server_default='user_request'),
        sa.Column('refund_status', sa.String(20), nullable=False,
                  server_default='pending', index=True),
        sa.Column('gateway_refund_id', sa.String(255), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('requested_by', sa.String(255), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('payment_refunds')
    op.drop_index('ix_payment_transactions_payable', table_name='payment_transactions')
    op.drop_table('payment_transactions')

"""add investor_payment_submissions table

Revision ID: c3a85e71f4d2
Revises: 9d2f60a8e3b5
Create Date: 2026-10-19 11:08:23.104771

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = 'c3a85e71f4d2'
down_revision = '9d2f60a8e3b5'
branch_labels = None
depends_on = None


def _table_exists(bind, name):
    inspector = inspect(bind)
    return name in inspector.get_table_names()


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, 'investor_payment_submissions'):
        op.create_table(
            'investor_payment_submissions',
            sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
            sa.Column('investor_id', sa.Integer(), sa.ForeignKey('investors.id'), nullable=False),
            sa.Column('amount', sa.Numeric(18, 2), nullable=False),
            sa.Column('payment_date', sa.Date(), nullable=False),
            sa.Column('payment_method', sa.String(length=30), nullable=False, server_default='bank_transfer'),
            sa.Column('payment_reference', sa.String(length=100), nullable=True),
            sa.Column('notes', sa.String(length=500), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
            sa.Column('review_notes', sa.String(length=500), nullable=True),
            sa.Column('reviewed_at', sa.DateTime(), nullable=True),
            sa.Column('reviewed_by', sa.String(length=64), nullable=True),
            sa.Column('capital_transaction_id', sa.Integer(), sa.ForeignKey('capital_transactions.id'), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        )
        op.create_index('ix_investor_payment_submissions_investor_id', 'investor_payment_submissions', ['investor_id'])
        op.create_index('ix_investor_payment_submissions_status', 'investor_payment_submissions', ['status'])
        op.create_index('ix_investor_payment_submissions_created_at', 'investor_payment_submissions', ['created_at'])


def downgrade():
    bind = op.get_bind()
    if _table_exists(bind, 'investor_payment_submissions'):
        op.drop_index('ix_investor_payment_submissions_created_at', table_name='investor_payment_submissions')
        op.drop_index('ix_investor_payment_submissions_status', table_name='investor_payment_submissions')
        op.drop_index('ix_investor_payment_submissions_investor_id', table_name='investor_payment_submissions')
        op.drop_table('investor_payment_submissions')

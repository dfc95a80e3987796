"""create directory, purchase request and capital ledger tables

Revision ID: 4b7e19c2d6a1
Revises: 
Create Date: 2026-10-12 10:14:22.408117

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '4b7e19c2d6a1'
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, name):
    inspector = inspect(bind)
    return name in inspector.get_table_names()


def upgrade():
    bind = op.get_bind()

    # --- read-only directory mirror ---
    if not _table_exists(bind, 'contractors'):
        op.create_table(
            'contractors',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('company_name', sa.String(length=160), nullable=False),
            sa.Column('contact_person', sa.String(length=120), nullable=True),
            sa.Column('email', sa.String(length=120), nullable=True),
            sa.Column('platform_fee_rate', sa.Numeric(8, 6), nullable=True),
            sa.Column('platform_fee_cap', sa.Numeric(18, 2), nullable=True),
            sa.Column('participation_fee_rate_daily', sa.Numeric(8, 6), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
        )

    if not _table_exists(bind, 'investors'):
        op.create_table(
            'investors',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=120), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=True),
            sa.Column('investor_type', sa.String(length=40), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
        )

    if not _table_exists(bind, 'projects'):
        op.create_table(
            'projects',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('project_name', sa.String(length=160), nullable=False),
            sa.Column('location', sa.String(length=160), nullable=True),
            sa.Column('contractor_id', sa.Integer(), sa.ForeignKey('contractors.id'), nullable=True, index=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
        )

    if not _table_exists(bind, 'vendors'):
        op.create_table(
            'vendors',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('company_name', sa.String(length=160), nullable=False),
            sa.Column('contact_person', sa.String(length=120), nullable=True),
            sa.Column('email', sa.String(length=120), nullable=True),
            sa.Column('phone', sa.String(length=32), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
        )

    # --- purchase requests ---
    if not _table_exists(bind, 'purchase_requests'):
        op.create_table(
            'purchase_requests',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=True, index=True),
            sa.Column('contractor_id', sa.Integer(), sa.ForeignKey('contractors.id'), nullable=False, index=True),
            sa.Column('vendor_id', sa.Integer(), sa.ForeignKey('vendors.id'), nullable=True, index=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='draft', index=True),
            sa.Column('approval_notes', sa.String(length=500), nullable=True),
            sa.Column('remarks', sa.String(length=500), nullable=True),
            sa.Column('delivery_status', sa.String(length=20), nullable=False,
                      server_default='not_dispatched', index=True),
            sa.Column('dispatched_at', sa.DateTime(), nullable=True),
            sa.Column('dispute_deadline', sa.DateTime(), nullable=True, index=True),
            sa.Column('dispute_raised_at', sa.DateTime(), nullable=True),
            sa.Column('dispute_reason', sa.String(length=500), nullable=True),
            sa.Column('delivered_at', sa.DateTime(), nullable=True),
            sa.Column('deemed_delivery', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('submitted_at', sa.DateTime(), nullable=True),
            sa.Column('approved_at', sa.DateTime(), nullable=True),
            sa.Column('funded_at', sa.DateTime(), nullable=True),
            sa.Column('po_generated_at', sa.DateTime(), nullable=True),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP'), index=True),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        )

    if not _table_exists(bind, 'purchase_request_items'):
        op.create_table(
            'purchase_request_items',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('purchase_request_id', sa.Integer(), sa.ForeignKey('purchase_requests.id'),
                      nullable=False, index=True),
            sa.Column('item_description', sa.String(length=255), nullable=True),
            sa.Column('requested_qty', sa.Numeric(18, 3), nullable=False),
            sa.Column('approved_qty', sa.Numeric(18, 3), nullable=True),
            sa.Column('unit_rate', sa.Numeric(18, 2), nullable=True),
            sa.Column('tax_percent', sa.Numeric(6, 2), nullable=True, server_default='0'),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        )

    # --- capital ledger ---
    if not _table_exists(bind, 'capital_transactions'):
        op.create_table(
            'capital_transactions',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('investor_id', sa.Integer(), sa.ForeignKey('investors.id'), nullable=False, index=True),
            sa.Column('transaction_type', sa.String(length=20), nullable=False, index=True),
            sa.Column('amount', sa.Numeric(18, 2), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='completed'),
            sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=True, index=True),
            sa.Column('contractor_id', sa.Integer(), sa.ForeignKey('contractors.id'), nullable=True, index=True),
            sa.Column('purchase_request_id', sa.Integer(), sa.ForeignKey('purchase_requests.id'),
                      nullable=True, index=True),
            sa.Column('reference_number', sa.String(length=100), nullable=True),
            sa.Column('description', sa.String(length=255), nullable=True),
            sa.Column('admin_user_id', sa.String(length=64), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP'), index=True),
            sa.CheckConstraint('amount > 0', name='ck_capital_transactions_amount_positive'),
        )

    if not _table_exists(bind, 'investor_accounts'):
        op.create_table(
            'investor_accounts',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('investor_id', sa.Integer(), sa.ForeignKey('investors.id'), nullable=False,
                      unique=True, index=True),
            sa.Column('available_balance', sa.Numeric(18, 2), nullable=False, server_default='0'),
            sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        )

    if not _table_exists(bind, 'project_deployments'):
        op.create_table(
            'project_deployments',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('investor_id', sa.Integer(), sa.ForeignKey('investors.id'), nullable=False, index=True),
            sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id'), nullable=False, index=True),
            sa.Column('purchase_request_id', sa.Integer(), sa.ForeignKey('purchase_requests.id'),
                      nullable=True, index=True),
            sa.Column('capital_transaction_id', sa.Integer(), sa.ForeignKey('capital_transactions.id'),
                      nullable=True),
            sa.Column('amount_deployed', sa.Numeric(18, 2), nullable=False),
            sa.Column('deployment_date', sa.Date(), nullable=False),
            sa.Column('admin_deployed_by', sa.String(length=64), nullable=True),
            sa.Column('notes', sa.String(length=255), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        )


def downgrade():
    for table in (
        'project_deployments',
        'investor_accounts',
        'capital_transactions',
        'purchase_request_items',
        'purchase_requests',
        'vendors',
        'projects',
        'investors',
        'contractors',
    ):
        op.drop_table(table)

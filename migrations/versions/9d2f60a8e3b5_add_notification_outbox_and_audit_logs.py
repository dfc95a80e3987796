"""add notification_outbox and audit_logs tables

Revision ID: 9d2f60a8e3b5
Revises: 4b7e19c2d6a1
Create Date: 2026-10-14 16:42:07.551902

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '9d2f60a8e3b5'
down_revision = '4b7e19c2d6a1'
branch_labels = None
depends_on = None


def _table_exists(bind, name):
    inspector = inspect(bind)
    return name in inspector.get_table_names()


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, 'notification_outbox'):
        op.create_table(
            'notification_outbox',
            sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
            sa.Column('recipient', sa.String(length=255), nullable=False),
            sa.Column('subject', sa.String(length=255), nullable=False),
            sa.Column('body', sa.Text(), nullable=False),
            sa.Column('type', sa.String(length=50), nullable=False, server_default='info'),
            sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
            sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_error', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('sent_at', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_notification_outbox_status', 'notification_outbox', ['status'])
        op.create_index('ix_notification_outbox_created_at', 'notification_outbox', ['created_at'])

    if not _table_exists(bind, 'audit_logs'):
        op.create_table(
            'audit_logs',
            sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
            sa.Column('admin_user_id', sa.String(length=64), nullable=True),
            sa.Column('action', sa.String(length=255), nullable=False),
            sa.Column('table_name', sa.String(length=100), nullable=False),
            sa.Column('record_id', sa.Integer(), nullable=True),
            sa.Column('old_value', sa.Text(), nullable=True),
            sa.Column('new_value', sa.Text(), nullable=True),
            sa.Column('timestamp', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])


def downgrade():
    bind = op.get_bind()
    if _table_exists(bind, 'audit_logs'):
        op.drop_index('ix_audit_logs_timestamp', table_name='audit_logs')
        op.drop_table('audit_logs')
    if _table_exists(bind, 'notification_outbox'):
        op.drop_index('ix_notification_outbox_created_at', table_name='notification_outbox')
        op.drop_index('ix_notification_outbox_status', table_name='notification_outbox')
        op.drop_table('notification_outbox')

"""add vip subscriptions, payment transactions and user notifications

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-12
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.engine import Connection


revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(conn: Connection, table_name: str) -> bool:
    result = conn.execute(
        sa.text(
            "SELECT EXISTS (SELECT 1 FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = :name)"
        ),
        {'name': table_name},
    )
    return bool(result.scalar())


def _has_index(conn: Connection, index_name: str) -> bool:
    result = conn.execute(
        sa.text(
            "SELECT EXISTS (SELECT 1 FROM pg_indexes "
            "WHERE schemaname = 'public' AND indexname = :index_name)"
        ),
        {'index_name': index_name},
    )
    return bool(result.scalar())


def _subscription_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending_payment'),
        sa.Column('tier', sa.String(length=20), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('price_paid', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.String(length=36), nullable=True),
        sa.Column('admin_verified_by', sa.String(length=36), nullable=True),
        sa.Column('admin_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("status IN ('pending_payment', 'active', 'cancelled')"),
        sa.CheckConstraint("payment_method IN ('promptpay', 'cash', 'admin_grant')"),
        sa.CheckConstraint("payment_status IN ('pending', 'completed', 'failed')"),
        sa.CheckConstraint('duration IN (7, 30, 90, 365)'),
    ]


def upgrade() -> None:
    conn = op.get_bind()

    if not _has_table(conn, 'employee_vip_subscriptions'):
        op.create_table(
            'employee_vip_subscriptions',
            *_subscription_columns(),
            sa.Column(
                'employee_id',
                sa.String(length=36),
                sa.ForeignKey('employees.id', ondelete='CASCADE'),
                nullable=False,
            ),
        )

    if not _has_index(conn, 'ix_employee_vip_status_expires'):
        op.create_index(
            'ix_employee_vip_status_expires',
            'employee_vip_subscriptions',
            ['employee_id', 'status', 'expires_at'],
        )

    if not _has_table(conn, 'establishment_vip_subscriptions'):
        op.create_table(
            'establishment_vip_subscriptions',
            *_subscription_columns(),
            sa.Column(
                'establishment_id',
                sa.String(length=36),
                sa.ForeignKey('establishments.id', ondelete='CASCADE'),
                nullable=False,
            ),
        )

    if not _has_index(conn, 'ix_establishment_vip_status_expires'):
        op.create_index(
            'ix_establishment_vip_status_expires',
            'establishment_vip_subscriptions',
            ['establishment_id', 'status', 'expires_at'],
        )

    for table_name in ('employee_vip_subscriptions', 'establishment_vip_subscriptions'):
        index_name = f'ix_{table_name}_transaction_id'
        if not _has_index(conn, index_name):
            op.create_index(index_name, table_name, ['transaction_id'])

    if not _has_table(conn, 'vip_payment_transactions'):
        op.create_table(
            'vip_payment_transactions',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('subscription_type', sa.String(length=20), nullable=False),
            sa.Column('subscription_id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('amount', sa.Integer(), nullable=False),
            sa.Column('currency', sa.String(length=3), nullable=False, server_default='THB'),
            sa.Column('payment_method', sa.String(length=20), nullable=False),
            sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending'),
            sa.Column('promptpay_qr_code', sa.Text(), nullable=True),
            sa.Column('promptpay_reference', sa.String(length=255), nullable=True),
            sa.Column(
                'admin_verified_by',
                sa.String(length=36),
                sa.ForeignKey('users.id', ondelete='SET NULL'),
                nullable=True,
            ),
            sa.Column('admin_verified_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('admin_notes', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("subscription_type IN ('employee', 'establishment')"),
            sa.CheckConstraint('amount > 0'),
        )

    if not _has_index(conn, 'ix_vip_transactions_subscription'):
        op.create_index(
            'ix_vip_transactions_subscription',
            'vip_payment_transactions',
            ['subscription_type', 'subscription_id'],
        )
    if not _has_index(conn, 'ix_vip_transactions_status_created'):
        op.create_index(
            'ix_vip_transactions_status_created',
            'vip_payment_transactions',
            ['payment_status', 'created_at'],
        )
    if not _has_index(conn, 'ix_vip_payment_transactions_user_id'):
        op.create_index('ix_vip_payment_transactions_user_id', 'vip_payment_transactions', ['user_id'])

    if not _has_table(conn, 'user_notifications'):
        op.create_table(
            'user_notifications',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('notification_type', sa.String(length=50), nullable=False),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('body', sa.Text(), nullable=True),
            sa.Column('i18n_key', sa.String(length=255), nullable=True),
            sa.Column('i18n_params', sa.JSON(), nullable=True),
            sa.Column('link', sa.String(length=255), nullable=True),
            sa.Column('related_entity_type', sa.String(length=50), nullable=True),
            sa.Column('related_entity_id', sa.String(length=64), nullable=True),
            sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if not _has_index(conn, 'ix_user_notifications_user_read'):
        op.create_index('ix_user_notifications_user_read', 'user_notifications', ['user_id', 'read_at'])
    if not _has_index(conn, 'ix_user_notifications_user_id'):
        op.create_index('ix_user_notifications_user_id', 'user_notifications', ['user_id'])


def downgrade() -> None:
    conn = op.get_bind()

    for table_name in (
        'user_notifications',
        'vip_payment_transactions',
        'establishment_vip_subscriptions',
        'employee_vip_subscriptions',
    ):
        if _has_table(conn, table_name):
            op.drop_table(table_name)

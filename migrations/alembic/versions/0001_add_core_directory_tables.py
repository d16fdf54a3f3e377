"""add users, establishments, employees and ownership tables

Revision ID: 0001
Revises:
Create Date: 2026-10-12
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.engine import Connection


revision: str = '0001'
down_revision: Union[str, None] = None
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


def upgrade() -> None:
    conn = op.get_bind()

    # The directory tables predate VIP on existing installs; only create what is missing.
    if not _has_table(conn, 'users'):
        op.create_table(
            'users',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('pseudonym', sa.String(length=100), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False, unique=True),
            sa.Column('role', sa.String(length=20), nullable=False, server_default='user'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if not _has_table(conn, 'establishments'):
        op.create_table(
            'establishments',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if not _has_table(conn, 'employees'):
        op.create_table(
            'employees',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('nickname', sa.String(length=100), nullable=True),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if not _has_index(conn, 'ix_employees_user_id'):
        op.create_index('ix_employees_user_id', 'employees', ['user_id'])

    if not _has_table(conn, 'establishment_owners'):
        op.create_table(
            'establishment_owners',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column(
                'establishment_id',
                sa.String(length=36),
                sa.ForeignKey('establishments.id', ondelete='CASCADE'),
                nullable=False,
            ),
            sa.Column('owner_role', sa.String(length=20), nullable=False, server_default='owner'),
            sa.Column('permissions', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if not _has_index(conn, 'ix_establishment_owners_user_establishment'):
        op.create_index(
            'ix_establishment_owners_user_establishment',
            'establishment_owners',
            ['user_id', 'establishment_id'],
        )

    if not _has_table(conn, 'current_employment'):
        op.create_table(
            'current_employment',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column(
                'employee_id',
                sa.String(length=36),
                sa.ForeignKey('employees.id', ondelete='CASCADE'),
                nullable=False,
            ),
            sa.Column(
                'establishment_id',
                sa.String(length=36),
                sa.ForeignKey('establishments.id', ondelete='CASCADE'),
                nullable=False,
            ),
            sa.Column('is_current', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if not _has_index(conn, 'ix_current_employment_employee_current'):
        op.create_index('ix_current_employment_employee_current', 'current_employment', ['employee_id', 'is_current'])


def downgrade() -> None:
    conn = op.get_bind()

    for table_name in ('current_employment', 'establishment_owners', 'employees', 'establishments', 'users'):
        if _has_table(conn, table_name):
            op.drop_table(table_name)

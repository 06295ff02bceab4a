"""create contract lifecycle tables

Revision ID: 4c7e1a9b2d30
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c7e1a9b2d30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ROLE_VALUES = ('ADMIN', 'LEGAL', 'USER')
CONTRACT_STATUS_VALUES = ('DRAFT', 'REVIEW', 'APPROVED', 'REJECTED', 'FINALIZED', 'EXECUTED')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('role', sa.Enum(*USER_ROLE_VALUES, name='userrole'), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'contracts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('status', sa.Enum(*CONTRACT_STATUS_VALUES, name='contractstatus'), nullable=False),
        sa.Column('author_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assigned_to_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('signature', sa.Text(), nullable=True),
        sa.Column('signed_at', sa.DateTime(), nullable=True),
        sa.Column('signature_hash', sa.String(length=64), nullable=True),
    )

    op.create_table(
        'contract_versions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('contract_id', sa.Uuid(), sa.ForeignKey('contracts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('file_url', sa.String(), nullable=True),
        sa.Column('file_name', sa.String(), nullable=True),
        sa.Column('author_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.UniqueConstraint('contract_id', 'version_number', name='uq_contract_versions_number'),
    )
    op.create_index('ix_contract_versions_contract_id', 'contract_versions', ['contract_id'])

    op.create_table(
        'comments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('version_id', sa.Uuid(), sa.ForeignKey('contract_versions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
    )
    op.create_index('ix_comments_version_id', 'comments', ['version_id'])

    op.create_table(
        'templates',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('file_url', sa.String(), nullable=True),
    )

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('contract_id', sa.Uuid(), sa.ForeignKey('contracts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('details', sa.Text(), nullable=False),
    )
    op.create_index('ix_activity_logs_contract_id', 'activity_logs', ['contract_id'])


def downgrade() -> None:
    op.drop_index('ix_activity_logs_contract_id', table_name='activity_logs')
    op.drop_table('activity_logs')
    op.drop_table('templates')
    op.drop_index('ix_comments_version_id', table_name='comments')
    op.drop_table('comments')
    op.drop_index('ix_contract_versions_contract_id', table_name='contract_versions')
    op.drop_table('contract_versions')
    op.drop_table('contracts')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    sa.Enum(name='contractstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)

"""Create package approval schema

Revision ID: 20261018_000001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'ranks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('required_points', sa.Integer(), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('title'),
        sa.UniqueConstraint('required_points'),
    )

    op.create_table(
        'packages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('direct_commission_rate', sa.DECIMAL(6, 4), nullable=False, server_default='0'),
        sa.Column('indirect_commission_rates', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('price >= 0', name='check_package_price_non_negative'),
        sa.CheckConstraint('points >= 0', name='check_package_points_non_negative'),
        sa.CheckConstraint(
            'direct_commission_rate >= 0 AND direct_commission_rate <= 1',
            name='check_package_direct_rate_range',
        ),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=True),
        sa.Column('referred_by', sa.String(255), nullable=True),
        sa.Column('referral_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rank_id', sa.Integer(), nullable=True),
        sa.Column('balance', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.DECIMAL(12, 2), nullable=False, server_default='0'),
        sa.Column('current_package_id', sa.Integer(), nullable=True),
        sa.Column('package_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_banned', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('balance >= 0', name='check_user_balance_non_negative'),
        sa.CheckConstraint('total_earnings >= 0', name='check_user_total_earnings_non_negative'),
        sa.CheckConstraint('points >= 0', name='check_user_points_non_negative'),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['rank_id'], ['ranks.id'], ),
        sa.ForeignKeyConstraint(['current_package_id'], ['packages.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_referrer_id', 'users', ['referrer_id'])
    op.create_index('ix_users_referred_by', 'users', ['referred_by'])

    op.create_table(
        'package_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('package_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=True),
        sa.Column('approval_token', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['package_id'], ['packages.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_package_requests_user_id', 'package_requests', ['user_id'])
    op.create_index('ix_package_requests_status', 'package_requests', ['status'])

    op.create_table(
        'earnings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('package_request_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('depth', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(12, 2), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('idempotency_key', sa.String(128), nullable=False),
        sa.Column('approval_token', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('amount > 0', name='check_earning_amount_positive'),
        sa.CheckConstraint('depth >= 1', name='check_earning_depth_positive'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['package_request_id'], ['package_requests.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
        sa.UniqueConstraint(
            'package_request_id', 'user_id', 'type',
            name='uq_earning_request_user_type',
        ),
    )
    op.create_index('ix_earnings_user_id', 'earnings', ['user_id'])
    op.create_index('ix_earnings_package_request_id', 'earnings', ['package_request_id'])


def downgrade() -> None:
    op.drop_index('ix_earnings_package_request_id', table_name='earnings')
    op.drop_index('ix_earnings_user_id', table_name='earnings')
    op.drop_table('earnings')

    op.drop_index('ix_package_requests_status', table_name='package_requests')
    op.drop_index('ix_package_requests_user_id', table_name='package_requests')
    op.drop_table('package_requests')

    op.drop_index('ix_users_referred_by', table_name='users')
    op.drop_index('ix_users_referrer_id', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')

    op.drop_table('packages')
    op.drop_table('ranks')

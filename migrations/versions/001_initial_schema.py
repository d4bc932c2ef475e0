"""Initial crowdfunding payments schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19

Projects and rewards (platform-owned, read and incremented by payments),
payment sessions, and gateway transactions.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # === PROJECTS ===
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('catslug', sa.String(255)),
        sa.Column('goal', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.Column('funded', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.Column('state', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('approved', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("state IN ('draft', 'published', 'trashed')", name='chk_project_state'),
        sa.CheckConstraint('funded >= 0', name='chk_project_funded_positive'),
    )
    op.create_index('ix_projects_user_id', 'projects', ['user_id'])
    op.create_index('ix_projects_slug', 'projects', ['slug'])
    op.create_index('ix_projects_state', 'projects', ['state'])

    # === REWARDS ===
    op.create_table(
        'rewards',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('amount', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer),
        sa.Column('distributed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('published', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('distributed >= 0', name='chk_reward_distributed_positive'),
        sa.CheckConstraint('quantity IS NULL OR quantity >= 0', name='chk_reward_quantity_positive'),
    )
    op.create_index('ix_rewards_project_id', 'rewards', ['project_id'])

    # === PAYMENT SESSIONS ===
    op.create_table(
        'payment_sessions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('session_id', sa.String(64), nullable=False, unique=True),
        sa.Column('user_id', sa.Integer, nullable=False),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('reward_id', sa.Integer, sa.ForeignKey('rewards.id', ondelete='SET NULL')),
        sa.Column('anonymous', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('gateway', sa.String(32)),
        sa.Column('unique_key', sa.String(64), unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('closed_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_payment_sessions_session_id', 'payment_sessions', ['session_id'])
    op.create_index('ix_payment_sessions_user_id', 'payment_sessions', ['user_id'])
    op.create_index('ix_payment_sessions_project_id', 'payment_sessions', ['project_id'])
    op.create_index('ix_payment_sessions_closed_at', 'payment_sessions', ['closed_at'])
    # At most one active session per (user, project).
    op.create_index(
        'ux_payment_sessions_active_pledge',
        'payment_sessions',
        ['user_id', 'project_id'],
        unique=True,
        sqlite_where=sa.text('closed_at IS NULL'),
        postgresql_where=sa.text('closed_at IS NULL'),
    )

    # === TRANSACTIONS ===
    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('txn_id', sa.String(64), nullable=False),
        sa.Column('investor_id', sa.Integer, nullable=False),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('reward_id', sa.Integer, sa.ForeignKey('rewards.id', ondelete='SET NULL')),
        sa.Column('receiver_id', sa.Integer),
        sa.Column('txn_amount', sa.Numeric(20, 2), nullable=False),
        sa.Column('txn_currency', sa.String(3), nullable=False),
        sa.Column('txn_status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('txn_date', sa.DateTime(timezone=True)),
        sa.Column('service_provider', sa.String(32), nullable=False),
        sa.Column('service_alias', sa.String(32), nullable=False),
        sa.Column('extra_data', sa.JSON),
        sa.Column('version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("txn_status IN ('pending', 'completed', 'failed')", name='chk_transaction_status'),
        sa.CheckConstraint('txn_amount >= 0', name='chk_transaction_amount_positive'),
    )
    # Idempotency key for notification redelivery.
    op.create_index('ix_transactions_txn_id', 'transactions', ['txn_id'], unique=True)
    op.create_index('ix_transactions_investor_id', 'transactions', ['investor_id'])
    op.create_index('ix_transactions_project_id', 'transactions', ['project_id'])
    op.create_index('ix_transactions_receiver_id', 'transactions', ['receiver_id'])
    op.create_index('ix_transactions_txn_status', 'transactions', ['txn_status'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])


def downgrade() -> None:
    op.drop_table('transactions')
    op.drop_table('payment_sessions')
    op.drop_table('rewards')
    op.drop_table('projects')

"""create refill tables

Revision ID: 3c1f9a2b7d40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '3c1f9a2b7d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ATOMIC = sa.Numeric(precision=78, scale=0)


def upgrade() -> None:
    op.create_table(
        'blockchains',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False, unique=True),
        sa.Column('symbol', sa.String(length=10), nullable=False, unique=True),
        sa.Column('chain_id', sa.String(length=50), nullable=True),
        sa.Column('native_asset_symbol', sa.String(length=10), nullable=True),
        sa.Column('explorer_url_tx', sa.String(length=255), nullable=True),
        sa.Column('explorer_url_address', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('address', sa.String(length=255), nullable=False, unique=True),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('wallet_type', sa.String(length=20), nullable=False),
        sa.Column('monitor_status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('blockchain_id', sa.Integer(), sa.ForeignKey('blockchains.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_wallets_address', 'wallets', ['address'])

    op.create_table(
        'assets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('contract_address', sa.String(length=255), nullable=True),
        sa.Column('decimals', sa.SmallInteger(), nullable=False),
        sa.Column('asset_type', sa.String(length=20), nullable=False, server_default='token'),
        sa.Column('monitor_balance', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('monitor_transactions', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('low_balance_threshold_atomic', ATOMIC, nullable=True),
        sa.Column('refill_trigger_threshold_atomic', ATOMIC, nullable=True),
        sa.Column('refill_target_balance_atomic', ATOMIC, nullable=True),
        sa.Column('high_withdrawal_threshold_atomic', ATOMIC, nullable=True),
        sa.Column('refill_dust_threshold_atomic', ATOMIC, nullable=True),
        sa.Column('refill_cooldown_period', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('wallet_id', sa.Integer(), sa.ForeignKey('wallets.id'), nullable=True),
        sa.Column('blockchain_id', sa.Integer(), sa.ForeignKey('blockchains.id'), nullable=False),
        sa.Column('refill_sweep_wallet', sa.String(length=255), nullable=True),
        sa.Column('sweep_wallet_config', sa.JSON(), nullable=True),
        sa.Column('hot_wallet_config', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_assets_symbol', 'assets', ['symbol'])

    op.create_table(
        'refill_transactions',
        sa.Column('refill_request_id', sa.String(length=255), primary_key=True),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('provider_tx_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('asset_id', sa.Integer(), sa.ForeignKey('assets.id'), nullable=True),
        sa.Column('amount_atomic', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.String(length=100), nullable=True),
        sa.Column('token_symbol', sa.String(length=50), nullable=True),
        sa.Column('chain_name', sa.String(length=50), nullable=True),
        sa.Column('provider_status', sa.String(length=100), nullable=True),
        sa.Column('tx_hash', sa.String(length=255), nullable=True),
        sa.Column('provider_data', sa.JSON(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_refill_transactions_provider_tx_id', 'refill_transactions', ['provider_tx_id'])
    op.create_index('idx_refill_transactions_status', 'refill_transactions', ['status'])
    op.create_index('idx_refill_transactions_token_symbol', 'refill_transactions', ['token_symbol'])
    op.create_index('idx_refill_transactions_created_at', 'refill_transactions', ['created_at'])


def downgrade() -> None:
    op.drop_table('refill_transactions')
    op.drop_table('assets')
    op.drop_table('wallets')
    op.drop_table('blockchains')

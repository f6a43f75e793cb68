"""initial schema

Revision ID: 2026_10_18_0000
Revises:
Create Date: 2026-10-18 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_18_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(14, 2)


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Create accounts table
    # ========================================================================
    op.create_table(
        'accounts',
        sa.Column('msisdn', sa.String(20), primary_key=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('carrier', sa.String(50), nullable=True),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('free_bet_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('free_bet_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('self_exclusion_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('promo_code', sa.String(20), nullable=True),
        sa.Column('referred_by', sa.String(20), nullable=True),
        sa.Column('total_bets', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_payout', MONEY, nullable=False, server_default='0'),
        sa.Column('lost_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('balance >= 0', name='ck_balance_non_negative'),
        sa.CheckConstraint('free_bet_count >= 0', name='ck_free_bet_count_non_negative'),
        sa.CheckConstraint("status IN ('active', 'inactive')", name='ck_account_status'),
    )
    op.create_index('idx_accounts_promo_code', 'accounts', ['promo_code'], unique=True)

    # ========================================================================
    # Create game_configs table
    # ========================================================================
    op.create_table(
        'game_configs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('game_cat_id', sa.String(50), nullable=False),
        sa.Column('category', sa.String(50), nullable=False, server_default='Money Prize'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('bet_amount', MONEY, nullable=False),
        sa.Column('choice_min', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('choice_max', sa.Integer(), nullable=False, server_default='7'),
        sa.Column('win_multiplier', sa.Numeric(8, 2), nullable=False, server_default='5'),
        sa.Column('rtp_min', sa.Numeric(5, 2), nullable=True),
        sa.Column('rtp_max', sa.Numeric(5, 2), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('bet_amount > 0', name='ck_game_bet_amount_positive'),
        sa.CheckConstraint('choice_min <= choice_max', name='ck_game_choice_range'),
        sa.UniqueConstraint('game_cat_id', name='uq_game_cat_id'),
    )
    op.create_index('idx_game_configs_category', 'game_configs', ['category'])

    # ========================================================================
    # Create bets table (append-only)
    # ========================================================================
    op.create_table(
        'bets',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('reference', sa.String(50), nullable=False),
        sa.Column('msisdn', sa.String(20), nullable=False),
        sa.Column('game_cat_id', sa.String(50), nullable=False),
        sa.Column('game_name', sa.String(255), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('choice', sa.Integer(), nullable=True),
        sa.Column('winning_number', sa.Integer(), nullable=True),
        sa.Column('boxes', JSONB(), nullable=True),
        sa.Column('channel', sa.String(20), nullable=False, server_default='WEB'),
        sa.Column('ussd', sa.String(50), nullable=True),
        sa.Column('bet_type', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('outcome', sa.String(20), nullable=False),
        sa.Column('payout', MONEY, nullable=False, server_default='0'),
        sa.Column('balance_after', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('amount > 0', name='ck_bet_amount_positive'),
        sa.CheckConstraint('payout >= 0', name='ck_bet_payout_non_negative'),
        sa.CheckConstraint("outcome IN ('win', 'loss', 'pending')", name='ck_bet_outcome'),
        sa.CheckConstraint("bet_type IN ('normal', 'free_bet')", name='ck_bet_type'),
        sa.UniqueConstraint('reference', name='uq_bet_reference'),
    )
    op.create_index('idx_bets_msisdn_created', 'bets', ['msisdn', 'created_at'])

    # ========================================================================
    # Create settlement_events table (one row per reference and kind)
    # ========================================================================
    op.create_table(
        'settlement_events',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('reference', sa.String(100), nullable=False),
        sa.Column('kind', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('payload', JSONB(), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),

        sa.CheckConstraint("kind IN ('deposit', 'withdrawal', 'b2b_withdrawal')", name='ck_settlement_kind'),
        sa.CheckConstraint("status IN ('success', 'failure', 'pending')", name='ck_settlement_status'),
        sa.UniqueConstraint('reference', 'kind', name='uq_settlement_reference_kind'),
    )
    op.create_index(
        'idx_settlement_events_unprocessed', 'settlement_events', ['received_at'],
        postgresql_where=sa.text('processed = false'),
    )

    # ========================================================================
    # Create deposit_requests table (payment prompts awaiting callback)
    # ========================================================================
    op.create_table(
        'deposit_requests',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('reference', sa.String(50), nullable=False),
        sa.Column('msisdn', sa.String(20), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('channel', sa.String(20), nullable=False, server_default='WEB'),
        sa.Column('game_cat_id', sa.String(50), nullable=True),
        sa.Column('selected_box', sa.Integer(), nullable=True),
        sa.Column('ussd', sa.String(50), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('amount > 0', name='ck_deposit_request_amount_positive'),
        sa.CheckConstraint("status IN ('pending', 'success', 'fail')", name='ck_deposit_request_status'),
        sa.UniqueConstraint('reference', name='uq_deposit_request_reference'),
    )
    op.create_index('idx_deposit_requests_msisdn', 'deposit_requests', ['msisdn'])

    # ========================================================================
    # Create deposits table (one row per provider transaction)
    # ========================================================================
    op.create_table(
        'deposits',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('transaction_id', sa.String(100), nullable=False),
        sa.Column('reference', sa.String(50), nullable=True),
        sa.Column('msisdn', sa.String(20), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('shortcode', sa.String(20), nullable=True),
        sa.Column('deposit_type', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('amount > 0', name='ck_deposit_amount_positive'),
        sa.UniqueConstraint('transaction_id', name='uq_deposit_transaction_id'),
    )
    op.create_index('idx_deposits_msisdn_created', 'deposits', ['msisdn', 'created_at'])

    # ========================================================================
    # Create withdrawals table (standard, motto and b2b payouts)
    # ========================================================================
    op.create_table(
        'withdrawals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider', sa.String(20), nullable=False, server_default='standard'),
        sa.Column('reference', sa.String(50), nullable=False),
        sa.Column('msisdn', sa.String(20), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='processed'),
        sa.Column('disburse_status', sa.String(50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),

        sa.CheckConstraint('amount > 0', name='ck_withdrawal_amount_positive'),
        sa.CheckConstraint("provider IN ('standard', 'motto', 'b2b')", name='ck_withdrawal_provider'),
        sa.UniqueConstraint('provider', 'reference', name='uq_withdrawal_provider_reference'),
    )
    op.create_index('idx_withdrawals_msisdn_created', 'withdrawals', ['msisdn', 'created_at'])

    # ========================================================================
    # Create verification_codes, promo_codes and sms_queue tables
    # ========================================================================
    op.create_table(
        'verification_codes',
        sa.Column('msisdn', sa.String(20), primary_key=True),
        sa.Column('code', sa.String(4), nullable=False),
        sa.Column('consumed', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'promo_codes',
        sa.Column('code', sa.String(20), primary_key=True),
        sa.Column('msisdn', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_promo_codes_msisdn', 'promo_codes', ['msisdn'])

    op.create_table(
        'sms_queue',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('msisdn', sa.String(20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('kind', sa.String(30), nullable=False),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('sms_queue')
    op.drop_table('promo_codes')
    op.drop_table('verification_codes')
    op.drop_table('withdrawals')
    op.drop_table('deposits')
    op.drop_table('deposit_requests')
    op.drop_table('settlement_events')
    op.drop_table('bets')
    op.drop_table('game_configs')
    op.drop_table('accounts')

"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

MONEY = Numeric(14, 2)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for accounts table.

    One row per player, keyed by phone number. Balance is only ever
    changed by conditional UPDATE statements (see AccountStore).
    """

    __tablename__ = "accounts"

    msisdn: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    carrier: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Balance
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    # Free bets
    free_bet_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    free_bet_expiry: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Status
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    self_exclusion_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Referral
    promo_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    referred_by: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Lifetime counters
    total_bets: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_payout: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    lost_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_balance_non_negative"),
        CheckConstraint("free_bet_count >= 0", name="ck_free_bet_count_non_negative"),
        CheckConstraint("status IN ('active', 'inactive')", name="ck_account_status"),
        Index("idx_accounts_promo_code", "promo_code", unique=True),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Account(msisdn={self.msisdn}, balance={self.balance}, status={self.status})>"


class GameConfig(Base):
    """ORM model for game_configs table. Read-only to the betting core."""

    __tablename__ = "game_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_cat_id: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="Money Prize")
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    bet_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    choice_min: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    choice_max: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    win_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(8, 2), nullable=False, default=Decimal("5")
    )
    rtp_min: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    rtp_max: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("bet_amount > 0", name="ck_game_bet_amount_positive"),
        CheckConstraint("choice_min <= choice_max", name="ck_game_choice_range"),
        UniqueConstraint("game_cat_id", name="uq_game_cat_id"),
        Index("idx_game_configs_category", "category"),
    )


class Bet(Base):
    """ORM model for bets table. Append-only."""

    __tablename__ = "bets"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    msisdn: Mapped[str] = mapped_column(String(20), nullable=False)
    game_cat_id: Mapped[str] = mapped_column(String(50), nullable=False)
    game_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    choice: Mapped[int | None] = mapped_column(Integer, nullable=True)
    winning_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    boxes: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="WEB")
    ussd: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bet_type: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    payout: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    balance_after: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_bet_amount_positive"),
        CheckConstraint("payout >= 0", name="ck_bet_payout_non_negative"),
        CheckConstraint("outcome IN ('win', 'loss', 'pending')", name="ck_bet_outcome"),
        CheckConstraint("bet_type IN ('normal', 'free_bet')", name="ck_bet_type"),
        UniqueConstraint("reference", name="uq_bet_reference"),
        Index("idx_bets_msisdn_created", "msisdn", "created_at"),
    )


class SettlementEvent(Base):
    """
    ORM model for settlement_events table.

    One row per (reference, kind). The row lock on it serializes
    reconciliation of a reference; processed flips exactly once.
    """

    __tablename__ = "settlement_events"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    reference: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('deposit', 'withdrawal', 'b2b_withdrawal')", name="ck_settlement_kind"
        ),
        CheckConstraint(
            "status IN ('success', 'failure', 'pending')", name="ck_settlement_status"
        ),
        UniqueConstraint("reference", "kind", name="uq_settlement_reference_kind"),
    )


class DepositRequest(Base):
    """ORM model for deposit_requests table (payment prompts awaiting callback)."""

    __tablename__ = "deposit_requests"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    msisdn: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="WEB")
    game_cat_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    selected_box: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ussd: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_deposit_request_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'success', 'fail')", name="ck_deposit_request_status"
        ),
        UniqueConstraint("reference", name="uq_deposit_request_reference"),
        Index("idx_deposit_requests_msisdn", "msisdn"),
    )


class Deposit(Base):
    """ORM model for deposits table (completed, one per provider transaction)."""

    __tablename__ = "deposits"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(50), nullable=True)
    msisdn: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    shortcode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    deposit_type: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_deposit_amount_positive"),
        UniqueConstraint("transaction_id", name="uq_deposit_transaction_id"),
        Index("idx_deposits_msisdn_created", "msisdn", "created_at"),
    )


class Withdrawal(Base):
    """
    ORM model for withdrawals table.

    provider distinguishes the payout ledgers (standard, motto, b2b)
    that share one reconciliation path.
    """

    __tablename__ = "withdrawals"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    provider: Mapped[str] = mapped_column(String(20), nullable=False, default="standard")
    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    msisdn: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processed")
    disburse_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_withdrawal_amount_positive"),
        CheckConstraint(
            "provider IN ('standard', 'motto', 'b2b')", name="ck_withdrawal_provider"
        ),
        UniqueConstraint("provider", "reference", name="uq_withdrawal_provider_reference"),
        Index("idx_withdrawals_msisdn_created", "msisdn", "created_at"),
    )


class VerificationCode(Base):
    """ORM model for verification_codes table. One live code per msisdn."""

    __tablename__ = "verification_codes"

    msisdn: Mapped[str] = mapped_column(String(20), primary_key=True)
    code: Mapped[str] = mapped_column(String(4), nullable=False)
    consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PromoCode(Base):
    """ORM model for promo_codes table."""

    __tablename__ = "promo_codes"

    code: Mapped[str] = mapped_column(String(20), primary_key=True)
    msisdn: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class SmsMessage(Base):
    """ORM model for sms_queue table, drained by the SMS sender."""

    __tablename__ = "sms_queue"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    msisdn: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

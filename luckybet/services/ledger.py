"""
Ledger Writer - Append-only records of bets, deposits, withdrawals and SMS.

NO DICTIONARIES - Writes take domain objects or explicit keyword fields.

Inserts follow the write verification pattern:
1. Add row
2. Flush to database
3. Read back and verify
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from luckybet.db.models import Bet, Deposit, DepositRequest, SmsMessage, Withdrawal
from luckybet.exceptions import WriteVerificationError
from luckybet.models.api import DepositStatus, SmsKind, WithdrawalProvider
from luckybet.models.domain import BetIntent, BetOutcome, DepositRequestData, Resolution


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _to_request(row: DepositRequest) -> DepositRequestData:
    return DepositRequestData(
        reference=row.reference,
        msisdn=row.msisdn,
        amount=row.amount,
        channel=row.channel,
        status=DepositStatus(row.status),
        game_cat_id=row.game_cat_id,
        selected_box=row.selected_box,
    )


class LedgerWriter:
    """Ledger rows over one session. Never commits; the caller owns the transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ========================================================================
    # Bets
    # ========================================================================

    async def append_bet(self, intent: BetIntent, outcome: BetOutcome) -> None:
        """Append the bet with its terminal outcome."""
        resolution = outcome.resolution
        boxes = (
            {str(box): str(prize) for box, prize in resolution.boxes.items()}
            if isinstance(resolution, Resolution)
            else {"row": resolution.row}
        )
        bet = Bet(
            reference=intent.reference,
            msisdn=intent.msisdn,
            game_cat_id=intent.game.game_cat_id,
            game_name=intent.game.name,
            amount=intent.amount,
            choice=intent.choice,
            winning_number=(
                resolution.winning_number if isinstance(resolution, Resolution) else None
            ),
            boxes=boxes,
            channel=intent.channel,
            ussd=intent.ussd or None,
            bet_type=outcome.bet_type.value,
            outcome=outcome.outcome.value,
            payout=outcome.payout,
            balance_after=outcome.balance_after,
        )
        self.session.add(bet)
        await self.session.flush()

        verified = await self.session.get(Bet, bet.id)
        if verified is None:
            raise WriteVerificationError(f"Bet {intent.reference} not found after insert")

    # ========================================================================
    # Deposits
    # ========================================================================

    async def create_deposit_request(
        self,
        reference: str,
        msisdn: str,
        amount: Decimal,
        channel: str,
        game_cat_id: str | None = None,
        selected_box: int | None = None,
        ussd: str | None = None,
    ) -> DepositRequestData:
        row = DepositRequest(
            reference=reference,
            msisdn=msisdn,
            amount=amount,
            channel=channel,
            game_cat_id=game_cat_id,
            selected_box=selected_box,
            ussd=ussd,
            status=DepositStatus.PENDING.value,
        )
        self.session.add(row)
        await self.session.flush()

        verified = await self.session.get(DepositRequest, row.id)
        if verified is None:
            raise WriteVerificationError(f"Deposit request {reference} not found after insert")
        return _to_request(verified)

    async def find_deposit_request(
        self, reference: str, for_update: bool = False
    ) -> DepositRequestData | None:
        stmt = select(DepositRequest).where(DepositRequest.reference == reference)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_request(row) if row is not None else None

    async def last_deposit_amount(self, msisdn: str) -> Decimal | None:
        result = await self.session.execute(
            select(DepositRequest.amount)
            .where(DepositRequest.msisdn == msisdn)
            .order_by(DepositRequest.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_deposit_request(
        self,
        reference: str,
        status: DepositStatus,
        description: str | None = None,
        transaction_id: str | None = None,
        only_if_pending: bool = False,
    ) -> bool:
        """Move a deposit request to a terminal status. Returns False if nothing matched."""
        stmt = update(DepositRequest).where(DepositRequest.reference == reference)
        if only_if_pending:
            stmt = stmt.where(DepositRequest.status == DepositStatus.PENDING.value)
        result = await self.session.execute(
            stmt.values(
                status=status.value,
                description=description,
                transaction_id=transaction_id or None,
            ).returning(DepositRequest.reference)
        )
        return result.scalar_one_or_none() is not None

    async def deposit_exists(self, transaction_id: str) -> bool:
        result = await self.session.execute(
            select(Deposit.id).where(Deposit.transaction_id == transaction_id)
        )
        return result.scalar_one_or_none() is not None

    async def insert_deposit(
        self,
        transaction_id: str,
        msisdn: str,
        amount: Decimal,
        reference: str | None,
        name: str | None = None,
        shortcode: str | None = None,
        deposit_type: str = "normal",
    ) -> None:
        row = Deposit(
            transaction_id=transaction_id,
            reference=reference,
            msisdn=msisdn,
            amount=amount,
            name=name or None,
            shortcode=shortcode or None,
            deposit_type=deposit_type,
        )
        self.session.add(row)
        await self.session.flush()

        verified = await self.session.get(Deposit, row.id)
        if verified is None:
            raise WriteVerificationError(f"Deposit {transaction_id} not found after insert")

    # ========================================================================
    # Withdrawals
    # ========================================================================

    async def resolve_withdrawal(
        self,
        provider: WithdrawalProvider,
        reference: str,
        transaction_id: str,
        disburse_status: str,
        description: str,
    ) -> bool:
        """
        Record the disbursement result of a withdrawal awaiting confirmation.

        Only rows still in 'processed' match, so a replay finds nothing.
        """
        result = await self.session.execute(
            update(Withdrawal)
            .where(
                Withdrawal.provider == provider.value,
                Withdrawal.reference == reference,
                Withdrawal.status == "processed",
            )
            .values(
                status="disbursed",
                transaction_id=transaction_id or None,
                disburse_status=disburse_status,
                description=description,
                resolved_at=_utc_now(),
            )
            .returning(Withdrawal.id)
        )
        return result.scalar_one_or_none() is not None

    # ========================================================================
    # SMS
    # ========================================================================

    async def queue_sms(
        self, msisdn: str, message: str, kind: SmsKind, reference: str | None = None
    ) -> None:
        self.session.add(
            SmsMessage(msisdn=msisdn, message=message, kind=kind.value, reference=reference)
        )
        await self.session.flush()

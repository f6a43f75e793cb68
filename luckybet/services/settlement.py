"""
Settlement Reconciler - Turns payment gateway callbacks into ledger state.

Callbacks can arrive twice, late, or out of order. Each reconciliation runs
in one transaction that first takes the settlement event lock
(IdempotencyGuard); a callback whose event is already processed is a no-op.

Deposits:
- success credits the deposit once per reference and once per provider
  transaction id; a USSD bet carried by the deposit request is played in
  the same transaction
- failure marks a still-pending request failed; it never overrides a
  success that was applied first

Withdrawals (standard, motto, b2b) share one path parameterized by
WithdrawalProvider.
"""

from decimal import Decimal
from typing import Any

from luckybet.exceptions import BetRejectedError
from luckybet.models.api import (
    DepositCallback,
    DepositStatus,
    SettlementStatus,
    SmsKind,
    WithdrawalCallback,
    WithdrawalProvider,
)
from luckybet.models.domain import (
    BetIntent,
    DepositRequestData,
    DepositSettlement,
    ReconcileResult,
    SettlementEventData,
    WithdrawalDisbursement,
)
from luckybet.observability.logging import get_logger, log_context
from luckybet.observability.metrics import metrics
from luckybet.observability.tracing import trace_operation
from luckybet.services.bets import BetExecutor
from luckybet.services.stores import StoreFactory, Stores

logger = get_logger(__name__)

SUCCESS_STATUSES = {"0", "success"}
CANCELLED_DESCRIPTIONS = {"CUSTOMER_CANCELED_PIN", "CUSTOMER_CONF_FAILED"}
MOTTO_PREFIX = "AV_"

CANCELLED_SMS = (
    "Transaction cancelled. To play: dial *463#, choose a lucky number "
    "between 1 and 7, then enter your M-Pesa PIN to confirm."
)


def classify_deposit(callback: DepositCallback) -> DepositSettlement:
    return DepositSettlement(
        reference=callback.reference,
        succeeded=callback.status.strip().lower() in SUCCESS_STATUSES,
        description=callback.description,
        transaction_id=callback.transaction_id,
        amount=callback.amount,
        msisdn=callback.msisdn,
        name=callback.name,
        shortcode=callback.shortcode,
    )


def classify_withdrawal(
    callback: WithdrawalCallback, b2b: bool = False
) -> WithdrawalDisbursement:
    if b2b:
        provider = WithdrawalProvider.B2B
    elif callback.reference.startswith(MOTTO_PREFIX):
        provider = WithdrawalProvider.MOTTO
    else:
        provider = WithdrawalProvider.STANDARD
    return WithdrawalDisbursement(
        provider=provider,
        reference=callback.reference,
        transaction_id=callback.transaction_id,
        status=callback.status,
        description=callback.description,
    )


def is_cancellation(event: DepositSettlement) -> bool:
    return not event.succeeded and event.description in CANCELLED_DESCRIPTIONS


def _status_of(event: SettlementEventData) -> SettlementStatus:
    if isinstance(event, DepositSettlement):
        return SettlementStatus.SUCCESS if event.succeeded else SettlementStatus.FAILURE
    return SettlementStatus.SUCCESS


def _payload_of(event: SettlementEventData) -> dict[str, Any]:
    if isinstance(event, DepositSettlement):
        return {
            "succeeded": event.succeeded,
            "amount": str(event.amount) if event.amount is not None else None,
            "msisdn": event.msisdn,
            "name": event.name,
            "shortcode": event.shortcode,
        }
    return {"provider": event.provider.value, "status": event.status}


class SettlementReconciler:
    """Applies settlement events exactly once."""

    def __init__(self, factory: StoreFactory, executor: BetExecutor) -> None:
        self.factory = factory
        self.executor = executor

    async def record(self, event: SettlementEventData) -> bool:
        """Make a callback durable before acknowledging it. Returns True if new."""
        async with self.factory.open() as stores:
            created = await stores.guard.record(
                event.reference,
                event.kind,
                _status_of(event),
                description=event.description,
                transaction_id=event.transaction_id,
                payload=_payload_of(event),
            )
            await stores.commit()
        logger.info(
            "settlement_recorded",
            reference=event.reference,
            kind=event.kind.value,
            status=_status_of(event).value,
            new=created,
        )
        return created

    async def apply(self, event: SettlementEventData) -> ReconcileResult:
        """
        Reconcile one event in its own transaction.

        Returns ReconcileResult(applied=False) for replays; never raises for them.
        """
        kind = event.kind.value
        with log_context(reference=event.reference, kind=kind), trace_operation(
            "apply_settlement", kind=kind, reference=event.reference
        ):
            async with self.factory.open() as stores:
                try:
                    already = await stores.guard.try_acquire(
                        event.reference,
                        event.kind,
                        _status_of(event),
                        description=event.description,
                        transaction_id=event.transaction_id,
                    )
                    if already:
                        await stores.rollback()
                        metrics.record_settlement(kind, "replay")
                        logger.info("settlement_replay_ignored")
                        return ReconcileResult(applied=False, found=False)

                    if isinstance(event, WithdrawalDisbursement):
                        result = await self._apply_withdrawal(stores, event)
                    elif event.succeeded:
                        result = await self._apply_deposit_success(stores, event)
                    else:
                        result = await self._apply_deposit_failure(stores, event)
                    await stores.commit()
                except Exception as e:
                    await stores.rollback()
                    metrics.record_settlement(kind, "failed")
                    logger.error("settlement_failed", error=str(e), exc_info=True)
                    raise

            outcome = "applied" if result.applied else "not_found"
            metrics.record_settlement(kind, outcome)
            logger.info("settlement_applied", applied=result.applied, found=result.found)
            return result

    async def _apply_withdrawal(
        self, stores: Stores, event: WithdrawalDisbursement
    ) -> ReconcileResult:
        found = await stores.ledger.resolve_withdrawal(
            event.provider,
            event.reference,
            event.transaction_id,
            event.status,
            event.description,
        )
        if not found:
            # Left unprocessed so a retry after the withdrawal row lands can still apply
            logger.warning("withdrawal_not_found", provider=event.provider.value)
            return ReconcileResult(applied=False, found=False)
        await stores.guard.mark_processed(event.reference, event.kind)
        return ReconcileResult(applied=True)

    async def _apply_deposit_failure(
        self, stores: Stores, event: DepositSettlement
    ) -> ReconcileResult:
        updated = await stores.ledger.mark_deposit_request(
            event.reference,
            DepositStatus.FAIL,
            description=event.description,
            transaction_id=event.transaction_id,
            only_if_pending=True,
        )
        if not updated:
            # Replayed, already settled, or never requested
            logger.info("deposit_failure_no_pending_request")
            return ReconcileResult(applied=False, found=False)
        if is_cancellation(event):
            await self._queue_cancelled_sms(stores, event)
        return ReconcileResult(applied=True)

    async def _queue_cancelled_sms(self, stores: Stores, event: DepositSettlement) -> None:
        """Tell the player their PIN prompt was cancelled, with how to retry."""
        request = await stores.ledger.find_deposit_request(event.reference)
        msisdn = request.msisdn if request is not None else event.msisdn
        if not msisdn:
            logger.warning("cancelled_sms_no_recipient")
            return
        await stores.ledger.queue_sms(
            msisdn, CANCELLED_SMS, SmsKind.DEPOSIT_FAILED, event.reference
        )

    async def _apply_deposit_success(
        self, stores: Stores, event: DepositSettlement
    ) -> ReconcileResult:
        if event.transaction_id and await stores.ledger.deposit_exists(event.transaction_id):
            await stores.guard.mark_processed(event.reference, event.kind)
            logger.info(
                "deposit_transaction_already_recorded", transaction_id=event.transaction_id
            )
            return ReconcileResult(applied=False)

        request = await stores.ledger.find_deposit_request(event.reference, for_update=True)
        if request is None:
            if not (event.msisdn and event.amount and event.amount > 0):
                logger.warning("deposit_request_not_found")
                await stores.guard.mark_processed(event.reference, event.kind)
                return ReconcileResult(applied=False, found=False)
            # Paybill deposit with no prompt of ours behind it
            msisdn, amount = event.msisdn, event.amount
        else:
            msisdn, amount = request.msisdn, request.amount
            if event.amount is not None and event.amount != request.amount:
                logger.warning(
                    "deposit_amount_mismatch",
                    requested=str(request.amount),
                    reported=str(event.amount),
                )

        await stores.accounts.get_or_create(msisdn, name=event.name or None)
        balance = await stores.accounts.credit(msisdn, amount)
        if request is not None:
            await stores.ledger.mark_deposit_request(
                event.reference,
                DepositStatus.SUCCESS,
                description=event.description or None,
                transaction_id=event.transaction_id,
            )
        await stores.ledger.insert_deposit(
            transaction_id=event.transaction_id or event.reference,
            msisdn=msisdn,
            amount=amount,
            reference=event.reference,
            name=event.name,
            shortcode=event.shortcode,
        )
        logger.info("deposit_credited", msisdn=msisdn, amount=str(amount), balance=str(balance))

        played = False
        if request is not None and request.game_cat_id and request.selected_box is not None:
            played = await self._play_carried_bet(stores, request)
        if not played:
            await stores.ledger.queue_sms(
                msisdn,
                f"Deposit of KES {amount} received. New balance KES {balance}. "
                f"Ref: {event.reference}",
                SmsKind.DEPOSIT_SETTLED,
                event.reference,
            )

        await stores.guard.mark_processed(event.reference, event.kind)
        return ReconcileResult(applied=True)

    async def _play_carried_bet(self, stores: Stores, request: DepositRequestData) -> bool:
        """Play the bet a USSD deposit paid for. Rejections keep the deposit credited."""
        game = await stores.games.get(request.game_cat_id or "")
        account = await stores.accounts.find(request.msisdn)
        if game is None or account is None:
            logger.warning("carried_bet_game_missing", game_cat_id=request.game_cat_id)
            return False

        intent = BetIntent(
            msisdn=request.msisdn,
            game=game,
            amount=Decimal(request.amount),
            choice=request.selected_box,
            channel=request.channel,
            ussd="",
            reference=request.reference,
        )
        try:
            await self.executor.execute_bet(stores, account, intent)
        except BetRejectedError as e:
            logger.warning("carried_bet_rejected", reason=type(e).__name__, error=str(e))
            return False
        return True

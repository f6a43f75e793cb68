"""
Idempotency Guard - At most one mutating transition per settlement reference.

Every callback is first made durable as a settlement_events row keyed by
(reference, kind). Reconciliation then locks that row for the rest of its
transaction, so duplicates of the same reference queue behind each other
and see processed=True once the first one commits.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from luckybet.db.models import SettlementEvent
from luckybet.exceptions import WriteVerificationError
from luckybet.models.api import SettlementKind, SettlementStatus


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class IdempotencyGuard:
    """Settlement event bookkeeping over the caller's session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(
        self,
        reference: str,
        kind: SettlementKind,
        status: SettlementStatus,
        description: str | None = None,
        transaction_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """
        Insert the event if it is new. Returns True when this call created it.

        A later callback for a known reference refreshes status and
        description of an unprocessed event so the latest report wins.
        """
        result = await self.session.execute(
            insert(SettlementEvent)
            .values(
                reference=reference,
                kind=kind.value,
                status=status.value,
                description=description,
                transaction_id=transaction_id or None,
                payload=payload,
                processed=False,
                received_at=_utc_now(),
            )
            .on_conflict_do_nothing(constraint="uq_settlement_reference_kind")
            .returning(SettlementEvent.id)
        )
        created = result.scalar_one_or_none() is not None
        if not created:
            await self.session.execute(
                update(SettlementEvent)
                .where(
                    SettlementEvent.reference == reference,
                    SettlementEvent.kind == kind.value,
                    SettlementEvent.processed.is_(False),
                )
                .values(status=status.value, description=description)
            )
        return created

    async def try_acquire(
        self,
        reference: str,
        kind: SettlementKind,
        status: SettlementStatus,
        description: str | None = None,
        transaction_id: str | None = None,
    ) -> bool:
        """
        Lock the event row for this transaction. Returns True if already processed.

        The row is created first if the callback was never recorded.
        """
        await self.record(reference, kind, status, description, transaction_id)
        result = await self.session.execute(
            select(SettlementEvent)
            .where(SettlementEvent.reference == reference, SettlementEvent.kind == kind.value)
            .with_for_update()
        )
        event = result.scalar_one_or_none()
        if event is None:
            raise WriteVerificationError(f"Settlement event {kind.value}/{reference} missing")
        return event.processed

    async def mark_processed(self, reference: str, kind: SettlementKind) -> None:
        await self.session.execute(
            update(SettlementEvent)
            .where(
                SettlementEvent.reference == reference,
                SettlementEvent.kind == kind.value,
                SettlementEvent.processed.is_(False),
            )
            .values(processed=True, processed_at=_utc_now())
        )

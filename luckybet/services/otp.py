"""
Verification Gate - One-time passwords for login and sensitive actions.

One live code per msisdn; issuing a new one replaces the previous code.
A code may be attempted repeatedly until it expires, and is consumed by
the first successful verification.
"""

import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert

from luckybet.db.models import VerificationCode
from luckybet.exceptions import OtpExpiredError, OtpInvalidError
from luckybet.models.api import SmsKind
from luckybet.observability.logging import get_logger
from luckybet.services.stores import Stores

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class VerificationGate:
    """Issues and checks verification codes inside the caller's transaction."""

    def __init__(
        self,
        ttl_seconds: int,
        fixed_codes: dict[str, str] | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.fixed_codes = fixed_codes or {}
        self.clock = clock

    @property
    def ttl_minutes(self) -> int:
        return max(1, self.ttl_seconds // 60)

    def new_code(self, msisdn: str) -> str:
        """Four digits, 1000-9999. Configured test numbers always get their fixed code."""
        fixed = self.fixed_codes.get(msisdn)
        if fixed is not None:
            return fixed
        return str(1000 + secrets.randbelow(9000))

    async def issue(self, stores: Stores, msisdn: str) -> str:
        code = self.new_code(msisdn)
        now = self.clock()
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        await stores.session.execute(
            insert(VerificationCode)
            .values(msisdn=msisdn, code=code, consumed=False, created_at=now, expires_at=expires_at)
            .on_conflict_do_update(
                index_elements=[VerificationCode.msisdn],
                set_={
                    "code": code,
                    "consumed": False,
                    "created_at": now,
                    "expires_at": expires_at,
                },
            )
        )
        await stores.ledger.queue_sms(
            msisdn,
            f"Your verification code is {code}. It expires in {self.ttl_minutes} minutes.",
            SmsKind.OTP,
        )
        logger.info("otp_issued", msisdn=msisdn, expires_at=expires_at.isoformat())
        return code

    async def verify(self, stores: Stores, msisdn: str, code: str) -> int:
        """
        Consume the code. Returns the seconds it had left.

        Raises:
            OtpInvalidError: no live code, already used, or mismatch
            OtpExpiredError: the code matched but is past its expiry
        """
        result = await stores.session.execute(
            select(VerificationCode)
            .where(VerificationCode.msisdn == msisdn)
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None or row.consumed or not secrets.compare_digest(row.code, code):
            logger.info("otp_rejected", msisdn=msisdn)
            raise OtpInvalidError(msisdn)

        now = self.clock()
        if now > row.expires_at:
            logger.info("otp_expired", msisdn=msisdn)
            raise OtpExpiredError(msisdn)

        row.consumed = True
        await stores.session.flush()
        remaining = int((row.expires_at - now).total_seconds())
        logger.info("otp_verified", msisdn=msisdn, remaining_seconds=remaining)
        return remaining

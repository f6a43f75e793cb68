"""
Settlement Routes - Payment gateway webhooks.

Deposit callbacks are acknowledged as soon as they are durable; the
reconciliation itself runs on the TaskSupervisor. Withdrawal callbacks
are reconciled inline because the gateway reads the result.
"""

import json
from typing import TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from luckybet.api.dependencies import get_reconciler, get_supervisor, require_settlement_caller
from luckybet.exceptions import InvalidPayloadError
from luckybet.models.api import DepositCallback, Envelope, WithdrawalCallback
from luckybet.observability.logging import get_logger
from luckybet.services.settlement import (
    SettlementReconciler,
    classify_deposit,
    classify_withdrawal,
)
from luckybet.services.supervisor import TaskSupervisor

logger = get_logger(__name__)

router = APIRouter()

WITHDRAWAL_APPLIED = "Success"
WITHDRAWAL_NOT_FOUND = "Not Found/Transaction already processed"

T = TypeVar("T", bound=BaseModel)


async def _parse(request: Request, model: type[T]) -> T:
    """Parse the body by hand so caller checks run before any parsing."""
    try:
        payload = await request.json()
        return model.model_validate(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidPayloadError("body is not JSON") from e
    except ValidationError as e:
        logger.warning(
            "settlement_payload_invalid",
            path=request.url.path,
            errors=[error.get("msg") for error in e.errors()],
        )
        raise InvalidPayloadError(str(e)) from e


@router.post("/settle_bet_luckynumber", response_model=Envelope)
async def settle_bet_luckynumber(
    request: Request,
    client_ip: str = Depends(require_settlement_caller),
    reconciler: SettlementReconciler = Depends(get_reconciler),
    supervisor: TaskSupervisor = Depends(get_supervisor),
) -> JSONResponse:
    """
    Deposit webhook (status "0" or "success" means paid).

    Only accepted from the gateway allow-list. The event is recorded
    before the response; a full background queue answers 503 so the
    gateway retries.
    """
    callback = await _parse(request, DepositCallback)
    event = classify_deposit(callback)
    await reconciler.record(event)

    if event.succeeded:
        supervisor.submit(
            "settle_deposit", lambda: reconciler.apply(event), reference=event.reference
        )
        logger.info("deposit_callback_accepted", reference=event.reference, client_ip=client_ip)
        return JSONResponse(status_code=200, content=Envelope().model_dump(by_alias=True))

    supervisor.submit(
        "settle_deposit_failure", lambda: reconciler.apply(event), reference=event.reference
    )
    logger.info(
        "deposit_callback_failed",
        reference=event.reference,
        description=event.description,
        client_ip=client_ip,
    )
    body = Envelope(status=400, status_code=2, status_message=event.description)
    return JSONResponse(status_code=400, content=body.model_dump(by_alias=True))


async def _settle_withdrawal(
    request: Request, reconciler: SettlementReconciler, b2b: bool
) -> Envelope:
    callback = await _parse(request, WithdrawalCallback)
    result = await reconciler.apply(classify_withdrawal(callback, b2b=b2b))
    return Envelope(status_message=WITHDRAWAL_APPLIED if result.applied else WITHDRAWAL_NOT_FOUND)


@router.post("/settle_withdrawal", response_model=Envelope)
async def settle_withdrawal(
    request: Request,
    reconciler: SettlementReconciler = Depends(get_reconciler),
) -> Envelope:
    """Disbursement callback for standard and motto (AV_) withdrawals."""
    return await _settle_withdrawal(request, reconciler, b2b=False)


@router.post("/settle_withdrawal_b2b", response_model=Envelope)
async def settle_withdrawal_b2b(
    request: Request,
    reconciler: SettlementReconciler = Depends(get_reconciler),
) -> Envelope:
    """Disbursement callback for B2B withdrawals."""
    return await _settle_withdrawal(request, reconciler, b2b=True)

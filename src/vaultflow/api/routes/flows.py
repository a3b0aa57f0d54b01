"""Deposit / withdraw command endpoints."""

import logging
from enum import Enum

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from vaultflow.errors import FlowBusyError, InvalidTransitionError
from vaultflow.orchestrator import Input, describe_state
from vaultflow.session import (
    Acknowledged,
    CancelRequested,
    DepositRequested,
    RetryRequested,
    VaultSession,
    WithdrawRequested,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class FlowName(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class FlowAction(str, Enum):
    RETRY = "retry"
    CANCEL = "cancel"
    ACKNOWLEDGE = "acknowledge"


class AmountRequestBody(BaseModel):
    """Amount to deposit or withdraw."""

    amount: str = Field(..., max_length=100, description="Decimal amount, e.g. '100.5'")


def get_session(request: Request) -> VaultSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        detail = getattr(request.app.state, "session_error", None) or "Vault session unavailable"
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
    return session


def _flow_response(flow: FlowName, state) -> dict:
    return {"flow": flow.value, "state": describe_state(state)}


@router.get("/status")
async def get_status(session: VaultSession = Depends(get_session)):
    """Both flow states, cached balances and the status feed."""
    return session.describe()


async def _start(flow: FlowName, command, session: VaultSession) -> dict:
    try:
        state = session.dispatch(command)
    except FlowBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if isinstance(state, Input) and state.error is not None:
        raise HTTPException(
            status_code=422,
            detail=state.error.to_dict(),
        )
    return _flow_response(flow, state)


@router.post("/deposit", status_code=status.HTTP_202_ACCEPTED)
async def request_deposit(body: AmountRequestBody, session: VaultSession = Depends(get_session)):
    return await _start(FlowName.DEPOSIT, DepositRequested(body.amount), session)


@router.post("/withdraw", status_code=status.HTTP_202_ACCEPTED)
async def request_withdraw(body: AmountRequestBody, session: VaultSession = Depends(get_session)):
    return await _start(FlowName.WITHDRAW, WithdrawRequested(body.amount), session)


# Registered before the generic flow action route, which would shadow it
@router.post("/balances/refresh")
async def refresh_balances(session: VaultSession = Depends(get_session)):
    balances = await session.refresh_balances()
    return {key: (str(value) if value is not None else None) for key, value in balances.items()}


@router.post("/{flow}/{action}")
async def flow_action(
    flow: FlowName,
    action: FlowAction,
    session: VaultSession = Depends(get_session),
):
    """Retry, cancel or acknowledge the current attempt of a flow."""
    if action == FlowAction.RETRY:
        command = RetryRequested(flow.value)
    elif action == FlowAction.CANCEL:
        command = CancelRequested(flow.value)
    else:
        command = Acknowledged(flow.value)

    try:
        state = session.dispatch(command)
    except (FlowBusyError, InvalidTransitionError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _flow_response(flow, state)

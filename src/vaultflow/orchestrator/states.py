"""Flow states.

Each orchestrator holds exactly one of these at a time. They are frozen, so a
transition always installs a new object.
"""

from dataclasses import dataclass
from typing import Optional, Union

from vaultflow.amounts import AmountRequest
from vaultflow.attestation import BalanceSnapshot
from vaultflow.errors import FlowError
from vaultflow.watcher import TransactionHandle


@dataclass(frozen=True)
class Input:
    """Idle, waiting for a request. ``error`` holds the last validation failure."""

    error: Optional[FlowError] = None


@dataclass(frozen=True)
class Approving:
    amount: AmountRequest
    tx: Optional[TransactionHandle] = None


@dataclass(frozen=True)
class Depositing:
    amount: AmountRequest
    snapshot: Optional[BalanceSnapshot] = None
    tx: Optional[TransactionHandle] = None


@dataclass(frozen=True)
class Withdrawing:
    amount: AmountRequest
    tx: Optional[TransactionHandle] = None


@dataclass(frozen=True)
class Confirming:
    """Transaction confirmed, waiting for the caller to acknowledge."""

    amount: AmountRequest
    tx: TransactionHandle


@dataclass(frozen=True)
class Done:
    amount: AmountRequest
    tx: TransactionHandle


@dataclass(frozen=True)
class Error:
    cause: FlowError
    stage: str
    tx_hash: Optional[str] = None


FlowState = Union[Input, Approving, Depositing, Withdrawing, Confirming, Done, Error]

# States in which a new attempt must be rejected
BUSY_STATES = (Approving, Depositing, Withdrawing, Confirming)


def state_name(state: FlowState) -> str:
    return type(state).__name__


def describe_state(state: FlowState) -> dict:
    """JSON-friendly view of a state."""
    data: dict = {"name": state_name(state)}

    amount = getattr(state, "amount", None)
    if amount is not None:
        data["amount"] = str(amount)
        data["amount_base_units"] = str(amount.base_units)

    tx = getattr(state, "tx", None)
    if tx is not None:
        data["tx"] = tx.to_dict()

    if isinstance(state, Input) and state.error is not None:
        data["error"] = state.error.to_dict()
    elif isinstance(state, Error):
        data["error"] = state.cause.to_dict()
        data["stage"] = state.stage
        data["tx_hash"] = state.tx_hash

    return data

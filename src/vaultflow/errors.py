"""Failure taxonomy for the deposit and withdraw flows.

Every failure that reaches an orchestrator is turned into one of the
FlowError subclasses below. The orchestrators return the classified error
as part of their Error state instead of only logging it.
"""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Failure classification."""

    USER_REJECTED = "user_rejected"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ATTESTATION_FAILURE = "attestation_failure"
    CHAIN_REJECTED = "chain_rejected"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"


class FlowError(Exception):
    """Base class for classified flow failures."""

    kind: ErrorKind = ErrorKind.CHAIN_REJECTED
    recoverable: bool = True
    # Whether balances/allowance must be re-read before a retry makes sense
    needs_refresh: bool = False

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.message = message
        self.tx_hash = tx_hash
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "tx_hash": self.tx_hash,
        }


class UserRejected(FlowError):
    """The wallet (or its user) refused to sign."""

    kind = ErrorKind.USER_REJECTED


class InsufficientFunds(FlowError):
    """Gas or asset balance too low."""

    kind = ErrorKind.INSUFFICIENT_FUNDS


class AttestationFailure(FlowError):
    """Oracle unreachable, unauthenticated or returned an error. No chain state changed."""

    kind = ErrorKind.ATTESTATION_FAILURE


class ChainRejected(FlowError):
    """Transaction reverted (or was refused) on-chain."""

    kind = ErrorKind.CHAIN_REJECTED
    needs_refresh = True


class ConfigurationError(FlowError):
    """Unsupported chain id, missing credentials and similar environment problems."""

    kind = ErrorKind.CONFIGURATION
    recoverable = False


class ValidationError(FlowError):
    """Malformed or out-of-range input, caught before any network call."""

    kind = ErrorKind.VALIDATION


class FlowBusyError(RuntimeError):
    """Raised when a flow is started while another attempt is still in flight."""

    def __init__(self, flow: str, state: str):
        self.flow = flow
        self.state = state
        super().__init__(f"A {flow} is already in progress (state: {state})")


class InvalidTransitionError(RuntimeError):
    """Raised when a command does not apply to the current state."""

    def __init__(self, flow: str, command: str, state: str):
        self.flow = flow
        self.command = command
        self.state = state
        super().__init__(f"Cannot {command} {flow} in state {state}")


class WalletRejectedError(Exception):
    """Raised by wallets when the signing request is declined."""

    code = 4001


_REJECTION_MARKERS = ("user rejected", "user denied", "userrejectedrequesterror")
_INSUFFICIENT_MARKERS = ("insufficient funds", "exceeds balance", "insufficient balance")


def classify_error(exc: BaseException, tx_hash: Optional[str] = None) -> FlowError:
    """Map an arbitrary wallet/chain exception onto the taxonomy.

    Already-classified errors are returned unchanged. Unknown failures during
    submission are treated as chain rejections since on-chain state may have
    moved and a refresh is needed before retrying.
    """
    if isinstance(exc, FlowError):
        if tx_hash and not exc.tx_hash:
            exc.tx_hash = tx_hash
        return exc

    message = str(exc) or exc.__class__.__name__
    lowered = f"{exc.__class__.__name__} {message}".lower()

    if isinstance(exc, WalletRejectedError) or getattr(exc, "code", None) == 4001:
        return UserRejected(
            "Transaction was rejected. Please try again if you want to proceed.",
            tx_hash=tx_hash,
        )

    if any(marker in lowered for marker in _REJECTION_MARKERS):
        return UserRejected(
            "Transaction was rejected. Please try again if you want to proceed.",
            tx_hash=tx_hash,
        )

    if any(marker in lowered for marker in _INSUFFICIENT_MARKERS):
        return InsufficientFunds(f"Insufficient funds: {message}", tx_hash=tx_hash)

    logger.debug(f"Unclassified failure treated as chain rejection: {exc!r}")
    return ChainRejected(message, tx_hash=tx_hash)

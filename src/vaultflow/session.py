"""Per-user vault session and its command channel.

A session owns one deposit and one withdraw orchestrator, the balance cache
they share and the status feed. The presentation layer talks to it only by
dispatching command objects.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from vaultflow.attestation import AttestationClient
from vaultflow.caches import BalanceCache
from vaultflow.chains import get_chain
from vaultflow.config import Settings, get_settings
from vaultflow.errors import ConfigurationError
from vaultflow.orchestrator import (
    DepositOrchestrator,
    FlowState,
    WithdrawOrchestrator,
    describe_state,
)
from vaultflow.orchestrator.base import FlowOrchestrator
from vaultflow.reader import VaultReader
from vaultflow.status import StatusBus
from vaultflow.vault import VaultGateway
from vaultflow.wallet import LocalWallet
from vaultflow.watcher import TransactionWatcher, Web3ReceiptSource

logger = logging.getLogger(__name__)

DEPOSIT = "deposit"
WITHDRAW = "withdraw"


# ======================
# Commands
# ======================


@dataclass(frozen=True)
class DepositRequested:
    amount: str


@dataclass(frozen=True)
class WithdrawRequested:
    amount: str


@dataclass(frozen=True)
class RetryRequested:
    flow: str


@dataclass(frozen=True)
class CancelRequested:
    flow: str


@dataclass(frozen=True)
class Acknowledged:
    flow: str


Command = Union[DepositRequested, WithdrawRequested, RetryRequested, CancelRequested, Acknowledged]


class VaultSession:
    """Everything one user needs to deposit into and withdraw from the vault."""

    def __init__(
        self,
        deposit: DepositOrchestrator,
        withdraw: WithdrawOrchestrator,
        caches: BalanceCache,
        status: StatusBus,
        watcher: TransactionWatcher,
        attestation: Optional[AttestationClient] = None,
    ):
        self.deposit = deposit
        self.withdraw = withdraw
        self.caches = caches
        self.status = status
        self.watcher = watcher
        self.attestation = attestation

    def orchestrator(self, flow: str) -> FlowOrchestrator:
        if flow == DEPOSIT:
            return self.deposit
        if flow == WITHDRAW:
            return self.withdraw
        raise ValueError(f"Unknown flow: {flow}")

    def dispatch(self, command: Command) -> FlowState:
        """Apply a command and return the resulting state of its flow.

        Raises:
            FlowBusyError: a start or retry while an attempt is in flight
            InvalidTransitionError: acknowledge outside ``Confirming``
        """
        logger.debug(f"Dispatching {command!r}")
        if isinstance(command, DepositRequested):
            self.deposit.launch(command.amount)
            return self.deposit.state
        if isinstance(command, WithdrawRequested):
            self.withdraw.launch(command.amount)
            return self.withdraw.state
        if isinstance(command, RetryRequested):
            return self.orchestrator(command.flow).retry()
        if isinstance(command, CancelRequested):
            return self.orchestrator(command.flow).cancel()
        if isinstance(command, Acknowledged):
            return self.orchestrator(command.flow).acknowledge()
        raise TypeError(f"Unsupported command: {command!r}")

    async def refresh_balances(self) -> dict:
        return await self.caches.refresh_all()

    async def oracle_healthy(self) -> Optional[bool]:
        if self.attestation is None:
            return None
        return await self.attestation.check_health()

    def describe(self) -> dict:
        return {
            DEPOSIT: describe_state(self.deposit.state),
            WITHDRAW: describe_state(self.withdraw.state),
            "status": [m.to_dict() for m in self.status.messages()],
            "balances": {
                key: (str(value) if value is not None else None)
                for key, value in self.caches.snapshot().items()
            },
            "pending_transactions": [h.to_dict() for h in self.watcher.pending()],
        }

    async def aclose(self) -> None:
        await self.watcher.aclose()


def build_session(settings: Optional[Settings] = None) -> VaultSession:
    """Wire a session for the configured chain and wallet.

    Raises:
        ConfigurationError: unsupported chain, undeployed vault, missing
            RPC URL or wallet key material
    """
    from web3 import AsyncHTTPProvider, AsyncWeb3

    settings = settings or get_settings()
    chain = get_chain(settings.chain_id)

    rpc_url = settings.get_rpc_url(chain.chain_id)
    if not rpc_url:
        raise ConfigurationError(f"No RPC URL configured for {chain.name}")
    if not settings.has_wallet:
        raise ConfigurationError("Wallet key material is not configured")

    w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
    wallet = LocalWallet.from_settings(w3, settings)
    watcher = TransactionWatcher(
        Web3ReceiptSource({chain.chain_id: w3}),
        poll_interval=settings.confirmation_poll_interval,
    )
    gateway = VaultGateway(chain.chain_id, w3, wallet, watcher)
    caches = BalanceCache(VaultReader(w3, chain.chain_id, wallet.address))
    status = StatusBus(settings.status_capacity, settings.status_ttl_seconds)
    attestation = AttestationClient(
        settings.oracle_url,
        settings.oracle_api_key,
        snapshot_path=settings.oracle_snapshot_path,
        timeout=settings.oracle_timeout,
    )

    common = dict(
        status=status,
        caches=caches,
        watcher=watcher,
        chain_id=chain.chain_id,
        receiver=wallet.address,
        decimals=settings.asset_decimals,
        max_amount=settings.max_amount,
        asset_symbol=settings.asset_symbol,
        stall_notice_seconds=settings.stall_notice_seconds,
    )
    if not settings.has_oracle_credentials:
        logger.warning("ORACLE_API_KEY is not set, deposits will fail at the attestation step")
    logger.info(f"Vault session for {wallet.address} on {chain.name}")
    return VaultSession(
        deposit=DepositOrchestrator(gateway, attestation, **common),
        withdraw=WithdrawOrchestrator(gateway, **common),
        caches=caches,
        status=status,
        watcher=watcher,
        attestation=attestation,
    )

"""Deposit state machine.

    Input -> [Approving] -> Depositing -> Confirming -> Done
                 |              |
                 +---> Error <--+

Approval is skipped when the current allowance already covers the amount.
Every deposit fetches a fresh signed balance snapshot; its ``balance``
decides between the plain ERC-4626 deposit and the attested deposit.
"""

import logging
from typing import Optional, Union

from vaultflow.allowance import AllowanceGate
from vaultflow.amounts import MAX_UINT256, AmountRequest
from vaultflow.attestation import AttestationClient, BalanceSnapshot
from vaultflow.caches import ALLOWANCE, ASSET_BALANCE
from vaultflow.errors import AttestationFailure, ValidationError
from vaultflow.orchestrator.base import FlowOrchestrator
from vaultflow.orchestrator.states import Approving, Confirming, Depositing
from vaultflow.status import StatusCategory
from vaultflow.vault import VaultGateway

logger = logging.getLogger(__name__)

APPROVING_KEY = "deposit-approving"
PENDING_KEY = "deposit-pending"
SUCCESS_KEY = "deposit-success"


class DepositOrchestrator(FlowOrchestrator):
    """Sequences approval, attestation and the vault deposit call."""

    flow = "deposit"
    pending_keys = (APPROVING_KEY, PENDING_KEY)

    def __init__(
        self,
        gateway: VaultGateway,
        attestation: AttestationClient,
        *,
        gate: Optional[AllowanceGate] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.gateway = gateway
        self.attestation = attestation
        self.gate = gate or AllowanceGate(self.decimals)

    def _validate(self, amount: Union[str, AmountRequest]) -> AmountRequest:
        request = self._parse(amount)
        balance = self.caches.value(ASSET_BALANCE)
        if balance is not None and request.base_units > balance:
            raise ValidationError(f"Insufficient {self.asset_symbol} balance")
        return request

    def _invalidate_collaborators(self) -> None:
        self.attestation.invalidate()

    async def _current_allowance(self) -> int:
        allowance = self.caches.value(ALLOWANCE)
        if allowance is None:
            allowance = (await self.caches.refresh(ALLOWANCE)).value
        return allowance

    async def _execute(self, request: AmountRequest) -> None:
        allowance = await self._current_allowance()
        if self.gate.needs_approval(request, allowance):
            await self._approve(request)
        else:
            logger.info(f"Allowance {allowance} covers {request.base_units}, skipping approval")

        await self._deposit(request)

    async def _approve(self, request: AmountRequest) -> None:
        self._set_state(Approving(amount=request))
        self.status.upsert(
            APPROVING_KEY,
            StatusCategory.PENDING,
            "Approving spending limit...",
            chain_id=self.chain_id,
        )

        try:
            handle = await self.gateway.approve(self.gateway.vault_address, MAX_UINT256)
            self._set_state(Approving(amount=request, tx=handle))
            await self._await_tx(handle, APPROVING_KEY)
        except Exception:
            await self._refresh_quietly(ALLOWANCE)
            raise
        await self._refresh_quietly(ALLOWANCE)

        self.status.upsert(
            APPROVING_KEY,
            StatusCategory.SUCCESS,
            "Approval successful. Proceeding...",
            tx_hash=handle.tx_hash,
            chain_id=self.chain_id,
        )

    async def _fetch_snapshot(self, request: AmountRequest) -> BalanceSnapshot:
        snapshot = await self.attestation.request_snapshot(
            request.base_units, self.receiver, self.chain_id
        )
        if snapshot.is_expired(self._clock()):
            raise AttestationFailure("Balance snapshot expired before it could be used")
        if not snapshot.matches(request.base_units, self.receiver):
            raise AttestationFailure("Balance snapshot does not match the requested deposit")
        return snapshot

    async def _deposit(self, request: AmountRequest) -> None:
        self._set_state(Depositing(amount=request))
        self.status.upsert(
            PENDING_KEY,
            StatusCategory.PENDING,
            "Deposit in progress...",
            chain_id=self.chain_id,
        )

        snapshot = await self._fetch_snapshot(request)
        self._set_state(Depositing(amount=request, snapshot=snapshot))

        # The vault only accepts the attested path for a non-zero balance
        if snapshot.balance == 0:
            handle = await self.gateway.deposit_plain(request.base_units, self.receiver)
        else:
            handle = await self.gateway.deposit_with_attestation(
                request.base_units, self.receiver, snapshot
            )
        self._set_state(Depositing(amount=request, snapshot=snapshot, tx=handle))

        await self._await_tx(handle, PENDING_KEY)

        self.status.remove(PENDING_KEY)
        self._set_state(Confirming(amount=request, tx=handle))
        self.status.upsert(
            SUCCESS_KEY,
            StatusCategory.SUCCESS,
            f"Deposit of {request} {self.asset_symbol} completed successfully!",
            tx_hash=handle.tx_hash,
            chain_id=self.chain_id,
        )
        await self.caches.refresh_all()

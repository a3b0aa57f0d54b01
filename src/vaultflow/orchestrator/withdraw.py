"""Withdraw state machine: Input -> Withdrawing -> Confirming -> Done."""

import logging
from typing import Union

from vaultflow.amounts import AmountRequest
from vaultflow.errors import ValidationError
from vaultflow.orchestrator.base import FlowOrchestrator
from vaultflow.orchestrator.states import Confirming, Withdrawing
from vaultflow.status import StatusCategory
from vaultflow.vault import VaultGateway

logger = logging.getLogger(__name__)

PENDING_KEY = "withdraw-pending"
SUCCESS_KEY = "withdraw-success"


class WithdrawOrchestrator(FlowOrchestrator):
    """Redeems assets the owner already holds in the vault.

    The redeemable-balance check at ``Input`` uses cached values only and is
    advisory. A revert from the vault is still the final word.
    """

    flow = "withdraw"
    pending_keys = (PENDING_KEY,)

    def __init__(self, gateway: VaultGateway, **kwargs):
        super().__init__(**kwargs)
        self.gateway = gateway

    def _validate(self, amount: Union[str, AmountRequest]) -> AmountRequest:
        request = self._parse(amount)
        redeemable = self.caches.redeemable_assets()
        if redeemable is None:
            raise ValidationError("Withdrawable balance is unknown. Refresh balances and try again.")
        if request.base_units > redeemable:
            raise ValidationError("Amount exceeds withdrawable balance")
        return request

    async def _execute(self, request: AmountRequest) -> None:
        self._set_state(Withdrawing(amount=request))
        self.status.upsert(
            PENDING_KEY,
            StatusCategory.PENDING,
            "Withdrawal in progress...",
            chain_id=self.chain_id,
        )

        handle = await self.gateway.withdraw(request.base_units, self.receiver, self.receiver)
        self._set_state(Withdrawing(amount=request, tx=handle))

        await self._await_tx(handle, PENDING_KEY)

        self.status.remove(PENDING_KEY)
        self._set_state(Confirming(amount=request, tx=handle))
        self.status.upsert(
            SUCCESS_KEY,
            StatusCategory.SUCCESS,
            f"Withdrawal of {request} {self.asset_symbol} completed successfully!",
            tx_hash=handle.tx_hash,
            chain_id=self.chain_id,
        )
        await self.caches.refresh_all()

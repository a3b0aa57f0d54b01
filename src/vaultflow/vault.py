"""Write calls against the asset token and the vault.

Every operation submits exactly one transaction and returns its
TransactionHandle (already registered with the watcher). Failures before a
hash exists are classified and raised.
"""

import logging
from typing import Optional

from vaultflow.abi import ERC20_ABI, VAULT_ABI
from vaultflow.amounts import MAX_UINT256
from vaultflow.attestation import BalanceSnapshot
from vaultflow.chains import get_asset_address, get_vault_address
from vaultflow.errors import classify_error
from vaultflow.wallet import Wallet
from vaultflow.watcher import TransactionHandle, TransactionWatcher

logger = logging.getLogger(__name__)


class VaultGateway:
    """Approve, deposit (plain or attested) and withdraw for one chain."""

    def __init__(self, chain_id: int, w3, wallet: Wallet, watcher: TransactionWatcher):
        self.chain_id = chain_id
        self.w3 = w3
        self.wallet = wallet
        self.watcher = watcher
        # Raises ConfigurationError for unknown chains / undeployed vaults
        self.vault_address = w3.to_checksum_address(get_vault_address(chain_id))
        self.asset_address = w3.to_checksum_address(get_asset_address(chain_id))
        self.asset = w3.eth.contract(address=self.asset_address, abi=ERC20_ABI)
        self.vault = w3.eth.contract(address=self.vault_address, abi=VAULT_ABI)

    async def _transact(self, contract_fn, label: str) -> TransactionHandle:
        try:
            tx = await contract_fn.build_transaction({"from": self.wallet.address})
            tx_hash = await self.wallet.send_transaction(tx)
        except Exception as e:
            error = classify_error(e)
            logger.warning(f"{label} failed before submission: {error.kind.value}: {error.message}")
            raise error from e

        logger.info(f"{label} submitted: {tx_hash}")
        return self.watcher.track(self.chain_id, tx_hash)

    async def approve(
        self, spender: Optional[str] = None, amount: int = MAX_UINT256
    ) -> TransactionHandle:
        """Approve ``spender`` (the vault by default) to pull the asset."""
        spender = self.w3.to_checksum_address(spender) if spender else self.vault_address
        fn = self.asset.functions.approve(spender, amount)
        return await self._transact(fn, "Approval")

    async def deposit_plain(self, assets: int, receiver: str) -> TransactionHandle:
        fn = self.vault.functions.deposit(assets, self.w3.to_checksum_address(receiver))
        return await self._transact(fn, "Deposit")

    async def deposit_with_attestation(
        self, assets: int, receiver: str, snapshot: BalanceSnapshot
    ) -> TransactionHandle:
        """Deposit carrying the oracle-signed snapshot, passed through unchanged."""
        balance, nonce, deadline, snap_assets, snap_receiver = snapshot.to_tuple()
        snapshot_struct = (
            balance,
            nonce,
            deadline,
            snap_assets,
            self.w3.to_checksum_address(snap_receiver),
        )
        fn = self.vault.functions.depositWithExtraInfoViaSignature(
            assets,
            self.w3.to_checksum_address(receiver),
            snapshot_struct,
            snapshot.signature_bytes,
        )
        return await self._transact(fn, "Attested deposit")

    async def withdraw(self, assets: int, receiver: str, owner: str) -> TransactionHandle:
        fn = self.vault.functions.withdraw(
            assets,
            self.w3.to_checksum_address(receiver),
            self.w3.to_checksum_address(owner),
        )
        return await self._transact(fn, "Withdrawal")

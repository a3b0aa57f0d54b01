"""Read-only vault and token queries."""

import logging
from typing import Optional

from vaultflow.abi import ERC20_ABI, VAULT_ABI
from vaultflow.chains import get_asset_address, get_vault_address

logger = logging.getLogger(__name__)


class VaultReader:
    """View calls against the asset token and the vault for one owner.

    Every method performs a single ``eth_call``. Addresses are looked up on
    construction so an unsupported chain fails fast with ConfigurationError.
    """

    def __init__(self, w3, chain_id: int, owner: str):
        self.w3 = w3
        self.chain_id = chain_id
        self.owner = w3.to_checksum_address(owner)
        self.vault_address = w3.to_checksum_address(get_vault_address(chain_id))
        self.asset_address = w3.to_checksum_address(get_asset_address(chain_id))
        self._asset = None
        self._vault = None

    @property
    def asset(self):
        if self._asset is None:
            self._asset = self.w3.eth.contract(address=self.asset_address, abi=ERC20_ABI)
        return self._asset

    @property
    def vault(self):
        if self._vault is None:
            self._vault = self.w3.eth.contract(address=self.vault_address, abi=VAULT_ABI)
        return self._vault

    async def allowance(self, spender: Optional[str] = None) -> int:
        """Asset allowance granted by the owner to the vault (or ``spender``)."""
        spender = self.w3.to_checksum_address(spender) if spender else self.vault_address
        return await self.asset.functions.allowance(self.owner, spender).call()

    async def asset_balance(self) -> int:
        return await self.asset.functions.balanceOf(self.owner).call()

    async def share_balance(self) -> int:
        return await self.vault.functions.balanceOf(self.owner).call()

    async def total_assets(self) -> int:
        return await self.vault.functions.totalAssets().call()

    async def total_supply(self) -> int:
        return await self.vault.functions.totalSupply().call()

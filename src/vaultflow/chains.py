"""Supported networks and vault deployments.

A fixed allow-list of chain ids. Looking up an address for any other chain
(or for a chain where the vault is not deployed yet) is a configuration
error, never a silent fallback.
"""

from dataclasses import dataclass
from typing import Optional

from vaultflow.errors import ConfigurationError


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a supported network."""

    name: str
    chain_id: int
    explorer_url: str
    vault_address: str = ""  # empty = not yet deployed
    asset_address: str = ""  # USDC
    is_testnet: bool = True

    @property
    def has_vault(self) -> bool:
        return bool(self.vault_address)


# ======================
# Chain Configurations
# ======================

SUPPORTED_CHAINS: dict[int, ChainConfig] = {
    31337: ChainConfig(
        name="Localhost",
        chain_id=31337,
        explorer_url="",
        vault_address="0x610178dA211FEF7D417bC0e6FeD39F05609AD788",
        asset_address="0x16f18Ee01365Ef23E0564dfB635215A5B4Eaa3c4",  # MockUSDC
    ),
    84532: ChainConfig(
        name="Base Sepolia",
        chain_id=84532,
        explorer_url="https://sepolia.basescan.org",
        vault_address="0xDEAfA3ba09ffF027F0dA4c8Ba79C238A547aeBd3",
        asset_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",  # Circle USDC
    ),
    421614: ChainConfig(
        name="Arbitrum Sepolia",
        chain_id=421614,
        explorer_url="https://sepolia.arbiscan.io",
        asset_address="0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d",
    ),
    11155420: ChainConfig(
        name="Optimism Sepolia",
        chain_id=11155420,
        explorer_url="https://sepolia-optimism.etherscan.io",
        asset_address="0x5fd84259d66Cd46123540766Be93DFE6D43130D7",
    ),
}


def _supported_list() -> str:
    return ", ".join(f"{c.name} ({c.chain_id})" for c in SUPPORTED_CHAINS.values())


def is_supported(chain_id: Optional[int]) -> bool:
    return chain_id in SUPPORTED_CHAINS


def get_chain(chain_id: int) -> ChainConfig:
    """Get configuration for a chain id.

    Raises:
        ConfigurationError: if the chain id is not on the allow-list
    """
    if not is_supported(chain_id):
        raise ConfigurationError(
            f"Unsupported chain ID: {chain_id}. Supported networks: {_supported_list()}."
        )
    return SUPPORTED_CHAINS[chain_id]


def get_vault_address(chain_id: int) -> str:
    """Get the vault contract address for a chain."""
    config = get_chain(chain_id)
    if not config.has_vault:
        raise ConfigurationError(
            f"Vault not yet deployed on {config.name}. Coming soon!"
        )
    return config.vault_address


def get_asset_address(chain_id: int) -> str:
    """Get the USDC token address for a chain."""
    config = get_chain(chain_id)
    if not config.asset_address:
        raise ConfigurationError(f"No asset token configured for {config.name}")
    return config.asset_address


def get_explorer_tx_url(chain_id: Optional[int], tx_hash: str) -> Optional[str]:
    """Block explorer link for a transaction, if the chain has an explorer."""
    config = SUPPORTED_CHAINS.get(chain_id) if chain_id is not None else None
    if config is None or not config.explorer_url:
        return None
    return f"{config.explorer_url}/tx/{tx_hash}"

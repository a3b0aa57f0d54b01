"""Application configuration using pydantic-settings.

Everything the orchestrators need from the environment: the active chain,
RPC endpoints, the wallet key material and the attestation oracle.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Network
    # ======================
    chain_id: int = Field(default=84532, description="Chain the vault session runs on")

    localhost_rpc_url: str = Field(
        default="http://127.0.0.1:8545", description="Local node RPC URL"
    )
    base_sepolia_rpc_url: str = Field(
        default="https://sepolia.base.org", description="Base Sepolia RPC URL"
    )
    arbitrum_sepolia_rpc_url: str = Field(
        default="https://sepolia-rollup.arbitrum.io/rpc", description="Arbitrum Sepolia RPC URL"
    )
    optimism_sepolia_rpc_url: str = Field(
        default="https://sepolia.optimism.io", description="Optimism Sepolia RPC URL"
    )

    # ======================
    # Wallet
    # ======================
    wallet_private_key: Optional[str] = Field(
        default=None, description="Hex private key used to sign vault transactions"
    )
    wallet_seed_phrase: Optional[str] = Field(
        default=None, description="12/24 word seed phrase (BIP44 derivation) if no private key"
    )
    wallet_account_index: int = Field(default=0, description="BIP44 address index")

    # ======================
    # Attestation oracle
    # ======================
    oracle_url: str = Field(
        default="http://localhost:3001", description="Balance attestation service base URL"
    )
    oracle_api_key: Optional[str] = Field(
        default=None, description="Bearer token for the attestation service"
    )
    oracle_snapshot_path: str = Field(
        default="/balance-snapshot", description="Path of the signed snapshot endpoint"
    )
    oracle_timeout: float = Field(default=30.0, description="Oracle request timeout in seconds")

    # ======================
    # Asset
    # ======================
    asset_symbol: str = Field(default="USDC", description="Vault underlying asset symbol")
    asset_decimals: int = Field(default=6, description="Underlying asset decimals")
    max_amount: int = Field(
        default=10**12, description="Largest amount (whole units) accepted in one request"
    )

    # ======================
    # Status feed
    # ======================
    status_capacity: int = Field(default=3, description="Messages kept in the status feed")
    status_ttl_seconds: float = Field(
        default=10.0, description="Lifetime of success/info status messages"
    )

    # ======================
    # Confirmation tracking
    # ======================
    confirmation_poll_interval: float = Field(
        default=2.0, description="Seconds between receipt polls"
    )
    stall_notice_seconds: Optional[float] = Field(
        default=120.0,
        description="Show a 'still waiting' notice after this many seconds (None = never)",
    )

    @property
    def has_wallet(self) -> bool:
        """Check if signing key material is configured."""
        if self.wallet_private_key:
            return True
        return bool(self.wallet_seed_phrase and len(self.wallet_seed_phrase.split()) >= 12)

    @property
    def has_oracle_credentials(self) -> bool:
        return bool(self.oracle_api_key)

    def get_rpc_url(self, chain_id: int) -> str:
        """Get RPC URL for a chain id ("" when the chain is not configured)."""
        rpc_map = {
            31337: self.localhost_rpc_url,
            84532: self.base_sepolia_rpc_url,
            421614: self.arbitrum_sepolia_rpc_url,
            11155420: self.optimism_sepolia_rpc_url,
        }
        return rpc_map.get(chain_id, "")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "chain_id": self.chain_id,
            "rpc_url": self.get_rpc_url(self.chain_id) or "(unsupported)",
            "wallet_configured": self.has_wallet,
            "oracle": {
                "url": self.oracle_url,
                "api_key": "***" if self.oracle_api_key else "(not set)",
                "timeout": self.oracle_timeout,
            },
            "asset": {
                "symbol": self.asset_symbol,
                "decimals": self.asset_decimals,
                "max_amount": self.max_amount,
            },
            "status": {
                "capacity": self.status_capacity,
                "ttl_seconds": self.status_ttl_seconds,
            },
            "confirmations": {
                "poll_interval": self.confirmation_poll_interval,
                "stall_notice_seconds": self.stall_notice_seconds,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

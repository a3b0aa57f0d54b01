"""Signing wallet for vault transactions.

The orchestrators only need an address and a way to submit a transaction.
``LocalWallet`` signs with a private key (given directly, or derived from a
seed phrase along the standard BIP44 Ethereum path) and broadcasts through
an AsyncWeb3 provider.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

from vaultflow.errors import ConfigurationError, WalletRejectedError

logger = logging.getLogger(__name__)

# Called with the unsigned transaction; returning False declines it
ConfirmHook = Callable[[dict], Awaitable[bool]]


class Wallet:
    """Base class for transaction senders."""

    @property
    def address(self) -> str:
        raise NotImplementedError

    async def send_transaction(self, tx_params: dict) -> str:
        """Sign and broadcast a transaction, returning its hash."""
        raise NotImplementedError


def derive_private_key(seed_phrase: str, index: int = 0) -> bytes:
    """Derive the EVM private key at m/44'/60'/0'/0/index."""
    from bip_utils import Bip39SeedGenerator, Bip44, Bip44Changes, Bip44Coins

    seed = Bip39SeedGenerator(seed_phrase).Generate()
    bip44 = Bip44.FromSeed(seed, Bip44Coins.ETHEREUM)
    account = bip44.Purpose().Coin().Account(0).Change(Bip44Changes.CHAIN_EXT)
    return account.AddressIndex(index).PrivateKey().Raw().ToBytes()


class LocalWallet(Wallet):
    """Wallet backed by a locally held key."""

    def __init__(
        self,
        w3,
        private_key: Union[str, bytes, None] = None,
        seed_phrase: Optional[str] = None,
        index: int = 0,
        confirm: Optional[ConfirmHook] = None,
    ):
        from eth_account import Account

        if private_key is None:
            if not seed_phrase:
                raise ConfigurationError("No wallet key material configured")
            private_key = derive_private_key(seed_phrase, index)

        self.w3 = w3
        self._account = Account.from_key(private_key)
        self._confirm = confirm
        self._nonce_lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None

    @classmethod
    def from_settings(cls, w3, settings, confirm: Optional[ConfirmHook] = None) -> "LocalWallet":
        return cls(
            w3,
            private_key=settings.wallet_private_key,
            seed_phrase=settings.wallet_seed_phrase,
            index=settings.wallet_account_index,
            confirm=confirm,
        )

    @property
    def address(self) -> str:
        return self._account.address

    async def _get_next_nonce(self) -> int:
        """Next nonce, accounting for transactions we sent that are still pending."""
        async with self._nonce_lock:
            chain_nonce = await self.w3.eth.get_transaction_count(self.address, "pending")
            nonce = max(chain_nonce, self._next_nonce or 0)
            self._next_nonce = nonce + 1
            return nonce

    def _reset_nonce_cache(self) -> None:
        self._next_nonce = None

    async def send_transaction(self, tx_params: dict) -> str:
        if self._confirm is not None and not await self._confirm(dict(tx_params)):
            raise WalletRejectedError("User rejected the request")

        tx_params = dict(tx_params)
        tx_params.setdefault("from", self.address)
        if "nonce" not in tx_params:
            tx_params["nonce"] = await self._get_next_nonce()
        if "chainId" not in tx_params:
            tx_params["chainId"] = await self.w3.eth.chain_id
        if "gas" not in tx_params:
            tx_params["gas"] = await self.w3.eth.estimate_gas(tx_params)
        if "gasPrice" not in tx_params and "maxFeePerGas" not in tx_params:
            tx_params["gasPrice"] = await self.w3.eth.gas_price

        signed_tx = self._account.sign_transaction(tx_params)

        try:
            # eth-account renamed rawTransaction to raw_transaction
            raw_tx = getattr(signed_tx, "raw_transaction", None) or signed_tx.rawTransaction
            tx_hash = await self.w3.eth.send_raw_transaction(raw_tx)
        except Exception:
            # Next transaction must re-read the nonce from the chain
            self._reset_nonce_cache()
            raise

        tx_hash_hex = self.w3.to_hex(tx_hash)
        logger.info(f"Sent transaction {tx_hash_hex} from {self.address}")
        return tx_hash_hex

"""Client for the balance attestation service (the "oracle").

The oracle signs a snapshot of the depositor's balance on other chains. The
vault only accepts the signature for the exact tuple it was issued for, so a
snapshot is requested fresh for every deposit attempt and never reused.
"""

import logging
import time
from typing import Callable, Optional

import httpx
import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

from vaultflow.errors import AttestationFailure, ConfigurationError

logger = logging.getLogger(__name__)


class BalanceSnapshot(BaseModel):
    """Signed cross-chain balance snapshot.

    Integers arrive as decimal strings and are parsed to ``int``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    balance: int
    nonce: int
    deadline: int
    assets: int
    receiver: str
    signature: str
    signer_address: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("signerAddress", "agentAddress", "signer_address"),
    )

    @field_validator("receiver", "signer_address")
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not Web3.is_address(v):
            raise ValueError(f"Invalid address: {v}")
        return v

    @field_validator("signature")
    @classmethod
    def validate_signature(cls, v: str) -> str:
        digits = v[2:] if v.startswith(("0x", "0X")) else v
        if not digits or len(digits) % 2:
            raise ValueError("Signature must be hex-encoded bytes")
        try:
            bytes.fromhex(digits)
        except ValueError:
            raise ValueError("Signature must be hex-encoded bytes") from None
        return v

    def is_expired(self, now: Optional[float] = None) -> bool:
        """True once the deadline (unix seconds) has passed."""
        if now is None:
            now = time.time()
        return self.deadline <= now

    def matches(self, assets: int, receiver: str) -> bool:
        """True when the snapshot was issued for this amount and receiver."""
        return self.assets == assets and self.receiver.lower() == receiver.lower()

    def to_tuple(self) -> tuple[int, int, int, int, str]:
        """Struct argument for depositWithExtraInfoViaSignature."""
        return (self.balance, self.nonce, self.deadline, self.assets, self.receiver)

    @property
    def signature_bytes(self) -> bytes:
        sig = self.signature
        if sig.startswith(("0x", "0X")):
            sig = sig[2:]
        return bytes.fromhex(sig)


class AttestationClient:
    """Requests signed balance snapshots. Performs no retries of its own."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        snapshot_path: str = "/balance-snapshot",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        health_ttl: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.snapshot_path = snapshot_path
        self.timeout = timeout
        self.health_ttl = health_ttl
        self._transport = transport
        self._clock = clock
        self._health: Optional[tuple[bool, float]] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    def _get_headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def request_snapshot(self, assets: int, receiver: str, chain_id: int) -> BalanceSnapshot:
        """Fetch a signed snapshot for one deposit attempt.

        Raises:
            ConfigurationError: API key missing or rejected by the service
            AttestationFailure: service unreachable, returned an error, or
                sent a body that is not a valid snapshot
        """
        if not self.api_key:
            raise ConfigurationError("Oracle API key is not configured")

        payload = {"assets": str(assets), "receiver": receiver, "chainId": chain_id}
        logger.info(f"Requesting balance snapshot: assets={assets} receiver={receiver} chain={chain_id}")

        try:
            async with self._client() as client:
                response = await client.post(
                    self.snapshot_path, json=payload, headers=self._get_headers()
                )
        except httpx.HTTPError as e:
            logger.warning(f"Oracle request failed: {e!r}")
            raise AttestationFailure(f"Oracle unreachable: {e}") from e

        if response.status_code in (401, 403):
            raise ConfigurationError(
                f"Oracle rejected credentials (HTTP {response.status_code})"
            )
        if response.status_code != 200:
            message = self._error_message(response)
            logger.warning(f"Oracle error {response.status_code}: {message}")
            raise AttestationFailure(message)

        try:
            snapshot = BalanceSnapshot.model_validate(response.json())
        except (ValueError, pydantic.ValidationError) as e:
            raise AttestationFailure(f"Malformed snapshot response: {e}") from e

        logger.info(f"Snapshot received: balance={snapshot.balance} nonce={snapshot.nonce}")
        return snapshot

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        text = response.text.strip()
        return text or f"Oracle request failed: {response.status_code}"

    async def check_health(self) -> bool:
        """Liveness check. The result is cached for ``health_ttl`` seconds."""
        now = self._clock()
        if self._health is not None and now - self._health[1] < self.health_ttl:
            return self._health[0]

        try:
            async with self._client() as client:
                response = await client.get("/health")
            healthy = response.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Oracle health check failed: {e!r}")
            healthy = False

        self._health = (healthy, now)
        return healthy

    def invalidate(self) -> None:
        """Forget cached health so the next check hits the service."""
        self._health = None

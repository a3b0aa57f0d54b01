"""Versioned balance and allowance cache shared by the orchestrators.

Each refresh builds a new immutable ``CacheEntry`` and installs it with a
single assignment, so readers see either the old or the new value and never
a mix. A refresh that started before another one finished never overwrites
the newer result.
"""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

ALLOWANCE = "allowance"
ASSET_BALANCE = "asset_balance"
SHARES = "shares"
TOTAL_ASSETS = "total_assets"
TOTAL_SUPPLY = "total_supply"

ALL_KEYS = (ALLOWANCE, ASSET_BALANCE, SHARES, TOTAL_ASSETS, TOTAL_SUPPLY)


@dataclass(frozen=True)
class CacheEntry:
    """One cached read."""

    value: int
    version: int
    refreshed_at: float


class BalanceCache:
    """Owned cache of the reads both flows depend on.

    ``reader`` is anything with the VaultReader coroutine methods
    (``allowance``, ``asset_balance``, ``share_balance``, ``total_assets``,
    ``total_supply``).
    """

    def __init__(self, reader: Any, clock: Callable[[], float] = time.time):
        self.reader = reader
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._sequence = itertools.count(1)
        self._fetchers = {
            ALLOWANCE: reader.allowance,
            ASSET_BALANCE: reader.asset_balance,
            SHARES: reader.share_balance,
            TOTAL_ASSETS: reader.total_assets,
            TOTAL_SUPPLY: reader.total_supply,
        }

    def get(self, key: str) -> Optional[CacheEntry]:
        self._check_key(key)
        return self._entries.get(key)

    def value(self, key: str) -> Optional[int]:
        """Cached value, or None when unknown."""
        entry = self.get(key)
        return entry.value if entry is not None else None

    def snapshot(self) -> dict[str, Optional[int]]:
        entries = self._entries
        return {key: (entries[key].value if key in entries else None) for key in ALL_KEYS}

    async def refresh(self, key: str) -> CacheEntry:
        """Re-read one value from the chain and install it."""
        self._check_key(key)
        version = next(self._sequence)
        value = int(await self._fetchers[key]())
        entry = CacheEntry(value=value, version=version, refreshed_at=self._clock())

        current = self._entries.get(key)
        if current is not None and current.version > version:
            logger.debug(f"Dropping stale {key} refresh (v{version} < v{current.version})")
            return current

        self._entries[key] = entry
        logger.debug(f"Cache {key} = {value} (v{version})")
        return entry

    async def refresh_all(self) -> dict[str, Optional[int]]:
        """Refresh every key concurrently. Failed reads leave the key unknown."""
        results = await asyncio.gather(
            *(self.refresh(key) for key in ALL_KEYS), return_exceptions=True
        )
        for key, result in zip(ALL_KEYS, results):
            if isinstance(result, BaseException):
                logger.warning(f"Failed to refresh {key}: {result}")
        return self.snapshot()

    def invalidate(self, *keys: str) -> None:
        """Forget cached values (all of them when no key is given)."""
        for key in keys or ALL_KEYS:
            self._check_key(key)
            self._entries.pop(key, None)

    def redeemable_assets(self) -> Optional[int]:
        """Assets the owner's shares are worth, or None if any input is unknown."""
        shares = self.value(SHARES)
        total_assets = self.value(TOTAL_ASSETS)
        total_supply = self.value(TOTAL_SUPPLY)
        if shares is None or total_assets is None or total_supply is None:
            return None
        if total_supply == 0:
            return 0
        return shares * total_assets // total_supply

    @staticmethod
    def _check_key(key: str) -> None:
        if key not in ALL_KEYS:
            raise KeyError(f"Unknown cache key: {key}")

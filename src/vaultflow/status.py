"""Ordered, capped status feed consumed by the presentation layer.

Newest messages come first. The feed never holds more than ``capacity``
messages; adding past that evicts the oldest. ``pending`` and ``error``
messages stay until removed, ``success`` and ``info`` expire after a fixed
wall-clock window. Expiry is applied whenever the feed is read or written,
so no timers are needed.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from vaultflow.chains import get_explorer_tx_url

logger = logging.getLogger(__name__)


class StatusCategory(str, Enum):
    """Kind of status message."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


EXPIRING_CATEGORIES = {StatusCategory.SUCCESS, StatusCategory.INFO}


@dataclass(frozen=True)
class StatusMessage:
    """One entry of the status feed."""

    id: str
    category: StatusCategory
    text: str
    created_at: float
    tx_hash: Optional[str] = None
    chain_id: Optional[int] = None

    @property
    def explorer_url(self) -> Optional[str]:
        if self.tx_hash is None:
            return None
        return get_explorer_tx_url(self.chain_id, self.tx_hash)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "text": self.text,
            "tx_hash": self.tx_hash,
            "chain_id": self.chain_id,
            "explorer_url": self.explorer_url,
            "created_at": self.created_at,
        }


class StatusBus:
    """Capped message feed with add / upsert / remove / clear."""

    def __init__(
        self,
        capacity: int = 3,
        ttl_seconds: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._messages: list[StatusMessage] = []

    def _expired(self, message: StatusMessage, now: float) -> bool:
        return (
            message.category in EXPIRING_CATEGORIES
            and now - message.created_at >= self.ttl_seconds
        )

    def _prune(self) -> None:
        now = self._clock()
        kept = [m for m in self._messages if not self._expired(m, now)]
        if len(kept) != len(self._messages):
            self._messages = kept

    def add(
        self,
        category: StatusCategory,
        text: str,
        tx_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> str:
        """Push a new message and return its generated id."""
        message = StatusMessage(
            id=secrets.token_hex(5),
            category=StatusCategory(category),
            text=text,
            created_at=self._clock(),
            tx_hash=tx_hash,
            chain_id=chain_id,
        )
        self._prune()
        self._messages = [message, *self._messages][: self.capacity]
        logger.debug(f"Status {message.category.value}: {text}")
        return message.id

    def upsert(
        self,
        key: str,
        category: StatusCategory,
        text: str,
        tx_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> None:
        """Replace the message with id ``key`` in place, or push it if absent."""
        message = StatusMessage(
            id=key,
            category=StatusCategory(category),
            text=text,
            created_at=self._clock(),
            tx_hash=tx_hash,
            chain_id=chain_id,
        )
        self._prune()
        for index, existing in enumerate(self._messages):
            if existing.id == key:
                updated = list(self._messages)
                updated[index] = message
                self._messages = updated
                break
        else:
            self._messages = [message, *self._messages][: self.capacity]
        logger.debug(f"Status {message.category.value} [{key}]: {text}")

    def remove(self, message_id: str) -> bool:
        """Remove a message by id. Returns True if something was removed."""
        kept = [m for m in self._messages if m.id != message_id]
        removed = len(kept) != len(self._messages)
        self._messages = kept
        return removed

    def clear(self) -> None:
        self._messages = []

    def get(self, message_id: str) -> Optional[StatusMessage]:
        self._prune()
        return next((m for m in self._messages if m.id == message_id), None)

    def messages(self) -> tuple[StatusMessage, ...]:
        """Current feed, newest first."""
        self._prune()
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self.messages())

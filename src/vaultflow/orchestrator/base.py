"""Shared machinery for the deposit and withdraw state machines."""

import asyncio
import logging
import time
from typing import Callable, Optional, Union

from vaultflow.amounts import USDC_DECIMALS, AmountRequest, parse_amount
from vaultflow.caches import BalanceCache
from vaultflow.errors import (
    ChainRejected,
    FlowBusyError,
    FlowError,
    InvalidTransitionError,
    ValidationError,
    classify_error,
)
from vaultflow.orchestrator.states import (
    BUSY_STATES,
    Confirming,
    Done,
    Error,
    FlowState,
    Input,
    state_name,
)
from vaultflow.status import StatusBus, StatusCategory
from vaultflow.watcher import TransactionHandle, TransactionState, TransactionWatcher

logger = logging.getLogger(__name__)

STILL_WAITING_TEXT = "Still waiting for confirmation..."


class FlowOrchestrator:
    """One flow per instance, at most one attempt in flight.

    Subclasses implement ``_validate`` (synchronous checks at ``Input``) and
    ``_execute`` (the attempt itself). Everything else, including failure
    classification and cancellation, lives here.
    """

    flow: str = "flow"
    # Status keys this flow may leave in the pending category
    pending_keys: tuple[str, ...] = ()

    def __init__(
        self,
        status: StatusBus,
        caches: BalanceCache,
        watcher: TransactionWatcher,
        chain_id: int,
        receiver: str,
        decimals: int = USDC_DECIMALS,
        max_amount: Optional[int] = None,
        asset_symbol: str = "USDC",
        stall_notice_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.status = status
        self.caches = caches
        self.watcher = watcher
        self.chain_id = chain_id
        self.receiver = receiver
        self.decimals = decimals
        self.max_amount = max_amount
        self.asset_symbol = asset_symbol
        self.stall_notice_seconds = stall_notice_seconds
        self._clock = clock

        self._state: FlowState = Input()
        self.history: list[str] = [state_name(self._state)]
        self._task: Optional[asyncio.Task] = None
        self._active_tx: Optional[TransactionHandle] = None
        self._cancel_requested = False
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def active_transaction(self) -> Optional[TransactionHandle]:
        return self._active_tx

    @property
    def busy(self) -> bool:
        if self._task is not None and not self._task.done():
            return True
        return isinstance(self._state, BUSY_STATES)

    def _set_state(self, state: FlowState) -> None:
        previous = state_name(self._state)
        self._state = state
        name = state_name(state)
        if name != self.history[-1]:
            self.history.append(name)
        if name != previous:
            logger.info(f"{self.flow}: {previous} -> {name}")

    def _reset(self, state: Optional[Input] = None) -> None:
        self._state = state or Input()
        self.history = [state_name(self._state)]
        self._active_tx = None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def launch(self, amount: Union[str, AmountRequest]) -> Optional[asyncio.Task]:
        """Validate and start an attempt in the background.

        Returns the attempt task, or None when validation failed (the flow
        then stays at ``Input`` carrying the error).

        Raises:
            FlowBusyError: another attempt is in flight or unacknowledged
        """
        if self.busy:
            raise FlowBusyError(self.flow, state_name(self._state))

        self._reset()
        try:
            request = self._validate(amount)
        except ValidationError as e:
            logger.info(f"{self.flow}: rejected input: {e.message}")
            self._state = Input(error=e)
            self.status.add(StatusCategory.ERROR, e.message, chain_id=self.chain_id)
            return None

        self._cancel_requested = False
        self._task = asyncio.create_task(self._run(request))
        return self._task

    async def start(self, amount: Union[str, AmountRequest]) -> FlowState:
        """Run an attempt to completion (or failure) and return the final state."""
        if self.launch(amount) is not None:
            await self.wait()
        return self._state

    async def wait(self) -> FlowState:
        """Wait for the current attempt, if any."""
        task = self._task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not self._cancel_requested:
                    raise
        return self._state

    def retry(self) -> FlowState:
        """Full reset to ``Input`` after a failure."""
        if self.busy:
            raise FlowBusyError(self.flow, state_name(self._state))
        self._reset()
        logger.info(f"{self.flow}: retry, reset to Input")
        return self._state

    def cancel(self) -> FlowState:
        """Abandon the current attempt and reset to ``Input``.

        Submitted transactions cannot be recalled. The watcher keeps
        observing them and the caches are refreshed again once they settle.
        """
        handle = self._active_tx
        task = self._task
        if task is not None and not task.done():
            self._cancel_requested = True
            task.cancel()
            self._track_background(task)
        self._task = None

        self._clear_pending()
        self._reset()
        self.caches.invalidate()
        self._invalidate_collaborators()
        self._spawn(self._reconcile(handle))
        logger.info(f"{self.flow}: cancelled")
        return self._state

    def acknowledge(self) -> FlowState:
        """Move a confirmed attempt to ``Done``."""
        state = self._state
        if not isinstance(state, Confirming):
            raise InvalidTransitionError(self.flow, "acknowledge", state_name(state))
        self._set_state(Done(amount=state.amount, tx=state.tx))
        self._active_tx = None
        return self._state

    async def drain(self) -> None:
        """Wait for background refreshes started by ``cancel`` or a failure."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    def _validate(self, amount: Union[str, AmountRequest]) -> AmountRequest:
        raise NotImplementedError

    async def _execute(self, request: AmountRequest) -> None:
        raise NotImplementedError

    def _invalidate_collaborators(self) -> None:
        """Drop anything besides the balance cache that a cancel must reset."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse(self, amount: Union[str, AmountRequest]) -> AmountRequest:
        if isinstance(amount, AmountRequest):
            text = amount.text
        else:
            text = amount
        return parse_amount(text, self.decimals, max_whole_units=self.max_amount)

    async def _run(self, request: AmountRequest) -> None:
        try:
            await self._execute(request)
        except asyncio.CancelledError:
            logger.info(f"{self.flow}: attempt cancelled in {state_name(self._state)}")
            raise
        except Exception as e:
            error = classify_error(e, tx_hash=self._active_tx.tx_hash if self._active_tx else None)
            await self._fail(error)

    async def _fail(self, error: FlowError) -> None:
        stage = state_name(self._state)
        log = logger.error if not error.recoverable else logger.warning
        log(f"{self.flow} failed in {stage}: {error.kind.value}: {error.message}")

        self._clear_pending()
        self.status.add(
            StatusCategory.ERROR, error.message, tx_hash=error.tx_hash, chain_id=self.chain_id
        )
        self._set_state(Error(cause=error, stage=stage, tx_hash=error.tx_hash))

        if error.needs_refresh:
            # Error must accept retry while this runs
            self._spawn(self.caches.refresh_all())

    def _clear_pending(self) -> None:
        for key in self.pending_keys:
            message = self.status.get(key)
            if message is not None and message.category == StatusCategory.PENDING:
                self.status.remove(key)

    async def _await_tx(self, handle: TransactionHandle, pending_key: str) -> TransactionHandle:
        """Wait for a transaction to settle. A revert raises ChainRejected."""
        self._active_tx = handle
        waiter = asyncio.ensure_future(self.watcher.wait(handle))
        try:
            if self.stall_notice_seconds is not None:
                done, _ = await asyncio.wait({waiter}, timeout=self.stall_notice_seconds)
                if not done:
                    logger.warning(f"{self.flow}: {handle.tx_hash} still unconfirmed")
                    self.status.upsert(
                        pending_key,
                        StatusCategory.PENDING,
                        STILL_WAITING_TEXT,
                        tx_hash=handle.tx_hash,
                        chain_id=handle.chain_id,
                    )
            await waiter
        finally:
            if not waiter.done():
                waiter.cancel()
        self._active_tx = None

        if handle.state == TransactionState.REVERTED:
            raise ChainRejected("Transaction reverted on-chain", tx_hash=handle.tx_hash)
        return handle

    async def _refresh_quietly(self, key: str) -> None:
        try:
            await self.caches.refresh(key)
        except Exception as e:
            logger.warning(f"{self.flow}: failed to refresh {key}: {e}")

    def _spawn(self, coro) -> None:
        self._track_background(asyncio.create_task(coro))

    def _track_background(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _reconcile(self, handle: Optional[TransactionHandle]) -> None:
        await self.caches.refresh_all()
        if handle is not None and not handle.settled:
            await self.watcher.wait(handle)
            logger.info(
                f"{self.flow}: abandoned transaction {handle.tx_hash} settled ({handle.state.value})"
            )
            await self.caches.refresh_all()

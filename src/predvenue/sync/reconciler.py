"""Optimistic apply, asynchronous confirm, and push merge.

Every dispatch goes through the reconciler. A confirm registered by the
reducer is scheduled as an event-loop task (or queued for `drain()` when no
loop is running), so it never executes inside the transition that created it.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable

import structlog

from predvenue.config.settings import TradingConfig
from predvenue.sync.events import merge_key
from predvenue.sync.protocol import AuthoritativeStore, ConfirmResult, StoreError
from predvenue.trading.actions import Action, ApplyPush, ConfirmFailed, ConfirmSucceeded
from predvenue.trading.coordinator import DispatchResult, PendingConfirm, TradeCoordinator

log = structlog.get_logger(__name__)

MAX_KEPT_OUTCOMES = 256


class Reconciler:
    def __init__(
        self,
        coordinator: TradeCoordinator,
        store: AuthoritativeStore,
        config: TradingConfig | Callable[[], TradingConfig],
    ) -> None:
        self.coordinator = coordinator
        self.store = store
        self._config = config if callable(config) else (lambda: config)
        self._tasks: set[asyncio.Task[None]] = set()
        self._backlog: deque[PendingConfirm] = deque()
        self._last_seq: dict[tuple[str, ...], int] = {}
        self._outcomes: dict[str, DispatchResult] = {}
        self._unsubscribe: Callable[[], None] | None = None
        self.confirmed = 0
        self.failed = 0
        self.stale_pushes = 0

    def start(self) -> None:
        """Subscribe to the store's push channel."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.on_push)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def in_flight(self) -> int:
        return len(self._tasks) + len(self._backlog)

    def dispatch(self, action: Action) -> DispatchResult:
        result = self.coordinator.dispatch(action, self._config())
        self.after_dispatch()
        return result

    def after_dispatch(self) -> None:
        """Schedule the confirm the last transition registered, if any."""
        pending = self.coordinator.take_pending_confirm()
        if pending is not None:
            self._schedule(pending)

    def _schedule(self, pending: PendingConfirm) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._backlog.append(pending)
            return
        task = loop.create_task(self.run_confirm(pending))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run_confirm(self, pending: PendingConfirm) -> None:
        """Execute one confirm and feed its result back as a follow-up action."""
        try:
            result = await self.store.execute(pending.kind, pending.payload)
        except StoreError as e:
            result = ConfirmResult(ok=False, error=str(e))
        if result.ok:
            self.confirmed += 1
            follow: Action = ConfirmSucceeded(
                action_id=pending.action_id,
                kind=pending.kind,
                position_ids=pending.position_ids,
                balance=result.balance,
                local_balance_delta=pending.local_balance_delta,
            )
        else:
            self.failed += 1
            log.warning(
                "confirm_rejected", kind=pending.kind, action_id=pending.action_id, error=result.error
            )
            follow = ConfirmFailed(action_id=pending.action_id, kind=pending.kind, error=result.error)
        outcome = self.dispatch(follow)
        if pending.kind != "simulation_tick":
            self._outcomes[pending.action_id] = outcome
            while len(self._outcomes) > MAX_KEPT_OUTCOMES:
                del self._outcomes[next(iter(self._outcomes))]

    def pop_outcome(self, action_id: str | None) -> DispatchResult | None:
        """Result of the follow-up for a confirmed bet or close, once its confirm has run."""
        if action_id is None:
            return None
        return self._outcomes.pop(action_id, None)

    async def drain(self) -> None:
        """Run queued confirms and wait for every outstanding one, including confirms they spawn."""
        while self._backlog or self._tasks:
            while self._backlog:
                await self.run_confirm(self._backlog.popleft())
            if self._tasks:
                await asyncio.gather(*list(self._tasks))

    def on_push(self, event) -> None:
        """Merge a pushed change. Pushes older than the last one seen for the same field are dropped."""
        key = merge_key(event)
        if key is not None:
            last = self._last_seq.get(key)
            if last is not None and event.seq <= last:
                self.stale_pushes += 1
                log.debug("stale_push_dropped", key=key, seq=event.seq, last_seq=last)
                return
            self._last_seq[key] = event.seq
        self.dispatch(ApplyPush(event=event))

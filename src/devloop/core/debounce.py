"""Argument-collecting debounce for asyncio.

A debounced callback receives every argument tuple passed since its last
firing, in call order. Two edges are supported:

- trailing (default): fire once calls have stopped for ``wait_seconds``;
- immediate: fire on the first call of a burst, then stay quiet until the
  burst has been idle for ``wait_seconds``. Calls made inside the quiet window
  are kept and delivered with the next burst's first firing.

The state machine lives in the pure functions :func:`on_call`,
:func:`on_timer` and :func:`on_stop`. :class:`Debouncer` only drives them
with ``loop.call_later`` and ``loop.time()``.

Callback executions of one debouncer never overlap: they are serialized
through an ``asyncio.Lock``. Timer scheduling does not wait for callbacks.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple, Union

from devloop.core.config import get_debounce_config

logger = logging.getLogger(__name__)

Args = Tuple[Any, ...]
Batch = List[Args]
DebouncedCallback = Callable[[Batch], Union[Awaitable[None], None]]


@dataclass
class DebounceState:
    pending: bool = False
    last_call_time: float = 0.0
    collected: Batch = field(default_factory=list)


@dataclass(frozen=True)
class Transition:
    """Result of a state-machine step.

    ``schedule`` is the delay after which the timer must fire, ``fire`` the
    batch to hand to the callback. ``None`` means "nothing to do".
    """

    state: DebounceState
    schedule: Optional[float] = None
    fire: Optional[Batch] = None


def on_call(
    state: DebounceState,
    args: Args,
    now: float,
    *,
    wait_seconds: float,
    immediate: bool,
) -> Transition:
    collected = [*state.collected, tuple(args)]
    if state.pending:
        # The window slides through last_call_time; the armed timer stays.
        return Transition(DebounceState(True, now, collected))
    if immediate:
        return Transition(DebounceState(True, now, []), schedule=wait_seconds, fire=collected)
    return Transition(DebounceState(True, now, collected), schedule=wait_seconds)


def on_timer(
    state: DebounceState,
    now: float,
    *,
    wait_seconds: float,
    immediate: bool,
) -> Transition:
    if not state.pending:
        return Transition(state)
    elapsed = now - state.last_call_time
    if elapsed < wait_seconds:
        return Transition(
            DebounceState(True, state.last_call_time, list(state.collected)),
            schedule=wait_seconds - elapsed,
        )
    if immediate:
        return Transition(DebounceState(False, state.last_call_time, list(state.collected)))
    return Transition(DebounceState(False, state.last_call_time, []), fire=list(state.collected))


def on_stop(state: DebounceState) -> Transition:
    # Collected arguments are dropped from delivery, not flushed.
    return Transition(DebounceState(False, state.last_call_time, list(state.collected)))


class Debouncer:
    """Debounced wrapper around ``callback``; see the module docstring."""

    def __init__(
        self,
        callback: DebouncedCallback,
        wait_seconds: Optional[float] = None,
        immediate: bool = False,
    ) -> None:
        if wait_seconds is None:
            wait_seconds = get_debounce_config()["wait_seconds"]
        if wait_seconds < 0:
            raise ValueError(f"wait_seconds must be >= 0, got {wait_seconds}")
        self.callback = callback
        self.wait_seconds = float(wait_seconds)
        self.immediate = bool(immediate)
        self._state = DebounceState()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock: Optional[asyncio.Lock] = None
        self._tasks: Set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._state.pending

    @property
    def collected(self) -> Batch:
        return list(self._state.collected)

    def _bind(self) -> asyncio.AbstractEventLoop:
        loop = asyncio.get_running_loop()
        if loop is not self._loop:
            # Timers and tasks from a previous loop will never run; start Idle.
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._state = on_stop(self._state).state
            self._tasks.clear()
            self._loop = loop
            self._lock = asyncio.Lock()
        return loop

    def _apply(self, transition: Transition) -> None:
        self._state = transition.state
        if transition.schedule is not None:
            assert self._loop is not None
            self._timer = self._loop.call_later(transition.schedule, self._on_timer)

    async def invoke(self, *args: Any) -> None:
        """Record a call; in immediate mode the first call of a burst awaits the callback."""
        loop = self._bind()
        transition = on_call(
            self._state,
            args,
            loop.time(),
            wait_seconds=self.wait_seconds,
            immediate=self.immediate,
        )
        self._apply(transition)
        if transition.fire is not None:
            await self._deliver(transition.fire)

    async def __call__(self, *args: Any) -> None:
        await self.invoke(*args)

    def _on_timer(self) -> None:
        assert self._loop is not None
        self._timer = None
        transition = on_timer(
            self._state,
            self._loop.time(),
            wait_seconds=self.wait_seconds,
            immediate=self.immediate,
        )
        self._apply(transition)
        if transition.fire is not None:
            task = self._loop.create_task(self._deliver_in_background(transition.fire))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, batch: Batch) -> None:
        assert self._lock is not None
        async with self._lock:
            logger.debug(f"debounced callback firing with {len(batch)} collected call(s)")
            result = self.callback(batch)
            if inspect.isawaitable(result):
                await result

    async def _deliver_in_background(self, batch: Batch) -> None:
        try:
            await self._deliver(batch)
        except Exception:
            logger.exception("debounced callback failed")

    def stop(self) -> None:
        """Cancel the pending timer. Collected but undelivered calls are not flushed."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._state = on_stop(self._state).state

    async def drain(self) -> None:
        """Wait until every trailing callback started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def debounce(
    callback: DebouncedCallback,
    wait_seconds: Optional[float] = None,
    immediate: bool = False,
) -> Debouncer:
    """Return a :class:`Debouncer` for ``callback``.

    Example:
        rebuild = debounce(run_build, wait_seconds=0.2)
        watcher.on_change(lambda path: asyncio.create_task(rebuild(path)))
    """
    return Debouncer(callback, wait_seconds, immediate)


__all__ = [
    "Args",
    "Batch",
    "DebounceState",
    "Debouncer",
    "Transition",
    "debounce",
    "on_call",
    "on_stop",
    "on_timer",
]

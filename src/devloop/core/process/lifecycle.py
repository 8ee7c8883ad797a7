"""Tie child process teardown and idle waits to process lifecycle events.

Observers are one-shot: each runs at most once, on the first delivery of the
event it watches. Handlers are kept in an explicit :class:`LifecycleRegistry`
rather than stacked on the interpreter, so linking the same child twice does
not deliver signals twice.

Python cannot observe a signal without installing a handler. The registry
installs its dispatcher on the first observer of a signal and puts the
previous handler back once no observer of that signal is left.
"""
from __future__ import annotations

import asyncio
import atexit
import logging
import signal
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, List, Optional, Protocol

import psutil

logger = logging.getLogger(__name__)

EXIT = "exit"
SignalCallback = Callable[[int], None]
ExitCallback = Callable[[], None]


class ChildHandle(Protocol):
    """What the registry needs from a child: ``Popen``, asyncio ``Process`` and ``psutil.Process`` all qualify."""

    pid: int

    def send_signal(self, sig: int) -> Any: ...


@dataclass(eq=False)
class ObserverHandle:
    event: int | str
    callback: Callable[..., None]
    key: Optional[Hashable] = None
    fired: bool = False
    cancelled: bool = False
    _registry: Optional["LifecycleRegistry"] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return not (self.fired or self.cancelled)

    def cancel(self) -> None:
        if not self.active:
            return
        self.cancelled = True
        if self._registry is not None:
            self._registry._discard(self)


class LifecycleRegistry:
    """One-shot observers of process signals and interpreter exit."""

    def __init__(self) -> None:
        self._observers: Dict[int | str, List[ObserverHandle]] = {}
        self._previous: Dict[int, Any] = {}
        self._atexit_installed = False
        self._claimed: Dict[Hashable, Any] = {}

    # ---------- registration ----------
    def once(self, signum: int, callback: SignalCallback, *, key: Optional[Hashable] = None) -> ObserverHandle:
        """Run ``callback(signum)`` the first time ``signum`` is delivered.

        Must be called from the main thread (``signal.signal`` restriction).
        A second registration with the same ``key`` returns the first handle.
        """
        signum = int(signum)
        existing = self._find(signum, key)
        if existing is not None:
            return existing
        if signum not in self._previous:
            self._previous[signum] = signal.signal(signum, self._handle_signal)
        return self._add(signum, callback, key)

    def at_exit(self, callback: ExitCallback, *, key: Optional[Hashable] = None) -> ObserverHandle:
        """Run ``callback()`` once when the interpreter exits normally."""
        existing = self._find(EXIT, key)
        if existing is not None:
            return existing
        if not self._atexit_installed:
            atexit.register(self.run_exit_hooks)
            self._atexit_installed = True
        return self._add(EXIT, callback, key)

    def claim(self, key: Hashable, owner: Any = None) -> bool:
        """Record ``key`` for the life of the registry; ``False`` if already recorded.

        ``owner`` is kept alive until :meth:`close` so an ``id()`` based key
        cannot be reused by another object.
        """
        if key in self._claimed:
            return False
        self._claimed[key] = owner
        return True

    def _find(self, event: int | str, key: Optional[Hashable]) -> Optional[ObserverHandle]:
        if key is None:
            return None
        for handle in self._observers.get(event, []):
            if handle.key == key:
                return handle
        return None

    def _add(self, event: int | str, callback: Callable[..., None], key: Optional[Hashable]) -> ObserverHandle:
        handle = ObserverHandle(event=event, callback=callback, key=key, _registry=self)
        self._observers.setdefault(event, []).append(handle)
        return handle

    def _discard(self, handle: ObserverHandle) -> None:
        observers = self._observers.get(handle.event, [])
        if handle in observers:
            observers.remove(handle)
        if not observers:
            self._release(handle.event)

    def _release(self, event: int | str) -> None:
        self._observers.pop(event, None)
        if event == EXIT:
            if self._atexit_installed:
                atexit.unregister(self.run_exit_hooks)
                self._atexit_installed = False
            return
        if int(event) not in self._previous:
            return
        previous = self._previous.pop(int(event))
        # None means the previous handler was not installed from Python.
        signal.signal(int(event), signal.SIG_DFL if previous is None else previous)

    def observers(self, event: int | str) -> List[ObserverHandle]:
        return list(self._observers.get(event, []))

    # ---------- delivery ----------
    def _handle_signal(self, signum: int, frame: Any) -> None:
        self.dispatch(signum)

    def _run(self, event: int | str, *args: Any) -> int:
        pending = self._observers.pop(event, [])
        for handle in pending:
            handle.fired = True
        for handle in pending:
            try:
                handle.callback(*args)
            except Exception:
                logger.exception(f"lifecycle observer for {event!r} failed")
        return len(pending)

    def dispatch(self, signum: int) -> int:
        """Run and discard every observer of ``signum``; return how many ran."""
        signum = int(signum)
        count = self._run(signum, signum)
        if signum not in self._observers:
            self._release(signum)
        return count

    def run_exit_hooks(self) -> int:
        count = self._run(EXIT)
        self._release(EXIT)
        return count

    def close(self) -> None:
        """Drop every observer and restore previous signal dispositions."""
        for event in list(self._observers.keys()):
            for handle in self._observers.get(event, []):
                handle.cancelled = True
            self._release(event)
        for signum in list(self._previous.keys()):
            self._release(signum)
        self._release(EXIT)
        self._claimed.clear()


_default_registry: Optional[LifecycleRegistry] = None


def get_registry() -> LifecycleRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = LifecycleRegistry()
    return _default_registry


def reset_registry() -> None:
    """Close the process-wide registry (tests use this between cases)."""
    global _default_registry
    if _default_registry is not None:
        _default_registry.close()
    _default_registry = None


def _is_running(child: ChildHandle) -> bool:
    if getattr(child, "returncode", None) is not None:
        return False
    pid = getattr(child, "pid", None)
    if not pid:
        return False
    return psutil.pid_exists(pid)


def _forward(child: ChildHandle, sig: int) -> None:
    if not _is_running(child):
        logger.debug(f"child pid={getattr(child, 'pid', None)} already exited; not sending {sig!r}")
        return
    try:
        child.send_signal(sig)
    except (ProcessLookupError, psutil.NoSuchProcess):
        logger.debug(f"child pid={child.pid} exited before {sig!r} could be delivered")
        return
    logger.info(f"forwarded {signal.Signals(sig).name} to child pid={child.pid}")


def link_termination(child: ChildHandle, *, registry: Optional[LifecycleRegistry] = None) -> None:
    """Terminate ``child`` together with the current process.

    On normal interpreter exit the child gets ``SIGTERM``; ``SIGINT`` and
    ``SIGTERM`` received by this process are passed through. Each hook fires
    at most once and linking the same child again is a no-op, even after some
    of its hooks have already fired.
    """
    reg = registry or get_registry()
    key = ("link_termination", id(child))
    if not reg.claim(key, child):
        return
    reg.at_exit(lambda: _forward(child, signal.SIGTERM), key=key)
    reg.once(signal.SIGINT, lambda signum: _forward(child, signal.SIGINT), key=key)
    reg.once(signal.SIGTERM, lambda signum: _forward(child, signal.SIGTERM), key=key)


async def wait_for_interrupt(*, registry: Optional[LifecycleRegistry] = None) -> None:
    """Return the first time this process receives ``SIGINT``.

    Only a one-shot observer is installed; the previous ``SIGINT`` handler is
    back in place once this returns or is cancelled.
    """
    reg = registry or get_registry()
    loop = asyncio.get_running_loop()
    interrupted = loop.create_future()

    def _resolve() -> None:
        if not interrupted.done():
            interrupted.set_result(None)

    handle = reg.once(signal.SIGINT, lambda signum: loop.call_soon_threadsafe(_resolve))
    try:
        await interrupted
    finally:
        handle.cancel()


__all__ = [
    "ChildHandle",
    "LifecycleRegistry",
    "ObserverHandle",
    "get_registry",
    "link_termination",
    "reset_registry",
    "wait_for_interrupt",
]

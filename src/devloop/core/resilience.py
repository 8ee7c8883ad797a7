"""devloop resilience mechanisms.

Bare bounded retries for asynchronous actions. There is no delay or backoff
between attempts; callers that need one compose it inside ``action``.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Optional

from devloop.core.config import get_retry_config
from devloop.core.exceptions import PreconditionViolation

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]


def _check_attempts(attempts: Any) -> int:
    if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
        raise PreconditionViolation(
            f"attempts must be a positive integer, got {attempts!r}",
            context={"attempts": attempts},
        )
    return attempts


async def retry(action: Action, attempts: Optional[int] = None) -> None:
    """Invoke ``action`` until it succeeds, at most ``attempts`` times.

    Failures of all but the last attempt are discarded. The last attempt
    runs unguarded, so its exception reaches the caller as raised.

    Args:
        action: Zero-argument coroutine function.
        attempts: Attempts budget; defaults to ``resilience.retry.attempts``.

    Raises:
        PreconditionViolation: If ``attempts`` is not a positive integer.
    """
    if attempts is None:
        attempts = get_retry_config()["attempts"]
    attempts = _check_attempts(attempts)

    name = getattr(action, "__name__", repr(action))
    for attempt in range(1, attempts):
        try:
            await action()
        except Exception as e:
            logger.debug(f"{name} attempt {attempt}/{attempts} failed: {e}")
            continue
        return

    try:
        await action()
    except Exception:
        logger.debug(f"{name} failed after {attempts} attempts")
        raise


def retrying(attempts: Optional[int] = None):
    """
    Decorator that retries an ``async def`` function via :func:`retry`.

    Every call re-invokes the function with the same arguments. The return
    value is discarded, since retried actions are run for their effect.

    Example:
        @retrying(attempts=3)
        async def start_server(port):
            ...
    """
    if attempts is not None:
        _check_attempts(attempts)

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[None]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> None:
            async def action() -> None:
                await func(*args, **kwargs)

            action.__name__ = func.__name__
            await retry(action, attempts)

        return wrapper

    return decorator


__all__ = ["retry", "retrying"]

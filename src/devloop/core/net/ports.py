"""Helpers for probing and selecting TCP ports.

A dev server asks for a preferred port and falls forward to the next free one
when something else (another stack, a stale watcher) already holds it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket

from devloop.core.config import get_network_config
from devloop.core.exceptions import NetworkTimeout

logger = logging.getLogger(__name__)

MAX_PORT = 65535

_WILDCARD_TO_LOOPBACK = {
    "": "127.0.0.1",
    "0.0.0.0": "127.0.0.1",
    "::": "::1",
}


def _connect_target(host: str) -> str:
    return _WILDCARD_TO_LOOPBACK.get(host.strip(), host)


async def _resolve(host: str, port: int) -> str:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    if not infos:
        raise OSError(f"no address found for {host}")
    # Only the first address is tried, so one probe opens exactly one socket.
    return infos[0][4][0]


async def _probe(host: str, port: int) -> bool:
    try:
        address = await _resolve(host, port)
        _reader, writer = await asyncio.open_connection(address, port)
    except ConnectionRefusedError:
        return True
    except OSError as exc:
        logger.debug(f"probe {host}:{port} failed without refusal: {exc}")
        return False

    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return False


async def is_available(
    port: int,
    host: str | None = None,
    timeout_seconds: float | None = None,
) -> bool:
    """Return ``True`` if nothing accepts TCP connections on ``host:port``.

    A refused connection means the port is free. An accepted connection, or
    any other socket error, means it is presumed occupied.

    Args:
        port: Port to probe.
        host: Address to probe; defaults to ``network.probe.host``. Wildcard
            addresses are probed through the loopback interface.
        timeout_seconds: Deadline for a definitive answer; defaults to
            ``network.probe.timeout_seconds``.

    Raises:
        NetworkTimeout: When no answer arrives before the deadline. The
            socket is closed before raising.
        ValueError: When ``port`` is not a TCP port number.
    """
    if not 0 <= int(port) <= MAX_PORT:
        raise ValueError(f"port out of range: {port}")

    if host is None or timeout_seconds is None:
        net_cfg = get_network_config()
        host = net_cfg["host"] if host is None else host
        timeout_seconds = net_cfg["timeout_seconds"] if timeout_seconds is None else timeout_seconds

    target = _connect_target(host)
    try:
        available = await asyncio.wait_for(_probe(target, int(port)), timeout=float(timeout_seconds))
    except asyncio.TimeoutError:
        raise NetworkTimeout(host=target, port=int(port), timeout_seconds=float(timeout_seconds)) from None

    logger.debug(f"probe {target}:{port} -> {'available' if available else 'in use'}")
    return available


async def find_port(
    port: int,
    *,
    host: str | None = None,
    timeout_seconds: float | None = None,
) -> int:
    """Return the first available port at or above ``port``.

    Ports are probed one at a time, never in parallel. There is no upper
    bound on the scan: if every port from ``port`` up is held, this never
    returns a port (past 65535 :func:`is_available` raises ``ValueError``).
    Callers are expected to start from a sensible port.

    A :class:`NetworkTimeout` from any probe aborts the whole scan.
    """
    while not await is_available(port, host=host, timeout_seconds=timeout_seconds):
        logger.debug(f"port {port} in use, trying {port + 1}")
        port += 1
    logger.debug(f"allocated port {port}")
    return port


__all__ = ["MAX_PORT", "is_available", "find_port"]

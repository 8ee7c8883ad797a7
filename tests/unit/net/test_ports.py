from __future__ import annotations

import asyncio
import errno
import socket
import sys

import psutil
import pytest

from devloop.core.exceptions import BuildError, NetworkTimeout
from devloop.core.net import ports
from devloop.core.net.ports import find_port, is_available
from helpers.sockets import LOOPBACK, listening, occupied_run, saturated_listener, unused_port


async def _hang(*args, **kwargs):
    await asyncio.sleep(3600)


def test_is_available_false_for_listening_port() -> None:
    with listening() as port:
        assert asyncio.run(is_available(port, host=LOOPBACK, timeout_seconds=5.0)) is False


def test_is_available_true_when_nothing_listens() -> None:
    port = unused_port()
    assert asyncio.run(is_available(port, host=LOOPBACK, timeout_seconds=5.0)) is True


def test_wildcard_host_is_probed_through_loopback() -> None:
    with listening() as port:
        assert asyncio.run(is_available(port, host="0.0.0.0", timeout_seconds=5.0)) is False


def test_default_host_comes_from_config() -> None:
    with listening() as port:
        assert asyncio.run(is_available(port)) is False


def test_timeout_raises_network_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(asyncio, "open_connection", _hang)

    with pytest.raises(NetworkTimeout) as exc:
        asyncio.run(is_available(4000, host=LOOPBACK, timeout_seconds=0.05))

    err = exc.value
    assert isinstance(err, BuildError)
    assert isinstance(err, TimeoutError)
    assert err.component == "net"
    assert err.context["port"] == 4000
    assert err.context["timeout_seconds"] == pytest.approx(0.05)
    assert str(err) == "[net] timeout when searching for unused port"


def test_timeout_default_comes_from_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEVLOOP_network__probe__timeout_seconds", "0.05")
    monkeypatch.setattr(asyncio, "open_connection", _hang)

    with pytest.raises(NetworkTimeout) as exc:
        asyncio.run(is_available(4000, host=LOOPBACK))

    assert exc.value.context["timeout_seconds"] == pytest.approx(0.05)


def test_other_socket_errors_mean_not_available(monkeypatch: pytest.MonkeyPatch) -> None:
    async def unreachable(*args, **kwargs):
        raise OSError(errno.EHOSTUNREACH, "No route to host")

    monkeypatch.setattr(asyncio, "open_connection", unreachable)

    assert asyncio.run(is_available(4000, host=LOOPBACK, timeout_seconds=1.0)) is False


def test_accepted_connection_is_closed(monkeypatch: pytest.MonkeyPatch) -> None:
    closed: list[bool] = []

    class Writer:
        def close(self) -> None:
            closed.append(True)

        async def wait_closed(self) -> None:
            raise ConnectionResetError("peer went away")

    async def accept(*args, **kwargs):
        return object(), Writer()

    monkeypatch.setattr(asyncio, "open_connection", accept)

    assert asyncio.run(is_available(4000, host=LOOPBACK, timeout_seconds=1.0)) is False
    assert closed == [True]


def _dual_stack_resolver(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make ``dualhost`` resolve to two loopback addresses, like ``localhost`` on most hosts."""
    real_getaddrinfo = socket.getaddrinfo

    def fake_getaddrinfo(host, port, *args, **kwargs):
        if host == "dualhost":
            return [
                (socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", ("127.0.0.1", port)),
                (socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", ("127.0.0.2", port)),
            ]
        return real_getaddrinfo(host, port, *args, **kwargs)

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)


def test_host_with_several_addresses_reports_free_port(monkeypatch: pytest.MonkeyPatch) -> None:
    _dual_stack_resolver(monkeypatch)
    port = unused_port()

    assert asyncio.run(is_available(port, host="dualhost", timeout_seconds=5.0)) is True


def test_host_with_several_addresses_probes_first_address(monkeypatch: pytest.MonkeyPatch) -> None:
    _dual_stack_resolver(monkeypatch)

    with listening() as port:
        assert asyncio.run(is_available(port, host="dualhost", timeout_seconds=5.0)) is False


def test_find_port_on_host_with_several_addresses(monkeypatch: pytest.MonkeyPatch) -> None:
    _dual_stack_resolver(monkeypatch)

    with occupied_run(2) as first:
        found = asyncio.run(find_port(first, host="dualhost", timeout_seconds=5.0))

    assert found == first + 2


def _sockets_to(port: int) -> int:
    return sum(
        1
        for conn in psutil.Process().net_connections(kind="tcp")
        if conn.raddr and conn.raddr.port == port
    )


@pytest.mark.skipif(sys.platform != "linux", reason="relies on Linux dropping SYNs on a full accept queue")
def test_timed_out_probe_closes_its_socket() -> None:
    async def main(port: int) -> tuple[int, int, int]:
        before = _sockets_to(port)
        probe = asyncio.create_task(is_available(port, host=LOOPBACK, timeout_seconds=0.5))
        await asyncio.sleep(0.2)
        during = _sockets_to(port)
        with pytest.raises(NetworkTimeout):
            await probe
        return before, during, _sockets_to(port)

    with saturated_listener() as port:
        before, during, after = asyncio.run(main(port))

    assert during == before + 1
    assert after == before


@pytest.mark.parametrize("port", [-1, 65536])
def test_port_out_of_range_rejected(port: int) -> None:
    with pytest.raises(ValueError, match="port out of range"):
        asyncio.run(is_available(port, host=LOOPBACK, timeout_seconds=1.0))


def test_find_port_returns_start_when_free() -> None:
    port = unused_port()
    assert asyncio.run(find_port(port, host=LOOPBACK, timeout_seconds=5.0)) == port


def test_find_port_skips_occupied_run() -> None:
    with occupied_run(3) as first:
        found = asyncio.run(find_port(first, host=LOOPBACK, timeout_seconds=5.0))
    assert found == first + 3


def test_find_port_probes_sequentially(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []
    in_flight = 0

    async def fake_is_available(port, host=None, timeout_seconds=None):
        nonlocal in_flight
        in_flight += 1
        assert in_flight == 1
        calls.append(port)
        await asyncio.sleep(0)
        in_flight -= 1
        return port == 5002

    monkeypatch.setattr(ports, "is_available", fake_is_available)

    assert asyncio.run(find_port(5000)) == 5002
    assert calls == [5000, 5001, 5002]


def test_find_port_propagates_network_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []
    timeout = NetworkTimeout(port=5001)

    async def fake_is_available(port, host=None, timeout_seconds=None):
        calls.append(port)
        if port == 5001:
            raise timeout
        return False

    monkeypatch.setattr(ports, "is_available", fake_is_available)

    with pytest.raises(NetworkTimeout) as exc:
        asyncio.run(find_port(5000))

    assert exc.value is timeout
    assert calls == [5000, 5001]

from __future__ import annotations

import socket
import time

LOCALHOST = "localhost"
DEFAULT_PROBE_TIMEOUT = 1.0
DEFAULT_POLL_INTERVAL = 0.25


def check_tcp(host: str, port: int, timeout: float = DEFAULT_PROBE_TIMEOUT) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_for_port(
        port: int,
        *,
        host: str = LOCALHOST,
        timeout: float,
        interval: float = DEFAULT_POLL_INTERVAL,
        probe=check_tcp,
) -> bool:
    """Poll host:port until it accepts a connection or the deadline passes.

    The port is always probed at least once, after the deadline if timeout is 0.
    """
    deadline = time.monotonic() + max(0.0, timeout)
    while time.monotonic() < deadline:
        if probe(host, port):
            return True
        time.sleep(min(interval, max(0.0, deadline - time.monotonic())))
    return probe(host, port)


def wait_for_port_closed(
        port: int,
        *,
        host: str = LOCALHOST,
        timeout: float,
        interval: float = DEFAULT_POLL_INTERVAL,
        probe=check_tcp,
) -> bool:
    deadline = time.monotonic() + max(0.0, timeout)
    while time.monotonic() < deadline:
        if not probe(host, port):
            return True
        time.sleep(min(interval, max(0.0, deadline - time.monotonic())))
    return not probe(host, port)

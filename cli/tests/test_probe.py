import socket

from runner_sshd.probe import check_tcp, wait_for_port, wait_for_port_closed


def test_check_tcp_against_listening_socket() -> None:
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]
    try:
        assert check_tcp("127.0.0.1", port)
    finally:
        server.close()
    assert not check_tcp("127.0.0.1", port, timeout=0.2)


def test_wait_for_port_probes_at_least_once() -> None:
    calls = []

    def probe(host, port):
        calls.append((host, port))
        return False

    assert not wait_for_port(2222, timeout=0, probe=probe)
    assert calls == [("localhost", 2222)]


def test_wait_for_port_returns_once_open() -> None:
    answers = iter([False, False, True])

    assert wait_for_port(2222, timeout=5, interval=0, probe=lambda host, port: next(answers))


def test_wait_for_port_closed() -> None:
    answers = iter([True, False])

    assert wait_for_port_closed(2222, timeout=5, interval=0, probe=lambda host, port: next(answers))
    assert not wait_for_port_closed(2222, timeout=0, probe=lambda host, port: True)

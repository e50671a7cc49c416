import io
import json
import socket
import threading
import time

import pytest
from _pytest.config import Config

from request_logger.server import RequestLogServer, make_server


def pytest_configure(config: Config) -> None:
    config.addinivalue_line("markers", "live: tests that run a server on a loopback port")


def wait_for_lines(server: RequestLogServer, count: int, timeout: float = 5.0) -> list:
    """Wait until the server has written at least count log lines, and return them.

    The response goes out before the line is written, so a client can be
    done before its line shows up.
    """
    deadline = time.monotonic() + timeout
    while True:
        lines = server.output.getvalue().splitlines()
        if len(lines) >= count or time.monotonic() > deadline:
            return lines
        time.sleep(0.01)


def wait_for_records(server: RequestLogServer, count: int, timeout: float = 5.0) -> list:
    return [json.loads(line) for line in wait_for_lines(server, count, timeout)]


def send_raw(port: int, payload: bytes, timeout: float = 5.0) -> bytes:
    """Send payload, half-close the socket and return everything the server answers."""
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        sock.sendall(payload)
        sock.shutdown(socket.SHUT_WR)
        chunks = []
        while True:
            data = sock.recv(65536)
            if not data:
                break
            chunks.append(data)
    return b"".join(chunks)


@pytest.fixture
def server():
    srv = make_server(("127.0.0.1", 0), output=io.BytesIO())
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    srv.server_close()
    thread.join(timeout=5)


@pytest.fixture
def base_url(server):
    return f"http://127.0.0.1:{server.server_address[1]}"

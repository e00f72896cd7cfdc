"""Shared fixtures for the file server tests."""

import logging
import socket
import threading

import pytest

import httpd


INDEX_BODY = b"<h1>hi</h1>\n"


@pytest.fixture(autouse=True)
def restore_logger():
    """Undo whatever setup_logging() did to the server logger."""
    logger = logging.getLogger("httpd")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in logger.handlers:
            logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def docroot(tmp_path, monkeypatch):
    """A working directory holding the default document."""
    (tmp_path / "index.html").write_bytes(INDEX_BODY)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def pair():
    """A connected (server side, client side) socket pair."""
    server_side, client_side = socket.socketpair()
    server_side.settimeout(5)
    client_side.settimeout(5)
    yield server_side, client_side
    server_side.close()
    client_side.close()


def read_all(sock: socket.socket) -> bytes:
    """Read until the peer closes; a reset counts as the end of the data."""
    data = b""
    while True:
        try:
            chunk = sock.recv(4096)
        except ConnectionResetError:
            break
        if not chunk:
            break
        data += chunk
    return data


@pytest.fixture
def fetch():
    """Send raw request bytes to an address and return everything sent back."""
    def _fetch(address, raw: bytes) -> bytes:
        with socket.create_connection(address, timeout=5) as sock:
            try:
                sock.sendall(raw)
            except (BrokenPipeError, ConnectionResetError):
                pass
            return read_all(sock)
    return _fetch


@pytest.fixture
def thread_server(docroot):
    """A thread-mode server on an ephemeral port, serving docroot."""
    server = httpd.StaticFileServer("127.0.0.1", 0, worker_mode="thread")
    server.open_listener()
    runner = threading.Thread(target=server.serve_forever, daemon=True)
    runner.start()
    yield server
    server.stop()
    runner.join(timeout=5)
    assert not runner.is_alive()

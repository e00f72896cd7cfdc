"""Tests for command line handling and logging setup."""

import logging

import pytest

import httpd


class FakeServer:
    """Stands in for StaticFileServer and records how it was built."""

    instances = []
    serve_result = True
    setup_error = None

    def __init__(self, host, port, worker_mode, sandbox):
        self.config = (host, port, worker_mode, sandbox)
        self.signals_installed = False
        FakeServer.instances.append(self)

    def open_listener(self):
        if FakeServer.setup_error is not None:
            raise FakeServer.setup_error
        return (self.config[0], self.config[1])

    def install_signal_handlers(self):
        self.signals_installed = True

    def serve_forever(self):
        return FakeServer.serve_result


@pytest.fixture
def fake_server(monkeypatch):
    FakeServer.instances = []
    FakeServer.serve_result = True
    FakeServer.setup_error = None
    logging_calls = []
    monkeypatch.setattr(httpd, "StaticFileServer", FakeServer)
    monkeypatch.setattr(httpd, "setup_logging", lambda *args: logging_calls.append(args))
    FakeServer.logging_calls = logging_calls
    return FakeServer


def test_defaults(fake_server):
    httpd.main([])

    server = fake_server.instances[0]
    assert server.config == ("0.0.0.0", 8888, "process", False)
    assert server.signals_installed
    assert fake_server.logging_calls == [(False, None)]


def test_positional_arguments_and_flags(fake_server):
    httpd.main(["9000", "127.0.0.1", "thread", "--debug", "--sandbox", "--log-file", "logs/httpd.log"])

    assert fake_server.instances[0].config == ("127.0.0.1", 9000, "thread", True)
    assert fake_server.logging_calls == [(True, "logs/httpd.log")]


def test_short_debug_flag(fake_server):
    httpd.main(["-d"])

    assert fake_server.logging_calls == [(True, None)]


@pytest.mark.parametrize("argv", [
    ["http"],
    ["70000"],
    ["-1"],
    ["8888", "127.0.0.1", "fiber"],
    ["8888", "127.0.0.1", "thread", "extra"],
    ["--log-file"],
])
def test_bad_arguments_exit_1(fake_server, argv, capsys):
    with pytest.raises(SystemExit) as excinfo:
        httpd.main(argv)

    assert excinfo.value.code == 1
    assert "Error:" in capsys.readouterr().out
    assert fake_server.instances == []


def test_setup_failure_exits_1(fake_server):
    fake_server.setup_error = httpd.SetupError("couldn't bind to 0.0.0.0:8888")

    with pytest.raises(SystemExit) as excinfo:
        httpd.main([])

    assert excinfo.value.code == 1


def test_accept_failure_exits_254(fake_server):
    fake_server.serve_result = False

    with pytest.raises(SystemExit) as excinfo:
        httpd.main([])

    assert excinfo.value.code == 254


def test_setup_logging_is_quiet_by_default():
    httpd.setup_logging()
    logger = logging.getLogger("httpd")

    assert logger.level == logging.WARNING
    assert logger.propagate is False
    assert len(logger.handlers) == 1
    assert not logger.isEnabledFor(logging.DEBUG)


def test_setup_logging_with_debug_and_file(tmp_path):
    log_file = tmp_path / "logs" / "httpd.log"
    httpd.setup_logging(debug=True, log_file=str(log_file))
    logger = logging.getLogger("httpd")

    logger.debug("listening")
    for handler in logger.handlers:
        handler.flush()

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2
    assert "[DEBUG]" in log_file.read_text()
    assert "listening" in log_file.read_text()


def test_setup_logging_replaces_handlers():
    httpd.setup_logging()
    httpd.setup_logging()

    assert len(logging.getLogger("httpd").handlers) == 1

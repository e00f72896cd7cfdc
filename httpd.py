#!/usr/bin/env python3
"""
Minimal Static File Server Using Socket Programming

This server answers HTTP/1.0 and HTTP/1.1 GET requests with files from the
current working directory:
- One isolated worker per connection (forked process, or thread on request)
- Bounded request header buffering (4096 bytes, else the connection is dropped)
- Request line parsing only; header lines are ignored
- Zero-copy body transfer with socket.sendfile()
- Diagnostic trace through the logging module, silent unless debug is on

Python Version: 3.8+
"""

import logging
import multiprocessing
import os
import signal
import socket
import sys
import threading
from typing import List, NamedTuple, Optional, Tuple, Union


# Protocol limits
MAX_REQUEST_SIZE = 4096
LISTEN_BACKLOG = 10
HEADER_TERMINATOR = b"\r\n\r\n"
SUPPORTED_VERSIONS = (b"HTTP/1.0", b"HTTP/1.1")

# Defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8888
DEFAULT_DOCUMENT = b"index.html"
WORKER_MODES = ("process", "thread")

# Fixed response pieces
HTTP_NOT_FOUND = b"HTTP/1.0 404 Not Found\r\n"
HTTP_OK = b"HTTP/1.0 200\r\n"
HTTP_CONTENT_TYPE = b"Content-Type: text/html\r\n"
HTTP_CONTENT_LENGTH = "Content-Length: {}\r\n\r\n"

# Process exit statuses
EXIT_SETUP_FAILED = 1
EXIT_ACCEPT_FAILED = 254

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(processName)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("httpd")


class HTTPDError(Exception):
    """Base class for all server errors."""


class SetupError(HTTPDError):
    """The listening socket could not be created, bound or put in listen mode."""


class RequestAbandoned(HTTPDError):
    """The connection is closed without writing any response."""


class HeaderTooLarge(RequestAbandoned):
    """The request buffer filled up before the header terminator arrived."""


class ReadError(RequestAbandoned):
    """Reading the header failed or the peer closed the connection early."""


class BadRequest(HTTPDError):
    """The request line cannot be served; the error response goes out instead."""


class ParsedRequest(NamedTuple):
    method: bytes
    path: bytes
    version: bytes


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure the server logger.

    Args:
        debug: Emit the diagnostic trace (DEBUG records) when True
        log_file: Optional file receiving the same records as stderr
    """
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    level = logging.DEBUG if debug else logging.WARNING

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Setup console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Setup file handler
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level)

    # Prevent duplicate logs
    logger.propagate = False


def read_header(conn: socket.socket, capacity: int = MAX_REQUEST_SIZE) -> bytes:
    """
    Read from a connection until the header terminator arrives.

    At most capacity - 1 bytes are accepted. The terminator search resumes
    where the previous pass stopped, so every byte is examined once.

    Args:
        conn: Client connection
        capacity: Size of the request buffer

    Returns:
        Header bytes preceding the terminator

    Raises:
        HeaderTooLarge: capacity - 1 bytes arrived without a terminator
        ReadError: The read failed or the peer closed the connection first
    """
    limit = capacity - 1
    buffer = bytearray(limit)
    view = memoryview(buffer)
    readbytes = 0
    scanned = 0

    while readbytes < limit:
        try:
            count = conn.recv_into(view[readbytes:], limit - readbytes)
        except OSError as e:
            raise ReadError(f"read failed: {e}") from e
        if count == 0:
            raise ReadError(f"connection closed after {readbytes} bytes")
        readbytes += count

        end = buffer.find(HEADER_TERMINATOR, scanned, readbytes)
        if end >= 0:
            return bytes(buffer[:end])

        # A terminator may straddle the next read
        scanned = max(readbytes - len(HEADER_TERMINATOR) + 1, 0)

    raise HeaderTooLarge(f"no header terminator within {limit} bytes")


def parse_request(header: bytes) -> ParsedRequest:
    """
    Split the request line into method, target and protocol version.

    Only the first line of the header is looked at. The method must be GET
    and the version HTTP/1.0 or HTTP/1.1.

    Raises:
        BadRequest: Anything else
    """
    request_line = header.split(b"\r", 1)[0].split(b"\n", 1)[0]
    tokens = request_line.split()
    if len(tokens) != 3:
        raise BadRequest(f"malformed request line {request_line!r}")

    request = ParsedRequest(*tokens)
    logger.debug(f" * method = {request.method!r}")
    logger.debug(f" * path = {request.path!r}")
    logger.debug(f" * http = {request.version!r}")

    if request.method != b"GET":
        raise BadRequest(f"method {request.method!r} not implemented")
    if request.version not in SUPPORTED_VERSIONS:
        raise BadRequest(f"unsupported protocol {request.version!r}")
    if b"\0" in request.path:
        raise BadRequest(f"null byte in path {request.path!r}")

    return request


def resolve_path(target: bytes, sandbox: bool = False) -> bytes:
    """
    Map a request target onto a path relative to the working directory.

    "/" becomes the default document, "/X" becomes "./X" and anything else
    is used as is. No ".." collapsing happens unless sandbox is set, in
    which case targets escaping the working directory raise BadRequest.
    """
    if target == b"/":
        path = DEFAULT_DOCUMENT
    elif target.startswith(b"/"):
        path = b"." + target
    else:
        path = target

    if sandbox:
        root = os.path.realpath(b".")
        try:
            real = os.path.realpath(path)
        except ValueError as e:
            raise BadRequest(f"unusable path {target!r}: {e}") from e
        if os.path.commonpath([real, root]) != root:
            raise BadRequest(f"path {target!r} escapes the document root")

    return path


def send_error(conn: socket.socket) -> None:
    """Send the fixed not-found status line and content type, nothing else."""
    try:
        conn.sendall(HTTP_NOT_FOUND + HTTP_CONTENT_TYPE)
    except OSError as e:
        logger.error(f"error writing error response: {e}")


def send_file(conn: socket.socket, path: Union[bytes, str]) -> None:
    """
    Send a file with status line, content type and content length.

    Falls back to send_error() if the file cannot be opened or sized.
    Transfer failures are logged and abandoned; the file is always closed.

    Args:
        conn: Client connection
        path: Resolved path of the file to serve
    """
    try:
        f = open(path, 'rb')
    except (OSError, ValueError) as e:
        logger.debug(f"error opening file {path!r}: {e}")
        send_error(conn)
        return

    with f:
        try:
            size = os.fstat(f.fileno()).st_size
        except OSError as e:
            # Can't get the length.
            logger.debug(f"error fetching size of {path!r}: {e}")
            send_error(conn)
            return

        header = HTTP_OK + HTTP_CONTENT_TYPE + HTTP_CONTENT_LENGTH.format(size).encode('ascii')
        try:
            conn.sendall(header)
            if size:
                conn.sendfile(f, 0, size)
        except OSError as e:
            # Nothing can be done for this connection.
            logger.error(f"error writing file {path!r}: {e}")


def service(conn: socket.socket, sandbox: bool = False) -> None:
    """
    Run the read, parse and respond pipeline for one connection.

    The connection is left open; handle_connection() owns closing it.
    """
    try:
        header = read_header(conn)
    except HeaderTooLarge as e:
        logger.debug(f"header too long: {e}")
        return
    except ReadError as e:
        logger.warning(str(e))
        return

    try:
        request = parse_request(header)
        path = resolve_path(request.path, sandbox)
    except BadRequest as e:
        logger.debug(f"bad request: {e}")
        send_error(conn)
        return

    logger.debug(f"sending {path!r}")
    send_file(conn, path)


def handle_connection(conn: socket.socket, sandbox: bool = False) -> None:
    """Service a connection and close it on every exit path."""
    with conn:
        service(conn, sandbox)


class StaticFileServer:
    """
    Listener plus process supervisor.

    Every accepted connection is handed to a fresh worker which services
    exactly one request. Finished workers are reaped opportunistically after
    each accept.
    """

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 worker_mode: str = "process", sandbox: bool = False):
        """
        Initialize the server with configuration parameters.

        Args:
            host: Address to bind (default: all interfaces)
            port: Port to bind (default: 8888, 0 picks a free one)
            worker_mode: "process" forks a worker per connection, "thread" starts a thread
            sandbox: Reject targets resolving outside the working directory
        """
        if worker_mode not in WORKER_MODES:
            raise ValueError(f"unknown worker mode {worker_mode!r}, expected one of {WORKER_MODES}")

        self.host = host
        self.port = port
        self.worker_mode = worker_mode
        self.sandbox = sandbox
        self.server_socket: Optional[socket.socket] = None
        self.address: Optional[Tuple[str, int]] = None
        self.running = False
        self.workers: List[Union[multiprocessing.process.BaseProcess, threading.Thread]] = []
        self.total_connections = 0
        self._signals_installed = False

        if worker_mode == "process":
            # Workers must inherit the accepted connection
            self._context = multiprocessing.get_context("fork")

    @property
    def active_workers(self) -> int:
        return len(self.workers)

    def open_listener(self) -> Tuple[str, int]:
        """
        Create, bind and listen on the server socket.

        Returns:
            The bound (host, port) address

        Raises:
            SetupError: Socket creation, bind or listen failed
        """
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise SetupError(f"error creating socket: {e}") from e

        # Handy when restarting the server repeatedly
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            logger.warning(f"unable to tweak socket options: {e}")

        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise SetupError(f"couldn't bind to {self.host}:{self.port}: {e}") from e
        logger.debug(f"bound to {self.host}:{self.port}")

        try:
            sock.listen(LISTEN_BACKLOG)
        except OSError as e:
            sock.close()
            raise SetupError(f"listen failed: {e}") from e
        logger.debug("listening")

        self.server_socket = sock
        self.address = sock.getsockname()
        self.running = True
        return self.address

    def install_signal_handlers(self) -> None:
        """Stop the server on SIGINT and SIGTERM. Main thread only."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        self._signals_installed = True

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.warning(f"Received signal {signum}, shutting down")
        self.stop()

    def accept(self) -> Tuple[socket.socket, Tuple[str, int]]:
        """Block until a client connects."""
        return self.server_socket.accept()

    def serve_forever(self) -> bool:
        """
        Accept connections and spawn a worker for each until stopped.

        Returns:
            True if stop() ended the loop, False if accept() failed
        """
        if self.server_socket is None:
            self.open_listener()

        stopped = True
        try:
            while self.running:
                logger.debug("waiting for next request")
                try:
                    conn, client_address = self.accept()
                except OSError as e:
                    if self.running:
                        logger.error(f"accept failed: {e}")
                        stopped = False
                    break

                self.total_connections += 1
                logger.debug(f"accepted connection from {client_address[0]}:{client_address[1]}")
                self._spawn_worker(conn)
                self.reap_workers()
        finally:
            self.stop()

        return stopped

    def _spawn_worker(self, conn: socket.socket) -> None:
        """
        Hand a connection to a new worker.

        A worker that cannot be started costs only this connection.
        """
        name = f"Worker-{self.total_connections}"
        if self.worker_mode == "process":
            worker = self._context.Process(target=self._run_worker, args=(conn,), name=name,
                                           daemon=True)
        else:
            worker = threading.Thread(target=handle_connection, args=(conn, self.sandbox),
                                      name=name, daemon=True)

        try:
            worker.start()
        except (OSError, RuntimeError) as e:
            logger.error(f"failed to start worker: {e}")
            conn.close()
            return

        if self.worker_mode == "process":
            # The child owns its own copy of the connection
            conn.close()
        self.workers.append(worker)

    def _run_worker(self, conn: socket.socket) -> None:
        """Body of a forked worker; the process exits when this returns."""
        self.server_socket.close()
        if self._signals_installed:
            signal.signal(signal.SIGINT, signal.SIG_DFL)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
        logger.debug("servicing connection (as child)")
        handle_connection(conn, self.sandbox)

    def reap_workers(self) -> int:
        """
        Collect finished workers without blocking.

        Returns:
            Number of workers reaped
        """
        reaped = 0
        for worker in list(self.workers):
            if worker.is_alive():
                continue

            worker.join()
            self.workers.remove(worker)
            reaped += 1

            if isinstance(worker, threading.Thread):
                logger.debug(f"{worker.name} finished")
            else:
                logger.debug(f"child {worker.pid} exited with status {worker.exitcode}")
                worker.close()

        return reaped

    def stop(self) -> None:
        """Stop accepting connections and close the listener."""
        self.running = False
        sock = self.server_socket
        if sock is None or sock.fileno() < 0:
            return

        # Wakes up a blocked accept()
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"listener shutdown: {e}")
        sock.close()


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the file server.
    Parses command line arguments and serves until stopped.

    Usage: httpd.py [port] [host] [worker_mode] [-d|--debug] [--sandbox] [--log-file PATH]
    """
    args = list(sys.argv[1:] if argv is None else argv)

    # Default values
    port = DEFAULT_PORT
    host = DEFAULT_HOST
    worker_mode = "process"
    debug = False
    sandbox = False
    log_file = None

    # Pull out flags, keep positional arguments in order
    positional = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("-d", "--debug"):
            debug = True
        elif arg == "--sandbox":
            sandbox = True
        elif arg == "--log-file":
            if i + 1 >= len(args):
                print("Error: --log-file requires a path")
                sys.exit(EXIT_SETUP_FAILED)
            i += 1
            log_file = args[i]
        else:
            positional.append(arg)
        i += 1

    if len(positional) > 3:
        print("Error: Too many arguments")
        sys.exit(EXIT_SETUP_FAILED)

    if len(positional) >= 1:
        try:
            port = int(positional[0])
        except ValueError:
            print("Error: Port must be an integer")
            sys.exit(EXIT_SETUP_FAILED)

    if len(positional) >= 2:
        host = positional[1]

    if len(positional) >= 3:
        worker_mode = positional[2]

    # Validate arguments
    if not (0 <= port <= 65535):
        print("Error: Port must be between 0 and 65535")
        sys.exit(EXIT_SETUP_FAILED)

    if worker_mode not in WORKER_MODES:
        print(f"Error: Worker mode must be one of {', '.join(WORKER_MODES)}")
        sys.exit(EXIT_SETUP_FAILED)

    setup_logging(debug, log_file)

    server = StaticFileServer(host, port, worker_mode, sandbox)
    try:
        server.open_listener()
    except SetupError as e:
        logger.error(str(e))
        sys.exit(EXIT_SETUP_FAILED)

    server.install_signal_handlers()
    if not server.serve_forever():
        # Should never arrive here.
        sys.exit(EXIT_ACCEPT_FAILED)


if __name__ == "__main__":
    main()


"""
===============================================================================
README - Minimal Static File Server
===============================================================================

## Running the Server
```bash
# Default configuration (0.0.0.0:8888, one forked process per connection)
python httpd.py

# Custom port and host
python httpd.py 8000 127.0.0.1

# Threads instead of processes, with the diagnostic trace on
python httpd.py 8000 127.0.0.1 thread --debug
```

Put an `index.html` in the directory the server runs from and open
http://localhost:8888/.

## Exit Statuses
- 0: stopped by SIGINT/SIGTERM (workers also exit 0 after one connection)
- 1: bad arguments, or the socket could not be created, bound or listened on
- 254: accept() failed

## Known Limitations
- **Framing**: the error response carries no blank line after its headers,
  and every response is a fixed `text/html`
- **Traversal**: `..` in a target is honoured unless `--sandbox` is given
- **Timeouts**: a client that never finishes its header holds its worker forever
- **Reaping**: finished workers are only collected after the next accept
"""

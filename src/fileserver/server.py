"""
=============================================================================
FILE SERVER
=============================================================================

Ties the pieces together: the socket server accepts, the thread pool runs
one connection per worker, and the static file handler answers each
request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         FileServer                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer ──accept──► _handle_connection ──submit──► ThreadPool │
    │                                                              │       │
    │                                                              ▼       │
    │                                            _process_connection(conn) │
    │                                                              │       │
    │       read head ─► RequestParser ─► StaticFileHandler.handle │       │
    │                                              │               │       │
    │                                              ▼               │       │
    │                          send head, then stream body chunks  │       │
    │                          access log line                     │       │
    │                          keep-alive? loop : close            │       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Errors that happen before a request reaches the handler (malformed head,
oversized head, first-request timeout, overload) are answered here with a
plain-text error and the connection is closed.

=============================================================================
"""

import logging
import threading
import time
from typing import Optional

from .config import ServerConfig
from .core.connection import Connection, ConnectionState
from .core.socket_server import SocketServer
from .core.thread_pool import ThreadPool
from .errors import ServeError
from .handlers.static import StaticFileHandler
from .http.request import IncomingRequest, RequestParser
from .http.response import HTTPResponse, error_response
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("fileserver.access")


class FileServer:
    """
    Serve ``config.root_dir`` over HTTP/1.1.

    Example:
        server = FileServer(ServerConfig(root_dir="/srv/www", port=8080))
        server.run()   # blocks until SIGINT / SIGTERM or shutdown()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        handler: Optional[StaticFileHandler] = None,
    ):
        self.config = config or ServerConfig()
        self.handler = handler or StaticFileHandler(self.config)

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._running = False

    @property
    def address(self):
        """The bound (host, port) once running."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self) -> None:
        """
        Validate the configuration and serve until shut down.

        Raises:
            ValueError: Invalid configuration.
            OSError: The address could not be bound.
        """
        self.config.validate()

        self._running = True
        self._thread_pool.start()
        logger.info(
            "Serving %s on http://%s:%d",
            self.config.root_path.resolve(), self.config.host, self.config.port,
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def start_background(self, timeout: float = 5.0) -> threading.Thread:
        """
        Run the server on a daemon thread and wait until it is listening.

        Raises:
            RuntimeError: The server did not come up within ``timeout``.
        """
        thread = threading.Thread(target=self.run, name="fileserver", daemon=True)
        thread.start()
        if not self._socket_server.wait_until_ready(timeout):
            raise RuntimeError("Server did not start listening in time")
        return thread

    def shutdown(self) -> None:
        """Ask the accept loop to stop. run() then returns."""
        self._socket_server.shutdown()

    def _shutdown(self) -> None:
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=self.config.timeout)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Hand the connection to a worker, or answer 503 if none can take it."""
        if not self._thread_pool.submit(self._process_connection, args=(conn,)):
            logger.warning("[%s] Thread pool full, rejecting connection", conn.id)
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            conn.close()

    def _process_connection(self, conn: Connection) -> None:
        """
        The keep-alive loop for one connection (runs on a worker thread).

        1. Read a request head
        2. Parse it
        3. Let the handler build the response
        4. Send the head, then the body unless the method is HEAD
        5. Repeat while both sides want keep-alive
        """
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except ServeError as e:
                        logger.debug("[%s] Bad request: %s", conn.id, e)
                        self._send_error(conn, e.status, e.kind.public_message)
                        break

                    conn.state = ConnectionState.PROCESSING
                    started = time.perf_counter()
                    response = self.handler.handle(request.method, request.uri)

                    keep_alive = request.is_keep_alive and self.config.keep_alive
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    sent = self._send_response(conn, request, response)
                    self._log_access(conn, request, response, time.perf_counter() - started)

                    if not sent or not keep_alive:
                        break
                    conn.set_keep_alive()

                except ServeError as e:
                    # Raised while reading: timeout, oversized head or body.
                    logger.debug("[%s] %s", conn.id, e)
                    self._send_error(conn, e.status, e.kind.public_message)
                    break

                except Exception:
                    logger.exception("[%s] Connection error", conn.id)
                    break

    def _send_response(
        self,
        conn: Connection,
        request: IncomingRequest,
        response: HTTPResponse,
    ) -> bool:
        """
        Write the response. The body is streamed chunk by chunk, so a large
        file never sits in memory whole.

        Returns:
            False if the client went away mid-response.
        """
        with response:
            if not conn.send(response.head_bytes(self.config.server_name)):
                return False
            if request.method == "HEAD":
                return True
            for chunk in response.iter_body():
                if not conn.send(chunk):
                    return False
        return True

    def _send_error(
        self,
        conn: Connection,
        status: HTTPStatus,
        message: Optional[str] = None,
    ) -> None:
        """Answer an error that happened before the handler was involved."""
        response = error_response(status, message)
        response.headers["Connection"] = "close"
        conn.send(response.to_bytes(self.config.server_name))

    def _log_access(
        self,
        conn: Connection,
        request: IncomingRequest,
        response: HTTPResponse,
        duration: float,
    ) -> None:
        access_logger.info(
            '%s "%s %s %s" %d %d %.1fms',
            conn.client_ip,
            request.method,
            request.uri,
            request.version,
            int(response.status),
            response.content_length,
            duration * 1000,
        )

"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps an accepted client socket: buffered reading of request heads,
all-or-nothing writes, and a graceful close.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BUFFERED READING                                                 │
    │     └── recv() until "\r\n\r\n" ends the request head                │
    │     └── bytes after it (a pipelined request) stay in the buffer      │
    │                                                                      │
    │  2. REQUEST BODIES                                                   │
    │     └── a file server has no use for them                            │
    │     └── Content-Length bytes are read and discarded so the next      │
    │         request on the connection starts at the right place          │
    │                                                                      │
    │  3. TIMEOUTS                                                         │
    │     └── first request: config.timeout                                │
    │     └── keep-alive wait: config.keep_alive_timeout                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import ErrorKind, ServeError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSED = "closed"


HEAD_TERMINATOR = b"\r\n\r\n"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port).
        id: Short identifier used in log lines.
        requests_handled: Requests read so far on this connection.
    """

    socket: socket.socket
    address: tuple
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 64 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    def read_request(self) -> Optional[bytes]:
        """
        Read one request head (request line + headers + blank line).

        Any body announced by Content-Length is consumed and dropped.

        Returns:
            The head bytes, or None if the client closed the connection or
            went idle on a kept-alive connection.

        Raises:
            ServeError: REQUEST_TIMEOUT if the first request did not arrive
                in time, REQUEST_TOO_LARGE past ``max_request_size``.
        """
        self.state = ConnectionState.READING
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while HEAD_TERMINATOR not in self._buffer:
                if len(self._buffer) > self.max_request_size:
                    raise ServeError(
                        ErrorKind.REQUEST_TOO_LARGE,
                        f"request head over {self.max_request_size} bytes",
                    )
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk

            head_end = self._buffer.index(HEAD_TERMINATOR) + len(HEAD_TERMINATOR)
            head = self._buffer[:head_end]
            self._buffer = self._buffer[head_end:]

            self._discard_body(self._parse_content_length(head))

            self.requests_handled += 1
            return head

        except socket.timeout as exc:
            if self.requests_handled > 0:
                logger.debug("[%s] Keep-alive timeout", self.id)
                return None
            raise ServeError(
                ErrorKind.REQUEST_TIMEOUT,
                f"no complete request within {self.timeout}s",
            ) from exc
        finally:
            self.socket.settimeout(self.timeout)

    def _discard_body(self, length: int) -> None:
        if length > self.max_request_size:
            raise ServeError(
                ErrorKind.REQUEST_TOO_LARGE,
                f"request body of {length} bytes",
            )
        while len(self._buffer) < length:
            chunk = self._recv()
            if not chunk:
                break
            self._buffer += chunk
        self._buffer = self._buffer[length:]

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    @staticmethod
    def _parse_content_length(head: bytes) -> int:
        """
        Find Content-Length without fully parsing the head; the parser
        runs later.
        """
        for line in head.split(b"\r\n")[1:]:
            name, sep, value = line.partition(b":")
            if sep and name.strip().lower() == b"content-length":
                try:
                    return max(int(value.strip()), 0)
                except ValueError:
                    return 0
        return 0

    def send(self, data: bytes) -> bool:
        """
        Send all of ``data``.

        Returns:
            False if the client has gone away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning("[%s] Send failed: %s", self.id, e)
            return False

    def set_keep_alive(self) -> None:
        self.state = ConnectionState.KEEP_ALIVE

    def close(self) -> None:
        """
        Close gracefully: send FIN, drain what the client still sends,
        then release the descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug("[%s] Connection closed after %d requests", self.id, self.requests_handled)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

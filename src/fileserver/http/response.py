"""
=============================================================================
HTTP RESPONSE
=============================================================================

The rendered response: status, headers and a body that is either a small
byte string (listings, error text) or a file streamed straight from disk.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 200 OK\r\n                     ← status line            │
    │    Content-Type: image/png\r\n             ← set by the handler     │
    │    Content-Length: 5120\r\n                ← exact file size        │
    │    Date: Sat, 17 Oct 2026 12:00:00 GMT\r\n ← added on the wire      │
    │    Server: fileserver/1.0\r\n              ← added on the wire      │
    │    \r\n                                                              │
    │    <5120 bytes read from disk in chunks>   ← FileBody               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
OWNERSHIP OF OPEN FILES
=============================================================================

A FileBody holds an open file handle. The handle belongs to the response
and is released by HTTPResponse.close(), which the transport calls on
every path, sent or not:

    with handler.handle("GET", "/big.iso") as response:
        conn.send(response.head_bytes())
        for chunk in response.iter_body():
            conn.send(chunk)

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO, Iterator, Optional, Union

from .headers import Headers
from .status_codes import HTTPStatus


DEFAULT_CHUNK_SIZE = 64 * 1024


class FileBody:
    """
    A response body read lazily from an open binary file.

    Iterating yields chunks of at most ``chunk_size`` bytes and closes the
    file when exhausted. close() is idempotent.
    """

    def __init__(self, file: BinaryIO, size: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._file = file
        self.size = size
        self.chunk_size = chunk_size

    @property
    def closed(self) -> bool:
        return self._file.closed

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                chunk = self._file.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        self._file.close()


Body = Union[bytes, FileBody]


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be written to a socket.

    Handlers fill in status, headers and body. Date, Server and a missing
    Content-Length are added only when serializing, so two responses for
    the same resource compare equal regardless of when they were built.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Headers = field(default_factory=Headers)
    body: Body = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. ``HTTP/1.1 404 Not Found``"""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def content_length(self) -> int:
        if "Content-Length" in self.headers:
            return int(self.headers["Content-Length"])
        if isinstance(self.body, FileBody):
            return self.body.size
        return len(self.body)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def head_bytes(self, server_name: str = "fileserver/1.0") -> bytes:
        """
        Serialize the status line and headers, up to and including the
        blank line that ends them.
        """
        response_headers = self.headers.copy()

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(self.content_length)
        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def iter_body(self) -> Iterator[bytes]:
        """Yield the body in chunks. Empty bodies yield nothing."""
        if isinstance(self.body, FileBody):
            yield from self.body
        elif self.body:
            yield self.body

    def read_body(self) -> bytes:
        """Collect the whole body. Meant for tests and small bodies."""
        return b"".join(self.iter_body())

    def to_bytes(self, server_name: str = "fileserver/1.0") -> bytes:
        """Serialize the complete response, body included."""
        return self.head_bytes(server_name) + self.read_body()

    def close(self) -> None:
        """Release the body's file handle, if any."""
        if isinstance(self.body, FileBody):
            self.body.close()

    def __enter__(self) -> "HTTPResponse":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type("image/png")
            .stream(FileBody(f, size))
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers = Headers()
        self._body: Body = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def content_length(self, length: int) -> "ResponseBuilder":
        return self.header("Content-Length", str(length))

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """
        Set an in-memory body and its Content-Length.

        Strings are encoded as UTF-8.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        return self.content_length(len(body))

    def text(self, text: str) -> "ResponseBuilder":
        """Plain text body with a UTF-8 charset."""
        return self.content_type("text/plain; charset=utf-8").body(text)

    def html(self, html: str, content_type: str = "text/html") -> "ResponseBuilder":
        return self.content_type(content_type).body(html)

    def stream(self, file_body: FileBody) -> "ResponseBuilder":
        """Stream a file; Content-Length is the file's size."""
        self._body = file_body
        return self.content_length(file_body.size)

    def empty(self) -> "ResponseBuilder":
        """
        Drop the body but keep every header, Content-Length included.
        Used for HEAD.
        """
        if isinstance(self._body, FileBody):
            self._body.close()
        self._body = b""
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always in GMT.

        >>> format_http_date(datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc))
        'Thu, 15 Jan 2026 12:30:45 GMT'
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def error_response(
    status: HTTPStatus,
    message: Optional[str] = None,
) -> HTTPResponse:
    """
    A short plain-text error response.

    The body is ``message`` or the status phrase. Callers must only pass
    text that is safe for the client to read.
    """
    return (ResponseBuilder()
        .status(status)
        .text(message or status.phrase)
        .build())

"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw header block read from a socket into an IncomingRequest.

A file server only needs the request line, and a little of the headers for
connection management:

    GET /img/logo.png HTTP/1.1\r\n      ← method, request-target, version
    Host: localhost:4000\r\n
    Connection: keep-alive\r\n          ← decides whether we read again
    \r\n

The request-target is kept exactly as sent (still percent-encoded, query
and all). Deciding what it means is the path resolver's job, not the
parser's.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict

from ..errors import ErrorKind, ServeError


@dataclass(frozen=True)
class IncomingRequest:
    """
    One parsed request.

    Attributes:
        method: Request method, upper-cased ("GET", "HEAD", ...).
        uri: The raw request-target from the request line.
        version: "HTTP/1.0" or "HTTP/1.1".
        headers: Header values keyed by lower-cased name.
        client_address: Peer (ip, port), for logging.
    """

    method: str
    uri: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    client_address: tuple = ("", 0)

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps connections open unless told otherwise;
        HTTP/1.0 closes them unless asked to keep them.
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.0":
            return connection == "keep-alive"
        return connection != "close"

    @property
    def content_length(self) -> int:
        try:
            return max(int(self.headers.get("content-length", "0")), 0)
        except ValueError:
            return 0


class RequestParser:
    """
    Parses raw request bytes into IncomingRequest objects.

    REQUEST_LINE_PATTERN: ^([A-Za-z]+) (\\S+) (HTTP/\\d\\.\\d)$
        method, request-target (no whitespace), version

    Raises ServeError(MALFORMED_REQUEST) for anything that does not look
    like HTTP/1.x, and ServeError(REQUEST_TOO_LARGE) past the size limit.
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Za-z]+) (\S+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s]+):\s*(.*?)\s*$")

    def __init__(self, max_request_size: int = 64 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple = ("", 0),
    ) -> IncomingRequest:
        if len(data) > self.max_request_size:
            raise ServeError(
                ErrorKind.REQUEST_TOO_LARGE,
                f"request of {len(data)} bytes exceeds {self.max_request_size}",
            )

        header_end = data.find(b"\r\n\r\n")
        head = data if header_end == -1 else data[:header_end]

        # latin-1 maps every byte to one character, so nothing is lost
        # before the resolver looks at the request-target.
        lines = head.decode("latin-1").split("\r\n")
        if not lines or not lines[0]:
            raise ServeError(ErrorKind.MALFORMED_REQUEST, "empty request")

        match = self.REQUEST_LINE_PATTERN.match(lines[0])
        if match is None:
            raise ServeError(
                ErrorKind.MALFORMED_REQUEST,
                f"bad request line: {lines[0][:100]!r}",
            )
        method, uri, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise ServeError(ErrorKind.MALFORMED_REQUEST, f"unsupported version {version}")

        return IncomingRequest(
            method=method.upper(),
            uri=uri,
            version=version,
            headers=self._parse_headers(lines[1:]),
            client_address=client_address,
        )

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for line in lines:
            if not line:
                continue
            match = self.HEADER_PATTERN.match(line)
            if match is None:
                raise ServeError(
                    ErrorKind.MALFORMED_REQUEST,
                    f"bad header line: {line[:100]!r}",
                )
            name, value = match.groups()
            headers[name.lower()] = value
        return headers


def parse_request(data: bytes, client_address: tuple = ("", 0)) -> IncomingRequest:
    """Parse with default limits."""
    return RequestParser().parse(data, client_address)

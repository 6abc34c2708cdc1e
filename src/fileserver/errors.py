"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server can hit while answering a request is expressed as
one exception type, ServeError, tagged with an ErrorKind. The kind decides
the HTTP status and the short message the client sees.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    ERROR KIND → HTTP STATUS                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   MALFORMED REQUEST                                                 │
    │     URI_NOT_ABSOLUTE, URI_NOT_UTF8, MALFORMED_REQUEST   → 400       │
    │                                                                      │
    │   PATH ESCAPE                                                       │
    │     OUTSIDE_ROOT                                        → 400       │
    │     (not 403: we never confirm that anything exists outside)        │
    │                                                                      │
    │   FILESYSTEM                                                        │
    │     NOT_FOUND                                           → 404       │
    │     PERMISSION_DENIED                                   → 403       │
    │     IO                                                  → 500       │
    │                                                                      │
    │   TRANSPORT                                                         │
    │     METHOD_NOT_ALLOWED 405, REQUEST_TIMEOUT 408,                    │
    │     REQUEST_TOO_LARGE 413, INTERNAL 500                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

"Semantic" kinds (URI_NOT_UTF8, OUTSIDE_ROOT, ...) are raised directly.
"Blanket" failures wrap a lower-level exception, usually an OSError, which
stays reachable as the cause:

    try:
        os.stat(path)
    except OSError as exc:
        raise ServeError.from_os_error(exc) from exc

=============================================================================
CAUSE CHAINS
=============================================================================

A 500 never tells the client what went wrong. The server log gets all of
it instead, one line per error, outermost first:

    error: I/O error
    caused by: [Errno 5] Input/output error: '/srv/www/disk.img'

=============================================================================
"""

import errno
import logging
from enum import Enum
from typing import Iterator, Optional

from .http.status_codes import HTTPStatus


class ErrorKind(Enum):
    """
    Kinds of request failures.

    Each member carries the status to answer with and the fixed message
    that is safe to show the client.
    """

    URI_NOT_ABSOLUTE = (HTTPStatus.BAD_REQUEST, "requested URI is not an absolute path")
    URI_NOT_UTF8 = (HTTPStatus.BAD_REQUEST, "requested URI is not UTF-8")
    OUTSIDE_ROOT = (HTTPStatus.BAD_REQUEST, "requested path is outside the served directory")
    MALFORMED_REQUEST = (HTTPStatus.BAD_REQUEST, "malformed HTTP request")
    PERMISSION_DENIED = (HTTPStatus.FORBIDDEN, "forbidden")
    NOT_FOUND = (HTTPStatus.NOT_FOUND, "not found")
    METHOD_NOT_ALLOWED = (HTTPStatus.METHOD_NOT_ALLOWED, "method not allowed")
    REQUEST_TIMEOUT = (HTTPStatus.REQUEST_TIMEOUT, "request timeout")
    REQUEST_TOO_LARGE = (HTTPStatus.PAYLOAD_TOO_LARGE, "request too large")
    IO = (HTTPStatus.INTERNAL_SERVER_ERROR, "I/O error")
    INTERNAL = (HTTPStatus.INTERNAL_SERVER_ERROR, "internal error")

    def __init__(self, status: HTTPStatus, message: str):
        self.status = status
        self.message = message

    @property
    def public_message(self) -> str:
        """Text for the response body. Server errors stay generic."""
        if self.status.is_server_error:
            return self.status.phrase
        return self.message


# The reasons a resolver may give for refusing a URI outright.
REJECTION_KINDS = frozenset({
    ErrorKind.URI_NOT_ABSOLUTE,
    ErrorKind.URI_NOT_UTF8,
    ErrorKind.OUTSIDE_ROOT,
})


class ServeError(Exception):
    """
    A failure while serving a request.

    Args:
        kind: What went wrong; decides the response status.
        detail: Extra text for the server log. Never sent to the client.
    """

    def __init__(self, kind: ErrorKind, detail: Optional[str] = None):
        super().__init__(detail or kind.message)
        self.kind = kind
        self.detail = detail

    @property
    def status(self) -> HTTPStatus:
        return self.kind.status

    @classmethod
    def from_os_error(cls, exc: OSError) -> "ServeError":
        """
        Classify an OSError.

        Anything that means "no such path" is a 404. That includes a path
        component that is not a directory and a name too long to exist.
        Permission problems are 403, anything else is a 500.
        """
        if (isinstance(exc, (FileNotFoundError, NotADirectoryError))
                or exc.errno == errno.ENAMETOOLONG):
            return cls(ErrorKind.NOT_FOUND)
        if isinstance(exc, PermissionError):
            return cls(ErrorKind.PERMISSION_DENIED)
        return cls(ErrorKind.IO)

    def chain(self) -> Iterator[BaseException]:
        """Yield this error and every underlying cause, outermost first."""
        return iter_causes(self)


def iter_causes(error: BaseException) -> Iterator[BaseException]:
    """
    Walk an exception chain, outermost first.

    Follows __cause__ (``raise ... from exc``) and falls back to an
    implicit __context__ unless it was suppressed.
    """
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def log_error_chain(logger: logging.Logger, error: BaseException) -> None:
    """Log an error followed by each of its causes, one line per error."""
    chain = list(iter_causes(error))

    logger.error("error: %s", chain[0])
    for cause in chain[1:]:
        logger.error("caused by: %s", cause)

"""
HTTP protocol pieces: status codes, headers, responses and MIME types.

The request parser lives in ``fileserver.http.request``. It depends on the
error taxonomy, which in turn depends on the status codes here, so it is
not re-exported from this package.
"""

from .status_codes import HTTPStatus
from .headers import Headers
from .response import (
    HTTPResponse,
    ResponseBuilder,
    FileBody,
    error_response,
    format_http_date,
)
from .mime_types import get_mime_type, DEFAULT_MIME_TYPE, LISTING_MIME_TYPE

__all__ = [
    "HTTPStatus",
    "Headers",
    "HTTPResponse",
    "ResponseBuilder",
    "FileBody",
    "error_response",
    "format_http_date",
    "get_mime_type",
    "DEFAULT_MIME_TYPE",
    "LISTING_MIME_TYPE",
]

"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Builds the response for one request: file contents, a directory listing,
or an error. This is the only callback the transport layer knows about:

    response = handler.handle("GET", "/img/logo.png")

handle() never raises. Whatever goes wrong is already a response by the
time it returns.

=============================================================================
DISPATCH
=============================================================================

    ┌───────────────────────────────────┬────────┬─────────────────────────┐
    │ Resolved target / error           │ Status │ Body                    │
    ├───────────────────────────────────┼────────┼─────────────────────────┤
    │ Rejected(URI_NOT_ABSOLUTE)        │  400   │ short text              │
    │ Rejected(URI_NOT_UTF8)            │  400   │ short text              │
    │ Rejected(OUTSIDE_ROOT)            │  400   │ short text, no path     │
    │ not found                         │  404   │ short text              │
    │ permission denied                 │  403   │ short text              │
    │ any other I/O failure             │  500   │ generic; chain logged   │
    │ File                              │  200   │ file, streamed          │
    │ Directory with index.html         │  200   │ the index file          │
    │ Directory without index.html      │  200   │ HTML listing            │
    └───────────────────────────────────┴────────┴─────────────────────────┘

HEAD runs the same resolution and computes the same headers (the file is
still opened, so an unreadable file is still a 403) but sends no body.

=============================================================================
SECURITY
=============================================================================

- The resolver guarantees every File/Directory is inside the root.
- A directory's index.html goes through the same containment check, so an
  index symlinked out of the root is refused like a direct request for it.
- Error bodies are fixed strings per error kind. Paths and OS error text
  only ever reach the server log.

=============================================================================
"""

import html
import logging
import os
from typing import Optional, Union
from urllib.parse import quote

from ..config import ServerConfig
from ..errors import ErrorKind, ServeError, log_error_chain
from ..http.mime_types import LISTING_MIME_TYPE, get_mime_type
from ..http.response import (
    FileBody,
    HTTPResponse,
    ResponseBuilder,
    error_response,
)
from ..http.status_codes import HTTPStatus
from .resolver import (
    Directory,
    File,
    Rejected,
    ResolvedTarget,
    canonical_root,
    locate,
    resolve,
)


ALLOWED_METHODS = ("GET", "HEAD")


class StaticFileHandler:
    """
    Serves files from ``config.root_dir``.

    =========================================================================
    FLOW
    =========================================================================

        handle("GET", "/docs/")
          │
          ├── method check           → 405 for anything but GET/HEAD
          ├── resolve(config, uri)   → File / Directory / Rejected
          │                            or ServeError (404/403/500)
          └── build(target, head)    → HTTPResponse

    =========================================================================
    USAGE
    =========================================================================

        handler = StaticFileHandler(ServerConfig(root_dir="/srv/www"))

        with handler.handle("GET", "/index.html") as response:
            ...

    The handler keeps no per-request state; one instance serves every
    worker thread.
    =========================================================================
    """

    def __init__(
        self,
        config: ServerConfig,
        logger: Optional[logging.Logger] = None,
        index_file: str = "index.html",
    ):
        """
        Args:
            config: Shared, read-only server configuration.
            logger: Where server errors and their causes are written.
                    Defaults to this module's logger.
            index_file: File served in place of a directory listing.
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.index_file = index_file

    def handle(self, method: str, uri: str) -> HTTPResponse:
        """
        Answer one request. Never raises.

        Args:
            method: Request method.
            uri: Raw request-target.
        """
        try:
            method = method.upper()
            if method not in ALLOWED_METHODS:
                response = self.build(ServeError(ErrorKind.METHOD_NOT_ALLOWED))
                response.set_header("Allow", ", ".join(ALLOWED_METHODS))
                return response

            try:
                target: Union[ResolvedTarget, ServeError] = resolve(self.config, uri)
            except ServeError as exc:
                target = exc

            return self.build(target, head=(method == "HEAD"))
        except Exception as exc:
            error = ServeError(ErrorKind.INTERNAL, f"unhandled error serving {uri!r}")
            error.__cause__ = exc
            return self.build(error)

    def build(
        self,
        target: Union[ResolvedTarget, ServeError],
        head: bool = False,
    ) -> HTTPResponse:
        """
        Render a resolved target, or a resolution failure, as a response.

        Filesystem errors raised while opening or listing are converted
        here too.
        """
        try:
            if isinstance(target, ServeError):
                raise target
            if isinstance(target, Rejected):
                raise target.to_error()
            if isinstance(target, File):
                return self._serve_file(target, head)
            if isinstance(target, Directory):
                return self._serve_directory(target, head)
            raise TypeError(f"Cannot build a response for {target!r}")
        except ServeError as exc:
            return self._error_response(exc, head)

    # =========================================================================
    # FILES
    # =========================================================================

    def _serve_file(self, target: File, head: bool) -> HTTPResponse:
        """
        Open the file and stream it.

        The size comes from the open handle, not from the earlier stat, so
        Content-Length matches what will actually be read.
        """
        try:
            f = open(target.path, "rb")
        except OSError as exc:
            raise ServeError.from_os_error(exc) from exc

        try:
            size = os.fstat(f.fileno()).st_size
        except OSError as exc:
            f.close()
            raise ServeError.from_os_error(exc) from exc

        builder = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(get_mime_type(target.path))
            .stream(FileBody(f, size, self.config.chunk_size)))

        if head:
            builder.empty()

        return builder.build()

    # =========================================================================
    # DIRECTORIES
    # =========================================================================

    def _serve_directory(self, target: Directory, head: bool) -> HTTPResponse:
        """
        Serve the directory's index file if it has one, otherwise a listing.

        The index goes through locate() exactly as if it had been
        requested directly.
        """
        index_url = target.url_path + self.index_file
        try:
            index = locate(
                canonical_root(self.config),
                target.path / self.index_file,
                index_url,
            )
        except ServeError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise
            index = None

        if isinstance(index, File):
            return self._serve_file(index, head)
        if isinstance(index, Rejected):
            raise index.to_error()

        return self._directory_listing(target, head)

    def _directory_listing(self, target: Directory, head: bool) -> HTTPResponse:
        """
        Generate an HTML page linking every immediate entry of the
        directory, sorted by name. Subdirectories get a trailing "/".
        """
        entries = []
        try:
            with os.scandir(target.path) as it:
                for entry in it:
                    entries.append((entry.name, _is_dir(entry)))
        except OSError as exc:
            raise ServeError.from_os_error(exc) from exc

        entries.sort()

        items = []
        for name, is_dir in entries:
            # Names that are not valid UTF-8 carry surrogate escapes. Link
            # them by their raw bytes and show them with U+FFFD.
            raw = os.fsencode(name + "/" if is_dir else name)
            href = html.escape(target.link_base + quote(raw))
            label = html.escape(raw.decode("utf-8", "replace"))
            items.append(f'<li><a href="{href}">{label}</a></li>')

        title = html.escape(f"Index of {target.url_path}")
        page = (
            "<!DOCTYPE html>\n"
            "<html>\n"
            "<head>\n"
            '<meta charset="utf-8">\n'
            f"<title>{title}</title>\n"
            "</head>\n"
            "<body>\n"
            f"<h1>{title}</h1>\n"
            "<ul>\n"
            + "".join(item + "\n" for item in items)
            + "</ul>\n"
            "</body>\n"
            "</html>\n"
        )

        builder = ResponseBuilder().status(HTTPStatus.OK).html(page, LISTING_MIME_TYPE)
        if head:
            builder.empty()
        return builder.build()

    # =========================================================================
    # ERRORS
    # =========================================================================

    def _error_response(self, error: ServeError, head: bool = False) -> HTTPResponse:
        """
        Convert an error to its response. Server errors are logged with
        their full cause chain first; the client only sees the status
        phrase.
        """
        if error.status.is_server_error:
            log_error_chain(self.logger, error)
        else:
            self.logger.debug("%s: %s", int(error.status), error)

        response = error_response(error.status, error.kind.public_message)
        if head:
            response.body = b""
        return response


def _is_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


def serve_static(root_dir: str, **kwargs) -> StaticFileHandler:
    """
    Create a handler for ``root_dir`` with default settings.

        handler = serve_static("/srv/www")
    """
    return StaticFileHandler(ServerConfig(root_dir=root_dir), **kwargs)

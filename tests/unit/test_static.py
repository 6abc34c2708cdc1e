"""
Unit tests for the static file handler (response building).
"""

import errno
import logging
import os
import re
from pathlib import Path
from urllib.parse import unquote, urljoin, urlsplit

import pytest

from fileserver.config import ServerConfig
from fileserver.errors import ErrorKind, ServeError
from fileserver.handlers.static import StaticFileHandler, serve_static
from fileserver.http import HTTPStatus

from conftest import INDEX_HTML, LOGO_PNG


def get(handler: StaticFileHandler, uri: str, method: str = "GET"):
    """Handle a request and return (response, body), closing the response."""
    response = handler.handle(method, uri)
    with response:
        body = response.read_body()
    return response, body


class TestFiles:
    """Tests for serving regular files."""

    def test_index_at_root(self, handler: StaticFileHandler):
        """GET / serves index.html as text/html."""
        response, body = get(handler, "/")

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/html"
        assert response.headers["Content-Length"] == str(len(INDEX_HTML))
        assert body == INDEX_HTML

    def test_png(self, handler: StaticFileHandler):
        response, body = get(handler, "/img/logo.png")

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "image/png"
        assert response.headers["Content-Length"] == str(len(LOGO_PNG))
        assert body == LOGO_PNG

    def test_unknown_extension(self, handler: StaticFileHandler, site_root: Path):
        (site_root / "blob.xyz").write_bytes(b"\x00\x01")

        response, _ = get(handler, "/blob.xyz")

        assert response.headers["Content-Type"] == "application/octet-stream"

    def test_file_is_streamed_in_chunks(self, config: ServerConfig):
        """Bodies are read lazily, at most chunk_size bytes at a time."""
        handler = StaticFileHandler(config.with_overrides(chunk_size=100))

        with handler.handle("GET", "/img/logo.png") as response:
            chunks = list(response.iter_body())

        assert len(chunks) > 1
        assert all(len(chunk) <= 100 for chunk in chunks)
        assert b"".join(chunks) == LOGO_PNG

    def test_file_handle_closed_after_streaming(self, handler: StaticFileHandler):
        response = handler.handle("GET", "/hello.txt")
        file_body = response.body

        assert not file_body.closed
        list(response.iter_body())
        assert file_body.closed

    def test_file_handle_closed_when_unsent(self, handler: StaticFileHandler):
        """Closing the response releases the file even if nothing was read."""
        response = handler.handle("GET", "/hello.txt")
        file_body = response.body

        response.close()

        assert file_body.closed

    def test_empty_file(self, handler: StaticFileHandler, site_root: Path):
        (site_root / "empty.txt").write_bytes(b"")

        response, body = get(handler, "/empty.txt")

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Length"] == "0"
        assert body == b""


class TestDirectories:
    """Tests for index files and listings."""

    def test_index_equivalent_to_direct_request(self, handler: StaticFileHandler):
        """GET / and GET /index.html produce the same response."""
        via_dir, dir_body = get(handler, "/")
        direct, direct_body = get(handler, "/index.html")

        assert via_dir.status == direct.status
        assert via_dir.headers == direct.headers
        assert dir_body == direct_body

    def test_listing_without_index(self, handler: StaticFileHandler):
        response, body = get(handler, "/docs/")
        page = body.decode("utf-8")

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/html"
        assert response.headers["Content-Length"] == str(len(body))
        assert page.count('href="guide.txt"') == 1
        assert page.count('href="sub/"') == 1
        assert "Index of /docs/" in page

    def test_listing_without_trailing_slash(self, handler: StaticFileHandler):
        """Without a trailing "/" the links carry the directory name."""
        _, body = get(handler, "/docs")

        assert b'href="docs/guide.txt"' in body

    @pytest.mark.parametrize("uri", [
        "/docs/",
        "/docs",
        "/docs/.",
        "/docs?sort=name",
        "/%64ocs",
    ])
    def test_listing_links_resolve_against_request_path(
        self,
        handler: StaticFileHandler,
        uri: str,
    ):
        """A browser joining the link onto the request URL lands on the file."""
        _, body = get(handler, uri)
        href = re.search(r'href="([^"]*)">guide\.txt<', body.decode("utf-8")).group(1)

        joined = urlsplit(urljoin("http://localhost" + uri, href)).path

        assert unquote(joined) == "/docs/guide.txt"
        response, linked = get(handler, joined)
        assert response.status == HTTPStatus.OK
        assert linked == b"read me\n"

    def test_listing_is_sorted(self, handler: StaticFileHandler, site_root: Path):
        for name in ("b.txt", "a.txt", "c.txt"):
            (site_root / "docs" / name).write_text(name)

        _, body = get(handler, "/docs/")
        page = body.decode("utf-8")

        assert page.index("a.txt") < page.index("b.txt") < page.index("c.txt")

    def test_listing_has_no_parent_link(self, handler: StaticFileHandler):
        _, body = get(handler, "/docs/sub/")

        assert b".." not in body
        assert b"<li>" not in body

    def test_listing_escapes_names(self, handler: StaticFileHandler, site_root: Path):
        """Names are HTML-escaped in text and percent-encoded in links."""
        (site_root / "docs" / "<b>&x.txt").write_text("x")
        (site_root / "docs" / "a b.txt").write_text("x")

        _, body = get(handler, "/docs/")
        page = body.decode("utf-8")

        assert "<b>" not in page
        assert "&lt;b&gt;&amp;x.txt" in page
        assert 'href="%3Cb%3E%26x.txt"' in page
        assert 'href="a%20b.txt"' in page

    def test_listing_non_utf8_name(self, handler: StaticFileHandler, site_root: Path):
        """A name that is not valid UTF-8 is still listed rather than failing the page."""
        docs = os.fsencode(site_root / "docs")
        try:
            with open(os.path.join(docs, b"bad\xff.txt"), "wb") as f:
                f.write(b"x")
        except OSError:
            pytest.skip("filesystem only accepts UTF-8 names")

        response, body = get(handler, "/docs/")
        page = body.decode("utf-8")

        assert response.status == HTTPStatus.OK
        assert 'href="bad%FF.txt"' in page
        assert "bad\ufffd.txt" in page
        assert 'href="guide.txt"' in page

    def test_index_symlinked_outside_root(
        self,
        handler: StaticFileHandler,
        site_root: Path,
        outside_file: Path,
    ):
        """An index.html pointing out of the root is refused, not listed or served."""
        (site_root / "docs" / "index.html").symlink_to(outside_file)

        response, body = get(handler, "/docs/")

        assert response.status == HTTPStatus.BAD_REQUEST
        assert b"top secret" not in body

    def test_index_that_is_a_directory_falls_back_to_listing(
        self,
        handler: StaticFileHandler,
        site_root: Path,
    ):
        (site_root / "docs" / "index.html").mkdir()

        response, body = get(handler, "/docs/")

        assert response.status == HTTPStatus.OK
        assert b'href="index.html/"' in body


class TestErrors:
    """Tests for error status mapping."""

    def test_traversal_is_bad_request(self, handler: StaticFileHandler):
        response, body = get(handler, "/../etc/passwd")

        assert response.status == HTTPStatus.BAD_REQUEST
        assert body == b"requested path is outside the served directory"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"

    def test_not_absolute(self, handler: StaticFileHandler):
        response, body = get(handler, "index.html")

        assert response.status == HTTPStatus.BAD_REQUEST
        assert body == b"requested URI is not an absolute path"

    def test_not_utf8(self, handler: StaticFileHandler):
        response, body = get(handler, "/%ff")

        assert response.status == HTTPStatus.BAD_REQUEST
        assert body == b"requested URI is not UTF-8"

    def test_missing_file(self, handler: StaticFileHandler):
        response, body = get(handler, "/missing.txt")

        assert response.status == HTTPStatus.NOT_FOUND
        assert body == b"not found"

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "OPTIONS"])
    def test_method_not_allowed(self, handler: StaticFileHandler, method: str):
        response, _ = get(handler, "/", method=method)

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"

    def test_lowercase_method_accepted(self, handler: StaticFileHandler):
        response, body = get(handler, "/", method="get")

        assert response.status == HTTPStatus.OK
        assert body == INDEX_HTML

    def test_permission_denied(
        self,
        handler: StaticFileHandler,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """EACCES on open is a 403. Patched so the test also holds as root."""
        def fake_open(path, mode="r", *args, **kwargs):
            raise PermissionError(errno.EACCES, "Permission denied", str(path))

        monkeypatch.setattr("fileserver.handlers.static.open", fake_open, raising=False)

        response, body = get(handler, "/hello.txt")

        assert response.status == HTTPStatus.FORBIDDEN
        assert body == b"forbidden"

    def test_io_error_logs_cause_chain(
        self,
        handler: StaticFileHandler,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ):
        """A 500 hides the cause from the client and logs every link of it."""
        def fake_open(path, mode="r", *args, **kwargs):
            raise OSError(errno.EIO, "Input/output error", str(path))

        monkeypatch.setattr("fileserver.handlers.static.open", fake_open, raising=False)

        with caplog.at_level(logging.ERROR):
            response, body = get(handler, "/hello.txt")

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert body == b"Internal Server Error"
        assert b"hello.txt" not in body

        messages = [record.getMessage() for record in caplog.records]
        assert messages[0] == "error: I/O error"
        assert messages[1].startswith("caused by: [Errno 5] Input/output error")

    def test_unexpected_exception_becomes_500(
        self,
        handler: StaticFileHandler,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ):
        """handle() never raises; bugs surface as a logged 500."""
        def broken_resolve(config, uri):
            raise RuntimeError("boom")

        monkeypatch.setattr("fileserver.handlers.static.resolve", broken_resolve)

        with caplog.at_level(logging.ERROR):
            response, body = get(handler, "/")

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert body == b"Internal Server Error"
        assert "caused by: boom" in [record.getMessage() for record in caplog.records]

    def test_client_errors_are_not_logged_as_errors(
        self,
        handler: StaticFileHandler,
        caplog: pytest.LogCaptureFixture,
    ):
        with caplog.at_level(logging.ERROR):
            get(handler, "/missing.txt")
            get(handler, "/../etc/passwd")

        assert caplog.records == []

    def test_overlong_name_is_quiet_not_found(
        self,
        handler: StaticFileHandler,
        caplog: pytest.LogCaptureFixture,
    ):
        """A name longer than the filesystem allows cannot exist: 404, nothing logged."""
        with caplog.at_level(logging.ERROR):
            response, body = get(handler, "/" + "a" * 300)

        assert response.status == HTTPStatus.NOT_FOUND
        assert body == b"not found"
        assert caplog.records == []

    def test_injected_logger(
        self,
        config: ServerConfig,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ):
        """Server errors go to the logger the handler was given."""
        handler = StaticFileHandler(config, logger=logging.getLogger("custom.files"))

        def fake_open(path, mode="r", *args, **kwargs):
            raise OSError(errno.EIO, "Input/output error", str(path))

        monkeypatch.setattr("fileserver.handlers.static.open", fake_open, raising=False)

        with caplog.at_level(logging.ERROR, logger="custom.files"):
            get(handler, "/hello.txt")

        assert {record.name for record in caplog.records} == {"custom.files"}

    def test_build_from_error(self, handler: StaticFileHandler):
        response = handler.build(ServeError(ErrorKind.PERMISSION_DENIED))

        assert response.status == HTTPStatus.FORBIDDEN


class TestHead:
    """HEAD gets exactly the headers GET would, and no body."""

    @pytest.mark.parametrize("uri", [
        "/",
        "/img/logo.png",
        "/docs/",
        "/missing.txt",
        "/../etc/passwd",
    ])
    def test_head_matches_get(self, handler: StaticFileHandler, uri: str):
        get_response, _ = get(handler, uri)
        head_response, head_body = get(handler, uri, method="HEAD")

        assert head_response.status == get_response.status
        assert head_response.headers == get_response.headers
        assert head_body == b""

    def test_head_does_not_hold_file_open(self, handler: StaticFileHandler):
        response = handler.handle("HEAD", "/img/logo.png")

        assert response.body == b""
        assert response.headers["Content-Length"] == str(len(LOGO_PNG))


class TestServeStatic:
    def test_factory(self, site_root: Path):
        handler = serve_static(str(site_root))

        response, body = get(handler, "/hello.txt")

        assert response.status == HTTPStatus.OK
        assert body == b"hello, world\n"

    def test_custom_index_file(self, site_root: Path):
        (site_root / "docs" / "README.txt").write_text("docs home\n")
        handler = serve_static(str(site_root), index_file="README.txt")

        response, body = get(handler, "/docs/")

        assert response.headers["Content-Type"] == "text/plain"
        assert body == b"docs home\n"

"""
=============================================================================
PATH RESOLVER
=============================================================================

Turns a client-supplied request-target into a filesystem path that is
guaranteed to be inside the served root, or explains why it cannot.

    GET /img/%6Cogo.png HTTP/1.1
         │
         ▼
    1. URI must be absolute           "/img/%6Cogo.png"      else NOT_ABSOLUTE
    2. percent-decode, must be UTF-8  "/img/logo.png"        else NOT_UTF8
    3. split, drop "" and "."         ["img", "logo.png"]    ".." → OUTSIDE_ROOT
    4. join onto root                 /srv/www/img/logo.png
    5. canonicalize, must stay inside /srv/www/img/logo.png  else OUTSIDE_ROOT
    6. stat                           File(...)              missing → 404

=============================================================================
WHY ".." IS REFUSED INSTEAD OF COLLAPSED
=============================================================================

Collapsing "a/../b" into "b" is exactly the arithmetic path traversal
attacks target ("%2e%2e", "..%2F", mixed encodings, ...). A URI with any
".." segment after decoding is simply rejected. Symlinks are a separate
concern, handled by comparing the canonical path against the canonical
root in step 5.

=============================================================================
RESULT TYPES
=============================================================================

    File(path, url_path)                   a regular file inside the root
    Directory(path, url_path, link_base)   a directory inside the root
    Rejected(reason)                       the URI itself is unacceptable (400)

Filesystem problems (missing, permission denied, I/O error) are not
rejections: the URI was fine, the disk said no. They are raised as
ServeError and the response builder turns them into 404/403/500.

The filesystem can change between resolve() and the later open(). That
race is accepted: if the file vanishes, the open fails and the request
becomes a 404.

=============================================================================
"""

import logging
import os
import stat
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import unquote_to_bytes, urlsplit

from ..config import ServerConfig
from ..errors import ErrorKind, REJECTION_KINDS, ServeError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class File:
    """A regular file inside the root."""

    path: Path
    url_path: str


@dataclass(frozen=True)
class Directory:
    """
    A directory inside the root. ``url_path`` always ends with "/".

    ``link_base`` prefixes relative links to the directory's entries so
    they resolve against the request path as the client sent it: empty
    when that path ended with "/", otherwise its last segment plus "/".
    """

    path: Path
    url_path: str
    link_base: str = ""


@dataclass(frozen=True)
class Rejected:
    """A URI refused before touching the filesystem beyond the root."""

    reason: ErrorKind

    def __post_init__(self):
        if self.reason not in REJECTION_KINDS:
            raise ValueError(f"{self.reason} is not a rejection reason")

    def to_error(self) -> ServeError:
        return ServeError(self.reason)


ResolvedTarget = Union[File, Directory, Rejected]


def resolve(config: ServerConfig, uri: str) -> ResolvedTarget:
    """
    Resolve a request-target against the configured root.

    Args:
        config: Server configuration; only ``root_dir`` is used.
        uri: The raw request-target from the request line.

    Returns:
        File, Directory, or Rejected.

    Raises:
        ServeError: NOT_FOUND, PERMISSION_DENIED or IO when the
            filesystem lookup itself fails.
    """
    path = _absolute_path(uri)
    if path is None:
        return Rejected(ErrorKind.URI_NOT_ABSOLUTE)

    try:
        decoded = unquote_to_bytes(path).decode("utf-8")
    except UnicodeDecodeError:
        return Rejected(ErrorKind.URI_NOT_UTF8)

    segments = _segments(decoded)
    if segments is None:
        logger.debug("Refusing traversal in %r", uri)
        return Rejected(ErrorKind.OUTSIDE_ROOT)

    if any("\x00" in segment for segment in segments):
        raise ServeError(ErrorKind.NOT_FOUND, "NUL byte in path")

    root = canonical_root(config)
    url_path = "/" + "/".join(segments)
    target = locate(root, root.joinpath(*segments), url_path)
    if isinstance(target, Directory):
        target = replace(target, link_base=_link_base(path))
    return target


def canonical_root(config: ServerConfig) -> Path:
    return Path(os.path.realpath(config.root_dir))


def locate(root: Path, candidate: Path, url_path: str) -> ResolvedTarget:
    """
    Canonicalize ``candidate``, check it is ``root`` or inside it, and
    classify what is there.

    ``root`` must already be canonical.
    """
    # Non-strict: a missing tail is kept as-is and reported by stat below.
    canonical = Path(os.path.realpath(candidate))

    try:
        canonical.relative_to(root)
    except ValueError:
        logger.warning("Path escapes root: %s", url_path)
        return Rejected(ErrorKind.OUTSIDE_ROOT)

    try:
        mode = os.stat(canonical).st_mode
    except OSError as exc:
        raise ServeError.from_os_error(exc) from exc

    if stat.S_ISREG(mode):
        return File(canonical, url_path)
    if stat.S_ISDIR(mode):
        if not url_path.endswith("/"):
            url_path += "/"
        return Directory(canonical, url_path)

    # Devices, sockets, FIFOs: never served.
    raise ServeError(ErrorKind.NOT_FOUND, f"not a regular file or directory: {url_path}")


def _absolute_path(uri: str) -> Optional[str]:
    """
    Extract the path of a request-target, or None if it has no absolute
    path.

    Origin-form ("/a/b?q") is taken literally up to "?" or "#", so
    "//etc/passwd" stays a path rather than becoming an authority.
    Absolute-form ("http://host/a") needs a scheme and an authority.
    """
    if not uri or not uri.isascii():
        return None
    if any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in uri):
        return None

    if uri.startswith("/"):
        for delimiter in ("?", "#"):
            uri = uri.split(delimiter, 1)[0]
        return uri

    try:
        parts = urlsplit(uri)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    if not parts.path:
        return "/"
    if not parts.path.startswith("/"):
        return None
    return parts.path


def _segments(decoded: str) -> Optional[List[str]]:
    """
    Split a decoded path into the segments to join onto the root.

    Returns None if any segment would climb out of its parent.
    """
    segments = []
    for segment in decoded.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            return None
        if os.altsep and os.altsep in segment:
            return None
        segments.append(segment)
    return segments


def _link_base(path: str) -> str:
    """
    "/docs/" -> "", "/docs" -> "docs/", "/docs/." -> "./".

    The last segment is kept encoded exactly as sent.
    """
    last = path.rsplit("/", 1)[-1]
    return last + "/" if last else ""

"""
=============================================================================
FILESERVER - A Basic HTTP File Server
=============================================================================

Serves one directory tree over HTTP/1.1 with raw sockets and a thread pool.

    fileserver/
    ├── __init__.py          # Package exports
    ├── __main__.py          # CLI entry point (python -m fileserver)
    ├── server.py            # FileServer: accept → worker → respond
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # ErrorKind, ServeError, cause-chain logging
    ├── core/                # Networking and concurrency
    │   ├── socket_server.py # TCP accept loop
    │   ├── connection.py    # Buffered client connection
    │   └── thread_pool.py   # Worker threads
    ├── http/                # Protocol pieces
    │   ├── request.py       # Request head parsing
    │   ├── response.py      # Responses, streamed file bodies
    │   ├── headers.py       # Case-insensitive header map
    │   ├── status_codes.py  # Status enum
    │   └── mime_types.py    # Extension → MIME type
    └── handlers/
        ├── resolver.py      # URI → File | Directory | Rejected
        └── static.py        # Files, index.html, listings, errors

=============================================================================
QUICK START
=============================================================================

    from fileserver import FileServer, ServerConfig

    FileServer(ServerConfig(root_dir="./public", port=8000)).run()

Or, without a socket:

    from fileserver import ServerConfig, StaticFileHandler

    handler = StaticFileHandler(ServerConfig(root_dir="./public"))
    response = handler.handle("GET", "/index.html")

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .errors import ErrorKind, ServeError
from .handlers import StaticFileHandler, resolve
from .server import FileServer

__all__ = [
    "FileServer",
    "ServerConfig",
    "StaticFileHandler",
    "ErrorKind",
    "ServeError",
    "resolve",
    "__version__",
]

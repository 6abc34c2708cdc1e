"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

One frozen ServerConfig is built at startup and shared, read-only, by every
request. Nothing mutates it after construction, so worker threads can hold
a reference to it without locking.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m fileserver -a 0.0.0.0:8000 ./public             │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HTTP_ADDR=0.0.0.0:8000 HTTP_ROOT=./public                 │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │      └── 127.0.0.1:4000, serving "."                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Tuple


DEFAULT_ADDRESS = "127.0.0.1:4000"


def parse_address(text: str) -> Tuple[str, int]:
    """
    Split ``HOST:PORT`` into its parts.

        >>> parse_address("127.0.0.1:4000")
        ('127.0.0.1', 4000)

    Raises:
        ValueError: If there is no port or it is not a number.
    """
    host, sep, port = text.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Invalid address {text!r}: expected HOST:PORT")
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"Invalid port in address {text!r}") from None


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the file server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    SERVED FILES
    - root_dir, chunk_size

    NETWORK
    - host, port, backlog, buffer_size, timeout

    HTTP
    - keep_alive, keep_alive_timeout, max_request_size

    THREADING
    - min_workers, max_workers

    LOGGING / IDENTITY
    - log_level, server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # SERVED FILES
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "."
    """Directory whose contents are served. Nothing outside it ever is."""

    chunk_size: int = 64 * 1024
    """Bytes read from disk per write when streaming a file."""

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 4000

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds for reading a request."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0

    max_request_size: int = 64 * 1024
    """Upper bound on a request's header block plus body, in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    server_name: str = "fileserver/1.0"

    @property
    def address(self) -> Tuple[str, int]:
        """The (host, port) endpoint to listen on."""
        return (self.host, self.port)

    @property
    def root_path(self) -> Path:
        return Path(self.root_dir)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        HTTP_ADDR       HOST:PORT to listen on (default: 127.0.0.1:4000)
        HTTP_ROOT       Directory to serve (default: .)
        HTTP_WORKERS    Max worker threads (default: 16)
        HTTP_TIMEOUT    Request read timeout in seconds (default: 30)
        HTTP_LOG_LEVEL  Logging level (default: INFO)
        """
        host, port = parse_address(os.getenv("HTTP_ADDR", DEFAULT_ADDRESS))
        max_workers = int(os.getenv("HTTP_WORKERS", "16"))
        return cls(
            root_dir=os.getenv("HTTP_ROOT", "."),
            host=host,
            port=port,
            min_workers=min(4, max_workers),
            max_workers=max_workers,
            timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
        )

    def with_overrides(self, **changes) -> "ServerConfig":
        """
        Return a copy with some fields replaced, skipping ``None`` values
        so unset CLI options leave the current value alone.
        """
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def validate(self) -> None:
        """
        Validate configuration values. Called once, at startup.

        Raises:
            ValueError: On the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if not self.root_path.is_dir():
            raise ValueError(f"Root directory does not exist: {self.root_dir}")

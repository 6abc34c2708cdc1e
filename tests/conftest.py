"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fileserver import FileServer, ServerConfig
from fileserver.handlers import StaticFileHandler


INDEX_HTML = b"<h1>hi</h1>\n"
LOGO_PNG = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    """
    A small served tree:

        site/
        ├── index.html
        ├── hello.txt
        ├── img/logo.png
        └── docs/                  (no index.html)
            ├── guide.txt
            └── sub/
    """
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "hello.txt").write_text("hello, world\n")

    (root / "img").mkdir()
    (root / "img" / "logo.png").write_bytes(LOGO_PNG)

    (root / "docs").mkdir()
    (root / "docs" / "guide.txt").write_text("read me\n")
    (root / "docs" / "sub").mkdir()

    return root


@pytest.fixture
def outside_file(tmp_path: Path) -> Path:
    """A file next to the served root, never reachable through it."""
    secret = tmp_path / "secret.txt"
    secret.write_text("top secret\n")
    return secret


@pytest.fixture
def config(site_root: Path) -> ServerConfig:
    """Test server configuration serving ``site_root``."""
    return ServerConfig(
        root_dir=str(site_root),
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def handler(config: ServerConfig) -> StaticFileHandler:
    return StaticFileHandler(config)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[FileServer, None, None]:
    """A FileServer listening on an ephemeral port in a background thread."""
    server = FileServer(config)
    thread = server.start_background()

    yield server

    server.shutdown()
    thread.join(timeout=10.0)

"""
Unit tests for configuration and the command line.
"""

import dataclasses
from pathlib import Path

import pytest

from fileserver import __version__
from fileserver.__main__ import build_parser, config_from_args, main
from fileserver.config import ServerConfig, parse_address


class TestParseAddress:

    def test_host_and_port(self):
        assert parse_address("127.0.0.1:4000") == ("127.0.0.1", 4000)

    def test_hostname(self):
        assert parse_address("localhost:8080") == ("localhost", 8080)

    @pytest.mark.parametrize("text", ["", "4000", ":4000", "localhost:", "localhost:http"])
    def test_invalid(self, text: str):
        with pytest.raises(ValueError):
            parse_address(text)


class TestServerConfig:

    def test_defaults(self):
        config = ServerConfig()

        assert config.address == ("127.0.0.1", 4000)
        assert config.root_dir == "."

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            ServerConfig().port = 1

    def test_with_overrides_skips_none(self):
        config = ServerConfig().with_overrides(port=9000, host=None)

        assert config.port == 9000
        assert config.host == "127.0.0.1"

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("HTTP_ADDR", "0.0.0.0:8000")
        monkeypatch.setenv("HTTP_ROOT", str(tmp_path))
        monkeypatch.setenv("HTTP_WORKERS", "2")
        monkeypatch.setenv("HTTP_TIMEOUT", "7.5")
        monkeypatch.setenv("HTTP_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.address == ("0.0.0.0", 8000)
        assert config.root_dir == str(tmp_path)
        assert config.max_workers == 2
        assert config.min_workers == 2
        assert config.timeout == 7.5
        assert config.log_level == "DEBUG"

    def test_from_env_defaults(self, monkeypatch: pytest.MonkeyPatch):
        for name in ("HTTP_ADDR", "HTTP_ROOT", "HTTP_WORKERS", "HTTP_TIMEOUT", "HTTP_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        assert ServerConfig.from_env() == ServerConfig()

    def test_validate_ok(self, tmp_path: Path):
        ServerConfig(root_dir=str(tmp_path)).validate()

    @pytest.mark.parametrize("changes", [
        {"port": -1},
        {"port": 70000},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"buffer_size": 10},
        {"chunk_size": 0},
        {"timeout": 0},
    ])
    def test_validate_rejects(self, tmp_path: Path, changes: dict):
        config = ServerConfig(root_dir=str(tmp_path)).with_overrides(**changes)

        with pytest.raises(ValueError):
            config.validate()

    def test_validate_missing_root(self, tmp_path: Path):
        with pytest.raises(ValueError, match="Root directory"):
            ServerConfig(root_dir=str(tmp_path / "nope")).validate()

    def test_validate_root_is_file(self, tmp_path: Path):
        path = tmp_path / "file.txt"
        path.write_text("x")

        with pytest.raises(ValueError):
            ServerConfig(root_dir=str(path)).validate()


class TestCommandLine:

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch: pytest.MonkeyPatch):
        for name in ("HTTP_ADDR", "HTTP_ROOT", "HTTP_WORKERS", "HTTP_TIMEOUT", "HTTP_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = config_from_args(build_parser().parse_args([]))

        assert config == ServerConfig()

    def test_addr_and_root(self):
        args = build_parser().parse_args(["-a", "0.0.0.0:8000", "./public"])

        config = config_from_args(args)

        assert config.address == ("0.0.0.0", 8000)
        assert config.root_dir == "./public"

    def test_cli_overrides_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HTTP_ADDR", "0.0.0.0:9000")
        monkeypatch.setenv("HTTP_ROOT", "/srv/env")

        args = build_parser().parse_args(["--addr", "127.0.0.1:5000"])
        config = config_from_args(args)

        assert config.address == ("127.0.0.1", 5000)
        assert config.root_dir == "/srv/env"

    def test_workers(self):
        config = config_from_args(build_parser().parse_args(["-w", "2"]))

        assert config.max_workers == 2
        assert config.min_workers == 2

    def test_log_level_case_insensitive(self):
        args = build_parser().parse_args(["-l", "debug"])

        assert args.log_level == "DEBUG"

    def test_bad_address_exits(self, capsys: pytest.CaptureFixture):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["-a", "nonsense"])

        assert exc_info.value.code == 2
        assert "HOST:PORT" in capsys.readouterr().err

    def test_version(self, capsys: pytest.CaptureFixture):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == f"fileserver {__version__}"

    def test_main_missing_root(self, tmp_path: Path, capsys: pytest.CaptureFixture):
        code = main([str(tmp_path / "does-not-exist")])

        assert code == 1
        assert "Root directory does not exist" in capsys.readouterr().err

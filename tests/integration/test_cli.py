"""
Tests for the command-line entry point.
"""

import socket

import pytest

from ccserver.__main__ import build_config, build_parser, main


class TestArguments:
    """Argument validation happens before any socket is created."""

    @pytest.mark.parametrize("argv", [
        [],
        ["abc"],
        ["0"],
        ["65536"],
        ["-5"],
        ["9876", "--log-format", "xml"],
        ["9876", "--session-timeout", "0"],
    ])
    def test_bad_arguments_exit_2(self, argv, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(argv)

        assert exc_info.value.code == 2
        assert "usage:" in capsys.readouterr().err

    def test_invalid_config_value_returns_2(self, capsys):
        assert main(["9876", "--workers", "0"]) == 2

        err = capsys.readouterr().err
        assert "usage:" in err
        assert "Error:" in err

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert "ccserver" in capsys.readouterr().out


class TestBuildConfig:
    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("CCS_STATS_INTERVAL", "30")
        monkeypatch.setenv("CCS_HOST", "10.1.1.1")

        args = build_parser().parse_args(
            ["5000", "--host", "127.0.0.1", "--workers", "2", "--log-format", "json"]
        )
        config = build_config(args)

        assert config.port == 5000
        assert config.host == "127.0.0.1"
        assert config.max_workers == 2
        assert config.min_workers == 2
        assert config.stats_interval == 30.0
        assert config.log_format == "json"

    def test_small_worker_count_from_environment(self, monkeypatch):
        monkeypatch.setenv("CCS_WORKERS", "2")

        config = build_config(build_parser().parse_args(["9876"]))
        config.validate()

        assert config.max_workers == 2
        assert config.min_workers == 2

    def test_defaults(self, monkeypatch):
        for name in ("CCS_HOST", "CCS_WORKERS", "CCS_SESSION_TIMEOUT",
                     "CCS_STATS_INTERVAL", "CCS_LOG_LEVEL", "CCS_LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

        config = build_config(build_parser().parse_args(["9876"]))

        assert config.host == "0.0.0.0"
        assert config.session_timeout == 20.0
        assert config.stats_interval == 10.0


class TestStartupFailure:
    def test_port_in_use_returns_1(self, capsys):
        holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        holder.bind(("127.0.0.1", 0))
        holder.listen(1)
        try:
            port = holder.getsockname()[1]
            assert main([str(port), "--host", "127.0.0.1", "--log-level", "ERROR"]) == 1
        finally:
            holder.close()

        assert "Error:" in capsys.readouterr().err

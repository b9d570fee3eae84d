"""Tests for configuration loading and precedence."""

import os

import pytest

from codeintel_mcp.config import (
    DEFAULT_ADAPTERS,
    DEFAULT_HOST,
    DEFAULT_PORT,
    ConfigError,
    load_config,
    parse_config,
)


class TestLoadConfig:
    """Tests for defaults and environment overrides."""

    def test_defaults(self):
        config = load_config({})

        assert config.host == DEFAULT_HOST
        assert config.port == DEFAULT_PORT
        assert config.auto_start is True
        assert config.adapters == list(DEFAULT_ADAPTERS)
        assert config.workspaces == []
        assert config.log_level == "INFO"

    def test_environment_overrides(self):
        config = load_config({
            "CODEINTEL_HOST": "0.0.0.0",
            "CODEINTEL_PORT": "9100",
            "CODEINTEL_AUTO_START": "false",
            "CODEINTEL_ADAPTERS": " Python , ,swift",
            "CODEINTEL_LOG_LEVEL": "debug",
        })

        assert config.host == "0.0.0.0"
        assert config.port == 9100
        assert config.auto_start is False
        assert config.adapters == ["python", "swift"]
        assert config.log_level == "DEBUG"

    def test_empty_adapter_list(self):
        assert load_config({"CODEINTEL_ADAPTERS": ""}).adapters == []

    @pytest.mark.parametrize("env", [
        {"CODEINTEL_PORT": "http"},
        {"CODEINTEL_PORT": "70000"},
        {"CODEINTEL_AUTO_START": "maybe"},
        {"CODEINTEL_LOG_LEVEL": "LOUD"},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ConfigError):
            load_config(env)

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("CODEINTEL_PORT", "9555")
        assert load_config().port == 9555


class TestParseConfig:
    """Tests for the defaults < environment < command line chain."""

    def test_command_line_wins(self):
        config = parse_config(
            ["--port", "9200", "--host", "127.0.0.1", "--adapters", "python"],
            {"CODEINTEL_PORT": "9100", "CODEINTEL_ADAPTERS": "swift"},
        )

        assert config.port == 9200
        assert config.host == "127.0.0.1"
        assert config.adapters == ["python"]

    def test_environment_kept_when_flag_absent(self):
        config = parse_config([], {"CODEINTEL_PORT": "9100"})
        assert config.port == 9100

    def test_workspaces_repeatable(self, tmp_path):
        first, second = tmp_path / "a", tmp_path / "b"
        config = parse_config(["--workspace", str(first), "--workspace", str(second)], {})
        assert config.workspaces == [str(first), str(second)]

    def test_workspace_defaults_to_cwd(self):
        assert parse_config([], {}).workspaces == [os.getcwd()]

    def test_no_auto_start_and_log_level(self):
        config = parse_config(["--no-auto-start", "--log-level", "WARNING"], {})

        assert config.auto_start is False
        assert config.log_level == "WARNING"

    def test_port_range_checked(self):
        with pytest.raises(ConfigError):
            parse_config(["--port", "-1"], {})

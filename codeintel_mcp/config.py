"""Server configuration.

Defaults, overridden by CODEINTEL_* environment variables, overridden by
command-line flags.
"""

import argparse
import os
from dataclasses import dataclass, field

DEFAULT_PORT = 9876
DEFAULT_HOST = "localhost"
DEFAULT_ADAPTERS = ("python", "swift")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigError(ValueError):
    """Raised when a configuration value cannot be parsed."""


@dataclass
class HarnessTimeouts:
    """Timing of the out-of-process analysis-server harness (seconds)."""
    request: float = 30.0
    initialize: float = 30.0
    shutdown: float = 5.0
    probe: float = 10.0
    readiness_attempts: int = 15
    readiness_interval: float = 2.0
    symbol_retries_recent: int = 5
    symbol_retries: int = 2
    symbol_retry_interval: float = 3.0
    recent_window: float = 60.0


@dataclass
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    auto_start: bool = True
    workspaces: list[str] = field(default_factory=list)
    adapters: list[str] = field(default_factory=lambda: list(DEFAULT_ADAPTERS))
    heartbeat_interval: float = 30.0
    log_level: str = "INFO"
    harness: HarnessTimeouts = field(default_factory=HarnessTimeouts)


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_port(name: str, raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"{name} out of range: {port}")
    return port


def _parse_list(raw: str) -> list[str]:
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


def _parse_log_level(name: str, raw: str) -> str:
    level = raw.strip().upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"{name} must be one of {', '.join(LOG_LEVELS)}, got {raw!r}")
    return level


def load_config(environ: dict[str, str] | None = None) -> ServerConfig:
    """Build a config from defaults and CODEINTEL_* environment variables."""
    env = os.environ if environ is None else environ
    config = ServerConfig()

    if "CODEINTEL_HOST" in env:
        config.host = env["CODEINTEL_HOST"]
    if "CODEINTEL_PORT" in env:
        config.port = _parse_port("CODEINTEL_PORT", env["CODEINTEL_PORT"])
    if "CODEINTEL_AUTO_START" in env:
        config.auto_start = _parse_bool("CODEINTEL_AUTO_START", env["CODEINTEL_AUTO_START"])
    if "CODEINTEL_ADAPTERS" in env:
        config.adapters = _parse_list(env["CODEINTEL_ADAPTERS"])
    if "CODEINTEL_LOG_LEVEL" in env:
        config.log_level = _parse_log_level("CODEINTEL_LOG_LEVEL", env["CODEINTEL_LOG_LEVEL"])

    return config


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="codeintel-mcp - multi-language code intelligence over MCP"
    )
    parser.add_argument("--host", type=str, help=f"Bind address (default: {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, help=f"HTTP port (default: {DEFAULT_PORT})")
    parser.add_argument(
        "--workspace", action="append", dest="workspaces", metavar="PATH",
        help="Workspace root; repeat for several (default: cwd)",
    )
    parser.add_argument(
        "--adapters", type=str,
        help=f"Comma-separated language adapters (default: {','.join(DEFAULT_ADAPTERS)})",
    )
    parser.add_argument(
        "--no-auto-start", action="store_true",
        help="Do not start the daemon automatically from the MCP bridge",
    )
    parser.add_argument("--log-level", type=str, choices=LOG_LEVELS, help="Logging level")
    return parser


def parse_config(
    argv: list[str] | None = None, environ: dict[str, str] | None = None
) -> ServerConfig:
    """Full precedence chain: defaults < environment < command line."""
    config = load_config(environ)
    args = build_arg_parser().parse_args(argv)

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = _parse_port("--port", str(args.port))
    if args.workspaces:
        config.workspaces = list(args.workspaces)
    if args.adapters is not None:
        config.adapters = _parse_list(args.adapters)
    if args.no_auto_start:
        config.auto_start = False
    if args.log_level is not None:
        config.log_level = args.log_level

    if not config.workspaces:
        config.workspaces = [os.getcwd()]
    return config

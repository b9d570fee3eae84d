#!/usr/bin/env python3
"""
codeintel-mcp MCP bridge

Exposes the daemon's tools to stdio-only MCP clients. The HTTP daemon is a
SINGLETON - one instance serves all MCP clients. This bridge auto-ensures
the daemon is running on startup unless auto-start is disabled.
"""

import asyncio
import logging
import sys

from ..config import ConfigError, load_config
from . import _core
from ._core import (
    call_tool,
    cleanup,
    ensure_daemon_running,
    format_result,
    mcp,
    rpc_call,
)

# Import tool modules to register their @mcp.tool() decorators
from . import tools

__all__ = [
    "mcp",
    "call_tool",
    "rpc_call",
    "format_result",
    "ensure_daemon_running",
    "main",
]

logger = logging.getLogger(__name__)


def main():
    """Run the MCP server."""
    try:
        config = load_config()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)
    _core.configure(config)

    # stdout carries the MCP stdio transport; log to stderr only
    logging.basicConfig(level=config.log_level, stream=sys.stderr,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("Starting codeintel-mcp bridge")
    logger.info(f"  HTTP Backend: {_core.HTTP_BASE_URL}")

    if config.auto_start:
        logger.info("  Ensuring HTTP daemon is running...")
        if ensure_daemon_running():
            logger.info("  HTTP daemon is ready")
        else:
            logger.warning("  Could not verify daemon status")

    try:
        mcp.run()
    finally:
        # Cleanup HTTP session (daemon keeps running for other clients)
        loop = asyncio.new_event_loop()
        loop.run_until_complete(cleanup())
        loop.close()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
codeintel-mcp daemon

A shared HTTP server that answers MCP (JSON-RPC 2.0) tool calls with code
intelligence from every registered language adapter. One instance serves
all agents; language servers it drives are shared per workspace.

Usage:
    codeintel-mcp [--port 9876] [--workspace /path/to/project ...]

    # Or run in background:
    python -m codeintel_mcp.daemon --port 9876 &

Endpoints:
    GET  /health    - Health check ("OK")
    GET  /info      - Server name, version and registered languages
    POST /mcp       - JSON-RPC 2.0: initialize, tools/list, tools/call, ping
    GET  /sse       - Keepalive event stream

Example:
    curl -X POST http://localhost:9876/mcp \\
      -H "Content-Type: application/json" \\
      -d '{"jsonrpc": "2.0", "id": 1, "method": "tools/call",
           "params": {"name": "find_symbol", "arguments": {"name": "Foo"}}}'
"""

import asyncio
import json
import logging
import signal
import sys
from typing import Any

from aiohttp import web

from . import SERVER_NAME, __version__
from .config import ConfigError, ServerConfig, parse_config
from .context import AppContext
from .errors import CodeIntelError, ErrorCode
from .executor import ToolExecutor
from .protocol import build_tool_definitions, failure, initialize_result, success

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class CodeIntelDaemon:
    def __init__(self, config: ServerConfig | None = None, context: AppContext | None = None):
        self.config = config or (context.config if context else ServerConfig())
        self.context = context or AppContext(self.config)
        self.executor = ToolExecutor(self.context)
        self._runner: web.AppRunner | None = None
        self._port: int | None = None
        self._lock = asyncio.Lock()
        self._shutdown = asyncio.Event()
        self._prepare_tasks: set[asyncio.Task] = set()
        self._request_count = 0

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    @property
    def port(self) -> int | None:
        return self._port

    @property
    def registry(self):
        return self.context.registry

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/info", self.handle_info)
        app.router.add_post("/mcp", self.handle_mcp)
        app.router.add_get("/sse", self.handle_sse)
        return app

    # --- Lifecycle ---

    async def start(self, port: int | None = None) -> int:
        """Start serving; returns the bound port. No-op if already running."""
        async with self._lock:
            if self._runner is not None:
                logger.info(f"Server is already running on port {self._port}")
                return self._port

            requested = self.config.port if port is None else port
            logger.info(f"Starting {SERVER_NAME} {__version__}...")
            self.registry.log_loaded_adapters()

            runner = web.AppRunner(self.build_app())
            await runner.setup()
            site = web.TCPSite(runner, self.config.host, requested)
            try:
                await site.start()
            except OSError:
                await runner.cleanup()
                raise

            self._runner = runner
            self._port = runner.addresses[0][1] if runner.addresses else requested
            self._shutdown.clear()

            for workspace in self.context.workspaces.all():
                logger.info(f"  Workspace: {workspace.root}")
                task = asyncio.create_task(self.context.prepare(workspace))
                self._prepare_tasks.add(task)
                task.add_done_callback(self._prepare_tasks.discard)

            logger.info(f"Ready! Listening on http://{self.config.host}:{self._port}")
            return self._port

    async def stop(self):
        """Stop serving and release backends. No-op if not running."""
        async with self._lock:
            if self._runner is None:
                return

            self._shutdown.set()
            for task in list(self._prepare_tasks):
                task.cancel()
            if self._prepare_tasks:
                await asyncio.gather(*self._prepare_tasks, return_exceptions=True)

            runner, self._runner = self._runner, None
            await runner.cleanup()
            await self.context.close()
            logger.info(f"Server stopped (port {self._port})")
            self._port = None

    async def run(self):
        """Serve until SIGTERM/SIGINT or cancellation."""
        await self.start()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._shutdown.set)
            except (NotImplementedError, RuntimeError):
                # add_signal_handler is unavailable on Windows event loops
                pass

        try:
            await self._shutdown.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    # --- Helpers ---

    def _json_response(self, data: Any, status: int = 200) -> web.Response:
        return web.json_response(data, status=status)

    # --- Endpoints ---

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.Response(text="OK")

    async def handle_info(self, request: web.Request) -> web.Response:
        return self._json_response({
            "name": SERVER_NAME,
            "version": __version__,
            "languages": self.registry.supported_languages(),
            "workspaces": [w.root for w in self.context.workspaces.all()],
            "request_count": self._request_count,
        })

    async def handle_sse(self, request: web.Request) -> web.StreamResponse:
        """Keepalive stream: one connected frame, then a comment every heartbeat interval."""
        response = web.StreamResponse(headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
        })
        await response.prepare(request)
        try:
            await response.write(b'data: {"status": "connected"}\n\n')
            while not self._shutdown.is_set():
                try:
                    await asyncio.wait_for(
                        self._shutdown.wait(), timeout=self.config.heartbeat_interval
                    )
                except asyncio.TimeoutError:
                    await response.write(b": keepalive\n\n")
        except ConnectionResetError:
            logger.debug("SSE client disconnected")
        return response

    async def handle_mcp(self, request: web.Request) -> web.Response:
        """One JSON-RPC request in, one JSON-RPC response out, always HTTP 200."""
        self._request_count += 1
        body = await request.read()
        logger.debug(f"MCP request: {body!r}")

        try:
            # Invalid UTF-8 surfaces as UnicodeDecodeError, a ValueError like JSONDecodeError
            message = json.loads(body)
        except ValueError as e:
            logger.warning(f"Failed to parse request: {e}")
            return self._json_response(failure(None, ErrorCode.PARSE_ERROR, f"Parse error: {e}"))

        response = await self.handle_message(message)
        logger.debug(f"MCP response: {response}")
        return self._json_response(response)

    # --- Request handling ---

    async def handle_message(self, message: Any) -> dict:
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            request_id = message.get("id") if isinstance(message, dict) else None
            return failure(request_id, ErrorCode.INVALID_REQUEST, "Invalid Request")

        request_id = message.get("id")
        method = message["method"]
        params = message.get("params")

        if method == "initialize":
            return success(request_id, initialize_result())
        if method in ("initialized", "notifications/initialized", "ping"):
            return success(request_id, {})
        if method == "tools/list":
            tools = build_tool_definitions(self.registry)
            return success(request_id, {"tools": [tool.to_dict() for tool in tools]})
        if method == "tools/call":
            return await self._handle_tool_call(request_id, params)
        return failure(request_id, ErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _handle_tool_call(self, request_id: Any, params: Any) -> dict:
        if not isinstance(params, dict):
            return failure(request_id, ErrorCode.INVALID_PARAMS, "Missing params")
        name = params.get("name")
        if not isinstance(name, str) or not name:
            return failure(request_id, ErrorCode.INVALID_PARAMS, "Missing tool name")

        try:
            result = await self.executor.execute(name, params.get("arguments"))
        except CodeIntelError as e:
            logger.info(f"Tool {name} failed: [{int(e.code)}] {e.message}")
            return failure(request_id, e.code, e.message)
        except Exception as e:
            logger.exception(f"Tool execution failed: {name}")
            return failure(request_id, ErrorCode.INTERNAL_ERROR, str(e) or "Unknown error")

        return success(request_id, {
            "content": [{"type": "text", "text": json.dumps(result, indent=2)}],
        })


def configure_logging(level: str):
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def main(argv: list[str] | None = None):
    try:
        config = parse_config(argv)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(config.log_level)
    daemon = CodeIntelDaemon(config)

    try:
        asyncio.run(daemon.run())
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)


if __name__ == "__main__":
    main()

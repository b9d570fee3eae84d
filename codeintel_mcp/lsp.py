#!/usr/bin/env python3
"""
codeintel-mcp - LSP transport

JSON-RPC 2.0 over the stdio of a language server, framed with
Content-Length headers. Correlates responses to requests by id; lifecycle
(spawn, handshake, readiness, teardown) belongs to ``harness.LspHarness``.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)


class LspError(Exception):
    """Base class for transport-level failures."""


class LspResponseError(LspError):
    """The server answered a request with a JSON-RPC error object."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class LspConnectionClosed(LspError):
    """The server's stdout reached EOF (process exited or crashed)."""


# LSP JSON-RPC client
class LSPClient:
    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, name: str = "lsp"):
        self.name = name
        self._reader = reader
        self._writer = writer
        self.request_id = 0
        self.pending_requests: dict[int, asyncio.Future] = {}
        self._read_task: asyncio.Task | None = None
        self._closed = False

    def start(self):
        """Start dispatching incoming messages."""
        if self._read_task is None:
            self._read_task = asyncio.create_task(self._read_loop(), name=f"{self.name}-reader")

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self):
        """Stop the reader and fail whatever is still waiting for a response."""
        self._closed = True
        if self._read_task:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
            self._read_task = None
        self._fail_pending(LspConnectionClosed(f"{self.name}: connection closed"))

    def _fail_pending(self, error: Exception):
        for future in self.pending_requests.values():
            if not future.done():
                future.set_exception(error)
        self.pending_requests.clear()

    async def _read_message(self) -> dict | None:
        """Read one framed message; None on EOF."""
        content_length = None
        while True:
            line = await self._reader.readline()
            if not line:
                return None
            line = line.strip()
            if not line:
                if content_length is None:
                    continue
                break
            name, _, value = line.decode("ascii", errors="replace").partition(":")
            if name.strip().lower() == "content-length":
                content_length = int(value.strip())

        content = await self._reader.readexactly(content_length)
        return json.loads(content.decode("utf-8"))

    async def _read_loop(self):
        """Read and dispatch LSP messages until EOF."""
        try:
            while True:
                try:
                    message = await self._read_message()
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"{self.name}: dropping malformed message: {e}")
                    continue
                if message is None:
                    break
                await self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except (asyncio.IncompleteReadError, ConnectionError) as e:
            logger.debug(f"{self.name}: read loop ended: {e}")
        finally:
            self._closed = True
            self._fail_pending(LspConnectionClosed(f"{self.name}: server closed the connection"))

    async def _dispatch(self, message: dict):
        method = message.get("method")
        if method is None:
            future = self.pending_requests.pop(message.get("id"), None)
            if future is None or future.done():
                return
            if "error" in message:
                error = message["error"] or {}
                future.set_exception(
                    LspResponseError(error.get("code", 0), error.get("message", "LSP error"))
                )
            else:
                future.set_result(message.get("result"))
        elif "id" in message:
            await self._answer_server_request(message)
        else:
            self._handle_notification(method, message.get("params") or {})

    async def _answer_server_request(self, message: dict):
        """Reply to server -> client requests; none of them need real answers."""
        result = None
        if message["method"] == "workspace/configuration":
            items = (message.get("params") or {}).get("items", [])
            result = [None] * len(items)
        try:
            await self._send({"jsonrpc": "2.0", "id": message["id"], "result": result})
        except LspConnectionClosed as e:
            logger.debug(f"{self.name}: could not answer {message['method']}: {e}")

    def _handle_notification(self, method: str, params: dict):
        if method in ("window/logMessage", "window/showMessage"):
            level = {1: logging.ERROR, 2: logging.WARNING, 3: logging.INFO}.get(
                params.get("type"), logging.DEBUG
            )
            logger.log(level, f"{self.name}: {params.get('message', '')}")
        elif method == "textDocument/publishDiagnostics":
            logger.debug(f"{self.name}: diagnostics received for {params.get('uri')}")

    async def _send(self, message: dict):
        """Send a JSON-RPC message to the LSP server."""
        if self._closed:
            raise LspConnectionClosed(f"{self.name}: connection closed")
        content = json.dumps(message).encode("utf-8")
        header = f"Content-Length: {len(content)}\r\n\r\n".encode("ascii")
        try:
            self._writer.write(header + content)
            await self._writer.drain()
        except (ConnectionError, RuntimeError) as e:
            raise LspConnectionClosed(f"{self.name}: write failed: {e}") from e

    async def request(self, method: str, params: dict | None) -> Any:
        """Send a request and wait for its response."""
        self.request_id += 1
        request_id = self.request_id

        future = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = future
        message = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        try:
            await self._send(message)
            return await future
        finally:
            self.pending_requests.pop(request_id, None)

    async def notify(self, method: str, params: dict | None):
        """Send a notification (no response expected)."""
        message = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self._send(message)


def path_to_uri(path: str) -> str:
    return Path(path).absolute().as_uri()


def uri_to_path(uri: str) -> str:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return uri
    return unquote(parsed.path)


# LSP Symbol kinds
SYMBOL_KIND_MAP = {
    1: "file", 2: "module", 3: "namespace", 4: "package", 5: "class",
    6: "method", 7: "property", 8: "field", 9: "constructor", 10: "enum",
    11: "interface", 12: "function", 13: "variable", 14: "constant",
    15: "string", 16: "number", 17: "boolean", 18: "array", 19: "object",
    20: "key", 21: "null", 22: "enum_member", 23: "struct", 24: "event",
    25: "operator", 26: "type_parameter",
}


def hover_text(hover: dict | None) -> str | None:
    """Flatten the contents of a hover result to plain text."""
    if not hover:
        return None

    contents = hover.get("contents")
    if isinstance(contents, str):
        return contents
    if isinstance(contents, dict):
        return contents.get("value")
    if isinstance(contents, list):
        return "\n".join(
            c.get("value", "") if isinstance(c, dict) else str(c)
            for c in contents
        )
    return None

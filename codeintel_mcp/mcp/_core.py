#!/usr/bin/env python3
"""
Core utilities shared across the codeintel-mcp bridge tools.
"""

import itertools
import json
import logging
import os
import subprocess
import sys
from typing import Any, Optional

import aiohttp
from mcp.server.fastmcp import FastMCP
from toon import encode as toon_encode

from .. import SERVER_NAME
from ..config import ServerConfig

logger = logging.getLogger(__name__)

# Configuration, replaced by configure() when the bridge starts
CONFIG = ServerConfig()
HTTP_BASE_URL = f"http://{CONFIG.host}:{CONFIG.port}"
HTTP_TIMEOUT = aiohttp.ClientTimeout(total=60)

# Shared MCP instance
mcp = FastMCP(SERVER_NAME)

# Shared HTTP session
_http_session: Optional[aiohttp.ClientSession] = None
_request_ids = itertools.count(1)


def configure(config: ServerConfig):
    """Point the bridge at the daemon described by ``config``."""
    global CONFIG, HTTP_BASE_URL
    CONFIG = config
    HTTP_BASE_URL = os.environ.get("CODEINTEL_URL", f"http://{config.host}:{config.port}")


def ensure_daemon_running(port: int | None = None) -> bool:
    """Ensure the singleton HTTP daemon is running."""
    port = CONFIG.port if port is None else port
    result = subprocess.run(
        [sys.executable, "-m", "codeintel_mcp.manager", "ensure", "--port", str(port)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        logger.warning(f"Failed to ensure daemon: {result.stdout}{result.stderr}")
        return False
    return True


async def get_session() -> aiohttp.ClientSession:
    """Get or create HTTP session."""
    global _http_session
    if _http_session is None or _http_session.closed:
        _http_session = aiohttp.ClientSession(timeout=HTTP_TIMEOUT)
    return _http_session


async def rpc_call(method: str, params: dict | None = None) -> dict:
    """Send one JSON-RPC request to the daemon's /mcp endpoint."""
    session = await get_session()
    message = {"jsonrpc": "2.0", "id": next(_request_ids), "method": method}
    if params is not None:
        message["params"] = params
    url = f"{HTTP_BASE_URL}/mcp"
    try:
        async with session.post(url, json=message) as resp:
            if resp.status == 200:
                return await resp.json()
            text = await resp.text()
            return {"error": {"code": -32603, "message": f"HTTP {resp.status}: {text}"}}
    except aiohttp.ClientError as e:
        return {"error": {
            "code": -32603,
            "message": f"Connection error: {e}. Is the codeintel-mcp daemon running on {HTTP_BASE_URL}?",
        }}


async def call_tool(name: str, arguments: dict[str, Any]) -> dict:
    """Invoke a daemon tool; None-valued arguments are dropped."""
    arguments = {key: value for key, value in arguments.items() if value is not None}
    return await rpc_call("tools/call", {"name": name, "arguments": arguments})


def tool_payload(response: dict) -> Any:
    """Decode the JSON text block of a successful tools/call response."""
    content = response.get("result", {}).get("content") or []
    texts = [block.get("text", "") for block in content if block.get("type") == "text"]
    if not texts:
        return None
    return json.loads(texts[0])


def format_result(response: dict) -> str:
    """Format a tools/call response as TOON for token efficiency."""
    if "error" in response:
        error = response["error"]
        return f"Error [{error.get('code')}]: {error.get('message')}"
    payload = tool_payload(response)
    if isinstance(payload, list):
        payload = {"results": payload, "count": len(payload)}
    return toon_encode(payload)


async def cleanup():
    """Cleanup HTTP session on shutdown."""
    global _http_session
    if _http_session and not _http_session.closed:
        await _http_session.close()

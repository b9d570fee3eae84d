"""Tests for the stdio MCP bridge that forwards to the HTTP daemon."""

import json

import pytest
from aiohttp.test_utils import TestServer

from codeintel_mcp import mcp as bridge
from codeintel_mcp.adapters import AdapterRegistry
from codeintel_mcp.config import ServerConfig
from codeintel_mcp.context import AppContext
from codeintel_mcp.daemon import CodeIntelDaemon
from codeintel_mcp.mcp import _core, tools
from codeintel_mcp.workspaces import WorkspaceManager

from conftest import make_symbol


def text_response(payload):
    return {"jsonrpc": "2.0", "id": 1, "result": {
        "content": [{"type": "text", "text": json.dumps(payload)}],
    }}


class TestFormatting:
    def test_error(self):
        response = {"error": {"code": -32005, "message": "Type not found: Widget"}}
        assert _core.format_result(response) == "Error [-32005]: Type not found: Widget"

    def test_payload_decoded(self):
        assert _core.tool_payload(text_response([{"name": "Widget"}])) == [{"name": "Widget"}]
        assert _core.tool_payload({"result": {"content": []}}) is None

    def test_list_wrapped_with_count(self):
        text = _core.format_result(text_response([{"name": "Widget"}, {"name": "Gadget"}]))

        assert "count" in text
        assert "Widget" in text
        assert "Gadget" in text

    def test_object(self):
        text = _core.format_result(text_response({"typeName": "Widget", "kind": "CLASS"}))

        assert "typeName" in text
        assert "CLASS" in text


@pytest.mark.asyncio
async def test_none_arguments_dropped(monkeypatch):
    sent = []

    async def fake_rpc(method, params=None):
        sent.append((method, params))
        return text_response([])

    monkeypatch.setattr(_core, "rpc_call", fake_rpc)

    await _core.call_tool("find_symbol", {"name": "Widget", "kind": None, "language": "python"})

    assert sent == [("tools/call", {
        "name": "find_symbol", "arguments": {"name": "Widget", "language": "python"},
    })]


@pytest.mark.asyncio
async def test_tool_forwards_and_formats(monkeypatch):
    calls = []

    async def fake_call_tool(name, arguments):
        calls.append((name, arguments))
        return {"error": {"code": -32006, "message": "Invalid position: /a.py:0:1"}}

    monkeypatch.setattr(tools, "call_tool", fake_call_tool)

    text = await tools.get_symbol_info(filePath="/a.py", line=0, column=1)

    assert text == "Error [-32006]: Invalid position: /a.py:0:1"
    assert calls == [("get_symbol_info", {
        "filePath": "/a.py", "line": 0, "column": 1, "projectPath": None,
    })]


@pytest.mark.asyncio
async def test_round_trip_through_daemon(monkeypatch, tmp_path, stub_adapter):
    config = ServerConfig(host="127.0.0.1", adapters=[])
    context = AppContext(
        config,
        registry=AdapterRegistry([stub_adapter(symbols=[make_symbol("Widget")])]),
        workspaces=WorkspaceManager([str(tmp_path)]),
    )
    server = TestServer(CodeIntelDaemon(config, context).build_app())
    await server.start_server()
    monkeypatch.setattr(_core, "HTTP_BASE_URL", f"http://{server.host}:{server.port}")
    try:
        response = await _core.call_tool("find_symbol", {"name": "Widget", "kind": None})
        [symbol] = _core.tool_payload(response)
        assert symbol["name"] == "Widget"

        missing = await _core.call_tool("get_type_hierarchy", {"typeName": "Gadget"})
        assert _core.format_result(missing) == "Error [-32005]: Type not found: Gadget"
    finally:
        await _core.cleanup()
        await server.close()


@pytest.mark.asyncio
async def test_unreachable_daemon(monkeypatch):
    monkeypatch.setattr(_core, "HTTP_BASE_URL", "http://127.0.0.1:9")
    try:
        response = await _core.rpc_call("ping")
    finally:
        await _core.cleanup()

    assert response["error"]["code"] == -32603
    assert "Connection error" in response["error"]["message"]


class TestConfigure:
    @pytest.fixture(autouse=True)
    def restore(self, monkeypatch):
        monkeypatch.setattr(_core, "CONFIG", _core.CONFIG)
        monkeypatch.setattr(_core, "HTTP_BASE_URL", _core.HTTP_BASE_URL)
        monkeypatch.delenv("CODEINTEL_URL", raising=False)

    def test_points_at_configured_daemon(self):
        _core.configure(ServerConfig(host="10.0.0.5", port=9300))

        assert _core.CONFIG.port == 9300
        assert _core.HTTP_BASE_URL == "http://10.0.0.5:9300"

    def test_url_override(self, monkeypatch):
        monkeypatch.setenv("CODEINTEL_URL", "http://daemon.internal:9000")

        _core.configure(ServerConfig(port=9300))
        assert _core.HTTP_BASE_URL == "http://daemon.internal:9000"

    def test_bad_environment_exits_cleanly(self, monkeypatch, capsys):
        monkeypatch.setenv("CODEINTEL_PORT", "not-a-port")

        with pytest.raises(SystemExit) as excinfo:
            bridge.main()

        assert excinfo.value.code == 2
        assert "Configuration error" in capsys.readouterr().err

"""Tests for the Content-Length framed JSON-RPC transport."""

import asyncio
import json

import pytest

from codeintel_mcp.lsp import (
    LSPClient,
    LspConnectionClosed,
    LspResponseError,
    hover_text,
    path_to_uri,
    uri_to_path,
)


class FakeWriter:
    """Collects what the client writes and decodes it back into messages."""

    def __init__(self):
        self.buffer = b""

    def write(self, data):
        self.buffer += data

    async def drain(self):
        pass

    def messages(self):
        found = []
        data = self.buffer
        while data:
            header, _, rest = data.partition(b"\r\n\r\n")
            length = int(header.split(b":")[1])
            found.append(json.loads(rest[:length]))
            data = rest[length:]
        return found


def frame(message):
    body = json.dumps(message).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


async def wait_for_messages(writer, count):
    for _ in range(100):
        if len(writer.messages()) >= count:
            return writer.messages()
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {count} messages, got {writer.messages()}")


def make_connection():
    # StreamReader binds to the running loop, so build it inside the test
    reader = asyncio.StreamReader()
    writer = FakeWriter()
    return reader, writer


@pytest.mark.asyncio
async def test_responses_correlated_by_id():
    reader, writer = make_connection()
    client = LSPClient(reader, writer, name="test")
    client.start()
    try:
        first = asyncio.create_task(client.request("workspace/symbol", {"query": "a"}))
        second = asyncio.create_task(client.request("workspace/symbol", {"query": "b"}))
        sent = await wait_for_messages(writer, 2)
        assert [m["id"] for m in sent] == [1, 2]

        # Replies arrive out of order
        reader.feed_data(frame({"jsonrpc": "2.0", "id": 2, "result": ["b"]}))
        reader.feed_data(frame({"jsonrpc": "2.0", "id": 1, "result": ["a"]}))

        assert await first == ["a"]
        assert await second == ["b"]
        assert client.pending_requests == {}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_error_response():
    reader, writer = make_connection()
    client = LSPClient(reader, writer)
    client.start()
    try:
        task = asyncio.create_task(client.request("textDocument/hover", None))
        await wait_for_messages(writer, 1)
        reader.feed_data(frame({
            "jsonrpc": "2.0", "id": 1,
            "error": {"code": -32001, "message": "No language service"},
        }))

        with pytest.raises(LspResponseError) as excinfo:
            await task
        assert excinfo.value.code == -32001
        assert str(excinfo.value) == "No language service"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_eof_fails_pending_requests():
    reader, writer = make_connection()
    client = LSPClient(reader, writer)
    client.start()

    task = asyncio.create_task(client.request("shutdown", None))
    await wait_for_messages(writer, 1)
    reader.feed_eof()

    with pytest.raises(LspConnectionClosed):
        await task
    assert client.closed
    with pytest.raises(LspConnectionClosed):
        await client.notify("exit", None)
    await client.close()


@pytest.mark.asyncio
async def test_configuration_request_answered():
    reader, writer = make_connection()
    client = LSPClient(reader, writer)
    client.start()
    try:
        reader.feed_data(frame({
            "jsonrpc": "2.0", "id": "cfg", "method": "workspace/configuration",
            "params": {"items": [{"section": "a"}, {"section": "b"}]},
        }))
        [reply] = await wait_for_messages(writer, 1)

        assert reply == {"jsonrpc": "2.0", "id": "cfg", "result": [None, None]}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_notifications_and_unknown_replies_ignored():
    reader, writer = make_connection()
    client = LSPClient(reader, writer)
    client.start()
    try:
        reader.feed_data(frame({"jsonrpc": "2.0", "method": "window/logMessage",
                                "params": {"type": 3, "message": "hello"}}))
        reader.feed_data(frame({"jsonrpc": "2.0", "id": 99, "result": None}))
        reader.feed_data(b"Content-Length: 5\r\n\r\n{bad}")

        task = asyncio.create_task(client.request("ping", None))
        await wait_for_messages(writer, 1)
        reader.feed_data(frame({"jsonrpc": "2.0", "id": 1, "result": "pong"}))

        assert await task == "pong"
        assert not client.closed
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_content_length_counts_bytes():
    reader, writer = make_connection()
    client = LSPClient(reader, writer)
    client.start()
    try:
        await client.notify("textDocument/didOpen", {"text": "héllo wörld"})
        header, _, body = writer.buffer.partition(b"\r\n\r\n")

        assert int(header.split(b":")[1]) == len(body)
        assert len(body) > len(body.decode("utf-8"))

        task = asyncio.create_task(client.request("textDocument/hover", None))
        await wait_for_messages(writer, 2)
        reader.feed_data(frame({"jsonrpc": "2.0", "id": 1, "result": {"contents": "ünïcode"}}))
        assert await task == {"contents": "ünïcode"}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_close_fails_waiting_requests():
    reader, writer = make_connection()
    client = LSPClient(reader, writer)
    client.start()

    task = asyncio.create_task(client.request("initialize", {}))
    await wait_for_messages(writer, 1)
    await client.close()

    with pytest.raises(LspConnectionClosed):
        await task


class TestHelpers:
    def test_hover_text(self):
        assert hover_text(None) is None
        assert hover_text({"contents": "plain"}) == "plain"
        assert hover_text({"contents": {"kind": "markdown", "value": "**x**"}}) == "**x**"
        assert hover_text({"contents": [{"value": "a"}, "b"]}) == "a\nb"

    def test_uri_round_trip(self, tmp_path):
        path = tmp_path / "with space" / "file.swift"
        uri = path_to_uri(str(path))

        assert uri.startswith("file://")
        assert "%20" in uri
        assert uri_to_path(uri) == str(path)

    def test_non_file_uri_passed_through(self):
        assert uri_to_path("untitled:Untitled-1") == "untitled:Untitled-1"

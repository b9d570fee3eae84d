#!/usr/bin/env python3
"""
codeintel-mcp - Analysis-server harness

Supervises one out-of-process language server per workspace:

    UNINITIALIZED -> STARTING -> HANDSHAKING -> INDEXING -> READY
    (any) -> FAILED on unrecoverable error, DISPOSED is terminal

The server is spawned lazily on first use. Every forwarded query has its own
timeout, and a query that times out fails alone without taking the server down.
"""

import asyncio
import logging
import os
import shutil
import subprocess
import sys
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from .config import HarnessTimeouts
from .lsp import LSPClient, LspConnectionClosed, LspError, LspResponseError, path_to_uri

logger = logging.getLogger(__name__)

# Error messages a server returns while its index is still being built
NOT_READY_MARKERS = ("No language service", "indexing")


class HarnessState(Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    HANDSHAKING = "handshaking"
    INDEXING = "indexing"
    READY = "ready"
    FAILED = "failed"
    DISPOSED = "disposed"


class HarnessError(Exception):
    """The analysis server could not answer (handshake failure, crash, error reply)."""


class HarnessTimeout(HarnessError):
    """A forwarded query exceeded its time budget."""


class HarnessUnavailable(HarnessError):
    """The server executable is not installed."""


class LspServerSpec:
    """How to find and launch a language server."""

    def __init__(
        self,
        language_id: str,
        display_name: str,
        extensions: set[str] | frozenset[str],
        executable: str,
        args: tuple[str, ...] = (),
        candidate_paths: tuple[str, ...] = (),
        xcrun_tool: str | None = None,
    ):
        self.language_id = language_id
        self.display_name = display_name
        self.extensions = frozenset(ext.lower().lstrip(".") for ext in extensions)
        self.executable = executable
        self.args = tuple(args)
        self.candidate_paths = tuple(candidate_paths)
        self.xcrun_tool = xcrun_tool
        self._located: str | None = None
        self._searched = False

    def locate(self) -> str | None:
        """Path of the server executable, or None if it is not installed."""
        if self._searched:
            return self._located
        self._located = self._search()
        self._searched = True
        return self._located

    def _search(self) -> str | None:
        found = shutil.which(self.executable)
        if found:
            return found

        # Xcode Command Line Tools keep the toolchain off PATH
        if sys.platform == "darwin" and self.xcrun_tool:
            try:
                result = subprocess.run(
                    ["xcrun", "--find", self.xcrun_tool],
                    capture_output=True,
                    text=True,
                    timeout=5,
                )
                path = result.stdout.strip()
                if result.returncode == 0 and path and os.path.exists(path):
                    return path
            except (OSError, subprocess.SubprocessError) as e:
                logger.debug(f"xcrun lookup of {self.xcrun_tool} failed: {e}")

        return next((p for p in self.candidate_paths if os.path.exists(p)), None)

    def is_available(self) -> bool:
        return self.locate() is not None

    def command(self) -> list[str] | None:
        executable = self.locate()
        if executable is None:
            return None
        return [executable, *self.args]


def _is_not_ready(message: str) -> bool:
    return any(marker in message for marker in NOT_READY_MARKERS)


class LspHarness:
    def __init__(
        self,
        spec: LspServerSpec,
        workspace_root: str,
        timeouts: HarnessTimeouts | None = None,
    ):
        self.spec = spec
        self.workspace_root = workspace_root
        self.timeouts = timeouts or HarnessTimeouts()
        self.state = HarnessState.UNINITIALIZED
        self.process: asyncio.subprocess.Process | None = None
        self.client: LSPClient | None = None
        self.initialized_at: float | None = None
        self.open_documents: set[str] = set()
        self._stderr_task: asyncio.Task | None = None
        self._init_lock = asyncio.Lock()
        self._attempts = 0
        self._last_failure: BaseException | None = None

    @property
    def name(self) -> str:
        return self.spec.display_name

    def _usable(self) -> bool:
        return (
            self.state is HarnessState.READY
            and self.client is not None
            and not self.client.closed
            and self.process is not None
            and self.process.returncode is None
        )

    async def ensure_ready(self) -> LSPClient:
        """Start the server if needed; concurrent callers share one start-up."""
        if self._usable():
            return self.client
        if self.state is HarnessState.DISPOSED:
            raise HarnessError(f"{self.name} harness for {self.workspace_root} is disposed")

        seen_attempts = self._attempts
        async with self._init_lock:
            if self._usable():
                return self.client
            if self.state is HarnessState.DISPOSED:
                raise HarnessError(f"{self.name} harness for {self.workspace_root} is disposed")
            if self.state is HarnessState.FAILED and self._attempts != seen_attempts:
                # Another caller's start-up failed while we were waiting for it
                raise HarnessError(
                    f"{self.name} failed to start: {self._last_failure}"
                ) from self._last_failure
            if self.state is HarnessState.READY:
                logger.warning(f"{self.name} process exited unexpectedly, restarting")
                await self._teardown()

            try:
                await self._start()
            except asyncio.CancelledError:
                self._last_failure = HarnessError(f"{self.name} start-up was cancelled")
                await self._teardown()
                self.state = HarnessState.FAILED
                raise
            except Exception as e:
                self._last_failure = e
                logger.error(f"Failed to initialize {self.name} for {self.workspace_root}: {e}")
                await self._teardown()
                self.state = HarnessState.FAILED
                if isinstance(e, HarnessError):
                    raise
                raise HarnessError(f"Failed to initialize {self.name}: {e}") from e
            finally:
                # Counts finished attempts so callers queued behind one can tell it ended
                self._attempts += 1
            return self.client

    async def _start(self):
        self.state = HarnessState.STARTING
        command = self.spec.command()
        if command is None:
            raise HarnessUnavailable(f"{self.name} language server not found")

        logger.info(f"Starting {self.name} from: {command[0]} (workspace {self.workspace_root})")
        try:
            self.process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.workspace_root,
            )
        except OSError as e:
            raise HarnessError(f"Could not spawn {command[0]}: {e}") from e

        # Keep stderr flowing so the server never blocks on a full pipe
        self._stderr_task = asyncio.create_task(
            self._drain_stderr(self.process.stderr), name=f"{self.spec.language_id}-stderr"
        )
        self.client = LSPClient(self.process.stdout, self.process.stdin, name=self.name)
        self.client.start()

        self.state = HarnessState.HANDSHAKING
        root_uri = path_to_uri(self.workspace_root)
        try:
            init_result = await self._call("initialize", {
                "processId": os.getpid(),
                "rootUri": root_uri,
                "workspaceFolders": [
                    {"uri": root_uri, "name": Path(self.workspace_root).name or "workspace"}
                ],
                "capabilities": {
                    "textDocument": {
                        "hover": {"dynamicRegistration": False},
                        "definition": {"dynamicRegistration": False},
                        "references": {"dynamicRegistration": False},
                        "documentSymbol": {
                            "dynamicRegistration": False,
                            "hierarchicalDocumentSymbolSupport": True,
                        },
                    },
                    "workspace": {
                        "symbol": {"dynamicRegistration": False},
                        "workspaceFolders": True,
                    },
                },
            }, self.timeouts.initialize)
        except LspResponseError as e:
            raise HarnessError(f"{self.name} rejected initialize: {e.message}") from e

        server_info = (init_result or {}).get("serverInfo") or {}
        logger.info(f"{self.name} initialized: {server_info.get('name', 'unknown')}")
        await self.client.notify("initialized", {})
        self.initialized_at = time.monotonic()

        self.state = HarnessState.INDEXING
        await self._wait_for_indexing()
        self.state = HarnessState.READY

    async def _wait_for_indexing(self):
        """Probe until the server stops answering with "still indexing" errors.

        Running out of attempts is not fatal: real queries are still tried.
        """
        attempts = self.timeouts.readiness_attempts
        interval = self.timeouts.readiness_interval

        for attempt in range(1, attempts + 1):
            try:
                await self._call("workspace/symbol", {"query": "test"}, self.timeouts.probe)
                logger.info(f"{self.name} indexing complete, ready for requests")
                return
            except (LspResponseError, HarnessTimeout) as e:
                message = str(e)

            if not _is_not_ready(message):
                # Ready, but the probe itself failed for another reason
                logger.debug(f"{self.name} readiness probe returned: {message}")
                return
            if attempt < attempts:
                logger.info(f"Waiting for {self.name} indexing... ({attempt}/{attempts})")
                await asyncio.sleep(interval)

        logger.warning(
            f"{self.name} indexing may be incomplete after {attempts * interval:g}s"
        )

    async def _drain_stderr(self, stream: asyncio.StreamReader):
        pending = b""
        try:
            while chunk := await stream.read(4096):
                pending += chunk
                *lines, pending = pending.split(b"\n")
                for line in lines:
                    logger.debug(f"{self.name} stderr: {line.decode(errors='replace').rstrip()}")
        except (ConnectionError, OSError):
            pass
        if pending:
            logger.debug(f"{self.name} stderr: {pending.decode(errors='replace').rstrip()}")

    async def _call(self, method: str, params: dict | None, timeout: float) -> Any:
        client = self.client
        if client is None:
            raise HarnessError(f"{self.name} is not running")
        try:
            return await asyncio.wait_for(client.request(method, params), timeout)
        except asyncio.TimeoutError:
            raise HarnessTimeout(f"{self.name} {method} timed out after {timeout:g}s") from None
        except LspConnectionClosed as e:
            raise HarnessError(f"{self.name} connection lost: {e}") from e

    def is_recently_initialized(self, threshold: float | None = None) -> bool:
        """True while the server may still be indexing after its handshake."""
        if self.initialized_at is None:
            return False
        window = self.timeouts.recent_window if threshold is None else threshold
        return time.monotonic() - self.initialized_at < window

    async def request(self, method: str, params: dict | None) -> Any:
        """Forward a query, bounded by the per-call timeout."""
        await self.ensure_ready()
        try:
            return await self._call(method, params, self.timeouts.request)
        except LspResponseError as e:
            raise HarnessError(f"{self.name} {method} failed: {e.message}") from e

    # Document lifecycle

    async def open_document(self, file_path: str):
        """Open a file with the server (required before position queries)."""
        path = Path(file_path)
        if not path.is_file():
            return
        # A restart clears the open set, so check it only once the server is up
        client = await self.ensure_ready()
        if file_path in self.open_documents:
            return
        text = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        if file_path in self.open_documents:
            return
        self.open_documents.add(file_path)
        await client.notify("textDocument/didOpen", {
            "textDocument": {
                "uri": path_to_uri(file_path),
                "languageId": self.spec.language_id,
                "version": 1,
                "text": text,
            }
        })

    async def close_document(self, file_path: str):
        if file_path not in self.open_documents:
            return
        self.open_documents.discard(file_path)
        client = self.client
        if client is None or client.closed:
            return
        try:
            await client.notify("textDocument/didClose", {
                "textDocument": {"uri": path_to_uri(file_path)}
            })
        except LspError as e:
            logger.debug(f"didClose for {file_path} failed: {e}")

    # Queries (line/column are 0-based, as LSP expects)

    def _position_params(self, file_path: str, line: int, column: int) -> dict:
        return {
            "textDocument": {"uri": path_to_uri(file_path)},
            "position": {"line": line, "character": column},
        }

    async def hover(self, file_path: str, line: int, column: int) -> dict | None:
        await self.open_document(file_path)
        return await self.request("textDocument/hover", self._position_params(file_path, line, column))

    async def definition(self, file_path: str, line: int, column: int) -> list[dict]:
        await self.open_document(file_path)
        result = await self.request(
            "textDocument/definition", self._position_params(file_path, line, column)
        )
        if not result:
            return []
        return result if isinstance(result, list) else [result]

    async def references(self, file_path: str, line: int, column: int) -> list[dict]:
        await self.open_document(file_path)
        params = self._position_params(file_path, line, column)
        params["context"] = {"includeDeclaration": True}
        return await self.request("textDocument/references", params) or []

    async def document_symbol(self, file_path: str) -> list[dict]:
        await self.open_document(file_path)
        return await self.request("textDocument/documentSymbol", {
            "textDocument": {"uri": path_to_uri(file_path)},
        }) or []

    async def workspace_symbol(
        self, query: str, accept: Callable[[dict], bool] | None = None
    ) -> list[dict]:
        """Workspace symbol search that retries empty answers.

        A server that is still indexing tends to answer with an empty list
        rather than an error, so empty results are retried: 5 attempts
        within the recent-initialization window, 2 afterwards.
        """
        if not query.strip():
            return []
        await self.ensure_ready()

        recent = self.is_recently_initialized()
        attempts = self.timeouts.symbol_retries_recent if recent else self.timeouts.symbol_retries
        for attempt in range(1, attempts + 1):
            result = await self.request("workspace/symbol", {"query": query}) or []
            matches = [item for item in result if accept is None or accept(item)]
            if matches:
                return matches
            if attempt < attempts:
                logger.info(
                    f"{self.name} workspace/symbol returned empty, retrying... ({attempt}/{attempts})"
                )
                await asyncio.sleep(self.timeouts.symbol_retry_interval)

        if self.is_recently_initialized():
            logger.info(
                f"{self.name} workspace/symbol still empty after retries; server may still be indexing"
            )
        return []

    # Teardown

    async def dispose(self):
        """Shut the server down. Safe to call more than once."""
        if self.state is HarnessState.DISPOSED:
            return
        async with self._init_lock:
            if self.state is HarnessState.DISPOSED:
                return
            logger.info(f"Disposing {self.name} harness for {self.workspace_root}")
            await self._teardown()
            self.state = HarnessState.DISPOSED

    async def _teardown(self):
        client, process, stderr_task = self.client, self.process, self._stderr_task
        self.client = None
        self.process = None
        self._stderr_task = None
        self.initialized_at = None
        documents = sorted(self.open_documents)
        self.open_documents.clear()

        graceful = False
        if client is not None and not client.closed:
            for file_path in documents:
                try:
                    await client.notify("textDocument/didClose", {
                        "textDocument": {"uri": path_to_uri(file_path)}
                    })
                except LspError:
                    break
            try:
                await asyncio.wait_for(client.request("shutdown", None), self.timeouts.shutdown)
                await client.notify("exit", None)
                graceful = True
            except (LspError, asyncio.TimeoutError) as e:
                logger.warning(f"Error during {self.name} shutdown: {e or type(e).__name__}")
        if client is not None:
            await client.close()

        if process is not None:
            if graceful and process.returncode is None:
                try:
                    await asyncio.wait_for(process.wait(), self.timeouts.shutdown)
                except asyncio.TimeoutError:
                    pass
            if process.returncode is None:
                process.kill()
                try:
                    await asyncio.wait_for(process.wait(), 5.0)
                except asyncio.TimeoutError:
                    logger.warning(f"{self.name} process {process.pid} did not exit after kill")

        if stderr_task is not None:
            stderr_task.cancel()
            await asyncio.gather(stderr_task, return_exceptions=True)


class HarnessPool:
    """One harness per workspace root, created on first use."""

    def __init__(self, spec: LspServerSpec, timeouts: HarnessTimeouts | None = None):
        self.spec = spec
        self.timeouts = timeouts or HarnessTimeouts()
        self._harnesses: dict[str, LspHarness] = {}
        self._lock = threading.Lock()

    def get(self, workspace_root: str) -> LspHarness:
        harness = self._harnesses.get(workspace_root)
        if harness is None:
            with self._lock:
                harness = self._harnesses.get(workspace_root)
                if harness is None:
                    harness = LspHarness(self.spec, workspace_root, self.timeouts)
                    self._harnesses[workspace_root] = harness
        return harness

    def peek(self, workspace_root: str) -> LspHarness | None:
        return self._harnesses.get(workspace_root)

    def __len__(self) -> int:
        return len(self._harnesses)

    async def dispose(self, workspace_root: str):
        with self._lock:
            harness = self._harnesses.pop(workspace_root, None)
        if harness is not None:
            await harness.dispose()

    async def dispose_all(self):
        with self._lock:
            harnesses = list(self._harnesses.values())
            self._harnesses.clear()
        for harness in harnesses:
            try:
                await harness.dispose()
            except Exception:
                logger.exception(f"Failed to dispose {harness.name} harness for {harness.workspace_root}")

"""Shared fixtures: an in-memory adapter and the scriptable fake language server."""

import sys
from pathlib import Path

import pytest

from codeintel_mcp.adapters.base import LanguageAdapter
from codeintel_mcp.config import HarnessTimeouts
from codeintel_mcp.harness import LspServerSpec
from codeintel_mcp.models import FileOutline, Location, Symbol, SymbolKind

FAKE_SERVER = str(Path(__file__).parent / "fake_lsp_server.py")


class StubAdapter(LanguageAdapter):
    """Adapter answering from fixed data and recording what it was asked."""

    def __init__(self, language_id="stub", extensions=("stub",), symbols=None, hierarchy=None):
        self.language_id = language_id
        self.display_name = language_id.capitalize()
        self.extensions = frozenset(extensions)
        self.symbols = symbols or []
        self.hierarchy = hierarchy
        self.symbol_info = None
        self.references = []
        self.error = None
        self.calls = []

    async def find_symbol(self, workspace, name, kind=None):
        self.calls.append(("find_symbol", name, kind))
        if self.error:
            raise self.error
        return [s for s in self.symbols if s.name == name]

    async def find_references(self, workspace, file_path, offset):
        self.calls.append(("find_references", file_path, offset))
        return self.references

    async def get_symbol_info(self, workspace, file_path, offset):
        self.calls.append(("get_symbol_info", file_path, offset))
        return self.symbol_info

    async def get_file_outline(self, workspace, file_path):
        self.calls.append(("get_file_outline", file_path))
        return FileOutline(file_path=file_path, language=self.language_id)

    async def get_type_hierarchy(self, workspace, type_name):
        self.calls.append(("get_type_hierarchy", type_name))
        return self.hierarchy

    async def offset_for(self, workspace, file_path, line, column):
        self.calls.append(("offset_for", line, column))
        if line > 100:
            return None
        return line * 100 + column


def make_symbol(name, language="stub", line=0, column=0, kind=SymbolKind.CLASS):
    return Symbol(
        name=name,
        kind=kind,
        language=language,
        location=Location(file_path=f"/src/{name}.{language}", line=line, column=column),
    )


@pytest.fixture
def stub_adapter():
    """Factory for StubAdapter instances."""
    return StubAdapter


@pytest.fixture
def fast_timeouts():
    """Harness timings shrunk so retry loops finish in milliseconds."""
    return HarnessTimeouts(
        request=5.0,
        initialize=5.0,
        shutdown=2.0,
        probe=2.0,
        readiness_attempts=3,
        readiness_interval=0.01,
        symbol_retries_recent=5,
        symbol_retries=2,
        symbol_retry_interval=0.01,
        recent_window=60.0,
    )


@pytest.fixture
def fake_server(tmp_path):
    """Factory returning (spec, log_path) for a fake server run with extra flags."""
    log_path = tmp_path / "fake_lsp.log"

    def build(*flags):
        spec = LspServerSpec(
            language_id="swift",
            display_name="FakeLSP",
            extensions={"swift"},
            executable=sys.executable,
            args=(FAKE_SERVER, "--log", str(log_path), *flags),
        )
        return spec, log_path

    return build


def log_lines(log_path):
    if not log_path.exists():
        return []
    return log_path.read_text().splitlines()


@pytest.fixture
def read_log():
    return log_lines


@pytest.fixture
def swift_workspace(tmp_path):
    """A workspace holding one Swift source file."""
    root = tmp_path / "SwiftApp"
    sources = root / "Sources"
    sources.mkdir(parents=True)
    (sources / "Widget.swift").write_text(
        "class Widget {\n"
        "    func render() -> String { return \"\" }\n"
        "}\n"
    )
    return root

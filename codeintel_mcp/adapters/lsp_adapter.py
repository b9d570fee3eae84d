"""Language adapter backed by an out-of-process language server.

Queries go through one ``LspHarness`` per workspace. Symbol search is best
effort: backend failures degrade to an empty result. Single-target queries
(references, symbol info, outline) surface backend failures as BackendError.
"""

import asyncio
import logging
import os
import re
from pathlib import Path

from ..config import HarnessTimeouts
from ..errors import BackendError, InvalidPositionError, SourceFileNotFoundError, SymbolNotFoundError
from ..harness import HarnessError, HarnessPool, LspServerSpec
from ..lsp import SYMBOL_KIND_MAP, hover_text, uri_to_path
from ..models import FileOutline, Location, Symbol, SymbolKind, SymbolNode, TypeHierarchy
from ..positions import LineIndex
from ..workspaces import Workspace
from .base import LanguageAdapter

logger = logging.getLogger(__name__)

SWIFT_SERVER = LspServerSpec(
    language_id="swift",
    display_name="SourceKit-LSP",
    extensions={"swift"},
    executable="sourcekit-lsp",
    xcrun_tool="sourcekit-lsp",
    candidate_paths=(
        "/usr/bin/sourcekit-lsp",
        "/Library/Developer/Toolchains/swift-latest.xctoolchain/usr/bin/sourcekit-lsp",
        "/Applications/Xcode.app/Contents/Developer/Toolchains/XcodeDefault.xctoolchain/usr/bin/sourcekit-lsp",
    ),
)

_LSP_KINDS = {
    "class": SymbolKind.CLASS,
    "struct": SymbolKind.CLASS,
    "interface": SymbolKind.INTERFACE,
    "enum": SymbolKind.ENUM,
    "function": SymbolKind.FUNCTION,
    "method": SymbolKind.METHOD,
    "constructor": SymbolKind.METHOD,
    "property": SymbolKind.PROPERTY,
    "field": SymbolKind.FIELD,
    "variable": SymbolKind.VARIABLE,
    "constant": SymbolKind.CONSTANT,
    "enum_member": SymbolKind.CONSTANT,
    "module": SymbolKind.MODULE,
    "namespace": SymbolKind.MODULE,
    "package": SymbolKind.PACKAGE,
    "type_parameter": SymbolKind.PARAMETER,
}

_NAME_PATTERNS = [
    re.compile(r"(?:func|init)\s+(\w+)"),
    re.compile(r"(?:class|struct|enum|protocol|extension|actor)\s+(\w+)"),
    re.compile(r"(?:var|let)\s+(\w+)"),
    re.compile(r"(\w+)\s*\("),
]

_KIND_PREFIXES = [
    ("class ", SymbolKind.CLASS),
    ("struct ", SymbolKind.CLASS),
    ("actor ", SymbolKind.CLASS),
    ("enum ", SymbolKind.ENUM),
    ("protocol ", SymbolKind.INTERFACE),
    ("func ", SymbolKind.FUNCTION),
    ("init", SymbolKind.FUNCTION),
    ("var ", SymbolKind.PROPERTY),
    ("let ", SymbolKind.PROPERTY),
]


def map_lsp_kind(kind: int | None) -> SymbolKind:
    return _LSP_KINDS.get(SYMBOL_KIND_MAP.get(kind or 0, ""), SymbolKind.VARIABLE)


def range_to_location(file_path: str, range_: dict) -> Location:
    start = range_.get("start", {})
    end = range_.get("end", {})
    return Location(
        file_path=file_path,
        line=start.get("line", 0),
        column=start.get("character", 0),
        end_line=end.get("line"),
        end_column=end.get("character"),
    )


def lsp_location(location: dict) -> Location:
    """Location or LocationLink from a server reply."""
    if "targetUri" in location:
        return range_to_location(
            uri_to_path(location["targetUri"]),
            location.get("targetSelectionRange") or location.get("targetRange", {}),
        )
    uri = location.get("uri", "")
    range_ = location.get("range")
    if range_ is None:
        # WorkspaceSymbol may carry a bare document uri without a range
        return Location(file_path=uri_to_path(uri), line=0, column=0)
    return range_to_location(uri_to_path(uri), range_)


def signature_line(documentation: str | None) -> str | None:
    """First code line of a hover, skipping markdown fences."""
    if not documentation:
        return None
    for line in documentation.splitlines():
        line = line.strip()
        if line and not line.startswith("```"):
            return line
    return None


def infer_kind(signature: str | None) -> SymbolKind:
    if not signature:
        return SymbolKind.VARIABLE
    lowered = signature.lower()
    for prefix, kind in _KIND_PREFIXES:
        if lowered.startswith(prefix):
            return kind
    if "->" in lowered:
        return SymbolKind.FUNCTION
    return SymbolKind.VARIABLE


def word_at(text: str, offset: int) -> str | None:
    if offset >= len(text):
        return None
    start = end = offset
    while start > 0 and (text[start - 1].isalnum() or text[start - 1] == "_"):
        start -= 1
    while end < len(text) and (text[end].isalnum() or text[end] == "_"):
        end += 1
    return text[start:end] if start < end else None


class LspLanguageAdapter(LanguageAdapter):
    def __init__(
        self,
        server: LspServerSpec,
        display_name: str,
        timeouts: HarnessTimeouts | None = None,
        scan_limit: int = 500,
    ):
        self.server = server
        self.language_id = server.language_id
        self.display_name = display_name
        self.extensions = server.extensions
        self.harnesses = HarnessPool(server, timeouts)
        self.scan_limit = scan_limit

    def is_available(self) -> bool:
        return self.server.is_available()

    def _has_sources(self, root: str) -> bool:
        """Whether the first ``scan_limit`` entries under root hold a supported file."""
        seen = 0
        for _dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for filename in filenames:
                seen += 1
                if seen > self.scan_limit:
                    return False
                if self.supports(filename):
                    return True
            seen += len(dirnames)
            if seen > self.scan_limit:
                return False
        return False

    async def _line_index(self, file_path: str) -> LineIndex:
        if not Path(file_path).is_file():
            raise SourceFileNotFoundError(f"File not found: {file_path}")
        return await asyncio.to_thread(LineIndex.from_file, file_path)

    async def _position(self, file_path: str, offset: int) -> tuple[int, int]:
        index = await self._line_index(file_path)
        position = index.position_of(offset)
        if position is None:
            raise InvalidPositionError(f"Invalid offset {offset} for file: {file_path}")
        return position

    def _workspace_symbol(self, item: dict) -> Symbol:
        container = item.get("containerName")
        name = item.get("name", "")
        return Symbol(
            name=name,
            kind=map_lsp_kind(item.get("kind")),
            language=self.language_id,
            qualified_name=f"{container}.{name}" if container else None,
            location=lsp_location(item.get("location") or {}),
        )

    async def find_symbol(
        self, workspace: Workspace, name: str, kind: SymbolKind | None = None
    ) -> list[Symbol]:
        if not self.is_available() or not name.strip():
            return []
        if not await asyncio.to_thread(self._has_sources, workspace.root):
            return []

        needle = name.lower()

        def accept(item: dict) -> bool:
            return needle in item.get("name", "").lower() and (
                kind is None or map_lsp_kind(item.get("kind")) == kind
            )

        harness = self.harnesses.get(workspace.root)
        try:
            items = await harness.workspace_symbol(name, accept=accept)
        except HarnessError as e:
            logger.warning(f"{self.display_name} find_symbol '{name}' failed: {e}")
            return []
        return [self._workspace_symbol(item) for item in items]

    async def find_references(
        self, workspace: Workspace, file_path: str, offset: int
    ) -> list[Location]:
        if not self.is_available():
            return []
        line, column = await self._position(file_path, offset)

        harness = self.harnesses.get(workspace.root)
        try:
            locations = await harness.references(file_path, line, column)
        except HarnessError as e:
            logger.warning(f"Failed to find references at {file_path}:{offset}: {e}")
            raise BackendError(f"Failed to find references: {e}") from e

        if not locations:
            raise SymbolNotFoundError(f"No symbol at {file_path} offset {offset}")
        return [lsp_location(location) for location in locations]

    async def get_symbol_info(
        self, workspace: Workspace, file_path: str, offset: int
    ) -> Symbol | None:
        if not self.is_available():
            return None
        index = await self._line_index(file_path)
        position = index.position_of(offset)
        if position is None:
            return None
        line, column = position

        harness = self.harnesses.get(workspace.root)
        try:
            hover, definitions = await asyncio.gather(
                harness.hover(file_path, line, column),
                harness.definition(file_path, line, column),
            )
        except HarnessError as e:
            logger.warning(f"Failed to get symbol info at {file_path}:{offset}: {e}")
            raise BackendError(f"Failed to get symbol info: {e}") from e

        documentation = hover_text(hover)
        if not documentation and not definitions:
            return None

        signature = signature_line(documentation)
        name = None
        if signature:
            for pattern in _NAME_PATTERNS:
                match = pattern.search(signature)
                if match:
                    name = match.group(1)
                    break
        if name is None:
            name = word_at(index.text, offset) or "unknown"

        return Symbol(
            name=name,
            kind=infer_kind(signature),
            language=self.language_id,
            signature=signature,
            documentation=documentation,
            location=lsp_location(definitions[0]) if definitions else None,
        )

    def _document_symbol(self, item: dict, file_path: str) -> SymbolNode:
        if "location" in item:
            # Flat SymbolInformation
            return SymbolNode(symbol=self._workspace_symbol(item))

        symbol = Symbol(
            name=item.get("name", ""),
            kind=map_lsp_kind(item.get("kind")),
            language=self.language_id,
            qualified_name=item.get("name"),
            documentation=item.get("detail"),
            location=range_to_location(file_path, item.get("range", {})),
            name_location=range_to_location(
                file_path, item.get("selectionRange") or item.get("range", {})
            ),
        )
        children = [self._document_symbol(child, file_path) for child in item.get("children") or []]
        return SymbolNode(symbol=symbol, children=children)

    async def get_file_outline(self, workspace: Workspace, file_path: str) -> FileOutline:
        if not Path(file_path).is_file():
            raise SourceFileNotFoundError(f"File not found: {file_path}")
        if not self.is_available():
            return FileOutline(file_path=file_path, language=self.language_id)

        harness = self.harnesses.get(workspace.root)
        try:
            items = await harness.document_symbol(file_path)
        except HarnessError as e:
            logger.warning(f"Failed to get file symbols for {file_path}: {e}")
            raise BackendError(f"Failed to get file symbols: {e}") from e

        return FileOutline(
            file_path=file_path,
            language=self.language_id,
            module_name=Path(file_path).stem,
            symbols=[self._document_symbol(item, file_path) for item in items],
        )

    async def get_type_hierarchy(
        self, workspace: Workspace, type_name: str
    ) -> TypeHierarchy | None:
        logger.info(f"Type hierarchy is not supported by {self.server.display_name}")
        return None

    async def offset_for(
        self, workspace: Workspace, file_path: str, line: int, column: int
    ) -> int | None:
        index = await self._line_index(file_path)
        return index.offset_for(line, column)

    async def release(self, workspace: Workspace) -> None:
        await self.harnesses.dispose(workspace.root)

    async def close(self) -> None:
        await self.harnesses.dispose_all()

"""Tool dispatch.

Validates tool arguments, picks the workspace and adapter(s), converts
client coordinates, runs the adapter query and renders the result for the
wire. Errors are raised as ``CodeIntelError`` subclasses; turning them into
JSON-RPC errors is the protocol server's job.
"""

import logging
from typing import Any, Awaitable, Callable

from .adapters import LanguageAdapter
from .adapters.registry import file_extension
from .context import AppContext
from .errors import (
    IndexNotReadyError,
    InvalidParamsError,
    InvalidPositionError,
    MethodNotFoundError,
    SymbolNotFoundError,
    UnsupportedLanguageError,
)
from .models import LanguageInfo, SymbolKind
from .positions import to_internal, to_wire
from .workspaces import Workspace

logger = logging.getLogger(__name__)

KIND_ALIASES = {
    "func": SymbolKind.FUNCTION,
    "var": SymbolKind.VARIABLE,
    "const": SymbolKind.CONSTANT,
}


def parse_symbol_kind(kind: str) -> SymbolKind:
    key = kind.strip().lower()
    if key in KIND_ALIASES:
        return KIND_ALIASES[key]
    try:
        return SymbolKind[key.upper()]
    except KeyError:
        raise InvalidParamsError(f"Unknown symbol kind: {kind}") from None


def _require_str(args: dict, key: str) -> str:
    value = args.get(key)
    if value is None:
        raise InvalidParamsError(f"Missing required argument: {key}")
    if not isinstance(value, str) or not value:
        raise InvalidParamsError(f"Argument '{key}' must be a non-empty string")
    return value


def _optional_str(args: dict, key: str) -> str | None:
    value = args.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidParamsError(f"Argument '{key}' must be a string")
    return value


def _require_int(args: dict, key: str) -> int:
    value = args.get(key)
    if value is None:
        raise InvalidParamsError(f"Missing required argument: {key}")
    # bool is an int subclass; JSON true is not a line number
    if isinstance(value, bool):
        raise InvalidParamsError(f"Argument '{key}' must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise InvalidParamsError(f"Argument '{key}' must be an integer")
    return value


class ToolExecutor:
    def __init__(self, context: AppContext):
        self.context = context
        self._tools: dict[str, Callable[[dict], Awaitable[Any]]] = {
            "list_projects": self._call_list_projects,
            "get_supported_languages": self._call_get_supported_languages,
            "find_symbol": self._call_find_symbol,
            "find_references": self._call_find_references,
            "get_symbol_info": self._call_get_symbol_info,
            "get_file_symbols": self._call_get_file_symbols,
            "get_type_hierarchy": self._call_get_type_hierarchy,
        }

    @property
    def registry(self):
        return self.context.registry

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    async def execute(self, name: str, arguments: dict | None) -> Any:
        """Run tool ``name`` and return its wire-ready result."""
        handler = self._tools.get(name)
        if handler is None:
            raise MethodNotFoundError(f"Unknown tool: {name}")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("Tool arguments must be an object")
        logger.debug(f"Executing tool {name} with {arguments}")
        return to_wire(await handler(arguments))

    # ----- argument unpacking -----

    async def _call_list_projects(self, args: dict):
        return self.list_projects()

    async def _call_get_supported_languages(self, args: dict):
        return self.get_supported_languages()

    async def _call_find_symbol(self, args: dict):
        return await self.find_symbol(
            name=_require_str(args, "name"),
            kind=_optional_str(args, "kind"),
            language=_optional_str(args, "language"),
            project_path=_optional_str(args, "projectPath"),
        )

    async def _call_find_references(self, args: dict):
        return await self.find_references(
            file_path=_require_str(args, "filePath"),
            line=_require_int(args, "line"),
            column=_require_int(args, "column"),
            project_path=_optional_str(args, "projectPath"),
        )

    async def _call_get_symbol_info(self, args: dict):
        return await self.get_symbol_info(
            file_path=_require_str(args, "filePath"),
            line=_require_int(args, "line"),
            column=_require_int(args, "column"),
            project_path=_optional_str(args, "projectPath"),
        )

    async def _call_get_file_symbols(self, args: dict):
        return await self.get_file_symbols(
            file_path=_require_str(args, "filePath"),
            project_path=_optional_str(args, "projectPath"),
        )

    async def _call_get_type_hierarchy(self, args: dict):
        return await self.get_type_hierarchy(
            type_name=_require_str(args, "typeName"),
            language=_optional_str(args, "language"),
            project_path=_optional_str(args, "projectPath"),
        )

    # ----- resolution helpers -----

    def _workspace(self, project_path: str | None) -> Workspace:
        workspace = self.context.workspaces.resolve(project_path)
        if workspace.is_indexing:
            raise IndexNotReadyError(f"Workspace {workspace.name} is still indexing. Please wait.")
        return workspace

    def _adapters_for_language(
        self, language: str | None, require_any: bool = True
    ) -> list[LanguageAdapter]:
        if language is None:
            adapters = self.registry.all_adapters()
            if not adapters and require_any:
                raise UnsupportedLanguageError("No language adapters available")
            return adapters
        adapter = self.registry.get_by_language(language)
        if adapter is None:
            raise UnsupportedLanguageError(f"Unsupported language: {language}")
        return [adapter]

    def _adapter_for_file(self, file_path: str) -> LanguageAdapter:
        extension = file_extension(file_path)
        adapter = self.registry.get_by_extension(extension)
        if adapter is None:
            raise UnsupportedLanguageError(f"Unsupported file type: .{extension}")
        return adapter

    async def _offset(
        self, adapter: LanguageAdapter, workspace: Workspace, file_path: str, line: int, column: int
    ) -> int:
        internal_line, internal_column = to_internal(line, column)
        offset = None
        if internal_line >= 0 and internal_column >= 0:
            offset = await adapter.offset_for(workspace, file_path, internal_line, internal_column)
        if offset is None:
            raise InvalidPositionError(f"Invalid position: {file_path}:{line}:{column}")
        return offset

    # ----- tools -----

    def list_projects(self):
        return self.context.workspaces.list_projects()

    def get_supported_languages(self) -> list[LanguageInfo]:
        return [
            LanguageInfo(
                id=adapter.language_id,
                name=adapter.display_name,
                extensions=sorted(adapter.extensions),
                available=adapter.is_available(),
            )
            for adapter in self.registry.all_adapters()
        ]

    async def find_symbol(
        self,
        name: str,
        kind: str | None = None,
        language: str | None = None,
        project_path: str | None = None,
    ):
        workspace = self._workspace(project_path)
        symbol_kind = parse_symbol_kind(kind) if kind is not None else None

        results = []
        for adapter in self._adapters_for_language(language):
            results.extend(await adapter.find_symbol(workspace, name, symbol_kind))
        return results

    async def find_references(
        self, file_path: str, line: int, column: int, project_path: str | None = None
    ):
        workspace = self._workspace(project_path)
        adapter = self._adapter_for_file(file_path)
        offset = await self._offset(adapter, workspace, file_path, line, column)
        return await adapter.find_references(workspace, file_path, offset)

    async def get_symbol_info(
        self, file_path: str, line: int, column: int, project_path: str | None = None
    ):
        workspace = self._workspace(project_path)
        adapter = self._adapter_for_file(file_path)
        offset = await self._offset(adapter, workspace, file_path, line, column)

        symbol = await adapter.get_symbol_info(workspace, file_path, offset)
        if symbol is None:
            raise SymbolNotFoundError(f"No symbol found at {file_path}:{line}:{column}")
        return symbol

    async def get_file_symbols(self, file_path: str, project_path: str | None = None):
        workspace = self._workspace(project_path)
        adapter = self._adapter_for_file(file_path)
        return await adapter.get_file_outline(workspace, file_path)

    async def get_type_hierarchy(
        self, type_name: str, language: str | None = None, project_path: str | None = None
    ):
        workspace = self._workspace(project_path)
        for adapter in self._adapters_for_language(language, require_any=False):
            hierarchy = await adapter.get_type_hierarchy(workspace, type_name)
            if hierarchy is not None:
                return hierarchy
        raise SymbolNotFoundError(f"Type not found: {type_name}")

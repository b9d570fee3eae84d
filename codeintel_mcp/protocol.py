"""JSON-RPC message shapes and the MCP tool catalogue.

Tool schemas are rebuilt from the live registry on every ``tools/list`` so
languages registered after start-up show up immediately.
"""

from dataclasses import dataclass
from typing import Any

from . import SERVER_NAME, __version__
from .adapters import AdapterRegistry
from .errors import ErrorCode

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

KIND_CHOICES = ["class", "interface", "enum", "function", "method", "variable", "field", "property", "constant"]


@dataclass
class ToolDefinition:
    name: str
    description: str
    input_schema: dict

    def to_dict(self) -> dict:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


def success(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def failure(request_id: Any, code: ErrorCode | int, message: str) -> dict:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": int(code), "message": message},
    }


def server_info() -> dict:
    return {"name": SERVER_NAME, "version": __version__}


def initialize_result() -> dict:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "serverInfo": server_info(),
        "capabilities": {"tools": {"listChanged": False}},
    }


def _schema(properties: dict, required: list[str] | None = None) -> dict:
    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


_PROJECT_PATH = {
    "type": "string",
    "description": "Optional: project root path. Uses the active project if not provided.",
}
_FILE_PATH = {"type": "string", "description": "Absolute file path"}
_LINE = {"type": "integer", "minimum": 1, "description": "1-based line number"}
_COLUMN = {"type": "integer", "minimum": 1, "description": "1-based column number"}


def build_tool_definitions(registry: AdapterRegistry) -> list[ToolDefinition]:
    languages = registry.supported_languages()
    extensions = ", ".join(f".{ext}" for ext in registry.supported_extensions()) or "none"

    def language_property(description: str) -> dict:
        prop = {"type": "string", "description": description}
        if languages:
            prop["enum"] = languages
        return prop

    return [
        ToolDefinition(
            name="list_projects",
            description="List all currently open projects (workspaces).",
            input_schema=_schema({}),
        ),
        ToolDefinition(
            name="get_supported_languages",
            description="Get the list of supported programming languages and their file extensions.",
            input_schema=_schema({}),
        ),
        ToolDefinition(
            name="find_symbol",
            description="Find symbol (class, function, variable) definitions by name.",
            input_schema=_schema(
                {
                    "name": {"type": "string", "description": "Symbol name to find"},
                    "kind": {
                        "type": "string",
                        "enum": KIND_CHOICES,
                        "description": "Optional: filter by symbol kind",
                    },
                    "language": language_property("Optional: limit search to a specific language"),
                    "projectPath": _PROJECT_PATH,
                },
                ["name"],
            ),
        ),
        ToolDefinition(
            name="find_references",
            description="Find all references to the symbol at the given location.",
            input_schema=_schema(
                {"filePath": _FILE_PATH, "line": _LINE, "column": _COLUMN, "projectPath": _PROJECT_PATH},
                ["filePath", "line", "column"],
            ),
        ),
        ToolDefinition(
            name="get_symbol_info",
            description="Get detailed information about the symbol at the given location.",
            input_schema=_schema(
                {"filePath": _FILE_PATH, "line": _LINE, "column": _COLUMN, "projectPath": _PROJECT_PATH},
                ["filePath", "line", "column"],
            ),
        ),
        ToolDefinition(
            name="get_file_symbols",
            description=f"List all symbols in a file. Supported extensions: {extensions}",
            input_schema=_schema({"filePath": _FILE_PATH, "projectPath": _PROJECT_PATH}, ["filePath"]),
        ),
        ToolDefinition(
            name="get_type_hierarchy",
            description="Get the type hierarchy (base types and subtypes) of a class or interface.",
            input_schema=_schema(
                {
                    "typeName": {"type": "string", "description": "Type name (may be qualified)"},
                    "language": language_property("Optional: language, if the type name is ambiguous"),
                    "projectPath": _PROJECT_PATH,
                },
                ["typeName"],
            ),
        ),
    ]

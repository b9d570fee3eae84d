#!/usr/bin/env python3
"""Code intelligence tools: projects, symbols, references, outlines, hierarchies."""

from ._core import mcp, call_tool, format_result


@mcp.tool()
async def list_projects() -> str:
    """List all open projects (workspaces) known to the daemon."""
    return format_result(await call_tool("list_projects", {}))


@mcp.tool()
async def get_supported_languages() -> str:
    """List supported programming languages and their file extensions."""
    return format_result(await call_tool("get_supported_languages", {}))


@mcp.tool()
async def find_symbol(
    name: str,
    kind: str | None = None,
    language: str | None = None,
    projectPath: str | None = None,
) -> str:
    """
    Find symbol (class, function, variable) definitions by name.

    Args:
        name: Symbol name to find
        kind: Optional filter: class, interface, enum, function, method, variable, field, property, constant
        language: Optional language id to limit the search (see get_supported_languages)
        projectPath: Optional project root; the active project is used if omitted
    """
    result = await call_tool("find_symbol", {
        "name": name,
        "kind": kind,
        "language": language,
        "projectPath": projectPath,
    })
    return format_result(result)


@mcp.tool()
async def find_references(
    filePath: str, line: int, column: int, projectPath: str | None = None
) -> str:
    """
    Find all references to the symbol at a specific position.

    Args:
        filePath: Absolute path to the source file
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        projectPath: Optional project root
    """
    result = await call_tool("find_references", {
        "filePath": filePath,
        "line": line,
        "column": column,
        "projectPath": projectPath,
    })
    return format_result(result)


@mcp.tool()
async def get_symbol_info(
    filePath: str, line: int, column: int, projectPath: str | None = None
) -> str:
    """
    Get signature, documentation and location of the symbol at a position.

    Args:
        filePath: Absolute path to the source file
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        projectPath: Optional project root
    """
    result = await call_tool("get_symbol_info", {
        "filePath": filePath,
        "line": line,
        "column": column,
        "projectPath": projectPath,
    })
    return format_result(result)


@mcp.tool()
async def get_file_symbols(filePath: str, projectPath: str | None = None) -> str:
    """
    Get the outline of a file: imports and the tree of declared symbols.

    Args:
        filePath: Absolute path to the source file
        projectPath: Optional project root
    """
    result = await call_tool("get_file_symbols", {
        "filePath": filePath,
        "projectPath": projectPath,
    })
    return format_result(result)


@mcp.tool()
async def get_type_hierarchy(
    typeName: str, language: str | None = None, projectPath: str | None = None
) -> str:
    """
    Get base types and subtypes of a class or interface.

    Args:
        typeName: Type name, simple or qualified
        language: Optional language id if the name is ambiguous
        projectPath: Optional project root
    """
    result = await call_tool("get_type_hierarchy", {
        "typeName": typeName,
        "language": language,
        "projectPath": projectPath,
    })
    return format_result(result)

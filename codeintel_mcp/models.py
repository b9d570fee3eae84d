"""Canonical records shared by every language adapter.

All positions held by these records are 0-based. Conversion to the 1-based
wire convention happens only in ``codeintel_mcp.positions``.
"""

from dataclasses import dataclass, field
from enum import Enum


class SymbolKind(str, Enum):
    CLASS = "CLASS"
    INTERFACE = "INTERFACE"
    ENUM = "ENUM"
    TRAIT = "TRAIT"
    FUNCTION = "FUNCTION"
    METHOD = "METHOD"
    PROPERTY = "PROPERTY"
    FIELD = "FIELD"
    VARIABLE = "VARIABLE"
    CONSTANT = "CONSTANT"
    PARAMETER = "PARAMETER"
    MODULE = "MODULE"
    PACKAGE = "PACKAGE"


@dataclass
class Location:
    """A span in a source file (0-based line and column)."""
    file_path: str
    line: int
    column: int
    end_line: int | None = None
    end_column: int | None = None
    preview: str | None = None


@dataclass
class Parameter:
    name: str
    type: str | None = None  # None if no annotation
    default_value: str | None = None  # Source text of the default
    is_optional: bool = False


@dataclass
class Symbol:
    """A declaration reported by a language adapter."""
    name: str
    kind: SymbolKind
    language: str
    qualified_name: str | None = None
    signature: str | None = None
    documentation: str | None = None
    location: Location | None = None  # Full declaration span
    name_location: Location | None = None  # Identifier span, used to anchor find_references
    return_type: str | None = None
    parameters: list[Parameter] | None = None
    modifiers: list[str] | None = None
    decorators: list[str] | None = None
    annotations: list[str] | None = None
    super_types: list[str] | None = None


@dataclass
class ImportInfo:
    module: str
    location: Location
    names: list[str] | None = None
    alias: str | None = None


@dataclass
class SymbolNode:
    """A symbol and the declarations it owns (methods, fields, nested classes)."""
    symbol: Symbol
    children: list["SymbolNode"] = field(default_factory=list)


@dataclass
class FileOutline:
    file_path: str
    language: str
    package_name: str | None = None
    module_name: str | None = None
    imports: list[ImportInfo] = field(default_factory=list)
    symbols: list[SymbolNode] = field(default_factory=list)


@dataclass
class TypeRef:
    name: str
    qualified_name: str | None = None
    location: Location | None = None


@dataclass
class TypeHierarchy:
    type_name: str
    qualified_name: str | None
    kind: SymbolKind
    super_types: list[TypeRef] = field(default_factory=list)
    sub_types: list[TypeRef] = field(default_factory=list)


@dataclass
class ProjectInfo:
    name: str
    base_path: str
    is_active: bool


@dataclass
class LanguageInfo:
    id: str
    name: str
    extensions: list[str]
    available: bool = True

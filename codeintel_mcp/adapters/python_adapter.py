"""Embedded Python backend.

Each workspace keeps a ``ModuleIndex``: every ``.py``/``.pyi`` file under the
root, parsed with ``ast`` once and re-parsed when its mtime changes. Symbol
search, outlines and type hierarchies read the prepared definition lists.
Position queries (references, symbol info) resolve the name under the cursor
with rope, so same-named bindings in different scopes stay apart.
"""

import ast
import asyncio
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path

from rope.base import libutils
from rope.base.exceptions import RopeError
from rope.base.project import Project
from rope.contrib import codeassist, findit

from ..errors import BackendError, InvalidPositionError, SourceFileNotFoundError, SymbolNotFoundError
from ..models import (
    FileOutline,
    ImportInfo,
    Location,
    Parameter,
    Symbol,
    SymbolKind,
    SymbolNode,
    TypeHierarchy,
    TypeRef,
)
from ..positions import LineIndex
from ..workspaces import Workspace
from .base import LanguageAdapter

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({
    ".git", ".hg", ".svn", "__pycache__", ".venv", "venv", "env", ".env",
    "node_modules", ".tox", ".nox", ".mypy_cache", ".pytest_cache",
    ".ruff_cache", "build", "dist", ".eggs", "site-packages",
})

ENUM_BASES = frozenset({"Enum", "IntEnum", "StrEnum", "Flag", "IntFlag"})
INTERFACE_BASES = frozenset({"Protocol", "ABC"})
PROPERTY_DECORATORS = frozenset({"property", "cached_property", "functools.cached_property"})

_CONSTANT_NAME = re.compile(r"^_*[A-Z][A-Z0-9_]*$")

# find_symbol kind filter: a family matches any of its members
_KIND_FAMILIES = {
    SymbolKind.CLASS: {SymbolKind.CLASS, SymbolKind.ENUM, SymbolKind.INTERFACE},
    SymbolKind.FUNCTION: {SymbolKind.FUNCTION, SymbolKind.METHOD},
    SymbolKind.METHOD: {SymbolKind.FUNCTION, SymbolKind.METHOD},
    SymbolKind.VARIABLE: {SymbolKind.VARIABLE, SymbolKind.CONSTANT, SymbolKind.FIELD},
}

PREVIEW_LIMIT = 100


def kind_matches(actual: SymbolKind, wanted: SymbolKind | None) -> bool:
    if wanted is None:
        return True
    return actual in _KIND_FAMILIES.get(wanted, {wanted})


def get_visibility(name: str) -> str:
    """Determine visibility from Python naming conventions."""
    if name.startswith("__") and name.endswith("__"):
        return "dunder"
    elif name.startswith("__"):
        return "private"
    elif name.startswith("_"):
        return "protected"
    return "public"


def get_decorators(node) -> list[str]:
    """Extract decorator names from a node."""
    decorators = []
    for dec in getattr(node, "decorator_list", []):
        if isinstance(dec, ast.Call):
            dec = dec.func
        if isinstance(dec, ast.Name):
            decorators.append(dec.id)
        elif isinstance(dec, ast.Attribute):
            decorators.append(ast.unparse(dec))
    return decorators


def unparse(node) -> str | None:
    if node is None:
        return None
    return ast.unparse(node)


def base_name(node) -> str | None:
    """Simple name of a base class expression (``pkg.Base[T]`` -> ``Base``)."""
    if isinstance(node, ast.Subscript):
        node = node.value
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def module_name_for(root: str, path: str) -> str:
    """Dotted module path of ``path`` relative to the workspace root."""
    try:
        relative = Path(path).relative_to(root)
    except ValueError:
        return Path(path).stem
    parts = list(relative.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    return ".".join(parts) or Path(root).name


def _preview(text: str) -> str:
    text = text.strip()
    return text if len(text) <= PREVIEW_LIMIT else text[:PREVIEW_LIMIT] + "..."


@dataclass
class Occurrence:
    """An identifier token: a use or the name of a declaration."""
    name: str
    line: int
    column: int
    end_column: int

    def contains(self, line: int, column: int) -> bool:
        return self.line == line and self.column <= column < self.end_column


@dataclass
class ParsedModule:
    path: str
    mtime: float
    module_name: str
    lines: LineIndex
    error: str | None = None
    imports: list[ImportInfo] = field(default_factory=list)
    outline: list[SymbolNode] = field(default_factory=list)
    definitions: list[Symbol] = field(default_factory=list)
    parameters: list[tuple[Symbol, Location]] = field(default_factory=list)  # (param, enclosing function span)
    classes: list[Symbol] = field(default_factory=list)
    occurrences: list[Occurrence] = field(default_factory=list)

    @property
    def package_name(self) -> str | None:
        package, _, _ = self.module_name.rpartition(".")
        return package or None


class ModuleParser:
    """Turns one parsed file into symbols, imports and identifier occurrences."""

    def __init__(self, module: ParsedModule, language: str):
        self.module = module
        self.language = language
        self.lines = module.lines

    # ----- positions -----

    def _column(self, line: int, byte_column: int) -> int:
        # ast columns are UTF-8 byte offsets
        text = self.lines.line_text(line) if line < self.lines.line_count else ""
        return len(text.encode("utf-8")[:byte_column].decode("utf-8", errors="ignore"))

    def _span(self, node) -> Location:
        line = node.lineno - 1
        end_line = (node.end_lineno or node.lineno) - 1
        start = self.lines.line_start(line) + self._column(line, node.col_offset)
        end_column = self._column(end_line, node.end_col_offset or 0)
        end = self.lines.line_start(end_line) + end_column
        return Location(
            file_path=self.module.path,
            line=line,
            column=self._column(line, node.col_offset),
            end_line=end_line,
            end_column=end_column,
            preview=_preview(self.lines.text[start:end]),
        )

    def _token(self, name: str, line: int, column: int) -> Location:
        return Location(
            file_path=self.module.path,
            line=line,
            column=column,
            end_line=line,
            end_column=column + len(name),
            preview=name,
        )

    def _add_occurrence(self, name: str, line: int, column: int):
        self.module.occurrences.append(Occurrence(name, line, column, column + len(name)))

    def _declaration_name(self, node, keyword: str) -> Location:
        line = node.lineno - 1
        text = self.lines.line_text(line)
        match = re.compile(rf"\b{keyword}\s+({re.escape(node.name)})\b").search(
            text, self._column(line, node.col_offset)
        )
        column = match.start(1) if match else self._column(line, node.col_offset)
        self._add_occurrence(node.name, line, column)
        return self._token(node.name, line, column)

    # ----- entry point -----

    def parse(self, tree: ast.Module):
        self.module.outline = self._body(tree.body, scope=[], in_class=False)
        self._collect_imports(tree)
        self._collect_occurrences(tree)

    def _qualified(self, scope: list[str], name: str) -> str:
        return ".".join([self.module.module_name, *scope, name])

    def _body(
        self, body: list, scope: list[str], in_class: bool, in_function: bool = False
    ) -> list[SymbolNode]:
        nodes = []
        for stmt in body:
            if isinstance(stmt, ast.ClassDef):
                nodes.append(self._class(stmt, scope))
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                nodes.append(self._function(stmt, scope, in_class))
            elif isinstance(stmt, (ast.Assign, ast.AnnAssign)) and not in_function:
                nodes.extend(self._assignment(stmt, scope, in_class))
            elif isinstance(stmt, ast.If):
                nodes.extend(self._body(stmt.body, scope, in_class, in_function))
                nodes.extend(self._body(stmt.orelse, scope, in_class, in_function))
            elif isinstance(stmt, ast.Try):
                for block in (stmt.body, stmt.orelse, stmt.finalbody):
                    nodes.extend(self._body(block, scope, in_class, in_function))
                for handler in stmt.handlers:
                    nodes.extend(self._body(handler.body, scope, in_class, in_function))
        return nodes

    def _class(self, node: ast.ClassDef, scope: list[str]) -> SymbolNode:
        bases = {base_name(b) for b in node.bases}
        metaclass = next((unparse(k.value) for k in node.keywords if k.arg == "metaclass"), None)
        if bases & ENUM_BASES:
            kind = SymbolKind.ENUM
        elif bases & INTERFACE_BASES or (metaclass and metaclass.endswith("ABCMeta")):
            kind = SymbolKind.INTERFACE
        else:
            kind = SymbolKind.CLASS

        super_types = [unparse(b) for b in node.bases]
        signature = f"class {node.name}({', '.join(super_types)})" if super_types else f"class {node.name}"
        symbol = Symbol(
            name=node.name,
            kind=kind,
            language=self.language,
            qualified_name=self._qualified(scope, node.name),
            signature=signature,
            documentation=ast.get_docstring(node),
            location=self._span(node),
            name_location=self._declaration_name(node, "class"),
            modifiers=[get_visibility(node.name)],
            decorators=get_decorators(node) or None,
            super_types=super_types or None,
        )
        self.module.definitions.append(symbol)
        self.module.classes.append(symbol)

        children = self._body(node.body, [*scope, node.name], in_class=True)
        return SymbolNode(symbol=symbol, children=children)

    def _parameters(self, node) -> list[Parameter]:
        args = node.args
        positional = [*args.posonlyargs, *args.args]
        defaults = [None] * (len(positional) - len(args.defaults)) + list(args.defaults)

        params = []
        for arg, default in zip(positional, defaults):
            params.append((arg, "", default))
        if args.vararg:
            params.append((args.vararg, "*", None))
        for arg, default in zip(args.kwonlyargs, args.kw_defaults):
            params.append((arg, "", default))
        if args.kwarg:
            params.append((args.kwarg, "**", None))

        function_span = self._span(node)
        result = []
        for arg, prefix, default in params:
            parameter = Parameter(
                name=prefix + arg.arg,
                type=unparse(arg.annotation),
                default_value=unparse(default),
                is_optional=default is not None or bool(prefix),
            )
            result.append(parameter)

            line = arg.lineno - 1
            column = self._column(line, arg.col_offset)
            self.module.parameters.append((
                Symbol(
                    name=arg.arg,
                    kind=SymbolKind.PARAMETER,
                    language=self.language,
                    location=self._span(arg),
                    name_location=self._token(arg.arg, line, column),
                    return_type=parameter.type,
                ),
                function_span,
            ))
        return result

    @staticmethod
    def _signature(node, parameters: list[Parameter]) -> str:
        rendered = []
        for param in parameters:
            text = param.name
            if param.type:
                text += f": {param.type}"
            if param.default_value is not None:
                text += f" = {param.default_value}"
            rendered.append(text)
        prefix = "async " if isinstance(node, ast.AsyncFunctionDef) else ""
        returns = f" -> {unparse(node.returns)}" if node.returns is not None else ""
        return f"{prefix}def {node.name}({', '.join(rendered)}){returns}"

    def _function(self, node, scope: list[str], in_class: bool) -> SymbolNode:
        decorators = get_decorators(node)
        if in_class and (
            PROPERTY_DECORATORS.intersection(decorators)
            or any(d.endswith((".setter", ".getter", ".deleter")) for d in decorators)
        ):
            kind = SymbolKind.PROPERTY
        elif in_class:
            kind = SymbolKind.METHOD
        else:
            kind = SymbolKind.FUNCTION

        modifiers = [get_visibility(node.name)]
        if isinstance(node, ast.AsyncFunctionDef):
            modifiers.append("async")
        if "staticmethod" in decorators:
            modifiers.append("static")
        if "classmethod" in decorators:
            modifiers.append("classmethod")
        if "abstractmethod" in decorators or "abc.abstractmethod" in decorators:
            modifiers.append("abstract")

        parameters = self._parameters(node)
        symbol = Symbol(
            name=node.name,
            kind=kind,
            language=self.language,
            qualified_name=self._qualified(scope, node.name),
            signature=self._signature(node, parameters),
            documentation=ast.get_docstring(node),
            location=self._span(node),
            name_location=self._declaration_name(node, "def"),
            return_type=unparse(node.returns),
            parameters=parameters,
            modifiers=modifiers,
            decorators=decorators or None,
        )
        self.module.definitions.append(symbol)

        # Nested defs are indexed for lookups but kept out of the outline
        self._body(node.body, [*scope, node.name], in_class=False, in_function=True)
        return SymbolNode(symbol=symbol)

    def _assignment(self, node, scope: list[str], in_class: bool) -> list[SymbolNode]:
        targets = node.targets if isinstance(node, ast.Assign) else [node.target]
        annotation = unparse(node.annotation) if isinstance(node, ast.AnnAssign) else None

        names = []
        for target in targets:
            if isinstance(target, ast.Name):
                names.append(target)
            elif isinstance(target, (ast.Tuple, ast.List)):
                names.extend(e for e in target.elts if isinstance(e, ast.Name))

        nodes = []
        for target in names:
            if _CONSTANT_NAME.match(target.id):
                kind = SymbolKind.CONSTANT
            elif in_class:
                kind = SymbolKind.FIELD
            else:
                kind = SymbolKind.VARIABLE

            line = target.lineno - 1
            column = self._column(line, target.col_offset)
            symbol = Symbol(
                name=target.id,
                kind=kind,
                language=self.language,
                qualified_name=self._qualified(scope, target.id),
                signature=f"{target.id}: {annotation}" if annotation else None,
                location=self._span(node),
                name_location=self._token(target.id, line, column),
                return_type=annotation,
                modifiers=[get_visibility(target.id)],
            )
            self.module.definitions.append(symbol)
            nodes.append(SymbolNode(symbol=symbol))
        return nodes

    def _collect_imports(self, tree: ast.Module):
        for node in tree.body:
            if isinstance(node, ast.Import):
                for alias in node.names:
                    self.module.imports.append(ImportInfo(
                        module=alias.name,
                        alias=alias.asname,
                        location=self._span(node),
                    ))
            elif isinstance(node, ast.ImportFrom):
                self.module.imports.append(ImportInfo(
                    module="." * node.level + (node.module or ""),
                    names=[alias.asname or alias.name for alias in node.names],
                    location=self._span(node),
                ))

    def _collect_occurrences(self, tree: ast.Module):
        for node in ast.walk(tree):
            if isinstance(node, ast.Name):
                line = node.lineno - 1
                self._add_occurrence(node.id, line, self._column(line, node.col_offset))
            elif isinstance(node, ast.Attribute) and node.end_lineno is not None:
                line = node.end_lineno - 1
                end = self._column(line, node.end_col_offset)
                self._add_occurrence(node.attr, line, end - len(node.attr))
            elif isinstance(node, ast.arg):
                line = node.lineno - 1
                self._add_occurrence(node.arg, line, self._column(line, node.col_offset))
            elif isinstance(node, ast.alias) and getattr(node, "lineno", None) and not node.asname:
                visible = node.name.split(".")[0]
                line = node.lineno - 1
                self._add_occurrence(visible, line, self._column(line, node.col_offset))


class ModuleIndex:
    """mtime-keyed cache of the parsed Python modules of one workspace."""

    def __init__(self, root: str, extensions: frozenset[str], language: str = "python"):
        self.root = root
        self.extensions = extensions
        self.language = language
        self._modules: dict[str, ParsedModule] = {}
        self._lock = threading.Lock()

    def _source_files(self):
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in SKIP_DIRS and not d.endswith(".egg-info")
            )
            for filename in sorted(filenames):
                if Path(filename).suffix.lstrip(".") in self.extensions:
                    yield os.path.join(dirpath, filename)

    def _parse(self, path: str, mtime: float) -> ParsedModule | None:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Skipping unreadable file {path}: {e}")
            return None

        module = ParsedModule(
            path=path,
            mtime=mtime,
            module_name=module_name_for(self.root, path),
            lines=LineIndex(text),
        )
        try:
            tree = ast.parse(text, filename=path)
        except SyntaxError as e:
            module.error = f"Syntax error in {path}: {e.msg} (line {e.lineno})"
            logger.debug(module.error)
            return module

        ModuleParser(module, self.language).parse(tree)
        return module

    def _load_locked(self, path: str) -> ParsedModule | None:
        try:
            mtime = os.stat(path).st_mtime
        except OSError:
            self._modules.pop(path, None)
            return None
        cached = self._modules.get(path)
        if cached is not None and cached.mtime == mtime:
            return cached
        module = self._parse(path, mtime)
        if module is None:
            self._modules.pop(path, None)
        else:
            self._modules[path] = module
        return module

    def load(self, path: str) -> ParsedModule | None:
        """Parsed module for one file, re-parsing it if it changed on disk."""
        path = os.path.abspath(path)
        with self._lock:
            return self._load_locked(path)

    def refresh(self) -> list[ParsedModule]:
        """Bring the cache in line with the tree on disk and return every module."""
        with self._lock:
            seen = set()
            modules = []
            for path in self._source_files():
                seen.add(path)
                module = self._load_locked(path)
                if module is not None:
                    modules.append(module)
            for stale in set(self._modules) - seen:
                if stale.startswith(self.root + os.sep):
                    del self._modules[stale]
            logger.debug(f"Indexed {len(modules)} Python module(s) under {self.root}")
            return modules


class PythonLanguageAdapter(LanguageAdapter):
    language_id = "python"
    display_name = "Python"
    extensions = frozenset({"py", "pyi"})

    def __init__(self):
        self._indexes: dict[str, ModuleIndex] = {}
        self._lock = threading.Lock()

    def _index(self, workspace: Workspace) -> ModuleIndex:
        with self._lock:
            index = self._indexes.get(workspace.root)
            if index is None:
                index = ModuleIndex(workspace.root, self.extensions, self.language_id)
                self._indexes[workspace.root] = index
            return index

    async def prepare(self, workspace: Workspace) -> None:
        with workspace.indexing():
            modules = await asyncio.to_thread(self._index(workspace).refresh)
        logger.info(f"Python index ready for {workspace.root}: {len(modules)} module(s)")

    async def release(self, workspace: Workspace) -> None:
        with self._lock:
            self._indexes.pop(workspace.root, None)

    async def close(self) -> None:
        with self._lock:
            self._indexes.clear()

    async def _modules(self, workspace: Workspace) -> list[ParsedModule]:
        return await asyncio.to_thread(self._index(workspace).refresh)

    async def _module(self, workspace: Workspace, file_path: str) -> ParsedModule:
        if not Path(file_path).is_file():
            raise SourceFileNotFoundError(f"File not found: {file_path}")
        module = await asyncio.to_thread(self._index(workspace).load, file_path)
        if module is None:
            raise SourceFileNotFoundError(f"File not readable: {file_path}")
        return module

    @staticmethod
    def _parsed(module: ParsedModule) -> ParsedModule:
        if module.error:
            raise BackendError(module.error)
        return module

    async def find_symbol(
        self, workspace: Workspace, name: str, kind: SymbolKind | None = None
    ) -> list[Symbol]:
        results = []
        for module in await self._modules(workspace):
            results.extend(
                symbol for symbol in module.definitions
                if symbol.name == name and kind_matches(symbol.kind, kind)
            )
        return results

    def _occurrence_at(self, module: ParsedModule, offset: int) -> Occurrence | None:
        position = module.lines.position_of(offset)
        if position is None:
            raise InvalidPositionError(f"Invalid offset {offset} for file: {module.path}")
        line, column = position
        return next((o for o in module.occurrences if o.contains(line, column)), None)

    # ----- rope -----

    @staticmethod
    def _resource_path(workspace: Workspace, project: Project, resource) -> str:
        # rope addresses project files by their realpath; report them under the workspace root
        if resource.project is project:
            return os.path.join(workspace.root, *resource.path.split("/"))
        return resource.real_path

    def _rope_references(
        self, workspace: Workspace, module: ParsedModule, target: Occurrence, modules: list[ParsedModule]
    ) -> list[Location]:
        project = Project(workspace.root, ropefolder=None)
        try:
            resource = libutils.path_to_resource(project, module.path)
            offset = LineIndex(resource.read()).offset_for(target.line, target.column)
            resources = [libutils.path_to_resource(project, m.path) for m in modules if not m.error]
            found = findit.find_occurrences(project, resource, offset, resources=resources)

            texts: dict[str, LineIndex] = {}
            locations = []
            for occurrence in found:
                path = self._resource_path(workspace, project, occurrence.resource)
                lines = texts.get(path)
                if lines is None:
                    lines = texts[path] = LineIndex(occurrence.resource.read())
                start, end = occurrence.region
                line, column = lines.position_of(start)
                end_line, end_column = lines.position_of(end)
                locations.append(Location(
                    file_path=path,
                    line=line,
                    column=column,
                    end_line=end_line,
                    end_column=end_column,
                    preview=_preview(lines.line_text(line)),
                ))
            return locations
        finally:
            project.close()

    def _rope_definition(
        self, workspace: Workspace, module: ParsedModule, target: Occurrence
    ) -> tuple[str, int] | None:
        """(path, 0-based line) of the binding ``target`` resolves to, if rope can tell."""
        project = Project(workspace.root, ropefolder=None)
        try:
            resource = libutils.path_to_resource(project, module.path)
            source = resource.read()
            offset = LineIndex(source).offset_for(target.line, target.column)
            definition, lineno = codeassist.get_definition_location(
                project, source, offset, resource=resource
            )
            if definition is None or lineno is None:
                return None
            return self._resource_path(workspace, project, definition), lineno - 1
        finally:
            project.close()

    async def find_references(
        self, workspace: Workspace, file_path: str, offset: int
    ) -> list[Location]:
        module = self._parsed(await self._module(workspace, file_path))
        target = self._occurrence_at(module, offset)
        if target is None:
            raise SymbolNotFoundError(f"No symbol at {file_path} offset {offset}")

        modules = await self._modules(workspace)
        if all(m.path != module.path for m in modules):
            modules.append(module)

        try:
            locations = await asyncio.to_thread(
                self._rope_references, workspace, module, target, modules
            )
        except RopeError as e:
            logger.warning(f"Failed to find references at {file_path}:{offset}: {e}")
            raise BackendError(f"Failed to find references: {e}") from e
        locations.sort(key=lambda loc: (loc.file_path, loc.line, loc.column))
        return locations

    @staticmethod
    def _declared_at(module: ParsedModule, name: str, line: int, column: int | None = None) -> Symbol | None:
        candidates = [*module.definitions, *(param for param, _scope in module.parameters)]
        for symbol in candidates:
            loc = symbol.name_location
            if symbol.name != name or loc is None or loc.line != line:
                continue
            if column is None or loc.column == column:
                return symbol
        return None

    def _local_binding(self, module: ParsedModule, name: str, line: int) -> Symbol:
        """A function-local name, which the index does not keep as a definition."""
        text = module.lines.line_text(line)
        match = re.search(rf"\b{re.escape(name)}\b", text)
        column = match.start() if match else 0
        token = Location(
            file_path=module.path,
            line=line,
            column=column,
            end_line=line,
            end_column=column + len(name),
            preview=_preview(text),
        )
        return Symbol(
            name=name,
            kind=SymbolKind.VARIABLE,
            language=self.language_id,
            location=token,
            name_location=token,
        )

    async def get_symbol_info(
        self, workspace: Workspace, file_path: str, offset: int
    ) -> Symbol | None:
        module = self._parsed(await self._module(workspace, file_path))
        target = self._occurrence_at(module, offset)
        if target is None:
            return None

        declared = self._declared_at(module, target.name, target.line, target.column)
        if declared is not None:
            return declared

        try:
            found = await asyncio.to_thread(self._rope_definition, workspace, module, target)
        except RopeError as e:
            logger.warning(f"Failed to get symbol info at {file_path}:{offset}: {e}")
            raise BackendError(f"Failed to get symbol info: {e}") from e
        if found is None:
            return None

        path, line = found
        definition_module = await asyncio.to_thread(self._index(workspace).load, path)
        if definition_module is None or line >= definition_module.lines.line_count:
            return None
        return (
            self._declared_at(definition_module, target.name, line)
            or self._local_binding(definition_module, target.name, line)
        )

    async def get_file_outline(self, workspace: Workspace, file_path: str) -> FileOutline:
        module = self._parsed(await self._module(workspace, file_path))
        return FileOutline(
            file_path=module.path,
            language=self.language_id,
            package_name=module.package_name,
            module_name=module.module_name,
            imports=list(module.imports),
            symbols=list(module.outline),
        )

    async def get_type_hierarchy(
        self, workspace: Workspace, type_name: str
    ) -> TypeHierarchy | None:
        classes = [c for m in await self._modules(workspace) for c in m.classes]
        simple = type_name.rsplit(".", 1)[-1]

        candidates = [c for c in classes if c.name == simple]
        target = next((c for c in candidates if c.qualified_name == type_name), None)
        if target is None and candidates:
            target = candidates[0]
        if target is None:
            return None

        by_name: dict[str, Symbol] = {}
        for cls in classes:
            by_name.setdefault(cls.name, cls)

        def ref(name: str, symbol: Symbol | None) -> TypeRef:
            if symbol is None:
                return TypeRef(name=name)
            return TypeRef(name=symbol.name, qualified_name=symbol.qualified_name, location=symbol.location)

        super_types = []
        for expression in target.super_types or []:
            name = expression.split("[", 1)[0].rsplit(".", 1)[-1]
            super_types.append(ref(name, by_name.get(name)))

        sub_types = []
        seen = {target.qualified_name}
        pending = [target.name]
        while pending:
            current = pending.pop(0)
            for cls in classes:
                if cls.qualified_name in seen:
                    continue
                bases = {e.split("[", 1)[0].rsplit(".", 1)[-1] for e in cls.super_types or []}
                if current in bases:
                    seen.add(cls.qualified_name)
                    sub_types.append(ref(cls.name, cls))
                    pending.append(cls.name)

        return TypeHierarchy(
            type_name=target.name,
            qualified_name=target.qualified_name,
            kind=target.kind,
            super_types=super_types,
            sub_types=sub_types,
        )

    async def offset_for(
        self, workspace: Workspace, file_path: str, line: int, column: int
    ) -> int | None:
        module = await self._module(workspace, file_path)
        return module.lines.offset_for(line, column)

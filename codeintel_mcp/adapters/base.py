from abc import ABC, abstractmethod
from pathlib import Path

from ..models import FileOutline, Location, Symbol, SymbolKind, TypeHierarchy
from ..workspaces import Workspace


class LanguageAdapter(ABC):
    """Abstract base class for language backends.

    Every operation is a read-only query. Lines, columns and offsets are
    0-based in both directions; adapters never convert to the client's
    1-based convention.
    """

    language_id: str = ""
    display_name: str = ""
    extensions: frozenset[str] = frozenset()

    def is_available(self) -> bool:
        """Whether the backend can answer queries on this machine."""
        return True

    def supports(self, file_path: str) -> bool:
        return Path(file_path).suffix.lower().lstrip(".") in self.extensions

    async def prepare(self, workspace: Workspace) -> None:
        """Warm up whatever index the backend keeps for ``workspace``."""

    async def release(self, workspace: Workspace) -> None:
        """Drop per-workspace state when ``workspace`` is closed."""

    async def close(self) -> None:
        """Release every resource held by the adapter."""

    @abstractmethod
    async def find_symbol(
        self, workspace: Workspace, name: str, kind: SymbolKind | None = None
    ) -> list[Symbol]:
        """Find declarations named ``name``, optionally restricted to ``kind``."""

    @abstractmethod
    async def find_references(
        self, workspace: Workspace, file_path: str, offset: int
    ) -> list[Location]:
        """All references to the element at ``offset``.

        Raises:
            SymbolNotFoundError: nothing resolves at ``offset``
        """

    @abstractmethod
    async def get_symbol_info(
        self, workspace: Workspace, file_path: str, offset: int
    ) -> Symbol | None:
        """Details of the symbol at ``offset``, or None if there is none."""

    @abstractmethod
    async def get_file_outline(self, workspace: Workspace, file_path: str) -> FileOutline:
        """Imports and the declaration tree of a file."""

    @abstractmethod
    async def get_type_hierarchy(
        self, workspace: Workspace, type_name: str
    ) -> TypeHierarchy | None:
        """Direct supertypes and known subtypes of ``type_name``, or None if unknown."""

    @abstractmethod
    async def offset_for(
        self, workspace: Workspace, file_path: str, line: int, column: int
    ) -> int | None:
        """Offset of 0-based (line, column), or None when outside the document."""

"""Open workspaces (project roots) and resolution of the one a tool call targets."""

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path

from .errors import ProjectNotFoundError
from .models import ProjectInfo

logger = logging.getLogger(__name__)


def normalize_root(path: str) -> str:
    """Canonical form used to compare workspace roots."""
    trimmed = path.rstrip("/\\") or path
    return os.path.normpath(os.path.abspath(os.path.expanduser(trimmed)))


class Workspace:
    """A single source tree that backends index independently."""

    def __init__(self, root: str, name: str | None = None):
        self.root = normalize_root(root)
        self.name = name or Path(self.root).name or self.root
        self._indexing = 0
        self._lock = threading.Lock()

    @property
    def is_indexing(self) -> bool:
        return self._indexing > 0

    @contextmanager
    def indexing(self):
        """Mark the workspace as (re)building its index for the duration of the block."""
        with self._lock:
            self._indexing += 1
        try:
            yield self
        finally:
            with self._lock:
                self._indexing -= 1

    def __repr__(self) -> str:
        return f"Workspace({self.root!r})"


class WorkspaceManager:
    """Tracks open workspaces and which one is active.

    Nothing is cached across calls: every resolution looks at the current set,
    which may change while the server runs.
    """

    def __init__(self, roots: list[str] | None = None):
        self._workspaces: dict[str, Workspace] = {}
        self._active: str | None = None
        self._lock = threading.Lock()
        for root in roots or []:
            self.open(root)

    def open(self, root: str, activate: bool = False) -> Workspace:
        key = normalize_root(root)
        with self._lock:
            workspace = self._workspaces.get(key)
            if workspace is None:
                workspace = Workspace(key)
                self._workspaces[key] = workspace
                logger.info(f"Opened workspace {workspace.root}")
            if activate:
                self._active = key
        return workspace

    def close(self, root: str) -> Workspace | None:
        key = normalize_root(root)
        with self._lock:
            workspace = self._workspaces.pop(key, None)
            if self._active == key:
                self._active = None
        if workspace is not None:
            logger.info(f"Closed workspace {workspace.root}")
        return workspace

    def activate(self, root: str) -> Workspace:
        key = normalize_root(root)
        with self._lock:
            if key not in self._workspaces:
                raise ProjectNotFoundError(f"Project not found: {root}")
            self._active = key
            return self._workspaces[key]

    def all(self) -> list[Workspace]:
        with self._lock:
            return list(self._workspaces.values())

    def find(self, path: str) -> Workspace | None:
        with self._lock:
            return self._workspaces.get(normalize_root(path))

    def active(self) -> Workspace | None:
        """The explicitly activated workspace, else the first one opened."""
        with self._lock:
            if self._active is not None and self._active in self._workspaces:
                return self._workspaces[self._active]
            return next(iter(self._workspaces.values()), None)

    def resolve(self, project_path: str | None) -> Workspace:
        if project_path is not None:
            workspace = self.find(project_path)
            if workspace is None:
                raise ProjectNotFoundError(f"Project not found: {project_path}")
            return workspace
        workspace = self.active()
        if workspace is None:
            raise ProjectNotFoundError("No active project")
        return workspace

    def list_projects(self) -> list[ProjectInfo]:
        active = self.active()
        return [
            ProjectInfo(
                name=workspace.name,
                base_path=workspace.root,
                is_active=workspace is active,
            )
            for workspace in self.all()
        ]

import logging

from .adapters import AdapterRegistry, build_registry
from .config import ServerConfig
from .workspaces import Workspace, WorkspaceManager

logger = logging.getLogger(__name__)


class AppContext:
    """Everything a request handler needs: config, adapters and open workspaces."""

    def __init__(
        self,
        config: ServerConfig | None = None,
        registry: AdapterRegistry | None = None,
        workspaces: WorkspaceManager | None = None,
    ):
        self.config = config or ServerConfig()
        self.registry = registry if registry is not None else build_registry(self.config)
        self.workspaces = (
            workspaces if workspaces is not None else WorkspaceManager(self.config.workspaces)
        )

    async def prepare(self, workspace: Workspace):
        """Let every adapter warm up its index for ``workspace``."""
        for adapter in self.registry.all_adapters():
            try:
                await adapter.prepare(workspace)
            except Exception as e:
                logger.warning(
                    f"{adapter.display_name} failed to prepare {workspace.root}: {e}",
                    exc_info=True,
                )

    async def open_workspace(self, root: str, activate: bool = False) -> Workspace:
        workspace = self.workspaces.open(root, activate=activate)
        await self.prepare(workspace)
        return workspace

    async def close_workspace(self, root: str) -> Workspace | None:
        workspace = self.workspaces.close(root)
        if workspace is not None:
            for adapter in self.registry.all_adapters():
                await adapter.release(workspace)
        return workspace

    async def close(self):
        for adapter in self.registry.all_adapters():
            await adapter.close()

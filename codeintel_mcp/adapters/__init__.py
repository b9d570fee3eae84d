"""Language adapters and the registry that selects between them."""

import logging

from ..config import ServerConfig
from .base import LanguageAdapter
from .lsp_adapter import SWIFT_SERVER, LspLanguageAdapter
from .python_adapter import PythonLanguageAdapter
from .registry import AdapterRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "AdapterRegistry",
    "LanguageAdapter",
    "LspLanguageAdapter",
    "PythonLanguageAdapter",
    "build_registry",
    "create_adapter",
]


def create_adapter(adapter_id: str, config: ServerConfig) -> LanguageAdapter | None:
    if adapter_id == "python":
        return PythonLanguageAdapter()
    if adapter_id == "swift":
        return LspLanguageAdapter(SWIFT_SERVER, "Swift", config.harness)
    return None


def build_registry(config: ServerConfig) -> AdapterRegistry:
    """Registry holding one adapter per id listed in ``config.adapters``."""
    registry = AdapterRegistry()
    for adapter_id in config.adapters:
        adapter = create_adapter(adapter_id.lower(), config)
        if adapter is None:
            logger.warning(f"Unknown language adapter '{adapter_id}', skipping")
            continue
        if not adapter.is_available():
            logger.info(f"{adapter.display_name} backend not found; {adapter_id} queries will return no results")
        registry.register(adapter)
    return registry

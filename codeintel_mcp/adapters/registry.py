"""Registry of language adapters, keyed by language id.

Populated explicitly at process start (see ``build_registry``) and mutable
afterwards; tool schemas are computed from whatever is registered right now.
"""

import logging
import threading
from pathlib import Path
from typing import Callable

from .base import LanguageAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    def __init__(self, adapters: list[LanguageAdapter] | None = None):
        self._adapters: dict[str, LanguageAdapter] = {}
        self._lock = threading.Lock()
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: LanguageAdapter) -> None:
        key = adapter.language_id.lower()
        with self._lock:
            if key in self._adapters:
                logger.warning(f"Replacing language adapter '{key}'")
            self._adapters[key] = adapter

    def unregister(self, language_id: str) -> LanguageAdapter | None:
        with self._lock:
            return self._adapters.pop(language_id.lower(), None)

    def all_adapters(self) -> list[LanguageAdapter]:
        with self._lock:
            return list(self._adapters.values())

    def find(self, predicate: Callable[[LanguageAdapter], bool]) -> list[LanguageAdapter]:
        return [adapter for adapter in self.all_adapters() if predicate(adapter)]

    def get_by_extension(self, extension: str) -> LanguageAdapter | None:
        ext = extension.lower().lstrip(".")
        if not ext:
            return None
        return next((a for a in self.all_adapters() if ext in a.extensions), None)

    def get_by_language(self, language_id: str) -> LanguageAdapter | None:
        with self._lock:
            return self._adapters.get(language_id.lower())

    def get_for_file(self, file_path: str) -> LanguageAdapter | None:
        return next((a for a in self.all_adapters() if a.supports(file_path)), None)

    def supported_languages(self) -> list[str]:
        return [adapter.language_id for adapter in self.all_adapters()]

    def supported_extensions(self) -> list[str]:
        extensions: set[str] = set()
        for adapter in self.all_adapters():
            extensions.update(adapter.extensions)
        return sorted(extensions)

    def log_loaded_adapters(self) -> None:
        adapters = self.all_adapters()
        if not adapters:
            logger.warning("No language adapters loaded!")
        else:
            logger.info(
                f"Loaded {len(adapters)} language adapter(s): "
                f"{[a.language_id for a in adapters]}"
            )


def file_extension(file_path: str) -> str:
    return Path(file_path).suffix.lower().lstrip(".")

"""Adapter-kind registry used to turn provider configuration into live adapters."""

from __future__ import annotations

import logging
from importlib import metadata
from threading import RLock
from typing import Any

from .base import ProviderAdapter

ENTRY_POINT_GROUP = "trade_council.providers"

logger = logging.getLogger(__name__)


def _normalize_kind(kind: str) -> str:
    normalized = kind.strip().lower()
    if not normalized:
        raise ValueError("Adapter kind must be a non-empty string.")
    return normalized


class ProviderRegistry:
    """Process-wide mapping of adapter kinds (``ProviderSpec.adapter``) to classes.

    The built-in ``openai`` kind registers itself on import. Plugins add kinds
    through the ``trade_council.providers`` entry-point group, which is read
    once when the singleton is first built.
    """

    _instance: ProviderRegistry | None = None
    _instance_lock = RLock()

    def __new__(cls) -> ProviderRegistry:
        with cls._instance_lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._adapters = {}
                instance._lock = RLock()
                cls._instance = instance
                instance._load_plugins()
        return cls._instance

    _adapters: dict[str, type[ProviderAdapter]]
    _lock: RLock

    def register_adapter(self, kind: str, adapter_class: type[ProviderAdapter]) -> None:
        """Bind *kind* to *adapter_class*; re-registering the same class is a no-op."""
        kind = _normalize_kind(kind)
        if not issubclass(adapter_class, ProviderAdapter):
            raise TypeError("adapter_class must subclass ProviderAdapter.")
        with self._lock:
            current = self._adapters.setdefault(kind, adapter_class)
        if current is not adapter_class:
            raise ValueError(f"Adapter kind '{kind}' is already bound to {current.__name__}.")

    def create(self, kind: str, **settings: Any) -> ProviderAdapter:
        """Build an adapter of *kind* from endpoint, model and credential settings."""
        kind = _normalize_kind(kind)
        with self._lock:
            adapter_class = self._adapters.get(kind)
        if adapter_class is None:
            known = ", ".join(self.list_adapters()) or "none"
            raise KeyError(f"Unknown adapter kind '{kind}' (registered: {known})")
        return adapter_class(**settings)

    def list_adapters(self) -> list[str]:
        with self._lock:
            return sorted(self._adapters)

    def _load_plugins(self) -> None:
        for entry_point in metadata.entry_points(group=ENTRY_POINT_GROUP):
            try:
                target = entry_point.load()
                self.register_adapter(entry_point.name, target)
            except Exception as e:
                logger.warning("Skipping provider plugin %r: %s", entry_point.name, e)


def get_registry() -> ProviderRegistry:
    """Return the global provider registry."""
    return ProviderRegistry()


__all__ = ["ENTRY_POINT_GROUP", "ProviderRegistry", "get_registry"]

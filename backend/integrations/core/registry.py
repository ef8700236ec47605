# backend/integrations/core/registry.py
from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, Iterable, List

from core.errors import UnsupportedProviderError

from integrations.core.item_types import Provider

if TYPE_CHECKING:
    from integrations.base.protocols import IntegrationAdapter

AdapterFactory = Callable[..., "IntegrationAdapter"]


class AdapterRegistry:
    """Maps each provider to the constructor of its adapter."""

    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, provider: str, factory: AdapterFactory) -> None:
        key = Provider.normalize(provider).value
        self._factories[key] = factory

    def create(self, provider: str, *args, **kwargs) -> IntegrationAdapter:
        try:
            key = Provider.normalize(provider).value
        except ValueError:
            raise UnsupportedProviderError(provider)
        if key not in self._factories:
            raise UnsupportedProviderError(provider)
        return self._factories[key](*args, **kwargs)

    def factory(self, provider: str) -> AdapterFactory:
        try:
            return self._factories[Provider.normalize(provider).value]
        except (KeyError, ValueError):
            raise UnsupportedProviderError(provider)

    def supports(self, provider: str) -> bool:
        try:
            return Provider.normalize(provider).value in self._factories
        except ValueError:
            return False

    def validate(self, required: Iterable[str] = tuple(p.value for p in Provider)) -> None:
        """Fail at startup when a provider has no constructor registered."""
        missing = [name for name in required if not self.supports(name)]
        if missing:
            raise RuntimeError(f"No adapter registered for: {', '.join(missing)}")

    def list_providers(self) -> List[str]:
        return list(self._factories.keys())

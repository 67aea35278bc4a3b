"""Provider registry: one adapter instance per provider."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from askai.core.exceptions import UnregisteredProvider
from askai.gateway.types import Provider
from askai.gateway.vendor_adapters import ADAPTER_REGISTRY, DEFAULT_TIMEOUT_SECONDS, BaseVendorAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Maps a Provider to its adapter. Read-only after construction."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        adapters: Mapping[Provider, BaseVendorAdapter] | None = None,
    ):
        """
        Args:
            timeout: Per-request timeout handed to every adapter built here
            adapters: Explicit adapter instances; replaces the default table
        """
        if adapters is None:
            adapters = {provider: cls(timeout=timeout) for provider, cls in ADAPTER_REGISTRY.items()}
        self._adapters: dict[Provider, BaseVendorAdapter] = dict(adapters)

        missing = [p.value for p in Provider if p not in self._adapters]
        if missing:
            logger.warning("No adapter registered for providers: %s", ", ".join(missing))

    def get(self, provider: Provider) -> BaseVendorAdapter:
        """Resolve the adapter for a provider or raise UnregisteredProvider."""
        adapter = self._adapters.get(provider)
        if adapter is None:
            name = provider.display_name if isinstance(provider, Provider) else str(provider)
            raise UnregisteredProvider(f"No client registered for provider: {name}")
        return adapter

    def __contains__(self, provider: object) -> bool:
        return provider in self._adapters

    @property
    def providers(self) -> list[Provider]:
        return list(self._adapters)

"""Registry that owns provider instances, one per provider type.

ProviderRegistry   -- lazily constructs, initializes, caches and disposes
                      providers.  The only supported way to obtain one.
get_provider_registry -- process-wide registry used by collaborators.

Concurrency: every cold-path operation on a provider type (build, remove)
holds that type's ``asyncio.Lock``.  Operations on the same type are applied
in lock-acquisition order; ``asyncio.Lock`` wakes waiters FIFO, so a removal
requested while an initialization is in flight runs right after it and
evicts the instance that initialization produced.  Cached lookups take no
lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping

from cloudplane.models.resources import ProviderType
from cloudplane.observability.logging import get_logger
from cloudplane.observability.metrics import provider_initializations_total
from cloudplane.providers.base import CloudProvider
from cloudplane.providers.errors import ProviderNotImplementedError, UnknownProviderError

_log = get_logger("providers.registry")

ProviderFactory = Callable[[], CloudProvider]


def _build_kubernetes_provider() -> CloudProvider:
    from cloudplane.config import load_config
    from cloudplane.providers.kubernetes import KubeClient, KubernetesProvider

    cfg = load_config().kubernetes
    return KubernetesProvider(
        client=KubeClient(
            kubeconfig_path=cfg.kubeconfig_path,
            request_timeout=cfg.request_timeout_seconds,
        ),
        log_tail_lines=cfg.log_tail_lines,
    )


def default_factories() -> dict[ProviderType, ProviderFactory | None]:
    """Construction dispatch for every provider type.

    ``None`` marks a type that is declared but has no backend yet.  GKE
    clusters are reached through kubeconfig contexts, so ``gcp`` is served by
    the Kubernetes provider.
    """
    return {
        ProviderType.GCP: _build_kubernetes_provider,
        ProviderType.AWS: None,
        ProviderType.AZURE: None,
        ProviderType.DIGITAL_OCEAN: None,
    }


class ProviderRegistry:
    """Creates, caches and tears down provider instances keyed by type."""

    def __init__(self, factories: Mapping[ProviderType, ProviderFactory | None] | None = None) -> None:
        self._factories: dict[ProviderType, ProviderFactory | None] = dict(
            default_factories() if factories is None else factories
        )
        self._providers: dict[ProviderType, CloudProvider] = {}
        self._locks: dict[ProviderType, asyncio.Lock] = {}

    def _lock_for(self, provider_type: ProviderType) -> asyncio.Lock:
        lock = self._locks.get(provider_type)
        if lock is None:
            lock = self._locks[provider_type] = asyncio.Lock()
        return lock

    @staticmethod
    def _coerce(provider_type: object) -> ProviderType:
        if isinstance(provider_type, ProviderType):
            return provider_type
        try:
            return ProviderType(provider_type)
        except ValueError:
            raise UnknownProviderError(provider_type) from None

    def _factory_for(self, provider_type: ProviderType) -> ProviderFactory:
        if provider_type not in self._factories:
            raise UnknownProviderError(provider_type)
        factory = self._factories[provider_type]
        if factory is None:
            raise ProviderNotImplementedError(provider_type)
        return factory

    async def get_provider(self, provider_type: ProviderType) -> CloudProvider:
        """Return the initialized provider for *provider_type*, building it once.

        Raises:
            UnknownProviderError: *provider_type* has no construction path.
            ProviderNotImplementedError: the type is declared but unimplemented.
            Exception: whatever construction or ``initialize()`` raised; the
                cache is left untouched so a later call can retry.

        A ``remove_provider`` queued behind this build still evicts and
        disconnects the instance returned here.  Callers that raced a
        removal hold a provider the registry no longer owns and should call
        ``get_provider`` again for a live one.
        """
        provider_type = self._coerce(provider_type)
        factory = self._factory_for(provider_type)

        cached = self._providers.get(provider_type)
        if cached is not None:
            return cached

        async with self._lock_for(provider_type):
            cached = self._providers.get(provider_type)
            if cached is not None:
                return cached

            _log.info("provider_initializing", provider=provider_type.value)
            try:
                provider = factory()
                await provider.initialize()
            except Exception as exc:
                provider_initializations_total.labels(provider=provider_type.value, outcome="error").inc()
                _log.error("provider_initialization_failed", provider=provider_type.value, error=str(exc))
                raise
            provider_initializations_total.labels(provider=provider_type.value, outcome="success").inc()
            self._providers[provider_type] = provider
            _log.info("provider_initialized", provider=provider_type.value, name=provider.name)
            return provider

    async def remove_provider(self, provider_type: ProviderType) -> None:
        """Disconnect (best-effort) and evict the cached provider, if any.

        Raises:
            UnknownProviderError: *provider_type* is not a provider type.
        """
        provider_type = self._coerce(provider_type)
        async with self._lock_for(provider_type):
            provider = self._providers.pop(provider_type, None)
            if provider is None:
                return
            try:
                await provider.disconnect()
            except Exception as exc:
                _log.warning("provider_disconnect_failed", provider=provider_type.value, error=str(exc))
            _log.info("provider_removed", provider=provider_type.value)

    def get_available_providers(self) -> list[ProviderType]:
        """Provider types that have a working implementation."""
        return [t for t in ProviderType if self._factories.get(t) is not None]

    def cached_providers(self) -> list[ProviderType]:
        return list(self._providers)

    async def clear_all(self) -> None:
        """Evict every cached provider, disconnecting each.

        Types with an initialization in flight are included: their removal
        queues behind the initialization and evicts what it produced.
        """
        for provider_type in [t for t in ProviderType if t in self._providers or t in self._locks]:
            await self.remove_provider(provider_type)


_REGISTRY: ProviderRegistry | None = None


def get_provider_registry() -> ProviderRegistry:
    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = ProviderRegistry()
    return _REGISTRY


async def reset_provider_registry() -> None:
    """Clear and drop the process-wide registry."""
    global _REGISTRY
    if _REGISTRY is not None:
        await _REGISTRY.clear_all()
    _REGISTRY = None

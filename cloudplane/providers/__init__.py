"""Provider abstraction for cloud/cluster backends.

Collaborators obtain providers only through the registry::

    registry = get_provider_registry()
    provider = await registry.get_provider(ProviderType.GCP)
    await provider.connect("my-context")
    async with aclosing(provider.watch_resources(ResourceType.POD, "default")) as events:
        async for event in events:
            ...
"""

from cloudplane.providers.base import (
    CloudProvider,
    map_cluster_status,
    map_resource_status,
    provider_features,
)
from cloudplane.providers.errors import (
    NotConnectedError,
    ProviderConnectionError,
    ProviderError,
    ProviderInitializationError,
    ProviderNotImplementedError,
    UnknownProviderError,
    WatchStreamError,
)
from cloudplane.providers.registry import (
    ProviderRegistry,
    get_provider_registry,
    reset_provider_registry,
)

__all__ = [
    "CloudProvider",
    "NotConnectedError",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderInitializationError",
    "ProviderNotImplementedError",
    "ProviderRegistry",
    "UnknownProviderError",
    "WatchStreamError",
    "get_provider_registry",
    "map_cluster_status",
    "map_resource_status",
    "provider_features",
    "reset_provider_registry",
]

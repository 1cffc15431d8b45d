"""Provider contract shared by every cluster backend."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Protocol, runtime_checkable

from cloudplane.models.resources import (
    Cluster,
    ClusterStatus,
    ProviderFeature,
    ProviderType,
    Resource,
    ResourceEvent,
    ResourceStatus,
    ResourceType,
)


@runtime_checkable
class CloudProvider(Protocol):
    """Capability set a backend must expose to be served by the registry.

    Implementations keep their own state; there is no shared base class.
    Cluster discovery works before ``connect``; every other resource call
    raises ``NotConnectedError`` without an active session.
    """

    name: str
    type: ProviderType

    async def initialize(self) -> None:
        """One-time setup.  The registry calls it exactly once per instance."""

    async def connect(self, cluster_id: str) -> None:
        """Open a session against *cluster_id* and make it the current cluster."""

    async def disconnect(self) -> None:
        """Release the active session.  No-op when already disconnected."""

    async def is_connected(self) -> bool: ...

    async def list_clusters(self) -> list[Cluster]: ...

    async def get_cluster(self, cluster_id: str) -> Cluster | None: ...

    async def get_current_cluster(self) -> Cluster | None: ...

    async def list_resources(
        self, resource_type: ResourceType, namespace: str | None = None
    ) -> list[Resource]: ...

    async def get_resource(
        self, resource_type: ResourceType, resource_id: str, namespace: str
    ) -> Resource | None: ...

    def watch_resources(
        self, resource_type: ResourceType, namespace: str | None = None
    ) -> AsyncIterator[ResourceEvent]:
        """Return a cold, cancelable, unbounded stream of events for the scope."""

    async def list_namespaces(self) -> list[str]: ...


def provider_features(provider: CloudProvider) -> Sequence[ProviderFeature]:
    """Return the provider-specific features *provider* advertises, if any.

    ``get_provider_specific_features`` is optional; a provider without it
    advertises nothing.
    """
    getter = getattr(provider, "get_provider_specific_features", None)
    if getter is None:
        return []
    return list(getter())


_RESOURCE_STATUS = {
    "running": ResourceStatus.RUNNING,
    "active": ResourceStatus.RUNNING,
    "pending": ResourceStatus.PENDING,
    "containercreating": ResourceStatus.PENDING,
    "failed": ResourceStatus.FAILED,
    "error": ResourceStatus.FAILED,
    "crashloopbackoff": ResourceStatus.FAILED,
    "succeeded": ResourceStatus.SUCCEEDED,
    "completed": ResourceStatus.SUCCEEDED,
    "complete": ResourceStatus.SUCCEEDED,
    "terminating": ResourceStatus.TERMINATING,
}

_CLUSTER_STATUS = {s.value: s for s in ClusterStatus}


def map_resource_status(status: str | None) -> ResourceStatus:
    """Normalize a backend status string (case-insensitive) to ResourceStatus."""
    if not status:
        return ResourceStatus.UNKNOWN
    return _RESOURCE_STATUS.get(status.lower(), ResourceStatus.UNKNOWN)


def map_cluster_status(status: str | ClusterStatus | None) -> ClusterStatus:
    """Normalize a backend cluster state to ClusterStatus; unknown → disconnected."""
    if isinstance(status, ClusterStatus):
        return status
    if not status:
        return ClusterStatus.DISCONNECTED
    return _CLUSTER_STATUS.get(status.lower(), ClusterStatus.DISCONNECTED)

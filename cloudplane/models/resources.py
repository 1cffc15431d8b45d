"""Cluster, resource and watch-event data structures."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ProviderType(StrEnum):
    """Cloud/cluster backends a provider can be requested for."""

    GCP = "gcp"
    AWS = "aws"
    AZURE = "azure"
    DIGITAL_OCEAN = "digital-ocean"


class ResourceType(StrEnum):
    """Cluster-managed object kinds that can be listed and watched."""

    POD = "pod"
    SERVICE = "service"
    DEPLOYMENT = "deployment"
    STATEFUL_SET = "statefulset"
    DAEMON_SET = "daemonset"
    JOB = "job"
    CRON_JOB = "cronjob"
    CONFIG_MAP = "configmap"
    SECRET = "secret"
    INGRESS = "ingress"
    NAMESPACE = "namespace"


class ResourceStatus(StrEnum):
    """Last observed state of a resource."""

    RUNNING = "running"
    PENDING = "pending"
    FAILED = "failed"
    SUCCEEDED = "succeeded"
    UNKNOWN = "unknown"
    TERMINATING = "terminating"


class ClusterStatus(StrEnum):
    """Connection state of a cluster as seen by its provider."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ERROR = "error"
    READY = "ready"


class ResourceEventType(StrEnum):
    """Kind of change carried by a ResourceEvent."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class Capability(StrEnum):
    """Optional operations a resource snapshot may expose."""

    GET_LOGS = "get-logs"
    EXEC = "exec"
    DELETE = "delete"
    SCALE = "scale"


@dataclass(frozen=True)
class Cluster:
    """A single addressable cluster endpoint/context.

    ``status`` is owned by the provider that produced the snapshot; callers
    treat it as read-only.
    """

    id: str
    name: str
    provider: ProviderType
    status: ClusterStatus
    region: str | None = None
    context: str | None = None
    namespace: str | None = None
    server: str | None = None
    version: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_usable(self) -> bool:
        """True when the provider reports the cluster as reachable."""
        return self.status in (ClusterStatus.CONNECTED, ClusterStatus.READY)


@dataclass(frozen=True)
class ResourceActions:
    """Bound operations a concrete resource supports.

    A ``None`` slot means the operation is not available for this resource.
    That is distinct from an operation that exists and fails at call time.
    """

    get_logs: Callable[..., Awaitable[str]] | None = None
    exec: Callable[..., Awaitable[str]] | None = None
    delete: Callable[[], Awaitable[None]] | None = None
    scale: Callable[[int], Awaitable[None]] | None = None

    def for_capability(self, capability: Capability) -> Callable[..., Awaitable[Any]] | None:
        return {
            Capability.GET_LOGS: self.get_logs,
            Capability.EXEC: self.exec,
            Capability.DELETE: self.delete,
            Capability.SCALE: self.scale,
        }[capability]


@dataclass(frozen=True)
class Resource:
    """Snapshot of a cluster-managed object.

    ``type`` and ``provider`` never change after construction.  ``status``
    is the backend's last observation, not a live value.
    """

    id: str
    name: str
    namespace: str
    type: ResourceType
    status: ResourceStatus
    provider: ProviderType
    metadata: Mapping[str, Any] = field(default_factory=dict)
    actions: ResourceActions | None = field(default=None, compare=False, repr=False)

    def supports(self, capability: Capability) -> bool:
        """Return True if *capability* can be invoked on this resource."""
        if self.actions is None:
            return False
        return self.actions.for_capability(capability) is not None

    @property
    def capabilities(self) -> frozenset[Capability]:
        return frozenset(c for c in Capability if self.supports(c))


@dataclass(frozen=True)
class ResourceEvent:
    """One change notification delivered by a watch stream."""

    type: ResourceEventType
    resource: Resource


@dataclass(frozen=True)
class ProviderFeature:
    """Descriptive flag for a provider capability beyond the base contract."""

    name: str
    description: str
    enabled: bool = True

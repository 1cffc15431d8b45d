"""Core data structures for cloudplane."""

from cloudplane.models.config import CloudPlaneConfig, KubernetesConfig, LogConfig
from cloudplane.models.resources import (
    Capability,
    Cluster,
    ClusterStatus,
    ProviderFeature,
    ProviderType,
    Resource,
    ResourceActions,
    ResourceEvent,
    ResourceEventType,
    ResourceStatus,
    ResourceType,
)

__all__ = [
    "Capability",
    "CloudPlaneConfig",
    "Cluster",
    "ClusterStatus",
    "KubernetesConfig",
    "LogConfig",
    "ProviderFeature",
    "ProviderType",
    "Resource",
    "ResourceActions",
    "ResourceEvent",
    "ResourceEventType",
    "ResourceStatus",
    "ResourceType",
]

"""Kubernetes provider built on kubernetes-asyncio.

Submodules
----------
client   -- KubeClient / KubeSession: kubeconfig discovery and API transport.
mapping  -- raw API objects -> Resource snapshots, per resource type.
provider -- KubernetesProvider: the CloudProvider implementation.
"""

from cloudplane.providers.kubernetes.client import KubeClient, KubeContext, KubeSession
from cloudplane.providers.kubernetes.provider import KubernetesProvider

__all__ = ["KubeClient", "KubeContext", "KubeSession", "KubernetesProvider"]

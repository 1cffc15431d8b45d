"""Kubeconfig-backed Kubernetes provider.

Clusters are kubeconfig contexts.  ``connect`` opens a KubeSession for one
context; every resource call runs against that session and raises
``NotConnectedError`` without it.  ``namespace=None`` (or ``""``) means all
namespaces; the context's default namespace is reported on the Cluster but
never applied implicitly.  Cluster-scoped kinds (namespaces) ignore the
namespace argument.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from datetime import UTC, datetime

from cloudplane.models.resources import (
    Cluster,
    ClusterStatus,
    ProviderFeature,
    ProviderType,
    Resource,
    ResourceActions,
    ResourceEvent,
    ResourceEventType,
    ResourceType,
)
from cloudplane.observability.logging import get_logger
from cloudplane.providers.errors import (
    NotConnectedError,
    ProviderConnectionError,
    ProviderInitializationError,
)
from cloudplane.providers.kubernetes.client import KubeClient, KubeContext, KubeSession
from cloudplane.providers.kubernetes.mapping import CLUSTER_SCOPED, Raw, resource_key, to_resource
from cloudplane.providers.stream import in_scope, scoped_stream

_log = get_logger("providers.kubernetes")

_EVENT_TYPES = {
    "ADDED": ResourceEventType.ADDED,
    "MODIFIED": ResourceEventType.MODIFIED,
    "DELETED": ResourceEventType.DELETED,
}

_DELETABLE = frozenset({ResourceType.POD, ResourceType.CONFIG_MAP, ResourceType.SECRET})

_FEATURES = (
    ProviderFeature("kubeconfig-contexts", "Clusters are discovered from kubeconfig contexts"),
    ProviderFeature("pod-logs", "Read container logs from pods"),
    ProviderFeature("pod-exec", "Run commands inside pod containers"),
    ProviderFeature("deployment-scale", "Change the replica count of deployments"),
    ProviderFeature("resource-watch", "Live add/modify/delete notifications per resource type"),
)


def _scope(resource_type: ResourceType, namespace: str | None) -> str | None:
    """Effective namespace filter; cluster-scoped kinds ignore the argument."""
    if resource_type in CLUSTER_SCOPED:
        return None
    return namespace or None


class KubernetesProvider:
    """Provider for any cluster reachable through a kubeconfig context."""

    name = "Google Cloud Platform"

    def __init__(
        self,
        client: KubeClient | None = None,
        *,
        provider_type: ProviderType = ProviderType.GCP,
        log_tail_lines: int = 500,
    ) -> None:
        self.type = provider_type
        self._client = client or KubeClient()
        self._log_tail_lines = log_tail_lines
        self._contexts: dict[str, KubeContext] = {}
        self._active_context: str | None = None
        self._initialized = False

        # Serializes connect/disconnect so only one session is ever live.
        self._connection_lock = asyncio.Lock()
        self._session: KubeSession | None = None
        self._session_closed = asyncio.Event()
        self._current: Cluster | None = None

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        if self._initialized:
            return
        self._load_contexts()
        self._initialized = True
        _log.info(
            "kubernetes_provider_initialized",
            contexts=len(self._contexts),
            active_context=self._active_context,
        )

    def _load_contexts(self) -> None:
        contexts, active = self._client.load_contexts()
        self._contexts = {c.name: c for c in contexts}
        self._active_context = active

    def _refresh_contexts(self) -> None:
        """Re-read kubeconfig; keep the last good view if it became unreadable."""
        try:
            self._load_contexts()
        except ProviderInitializationError as exc:
            _log.warning("kubeconfig_reload_failed", error=str(exc))

    async def connect(self, cluster_id: str) -> None:
        async with self._connection_lock:
            await self._connect(cluster_id)

    async def _connect(self, cluster_id: str) -> None:
        self._refresh_contexts()
        context = self._find_context(cluster_id)
        if context is None:
            raise ProviderConnectionError(f"Unknown cluster: {cluster_id}", self.type)

        await self._disconnect()
        _log.info("cluster_connecting", cluster=context.name)
        try:
            session = await self._client.open_session(context.name)
        except ProviderConnectionError as exc:
            _log.warning("cluster_connect_failed", cluster=context.name, error=str(exc))
            raise ProviderConnectionError(f"Failed to connect to cluster {context.name}: {exc}", self.type) from exc

        self._session = session
        self._session_closed = asyncio.Event()
        self._current = self._to_cluster(context, session, connected_at=datetime.now(tz=UTC))
        _log.info("cluster_connected", cluster=context.name, server=session.server, version=session.version)

    async def disconnect(self) -> None:
        async with self._connection_lock:
            await self._disconnect()

    async def _disconnect(self) -> None:
        session, self._session = self._session, None
        self._current = None
        if session is None:
            return
        # Ends every watch bound to this session before the transport goes away.
        self._session_closed.set()
        await session.close()
        _log.info("cluster_disconnected", cluster=session.context)

    async def is_connected(self) -> bool:
        return self._session is not None and not self._session.closed

    # ------------------------------------------------------------------
    # Cluster discovery (allowed before connect)
    # ------------------------------------------------------------------

    async def list_clusters(self) -> list[Cluster]:
        self._refresh_contexts()
        current = self._current
        clusters = []
        for context in self._contexts.values():
            if current is not None and current.id == context.name:
                clusters.append(current)
            else:
                clusters.append(self._to_cluster(context, None))
        return clusters

    async def get_cluster(self, cluster_id: str) -> Cluster | None:
        for cluster in await self.list_clusters():
            if cluster_id in (cluster.id, cluster.name):
                return cluster
        return None

    async def get_current_cluster(self) -> Cluster | None:
        if not await self.is_connected():
            return None
        return self._current

    def _find_context(self, cluster_id: str) -> KubeContext | None:
        return self._contexts.get(cluster_id)

    def _to_cluster(
        self, context: KubeContext, session: KubeSession | None, connected_at: datetime | None = None
    ) -> Cluster:
        return Cluster(
            id=context.name,
            name=context.name,
            provider=self.type,
            status=ClusterStatus.CONNECTED if session is not None else ClusterStatus.DISCONNECTED,
            context=context.name,
            namespace=context.namespace,
            server=session.server if session is not None else None,
            version=session.version if session is not None else None,
            metadata={
                "cluster": context.cluster,
                "user": context.user,
                "active_context": context.name == self._active_context,
                "last_connected": connected_at.isoformat() if connected_at else None,
            },
        )

    # ------------------------------------------------------------------
    # Resources (session required)
    # ------------------------------------------------------------------

    def _require_session(self, operation: str) -> KubeSession:
        session = self._session
        if session is None or session.closed:
            raise NotConnectedError(self.type, operation)
        return session

    async def list_resources(self, resource_type: ResourceType, namespace: str | None = None) -> list[Resource]:
        namespace = _scope(resource_type, namespace)
        session = self._require_session("list_resources")
        raws = await session.list(resource_type, namespace)
        resources = [self._to_resource(resource_type, raw, session) for raw in raws]
        return [r for r in resources if in_scope(r, resource_type, namespace)]

    async def get_resource(self, resource_type: ResourceType, resource_id: str, namespace: str) -> Resource | None:
        for resource in await self.list_resources(resource_type, namespace):
            if resource_id in (resource.id, resource.name):
                return resource
        return None

    async def list_namespaces(self) -> list[str]:
        session = self._require_session("list_namespaces")
        raws = await session.list(ResourceType.NAMESPACE)
        return [resource_key(ResourceType.NAMESPACE, raw)[1] for raw in raws]

    async def watch_resources(
        self, resource_type: ResourceType, namespace: str | None = None
    ) -> AsyncIterator[ResourceEvent]:
        """Stream add/modify/delete events for *resource_type* in *namespace*.

        Nothing is contacted until the first event is requested.  The stream
        ends when this provider disconnects and raises ``WatchStreamError``
        if the transport fails; it never reconnects on its own.
        """
        namespace = _scope(resource_type, namespace)
        session = self._require_session("watch_resources")
        source = self._watch_events(session, resource_type, namespace)
        stream = scoped_stream(
            source,
            provider=self.type,
            resource_type=resource_type,
            namespace=namespace,
            closed=self._session_closed,
        )
        async with aclosing(stream):
            async for event in stream:
                yield event

    async def _watch_events(
        self, session: KubeSession, resource_type: ResourceType, namespace: str | None
    ) -> AsyncIterator[ResourceEvent]:
        async with aclosing(session.watch(resource_type, namespace)) as raw_events:
            async for event_type, raw in raw_events:
                kind = _EVENT_TYPES.get(event_type)
                if kind is None:
                    continue
                yield ResourceEvent(type=kind, resource=self._to_resource(resource_type, raw, session))

    def get_provider_specific_features(self) -> list[ProviderFeature]:
        return list(_FEATURES)

    # ------------------------------------------------------------------
    # Snapshot construction
    # ------------------------------------------------------------------

    def _to_resource(self, resource_type: ResourceType, raw: Raw, session: KubeSession) -> Resource:
        _, name, namespace = resource_key(resource_type, raw)
        actions = self._actions_for(resource_type, name, namespace, session)
        return to_resource(resource_type, raw, self.type, actions=actions)

    def _actions_for(
        self, resource_type: ResourceType, name: str, namespace: str, session: KubeSession
    ) -> ResourceActions | None:
        """Bind the operations *resource_type* supports to the session that produced it."""

        def live() -> KubeSession:
            if session.closed:
                raise NotConnectedError(self.type, f"{resource_type.value} action")
            return session

        delete: Callable[[], Awaitable[None]] | None = None
        if resource_type in _DELETABLE:

            async def _delete() -> None:
                await live().delete(resource_type, name, namespace)
                _log.info("resource_deleted", resource_type=resource_type.value, namespace=namespace, name=name)

            delete = _delete

        if resource_type is ResourceType.POD:

            async def get_logs(container: str | None = None, tail_lines: int | None = None) -> str:
                return await live().read_logs(name, namespace, container, tail_lines or self._log_tail_lines)

            async def exec_(command: list[str], container: str | None = None) -> str:
                return await live().exec(name, namespace, command, container)

            return ResourceActions(get_logs=get_logs, exec=exec_, delete=delete)

        if resource_type is ResourceType.DEPLOYMENT:

            async def scale(replicas: int) -> None:
                if replicas < 0:
                    raise ValueError(f"replicas must be >= 0, got {replicas}")
                await live().scale_deployment(name, namespace, replicas)
                _log.info("deployment_scaled", namespace=namespace, name=name, replicas=replicas)

            return ResourceActions(scale=scale)

        if delete is not None:
            return ResourceActions(delete=delete)
        return None

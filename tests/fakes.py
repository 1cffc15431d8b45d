"""In-memory stand-ins for the Kubernetes transport and raw object builders."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from cloudplane.models.resources import ResourceType
from cloudplane.providers.errors import ProviderConnectionError, ProviderInitializationError
from cloudplane.providers.kubernetes import KubeContext

# ---------------------------------------------------------------------------
# Raw object helpers (API-server dict shape)
# ---------------------------------------------------------------------------


def make_raw(
    name: str,
    namespace: str = "default",
    *,
    uid: str | None = None,
    spec: dict[str, Any] | None = None,
    status: dict[str, Any] | None = None,
    labels: dict[str, str] | None = None,
    created: str = "2026-01-01T00:00:00Z",
    **extra: Any,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "uid": uid or f"uid-{namespace}-{name}",
        "labels": labels or {},
        "creationTimestamp": created,
        "resourceVersion": "1",
    }
    raw: dict[str, Any] = {"metadata": metadata, "spec": spec or {}, "status": status or {}}
    raw.update(extra)
    return raw


def make_pod(name: str, namespace: str = "default", phase: str = "Running", **kwargs: Any) -> dict[str, Any]:
    status = {
        "phase": phase,
        "podIP": "10.0.0.12",
        "containerStatuses": [
            {
                "name": "app",
                "image": "nginx:1.27",
                "ready": phase == "Running",
                "restartCount": 0,
                "state": {"running": {"startedAt": "2026-01-01T00:00:05Z"}},
            }
        ],
    }
    return make_raw(name, namespace, spec={"nodeName": "node-1"}, status=status, **kwargs)


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------

# Queued by FakeKubeSession.finish(): the backend ends the watch by itself.
_END_OF_STREAM = object()


class FakeKubeSession:
    """In-memory stand-in for KubeSession."""

    def __init__(self, context: str, objects: dict[ResourceType, list[dict[str, Any]]]) -> None:
        self.context = context
        self.server = f"https://{context}.example:6443"
        self.version = "v1.30.2"
        self.objects = objects
        self.closed = False
        self.queues: dict[ResourceType, asyncio.Queue[Any]] = {}
        self.watch_calls: list[tuple[ResourceType, str | None]] = []
        self.released: list[tuple[ResourceType, str | None]] = []
        self.calls: list[tuple[Any, ...]] = []
        self.fail_lists = False

    def _queue(self, resource_type: ResourceType) -> asyncio.Queue[Any]:
        return self.queues.setdefault(resource_type, asyncio.Queue())

    def push(self, resource_type: ResourceType, event_type: str, raw: dict[str, Any]) -> None:
        self._queue(resource_type).put_nowait((event_type, raw))

    def fail(self, resource_type: ResourceType, exc: BaseException) -> None:
        self._queue(resource_type).put_nowait(exc)

    def finish(self, resource_type: ResourceType) -> None:
        self._queue(resource_type).put_nowait(_END_OF_STREAM)

    async def list(self, resource_type: ResourceType, namespace: str | None = None) -> list[dict[str, Any]]:
        if self.fail_lists:
            raise ProviderConnectionError("Failed to list: connection refused")
        items = self.objects.get(resource_type, [])
        if namespace is None or resource_type is ResourceType.NAMESPACE:
            return list(items)
        return [i for i in items if i["metadata"].get("namespace") == namespace]

    async def watch(
        self, resource_type: ResourceType, namespace: str | None = None
    ) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        # Deliberately does not filter by namespace: scoping must happen above.
        self.watch_calls.append((resource_type, namespace))
        queue = self._queue(resource_type)
        try:
            while True:
                item = await queue.get()
                if item is _END_OF_STREAM:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.released.append((resource_type, namespace))

    async def read_logs(self, name: str, namespace: str, container: str | None = None, tail_lines: int | None = None) -> str:
        self.calls.append(("logs", name, namespace, container, tail_lines))
        return f"log line from {namespace}/{name}\n"

    async def exec(self, name: str, namespace: str, command: list[str], container: str | None = None) -> str:
        self.calls.append(("exec", name, namespace, tuple(command), container))
        return "ok\n"

    async def delete(self, resource_type: ResourceType, name: str, namespace: str) -> None:
        self.calls.append(("delete", resource_type, name, namespace))

    async def scale_deployment(self, name: str, namespace: str, replicas: int) -> None:
        self.calls.append(("scale", name, namespace, replicas))

    async def close(self) -> None:
        self.closed = True


class FakeKubeClient:
    """In-memory stand-in for KubeClient."""

    def __init__(self) -> None:
        self.contexts = [
            KubeContext(name="gke-prod", cluster="gke_prod", user="prod-admin", namespace="default"),
            KubeContext(name="gke-staging", cluster="gke_staging", user="staging-admin", namespace="apps"),
        ]
        self.active = "gke-prod"
        self.missing_kubeconfig = False
        self.unreachable: set[str] = set()
        self.objects: dict[ResourceType, list[dict[str, Any]]] = {
            ResourceType.POD: [
                make_pod("web-1", "default"),
                make_pod("web-2", "default", phase="Pending"),
                make_pod("coredns-1", "kube-system"),
            ],
            ResourceType.DEPLOYMENT: [
                make_raw("web", "default", spec={"replicas": 2}, status={"replicas": 2, "availableReplicas": 2}),
            ],
            ResourceType.CONFIG_MAP: [make_raw("settings", "default", data={"a": "1"})],
            ResourceType.SERVICE: [make_raw("web", "default", spec={"clusterIP": "10.96.0.10"})],
            ResourceType.NAMESPACE: [
                make_raw("default", "", status={"phase": "Active"}),
                make_raw("kube-system", "", status={"phase": "Active"}),
            ],
        }
        self.sessions: list[FakeKubeSession] = []
        # Events queued on every session as soon as it opens.
        self.preloaded: list[tuple[ResourceType, str, dict[str, Any]]] = []

    def load_contexts(self) -> tuple[list[KubeContext], str | None]:
        if self.missing_kubeconfig:
            raise ProviderInitializationError("Unable to load kubeconfig: no configuration found")
        return list(self.contexts), self.active

    async def open_session(self, context: str) -> FakeKubeSession:
        await asyncio.sleep(0)
        if context in self.unreachable:
            raise ProviderConnectionError(f"Failed to reach cluster {context!r}: connection refused")
        session = FakeKubeSession(context, self.objects)
        for resource_type, event_type, raw in self.preloaded:
            session.push(resource_type, event_type, raw)
        self.sessions.append(session)
        return session

    @property
    def session(self) -> FakeKubeSession:
        return self.sessions[-1]

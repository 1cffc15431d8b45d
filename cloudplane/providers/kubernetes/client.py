"""kubernetes-asyncio transport used by the Kubernetes provider.

KubeClient  -- kubeconfig discovery and session construction.
KubeSession -- one authenticated ApiClient bound to a kubeconfig context;
               lists, watches and acts on objects as plain dicts (the same
               camelCase shape the API server returns on the wire).

Every backend failure leaves this module as ``ProviderConnectionError`` (or
``WatchStreamError`` from a watch) so the provider never sees raw
ApiException / aiohttp errors.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import aiohttp
from kubernetes_asyncio import client, config, watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.rest import ApiException  # type: ignore[import-untyped]
from kubernetes_asyncio.config import ConfigException  # type: ignore[import-untyped]
from kubernetes_asyncio.stream import WsApiClient  # type: ignore[import-untyped]

from cloudplane.models.resources import ResourceType
from cloudplane.observability.logging import get_logger
from cloudplane.providers.errors import (
    ProviderConnectionError,
    ProviderInitializationError,
    WatchStreamError,
)
from cloudplane.providers.kubernetes.mapping import CLUSTER_SCOPED

_log = get_logger("providers.kubernetes.client")

_T = TypeVar("_T")

# resource type -> (API group handle, snake_case kind used in generated method names)
_KINDS: dict[ResourceType, tuple[str, str]] = {
    ResourceType.POD: ("core", "pod"),
    ResourceType.SERVICE: ("core", "service"),
    ResourceType.CONFIG_MAP: ("core", "config_map"),
    ResourceType.SECRET: ("core", "secret"),
    ResourceType.NAMESPACE: ("core", "namespace"),
    ResourceType.DEPLOYMENT: ("apps", "deployment"),
    ResourceType.STATEFUL_SET: ("apps", "stateful_set"),
    ResourceType.DAEMON_SET: ("apps", "daemon_set"),
    ResourceType.JOB: ("batch", "job"),
    ResourceType.CRON_JOB: ("batch", "cron_job"),
    ResourceType.INGRESS: ("networking", "ingress"),
}

_TRANSPORT_ERRORS = (ApiException, aiohttp.ClientError, TimeoutError)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, ApiException):
        return f"{exc.status} {exc.reason}"
    return str(exc) or type(exc).__name__


@dataclass(frozen=True)
class KubeContext:
    """A kubeconfig context entry."""

    name: str
    cluster: str
    user: str
    namespace: str = "default"


class KubeSession:
    """Authenticated connection to one kubeconfig context."""

    def __init__(self, api_client: Any, *, context: str, request_timeout: float) -> None:
        self._api_client = api_client
        self._timeout = request_timeout
        self._apis = {
            "core": client.CoreV1Api(api_client),
            "apps": client.AppsV1Api(api_client),
            "batch": client.BatchV1Api(api_client),
            "networking": client.NetworkingV1Api(api_client),
        }
        self.context = context
        self.server: str | None = api_client.configuration.host
        self.version: str | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _call(self, what: str, call: Callable[[], Awaitable[_T]]) -> _T:
        try:
            return await call()
        except _TRANSPORT_ERRORS as exc:
            raise ProviderConnectionError(f"Failed to {what}: {_describe(exc)}") from exc

    def _list_call(
        self, resource_type: ResourceType, namespace: str | None
    ) -> tuple[Callable[..., Awaitable[Any]], dict[str, Any]]:
        group, kind = _KINDS[resource_type]
        api = self._apis[group]
        if resource_type in CLUSTER_SCOPED:
            return getattr(api, f"list_{kind}"), {}
        if namespace:
            return getattr(api, f"list_namespaced_{kind}"), {"namespace": namespace}
        return getattr(api, f"list_{kind}_for_all_namespaces"), {}

    async def fetch_version(self) -> str:
        """Ask the API server for its version; doubles as a reachability check."""
        info = await self._call(
            f"reach cluster {self.context!r}",
            lambda: client.VersionApi(self._api_client).get_code(_request_timeout=self._timeout),
        )
        self.version = info.git_version
        return info.git_version

    async def list(self, resource_type: ResourceType, namespace: str | None = None) -> list[dict[str, Any]]:
        fn, kwargs = self._list_call(resource_type, namespace)
        result = await self._call(
            f"list {resource_type.value} resources",
            lambda: fn(_request_timeout=self._timeout, **kwargs),
        )
        items = self._api_client.sanitize_for_serialization(result).get("items") or []
        return list(items)

    async def watch(
        self, resource_type: ResourceType, namespace: str | None = None
    ) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Yield ``(event_type, raw_object)`` pairs until closed or the transport fails.

        No ``timeout_seconds`` is passed, so kubernetes-asyncio resumes
        expired server-side watch windows from the last resourceVersion
        instead of ending the iteration.  kubernetes-asyncio turns ``ERROR``
        events into ``ApiException`` (retrying a 410 Gone once) and raises a
        plain ``Exception`` for malformed event lines; both end the stream
        as ``WatchStreamError``.  Lines that are not JSON are skipped.
        """
        fn, kwargs = self._list_call(resource_type, namespace)
        w = watch.Watch()
        _log.debug("watch_opening", context=self.context, resource_type=resource_type.value, namespace=namespace)
        try:
            async with w.stream(fn, **kwargs) as stream:
                async for event in stream:
                    if not isinstance(event, dict):
                        _log.debug("watch_line_skipped", context=self.context, resource_type=resource_type.value)
                        continue
                    yield event["type"], event["raw_object"]
        except _TRANSPORT_ERRORS as exc:
            raise WatchStreamError(f"Watch for {resource_type.value} failed: {_describe(exc)}") from exc
        except Exception as exc:
            raise WatchStreamError(f"Watch for {resource_type.value} returned a malformed event: {exc}") from exc
        finally:
            w.stop()
            _log.debug("watch_released", context=self.context, resource_type=resource_type.value, namespace=namespace)

    async def read_logs(
        self, name: str, namespace: str, container: str | None = None, tail_lines: int | None = None
    ) -> str:
        core = self._apis["core"]
        return await self._call(
            f"get logs for pod {namespace}/{name}",
            lambda: core.read_namespaced_pod_log(
                name,
                namespace,
                container=container,
                tail_lines=tail_lines,
                _request_timeout=self._timeout,
            ),
        )

    async def exec(self, name: str, namespace: str, command: list[str], container: str | None = None) -> str:
        kwargs: dict[str, Any] = {"container": container} if container else {}

        async def _run() -> str:
            async with WsApiClient(configuration=self._api_client.configuration) as ws_client:
                ws_core = client.CoreV1Api(api_client=ws_client)
                return await ws_core.connect_get_namespaced_pod_exec(
                    name,
                    namespace,
                    command=command,
                    stderr=True,
                    stdin=False,
                    stdout=True,
                    tty=False,
                    **kwargs,
                )

        return await self._call(f"exec into pod {namespace}/{name}", _run)

    async def delete(self, resource_type: ResourceType, name: str, namespace: str) -> None:
        group, kind = _KINDS[resource_type]
        fn = getattr(self._apis[group], f"delete_namespaced_{kind}")
        await self._call(
            f"delete {resource_type.value} {namespace}/{name}",
            lambda: fn(name, namespace, _request_timeout=self._timeout),
        )

    async def scale_deployment(self, name: str, namespace: str, replicas: int) -> None:
        apps = self._apis["apps"]
        await self._call(
            f"scale deployment {namespace}/{name}",
            lambda: apps.patch_namespaced_deployment_scale(
                name, namespace, {"spec": {"replicas": replicas}}, _request_timeout=self._timeout
            ),
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._api_client.close()


class KubeClient:
    """Reads kubeconfig and opens sessions against its contexts.

    Args:
        kubeconfig_path: Explicit kubeconfig file.  Empty means the
            kubernetes-asyncio default (``$KUBECONFIG`` or ``~/.kube/config``).
        request_timeout: Per-request timeout in seconds for non-watch calls.
    """

    def __init__(self, kubeconfig_path: str = "", request_timeout: float = 30.0) -> None:
        self._path = kubeconfig_path or None
        self._timeout = request_timeout

    def load_contexts(self) -> tuple[list[KubeContext], str | None]:
        """Return every kubeconfig context and the name of the active one."""
        try:
            contexts, active = config.list_kube_config_contexts(config_file=self._path)
        except (ConfigException, OSError) as exc:
            raise ProviderInitializationError(f"Unable to load kubeconfig: {exc}") from exc

        result = []
        for ctx in contexts or []:
            name = ctx.get("name")
            if not name:
                continue
            details = ctx.get("context") or {}
            result.append(
                KubeContext(
                    name=name,
                    cluster=details.get("cluster", ""),
                    user=details.get("user", ""),
                    namespace=details.get("namespace") or "default",
                )
            )
        active_name = active.get("name") if isinstance(active, dict) else None
        return result, active_name

    async def open_session(self, context: str) -> KubeSession:
        """Build an ApiClient for *context* and verify the API server answers."""
        try:
            api_client = await config.new_client_from_config(config_file=self._path, context=context)
        except (ConfigException, OSError) as exc:
            raise ProviderConnectionError(f"Failed to load kubeconfig context {context!r}: {exc}") from exc

        session = KubeSession(api_client, context=context, request_timeout=self._timeout)
        try:
            await session.fetch_version()
        except BaseException:
            await session.close()
            raise
        return session

"""Tests for the kubernetes_asyncio transport (KubeClient / KubeSession).

The generated API classes are replaced with MagicMock/AsyncMock and the
watch is a scripted stand-in, so no API server or kubeconfig is needed.
"""

from __future__ import annotations

from contextlib import aclosing
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from kubernetes_asyncio.client.rest import ApiException
from kubernetes_asyncio.config import ConfigException

from cloudplane.models.resources import ResourceType
from cloudplane.providers.errors import (
    ProviderConnectionError,
    ProviderInitializationError,
    WatchStreamError,
)
from cloudplane.providers.kubernetes import client as kube_client
from cloudplane.providers.kubernetes.client import KubeClient, KubeContext, KubeSession

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _api_client() -> MagicMock:
    api = MagicMock()
    api.configuration.host = "https://10.0.0.1:6443"
    api.close = AsyncMock()
    api.sanitize_for_serialization.side_effect = lambda obj: obj
    return api


def _session(api: MagicMock | None = None) -> KubeSession:
    return KubeSession(api or _api_client(), context="gke-prod", request_timeout=5)


class ScriptedWatch:
    """Stand-in for kubernetes_asyncio.watch.Watch that replays a script.

    Exception instances in the script are raised in place of an event; an
    exhausted script ends the iteration.
    """

    def __init__(self, script: list[Any]) -> None:
        self._script = list(script)
        self.stopped = False
        self.closed = False
        self.func: Any = None
        self.kwargs: dict[str, Any] = {}

    def stream(self, func: Any, **kwargs: Any) -> ScriptedWatch:
        self.func = func
        self.kwargs = kwargs
        return self

    def stop(self) -> None:
        self.stopped = True

    async def __aenter__(self) -> ScriptedWatch:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.closed = True

    def __aiter__(self) -> ScriptedWatch:
        return self

    async def __anext__(self) -> Any:
        if not self._script:
            raise StopAsyncIteration
        item = self._script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def scripted(monkeypatch: pytest.MonkeyPatch):
    """Install a ScriptedWatch built from the script the test passes in."""

    def install(*script: Any) -> ScriptedWatch:
        fake = ScriptedWatch(list(script))
        monkeypatch.setattr(kube_client.watch, "Watch", lambda: fake)
        return fake

    return install


def _event(event_type: str, name: str) -> dict[str, Any]:
    raw = {"kind": "Pod", "metadata": {"name": name, "namespace": "default"}}
    return {"type": event_type, "object": raw, "raw_object": raw}


# ---------------------------------------------------------------------------
# Request/response calls
# ---------------------------------------------------------------------------


class TestSessionCalls:
    async def test_list_returns_items_as_dicts(self) -> None:
        session = _session()
        core = MagicMock(list_namespaced_pod=AsyncMock(return_value={"items": [{"metadata": {"name": "web-1"}}]}))
        session._apis["core"] = core

        items = await session.list(ResourceType.POD, "default")

        assert items == [{"metadata": {"name": "web-1"}}]
        core.list_namespaced_pod.assert_awaited_once_with(_request_timeout=5, namespace="default")

    async def test_list_without_namespace_spans_all(self) -> None:
        session = _session()
        core = MagicMock(list_pod_for_all_namespaces=AsyncMock(return_value={"items": None}))
        session._apis["core"] = core
        assert await session.list(ResourceType.POD) == []
        core.list_pod_for_all_namespaces.assert_awaited_once()

    async def test_namespaces_are_listed_cluster_wide(self) -> None:
        session = _session()
        core = MagicMock(list_namespace=AsyncMock(return_value={"items": []}))
        session._apis["core"] = core
        await session.list(ResourceType.NAMESPACE, "default")
        core.list_namespace.assert_awaited_once_with(_request_timeout=5)

    @pytest.mark.parametrize(
        "exc",
        [
            ApiException(status=503, reason="Service Unavailable"),
            aiohttp.ClientConnectionError("connection refused"),
            TimeoutError(),
        ],
    )
    async def test_transport_errors_are_wrapped(self, exc: BaseException) -> None:
        session = _session()
        session._apis["core"] = MagicMock(list_namespaced_pod=AsyncMock(side_effect=exc))

        with pytest.raises(ProviderConnectionError) as exc_info:
            await session.list(ResourceType.POD, "default")

        assert not isinstance(exc_info.value, WatchStreamError)
        assert exc_info.value.__cause__ is exc
        assert str(exc_info.value).startswith("Failed to list pod resources")

    async def test_api_error_message_carries_status(self) -> None:
        session = _session()
        session._apis["apps"] = MagicMock(
            patch_namespaced_deployment_scale=AsyncMock(side_effect=ApiException(status=403, reason="Forbidden"))
        )
        with pytest.raises(ProviderConnectionError, match="403 Forbidden"):
            await session.scale_deployment("web", "default", 3)

    async def test_version_check_records_server_version(self, monkeypatch: pytest.MonkeyPatch) -> None:
        version_api = MagicMock(get_code=AsyncMock(return_value=SimpleNamespace(git_version="v1.30.2")))
        monkeypatch.setattr(kube_client.client, "VersionApi", lambda api: version_api)
        session = _session()

        assert await session.fetch_version() == "v1.30.2"
        assert session.version == "v1.30.2"
        assert session.server == "https://10.0.0.1:6443"

    async def test_close_is_idempotent(self) -> None:
        api = _api_client()
        session = _session(api)
        await session.close()
        await session.close()
        assert session.closed
        api.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# Watch
# ---------------------------------------------------------------------------


class TestSessionWatch:
    async def test_yields_events_and_skips_non_json_lines(self, scripted) -> None:
        fake = scripted("not json\n", _event("ADDED", "web-1"), _event("MODIFIED", "web-1"))
        session = _session()

        received = [(kind, raw["metadata"]["name"]) async for kind, raw in session.watch(ResourceType.POD, "default")]

        assert received == [("ADDED", "web-1"), ("MODIFIED", "web-1")]
        assert fake.kwargs == {"namespace": "default"}
        assert fake.closed
        assert fake.stopped

    async def test_early_close_stops_watch(self, scripted) -> None:
        fake = scripted(_event("ADDED", "web-1"), _event("ADDED", "web-2"))
        session = _session()

        async with aclosing(session.watch(ResourceType.POD, "default")) as events:
            await anext(events)
            assert not fake.stopped

        assert fake.stopped
        assert fake.closed

    @pytest.mark.parametrize(
        "exc",
        [
            ApiException(status=410, reason="Expired: too old resource version"),
            aiohttp.ClientPayloadError("response payload is not completed"),
        ],
    )
    async def test_transport_error_becomes_watch_error(self, scripted, exc: BaseException) -> None:
        fake = scripted(_event("ADDED", "web-1"), exc)
        session = _session()
        received: list[str] = []

        with pytest.raises(WatchStreamError, match="Watch for pod failed") as exc_info:
            async for kind, _raw in session.watch(ResourceType.POD, "default"):
                received.append(kind)

        assert received == ["ADDED"]
        assert exc_info.value.__cause__ is exc
        assert fake.stopped

    async def test_malformed_event_becomes_watch_error(self, scripted) -> None:
        fake = scripted(Exception("Malformed JSON response, the 'object' and/or 'type' field is missing."))
        session = _session()

        with pytest.raises(WatchStreamError, match="malformed event"):
            await anext(session.watch(ResourceType.POD, "default"))

        assert fake.stopped


# ---------------------------------------------------------------------------
# Kubeconfig
# ---------------------------------------------------------------------------


class TestKubeClient:
    def test_load_contexts(self, monkeypatch: pytest.MonkeyPatch) -> None:
        contexts = [
            {"name": "gke-prod", "context": {"cluster": "prod", "user": "admin"}},
            {"name": "gke-staging", "context": {"cluster": "staging", "user": "dev", "namespace": "apps"}},
            {"context": {"cluster": "nameless"}},
        ]
        monkeypatch.setattr(
            kube_client.config, "list_kube_config_contexts", lambda config_file=None: (contexts, {"name": "gke-prod"})
        )

        found, active = KubeClient("/tmp/kubeconfig").load_contexts()

        assert found == [
            KubeContext(name="gke-prod", cluster="prod", user="admin"),
            KubeContext(name="gke-staging", cluster="staging", user="dev", namespace="apps"),
        ]
        assert active == "gke-prod"

    @pytest.mark.parametrize(
        "exc",
        [ConfigException("Invalid kube-config file. No configuration found."), FileNotFoundError("kubeconfig")],
    )
    def test_unreadable_kubeconfig(self, monkeypatch: pytest.MonkeyPatch, exc: BaseException) -> None:
        def boom(config_file: str | None = None) -> None:
            raise exc

        monkeypatch.setattr(kube_client.config, "list_kube_config_contexts", boom)
        with pytest.raises(ProviderInitializationError, match="Unable to load kubeconfig"):
            KubeClient().load_contexts()

    async def test_open_session_for_missing_context(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            kube_client.config,
            "new_client_from_config",
            AsyncMock(side_effect=ConfigException("Expected key current-context in kube-config")),
        )
        with pytest.raises(ProviderConnectionError, match="gke-prod"):
            await KubeClient().open_session("gke-prod")

    async def test_unreachable_server_closes_session(self, monkeypatch: pytest.MonkeyPatch) -> None:
        api = _api_client()
        monkeypatch.setattr(kube_client.config, "new_client_from_config", AsyncMock(return_value=api))
        version_api = MagicMock(get_code=AsyncMock(side_effect=aiohttp.ClientConnectionError("connection refused")))
        monkeypatch.setattr(kube_client.client, "VersionApi", lambda api: version_api)

        with pytest.raises(ProviderConnectionError, match="reach cluster 'gke-prod'"):
            await KubeClient().open_session("gke-prod")

        api.close.assert_awaited_once()

    async def test_open_session(self, monkeypatch: pytest.MonkeyPatch) -> None:
        api = _api_client()
        new_client = AsyncMock(return_value=api)
        monkeypatch.setattr(kube_client.config, "new_client_from_config", new_client)
        version_api = MagicMock(get_code=AsyncMock(return_value=SimpleNamespace(git_version="v1.29.4")))
        monkeypatch.setattr(kube_client.client, "VersionApi", lambda api: version_api)

        session = await KubeClient("/tmp/kubeconfig", request_timeout=7).open_session("gke-staging")

        assert session.context == "gke-staging"
        assert session.version == "v1.29.4"
        assert not session.closed
        new_client.assert_awaited_once_with(config_file="/tmp/kubeconfig", context="gke-staging")
        version_api.get_code.assert_awaited_once_with(_request_timeout=7)

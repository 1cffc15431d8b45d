"""``cloudplane`` command-line interface.

A thin collaborator over the provider registry: every command obtains its
provider from the registry, prints JSON lines to stdout and clears the
registry on exit.  Exit codes: 1 generic provider error, 2 provider not
supported yet, 3 cluster unreachable / not connected.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from typing import Any

import click

from cloudplane.config import load_config
from cloudplane.models.resources import Cluster, ProviderType, Resource, ResourceEvent, ResourceType
from cloudplane.observability.logging import get_logger, setup_logging
from cloudplane.providers.base import CloudProvider, provider_features
from cloudplane.providers.errors import (
    NotConnectedError,
    ProviderConnectionError,
    ProviderError,
    ProviderNotImplementedError,
)
from cloudplane.providers.registry import ProviderRegistry, get_provider_registry

_PROVIDER_OPTION = click.option(
    "--provider",
    "provider_type",
    type=click.Choice([t.value for t in ProviderType]),
    default=ProviderType.GCP.value,
    show_default=True,
    help="Cloud provider backend.",
)
_CLUSTER_OPTION = click.option(
    "--cluster",
    default=None,
    help="Cluster id (kubeconfig context). Defaults to the active context.",
)
_RESOURCE_TYPE = click.argument("resource_type", type=click.Choice([t.value for t in ResourceType]))
_NAMESPACE_OPTION = click.option(
    "--namespace",
    "-n",
    default=None,
    help="Namespace scope. Omit for all namespaces.",
)


def _cluster_dict(cluster: Cluster) -> dict[str, Any]:
    return {
        "id": cluster.id,
        "name": cluster.name,
        "provider": cluster.provider.value,
        "status": cluster.status.value,
        "context": cluster.context,
        "namespace": cluster.namespace,
        "server": cluster.server,
        "version": cluster.version,
        "metadata": dict(cluster.metadata),
    }


def _resource_dict(resource: Resource) -> dict[str, Any]:
    return {
        "id": resource.id,
        "name": resource.name,
        "namespace": resource.namespace,
        "type": resource.type.value,
        "status": resource.status.value,
        "provider": resource.provider.value,
        "capabilities": sorted(c.value for c in resource.capabilities),
        "metadata": dict(resource.metadata),
    }


def _event_dict(event: ResourceEvent) -> dict[str, Any]:
    return {"type": event.type.value, "resource": _resource_dict(event.resource)}


def _emit(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, default=str))


def _run(work: Callable[[ProviderRegistry], Awaitable[None]]) -> None:
    """Run *work* against the process registry and map provider errors to exit codes."""
    log = get_logger("cli")

    async def _main() -> None:
        registry = get_provider_registry()
        try:
            await work(registry)
        finally:
            await registry.clear_all()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        log.info("cli_interrupted")
    except ProviderNotImplementedError as exc:
        click.echo(f"Not supported yet: {exc}", err=True)
        raise SystemExit(2) from exc
    except (ProviderConnectionError, NotConnectedError) as exc:
        click.echo(f"Could not reach cluster: {exc}", err=True)
        raise SystemExit(3) from exc
    except ProviderError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc


async def _connected(registry: ProviderRegistry, provider_type: str, cluster_id: str | None) -> CloudProvider:
    provider = await registry.get_provider(ProviderType(provider_type))
    if cluster_id is None:
        clusters = await provider.list_clusters()
        active = [c for c in clusters if c.metadata.get("active_context")]
        chosen = active or clusters
        if not chosen:
            raise click.UsageError("No clusters found; pass --cluster explicitly.")
        cluster_id = chosen[0].id
    await provider.connect(cluster_id)
    return provider


@click.group()
@click.option("--log-level", default=None, help="Override CLOUDPLANE_LOG_LEVEL.")
@click.version_option(package_name="cloudplane")
def cli(log_level: str | None) -> None:
    """Browse clusters and resources across cloud providers."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    setup_logging(log_level or config.log.level, config.log.format)


@cli.command()
def providers() -> None:
    """List provider types and whether they are implemented."""
    registry = get_provider_registry()
    available = set(registry.get_available_providers())
    for provider_type in ProviderType:
        _emit({"provider": provider_type.value, "available": provider_type in available})


@cli.command()
@_PROVIDER_OPTION
def clusters(provider_type: str) -> None:
    """List the clusters a provider can connect to."""

    async def work(registry: ProviderRegistry) -> None:
        provider = await registry.get_provider(ProviderType(provider_type))
        for cluster in await provider.list_clusters():
            _emit(_cluster_dict(cluster))

    _run(work)


@cli.command()
@_PROVIDER_OPTION
def features(provider_type: str) -> None:
    """List provider-specific features."""

    async def work(registry: ProviderRegistry) -> None:
        provider = await registry.get_provider(ProviderType(provider_type))
        for feature in provider_features(provider):
            _emit({"name": feature.name, "description": feature.description, "enabled": feature.enabled})

    _run(work)


@cli.command()
@_PROVIDER_OPTION
@_CLUSTER_OPTION
def namespaces(provider_type: str, cluster: str | None) -> None:
    """List namespaces of a cluster."""

    async def work(registry: ProviderRegistry) -> None:
        provider = await _connected(registry, provider_type, cluster)
        for name in await provider.list_namespaces():
            click.echo(name)

    _run(work)


@cli.command(name="list")
@_RESOURCE_TYPE
@_NAMESPACE_OPTION
@_PROVIDER_OPTION
@_CLUSTER_OPTION
def list_resources(resource_type: str, namespace: str | None, provider_type: str, cluster: str | None) -> None:
    """List resources of one type."""

    async def work(registry: ProviderRegistry) -> None:
        provider = await _connected(registry, provider_type, cluster)
        for resource in await provider.list_resources(ResourceType(resource_type), namespace):
            _emit(_resource_dict(resource))

    _run(work)


@cli.command()
@_RESOURCE_TYPE
@_NAMESPACE_OPTION
@_PROVIDER_OPTION
@_CLUSTER_OPTION
@click.option("--max-events", type=int, default=None, help="Stop after this many events.")
def watch(
    resource_type: str,
    namespace: str | None,
    provider_type: str,
    cluster: str | None,
    max_events: int | None,
) -> None:
    """Stream add/modify/delete events until interrupted."""

    async def work(registry: ProviderRegistry) -> None:
        provider = await _connected(registry, provider_type, cluster)
        seen = 0
        async with aclosing(provider.watch_resources(ResourceType(resource_type), namespace)) as events:
            async for event in events:
                _emit(_event_dict(event))
                seen += 1
                if max_events is not None and seen >= max_events:
                    break

    _run(work)

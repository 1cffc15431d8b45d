"""Translate raw Kubernetes objects (API-server dict shape) into Resource snapshots.

Each resource type has one ``_<kind>`` function returning the normalized
status and the metadata bag shown to collaborators.  ``_SUMMARIZERS`` must
stay exhaustive over ResourceType.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from cloudplane.models.resources import (
    ProviderType,
    Resource,
    ResourceActions,
    ResourceStatus,
    ResourceType,
)
from cloudplane.providers.base import map_resource_status

Raw = dict[str, Any]
_Summary = tuple[ResourceStatus, dict[str, Any]]

# Kinds that live outside any namespace.
CLUSTER_SCOPED = frozenset({ResourceType.NAMESPACE})


def _meta(raw: Raw) -> Raw:
    return raw.get("metadata") or {}


def _spec(raw: Raw) -> Raw:
    return raw.get("spec") or {}


def _status(raw: Raw) -> Raw:
    return raw.get("status") or {}


def _parse_ts(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def format_age(created: Any, now: datetime | None = None) -> str:
    """Render the time since *created* the way kubectl does (``45s``, ``3m``, ``5h``, ``2d``)."""
    ts = _parse_ts(created)
    if ts is None:
        return "Unknown"
    seconds = max(int(((now or datetime.now(tz=UTC)) - ts).total_seconds()), 0)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


def _first_image(pod_spec: Raw) -> str | None:
    containers = pod_spec.get("containers") or []
    return containers[0].get("image") if containers else None


def _lb_addresses(raw: Raw) -> list[str]:
    ingress = (_status(raw).get("loadBalancer") or {}).get("ingress") or []
    return [i.get("ip") or i.get("hostname") for i in ingress if i.get("ip") or i.get("hostname")]


def _container_state(state: Raw | None) -> str:
    if not state:
        return "unknown"
    if "running" in state and state["running"] is not None:
        return "running"
    for key in ("waiting", "terminated"):
        detail = state.get(key)
        if detail is not None:
            reason = detail.get("reason")
            return f"{key}: {reason}" if reason else key
    return "unknown"


def _pod(raw: Raw) -> _Summary:
    status = _status(raw)
    statuses = status.get("containerStatuses") or []
    containers = [
        {
            "name": cs.get("name", ""),
            "image": cs.get("image", ""),
            "ready": bool(cs.get("ready")),
            "restart_count": int(cs.get("restartCount") or 0),
            "state": _container_state(cs.get("state")),
        }
        for cs in statuses
    ]
    phase = status.get("phase") or "Unknown"
    display = phase
    for cs in statuses:
        waiting = (cs.get("state") or {}).get("waiting")
        if waiting and waiting.get("reason"):
            display = waiting["reason"]
            break
    if _meta(raw).get("deletionTimestamp"):
        display = "Terminating"

    ready = sum(1 for c in containers if c["ready"])
    return (
        map_resource_status(display),
        {
            "ready": f"{ready}/{len(containers)}",
            "restarts": sum(c["restart_count"] for c in containers),
            "ip": status.get("podIP"),
            "node": _spec(raw).get("nodeName"),
            "containers": containers,
            "status": display,
        },
    )


def _service(raw: Raw) -> _Summary:
    spec = _spec(raw)
    ports = [
        {
            "name": p.get("name"),
            "port": p.get("port"),
            "target_port": None if p.get("targetPort") is None else str(p.get("targetPort")),
            "protocol": p.get("protocol") or "TCP",
        }
        for p in spec.get("ports") or []
    ]
    addresses = _lb_addresses(raw)
    return (
        ResourceStatus.RUNNING,
        {
            "service_type": spec.get("type", "ClusterIP"),
            "cluster_ip": spec.get("clusterIP"),
            "external_ip": addresses[0] if addresses else None,
            "ports": ports,
            "selector": dict(spec.get("selector") or {}),
        },
    )


def _deployment(raw: Raw) -> _Summary:
    spec, status = _spec(raw), _status(raw)
    desired = int(spec.get("replicas", 1) or 0)
    available = int(status.get("availableReplicas") or 0)
    return (
        ResourceStatus.RUNNING if available == desired else ResourceStatus.PENDING,
        {
            "desired": desired,
            "current": int(status.get("replicas") or 0),
            "up_to_date": int(status.get("updatedReplicas") or 0),
            "available": available,
        },
    )


def _stateful_set(raw: Raw) -> _Summary:
    spec, status = _spec(raw), _status(raw)
    desired = int(spec.get("replicas", 1) or 0)
    ready = int(status.get("readyReplicas") or 0)
    return (
        ResourceStatus.RUNNING if ready == desired else ResourceStatus.PENDING,
        {
            "desired": desired,
            "current": int(status.get("currentReplicas") or 0),
            "ready": ready,
        },
    )


def _daemon_set(raw: Raw) -> _Summary:
    status = _status(raw)
    desired = int(status.get("desiredNumberScheduled") or 0)
    ready = int(status.get("numberReady") or 0)
    return (
        ResourceStatus.RUNNING if ready == desired else ResourceStatus.PENDING,
        {
            "desired": desired,
            "current": int(status.get("currentNumberScheduled") or 0),
            "ready": ready,
            "up_to_date": int(status.get("updatedNumberScheduled") or 0),
            "available": int(status.get("numberAvailable") or 0),
        },
    )


def _job(raw: Raw) -> _Summary:
    spec, status = _spec(raw), _status(raw)
    conditions = {c.get("type"): c.get("status") for c in status.get("conditions") or []}
    active = int(status.get("active") or 0)
    if conditions.get("Complete") == "True":
        display = "Completed"
    elif conditions.get("Failed") == "True":
        display = "Failed"
    elif active:
        display = "Running"
    else:
        display = "Pending"
    return (
        map_resource_status(display),
        {
            "completions": int(spec.get("completions") or 0),
            "succeeded": int(status.get("succeeded") or 0),
            "failed": int(status.get("failed") or 0),
            "active": active,
            "parallelism": int(spec.get("parallelism") or 1),
            "backoff_limit": int(spec.get("backoffLimit", 6)),
            "image": _first_image(_spec(spec.get("template") or {})),
            "status": display,
        },
    )


def _cron_job(raw: Raw) -> _Summary:
    spec, status = _spec(raw), _status(raw)
    suspend = bool(spec.get("suspend"))
    job_template = _spec(spec.get("jobTemplate") or {})
    return (
        ResourceStatus.PENDING if suspend else ResourceStatus.RUNNING,
        {
            "schedule": spec.get("schedule", "N/A"),
            "suspend": suspend,
            "active": len(status.get("active") or []),
            "last_schedule_time": status.get("lastScheduleTime"),
            "last_successful_time": status.get("lastSuccessfulTime"),
            "image": _first_image(_spec(job_template.get("template") or {})),
        },
    )


def _config_map(raw: Raw) -> _Summary:
    data = dict(raw.get("data") or {})
    return (
        ResourceStatus.RUNNING,
        {"data": data, "data_keys": sorted(data), "data_count": len(data)},
    )


def _secret(raw: Raw) -> _Summary:
    # Values never leave the backend; only key names are exposed.
    keys = sorted(raw.get("data") or {})
    return (
        ResourceStatus.RUNNING,
        {"data_keys": keys, "data_count": len(keys), "type": raw.get("type") or "Opaque"},
    )


def _ingress(raw: Raw) -> _Summary:
    spec = _spec(raw)
    hosts = [r.get("host") for r in spec.get("rules") or [] if r.get("host")]
    return (
        ResourceStatus.RUNNING,
        {
            "class": spec.get("ingressClassName") or "N/A",
            "hosts": hosts,
            "addresses": _lb_addresses(raw),
            "ports": [80, 443] if spec.get("tls") else [80],
        },
    )


def _namespace(raw: Raw) -> _Summary:
    phase = _status(raw).get("phase") or "Unknown"
    return map_resource_status(phase), {"status": phase}


_SUMMARIZERS: dict[ResourceType, Callable[[Raw], _Summary]] = {
    ResourceType.POD: _pod,
    ResourceType.SERVICE: _service,
    ResourceType.DEPLOYMENT: _deployment,
    ResourceType.STATEFUL_SET: _stateful_set,
    ResourceType.DAEMON_SET: _daemon_set,
    ResourceType.JOB: _job,
    ResourceType.CRON_JOB: _cron_job,
    ResourceType.CONFIG_MAP: _config_map,
    ResourceType.SECRET: _secret,
    ResourceType.INGRESS: _ingress,
    ResourceType.NAMESPACE: _namespace,
}


def resource_key(resource_type: ResourceType, raw: Raw) -> tuple[str, str, str]:
    """Return ``(id, name, namespace)`` for *raw*.

    ``id`` is the object UID when the server supplied one, otherwise
    ``namespace/name``.  Namespaces are their own namespace.
    """
    meta = _meta(raw)
    name = meta.get("name") or ""
    if resource_type in CLUSTER_SCOPED:
        namespace = name
    else:
        namespace = meta.get("namespace") or "default"
    return meta.get("uid") or f"{namespace}/{name}", name, namespace


def to_resource(
    resource_type: ResourceType,
    raw: Raw,
    provider: ProviderType,
    actions: ResourceActions | None = None,
    now: datetime | None = None,
) -> Resource:
    """Build the Resource snapshot for a raw object of *resource_type*."""
    resource_id, name, namespace = resource_key(resource_type, raw)
    status, details = _SUMMARIZERS[resource_type](raw)
    meta = _meta(raw)
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "age": format_age(meta.get("creationTimestamp"), now),
        "labels": dict(meta.get("labels") or {}),
        "resource_version": meta.get("resourceVersion"),
        **details,
    }
    return Resource(
        id=resource_id,
        name=name,
        namespace=namespace,
        type=resource_type,
        status=status,
        provider=provider,
        metadata=metadata,
        actions=actions,
    )

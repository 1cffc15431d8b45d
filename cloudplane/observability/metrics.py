"""Prometheus metrics for the provider layer."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

provider_initializations_total = Counter(
    "cloudplane_provider_initializations_total",
    "Provider construction + initialize() attempts by outcome",
    ["provider", "outcome"],
)

watch_events_total = Counter(
    "cloudplane_watch_events_total",
    "Resource events delivered to watch consumers",
    ["provider", "resource_type", "event_type"],
)

watch_streams_active = Gauge(
    "cloudplane_watch_streams_active",
    "Watch streams currently holding a backend subscription",
    ["provider"],
)

"""Watch-stream plumbing shared by provider implementations.

``scoped_stream`` wraps a backend event source into the stream handed to
callers:

* events outside the requested (type, namespace) scope are dropped;
* the stream ends cleanly as soon as the owning session closes, even while
  waiting for the next backend event;
* closing the stream (``aclose()`` / ``contextlib.aclosing`` / ``break``
  followed by finalization) always closes the backend source, including
  when the stream terminates with an error.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from cloudplane.models.resources import ProviderType, Resource, ResourceEvent, ResourceType
from cloudplane.observability.logging import get_logger
from cloudplane.observability.metrics import watch_events_total, watch_streams_active
from cloudplane.providers.errors import WatchStreamError

_log = get_logger("providers.stream")


def in_scope(resource: Resource, resource_type: ResourceType, namespace: str | None) -> bool:
    """True when *resource* belongs to the (type, namespace) watch scope."""
    if resource.type != resource_type:
        return False
    return namespace is None or resource.namespace == namespace


async def scoped_stream(
    source: AsyncIterator[ResourceEvent],
    *,
    provider: ProviderType,
    resource_type: ResourceType,
    namespace: str | None,
    closed: asyncio.Event,
) -> AsyncIterator[ResourceEvent]:
    """Yield scoped events from *source* until *closed* is set or the source fails."""
    gauge = watch_streams_active.labels(provider=provider.value)
    gauge.inc()
    closed_wait = asyncio.ensure_future(closed.wait())
    pending: asyncio.Future[ResourceEvent] | None = None
    try:
        while True:
            pending = asyncio.ensure_future(anext(source))
            done, _ = await asyncio.wait({pending, closed_wait}, return_when=asyncio.FIRST_COMPLETED)
            if closed.is_set() or pending not in done:
                # Session closed; whatever the backend read produced is moot.
                return
            next_event, pending = pending, None
            try:
                event = next_event.result()
            except StopAsyncIteration:
                if closed.is_set():
                    return
                raise WatchStreamError("watch stream closed by backend", provider) from None

            if not in_scope(event.resource, resource_type, namespace):
                _log.debug(
                    "watch_event_out_of_scope",
                    provider=provider.value,
                    resource_type=event.resource.type.value,
                    namespace=event.resource.namespace,
                )
                continue
            watch_events_total.labels(
                provider=provider.value,
                resource_type=resource_type.value,
                event_type=event.type.value,
            ).inc()
            yield event
    finally:
        closed_wait.cancel()
        if pending is not None:
            pending.cancel()
            try:
                await pending
            except (asyncio.CancelledError, StopAsyncIteration):
                pass
            except Exception as exc:
                _log.debug("watch_pending_read_failed", provider=provider.value, error=str(exc))
        gauge.dec()
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as exc:
                _log.warning("watch_source_close_failed", provider=provider.value, error=str(exc))

"""Provider error taxonomy.

Each condition the presentation layer must tell apart ("not supported yet"
versus "could not reach cluster") is its own class.  Not-found is never an
error: lookups return ``None``.
"""

from __future__ import annotations

from cloudplane.models.resources import ProviderType


class ProviderError(Exception):
    """Base class for every error raised by the provider layer."""

    def __init__(self, message: str, provider: ProviderType | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderNotImplementedError(ProviderError):
    """Raised when a provider type is known but has no backend yet."""

    def __init__(self, provider: ProviderType) -> None:
        super().__init__(f"{provider.value} provider not yet implemented", provider)


class UnknownProviderError(ProviderError):
    """Raised when a value is not a registered provider type."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Unknown provider type: {value!r}")
        self.value = value


class ProviderInitializationError(ProviderError):
    """Raised when a provider's one-time setup fails."""


class NotConnectedError(ProviderError):
    """Raised when a session-scoped operation runs before connect()."""

    def __init__(self, provider: ProviderType | None = None, operation: str = "") -> None:
        suffix = f" ({operation})" if operation else ""
        super().__init__(f"Not connected to any cluster{suffix}", provider)
        self.operation = operation


class ProviderConnectionError(ProviderError):
    """Raised when a cluster is unknown/unreachable or a backend call fails."""


class WatchStreamError(ProviderConnectionError):
    """Raised from a watch stream when its transport fails mid-stream."""

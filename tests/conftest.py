"""Shared fixtures for cloudplane tests.

Backends are faked at the KubeClient / KubeSession seam (see ``tests/fakes.py``)
so the real KubernetesProvider logic runs without a cluster.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from cloudplane.providers.kubernetes import KubernetesProvider
from tests.fakes import FakeKubeClient


@pytest.fixture
def fake_client() -> FakeKubeClient:
    return FakeKubeClient()


@pytest.fixture
async def provider(fake_client: FakeKubeClient) -> KubernetesProvider:
    p = KubernetesProvider(client=fake_client, log_tail_lines=100)  # type: ignore[arg-type]
    await p.initialize()
    return p


@pytest.fixture
async def connected_provider(provider: KubernetesProvider) -> AsyncIterator[KubernetesProvider]:
    await provider.connect("gke-prod")
    yield provider
    await provider.disconnect()

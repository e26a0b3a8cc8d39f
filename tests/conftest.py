"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Generator

import pytest

from falproxy.core.upstream_transport import clear_upstream_transports
from falproxy.testing import FakeFalUpstream, ProxyHarness


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    yield
    clear_upstream_transports()


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host/port/config overrides from the shell out of the tests."""
    for name in ("FALPROXY_HOST", "FALPROXY_PORT", "FALPROXY_CONFIG"):
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# Simulation Fixtures
# =============================================================================


@pytest.fixture
def fake_fal() -> FakeFalUpstream:
    """A fake fal any-llm app with an empty response queue."""
    return FakeFalUpstream()


@pytest.fixture
def proxy(fake_fal: FakeFalUpstream) -> Generator[ProxyHarness, None, None]:
    """An in-process proxy wired to ``fake_fal`` with default settings."""
    with ProxyHarness(fake_fal) as harness:
        yield harness


"""Proxy harness for in-process simulation tests."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

import httpx
from fastapi import FastAPI

from ..core import registry
from ..core.upstream_transport import clear_upstream_transports, register_upstream_transport
from ..main import create_app
from ..settings import ProxySettings
from .fake_upstream import FakeFalUpstream

FAKE_FAL_HOST = "fal.test"


class ProxyHarness:
    """Build an in-process proxy app wired to a fake fal upstream.

    Usage:
        upstream = FakeFalUpstream()
        upstream.enqueue_result("Hello")
        with ProxyHarness(upstream) as proxy:
            async with proxy.make_async_client() as client:
                response = await client.post("/v1/chat/completions", json={...})
    """

    def __init__(
        self,
        upstream: Optional[FakeFalUpstream] = None,
        settings: Optional[ProxySettings] = None,
    ) -> None:
        """Initialize the proxy harness.

        Args:
            upstream: Fake fal app to route backend traffic to.
            settings: Base settings; the backend URL is pointed at the fake host.
        """
        self.upstream = upstream or FakeFalUpstream()
        base = settings or ProxySettings()
        backend = replace(base.backend, base_url=f"http://{FAKE_FAL_HOST}")
        if backend.api_key is None:
            backend = replace(backend, api_key="test-fal-key")
        self.settings = replace(base, backend=backend)

        self._previous_settings: Any = registry.settings
        self._previous_client: Any = registry.client
        register_upstream_transport(FAKE_FAL_HOST, httpx.ASGITransport(app=self.upstream.app))
        self.app: FastAPI = create_app(self.settings)

    def close(self) -> None:
        """Clean up harness state."""
        clear_upstream_transports()
        registry.set_settings(self._previous_settings)
        registry.set_client(self._previous_client)

    def __enter__(self) -> "ProxyHarness":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def __aenter__(self) -> "ProxyHarness":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def make_async_client(self, base_url: str = "http://proxy.local") -> httpx.AsyncClient:
        """Create an async HTTP client for the proxy.

        Args:
            base_url: Base URL for requests

        Returns:
            AsyncClient configured to talk to this proxy
        """
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=self.app),
            base_url=base_url,
        )

"""Testing utilities for in-process proxy simulations."""

from .fake_upstream import FakeFalUpstream, FalUpstreamResponse, cumulative_snapshots
from .proxy_harness import FAKE_FAL_HOST, ProxyHarness

__all__ = [
    "FAKE_FAL_HOST",
    "FakeFalUpstream",
    "FalUpstreamResponse",
    "ProxyHarness",
    "cumulative_snapshots",
]

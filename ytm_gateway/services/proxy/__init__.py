"""Upstream proxy services

This package routes upstream traffic through forward proxies:
- Proxy pool parsing and per-request random selection
- Streaming relay of a selected encoding to the client connection
"""

from .proxy_pool import DirectSelector, ProxyEndpoint, ProxySelector
from .relay import Disposition, RelayOutcome, RelayResponse, RelaySession, StreamRelay

__all__ = [
    "ProxyEndpoint",
    "ProxySelector",
    "DirectSelector",
    "StreamRelay",
    "RelaySession",
    "RelayResponse",
    "RelayOutcome",
    "Disposition",
]

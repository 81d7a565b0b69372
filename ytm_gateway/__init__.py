"""ytm-gateway: HTTP gateway for searching, inspecting and relaying YouTube audio.

Upstream traffic is routed through a rotating pool of forward proxies and
every client is subject to a per-client request window.
"""

__version__ = "1.0.0"

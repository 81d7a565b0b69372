"""Forward proxy pool and per-request proxy selection"""

import logging
import random
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit

from ..errors import ProxyConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https", "socks5")


@dataclass(frozen=True)
class ProxyEndpoint:
    """A single forward proxy."""
    scheme: str
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "ProxyEndpoint":
        """Parse ``scheme://[user:pass@]host:port``.

        Raises:
            ProxyConfigurationError: If the URL is malformed or uses an
                unsupported scheme.
        """
        value = raw.strip()
        try:
            parts = urlsplit(value)
            port = parts.port
        except ValueError as e:
            raise ProxyConfigurationError(f"Invalid proxy URL {value!r}: {e}") from e

        if parts.scheme not in SUPPORTED_SCHEMES:
            raise ProxyConfigurationError(
                f"Invalid proxy URL {value!r}: scheme must be one of {', '.join(SUPPORTED_SCHEMES)}"
            )
        if not parts.hostname or port is None:
            raise ProxyConfigurationError(f"Invalid proxy URL {value!r}: expected scheme://host:port")

        return cls(
            scheme=parts.scheme,
            host=parts.hostname,
            port=port,
            username=parts.username,
            password=parts.password,
        )

    @property
    def url(self) -> str:
        auth = ""
        if self.username:
            auth = self.username
            if self.password:
                auth += f":{self.password}"
            auth += "@"
        return f"{self.scheme}://{auth}{self.host}:{self.port}"

    def __str__(self) -> str:
        # Never log credentials
        return f"{self.scheme}://{self.host}:{self.port}"


class ProxySelector:
    """Picks a proxy uniformly at random for each outbound request.

    The pool is fixed at construction and read-only afterwards, so selection
    needs no locking. Pass a seeded ``random.Random`` to make the choice
    reproducible.
    """

    def __init__(self, endpoints: Iterable[ProxyEndpoint], rng: Optional[random.Random] = None):
        self.pool: Tuple[ProxyEndpoint, ...] = tuple(endpoints)
        if not self.pool:
            raise ProxyConfigurationError("Proxy pool is empty")
        self.rng = rng or random.Random()

    @classmethod
    def from_urls(cls, urls: Iterable[str], rng: Optional[random.Random] = None) -> "ProxySelector":
        return cls([ProxyEndpoint.parse(url) for url in urls], rng=rng)

    def select(self) -> ProxyEndpoint:
        proxy = self.rng.choice(self.pool)
        logger.debug(f"Selected proxy {proxy} (pool size {len(self.pool)})")
        return proxy

    def __len__(self) -> int:
        return len(self.pool)


class DirectSelector:
    """Selector used when proxying is disabled: every request goes direct."""

    pool: Tuple[ProxyEndpoint, ...] = ()

    def select(self) -> None:
        return None

    def __len__(self) -> int:
        return 0

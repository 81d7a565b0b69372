"""Per-client fixed-window rate limiting.

Each client gets a window that opens on its first request and lasts
``window_s`` seconds. Up to ``limit`` requests are admitted per window; the
request that would exceed the limit is rejected and not counted. The first
request after the window expires opens a new one.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict

logger = logging.getLogger(__name__)


@dataclass
class ClientWindow:
    """Request count for one client in its current window."""
    count: int
    reset_time: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the client's window expires

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_after + 0.999)),
        }
        if not self.allowed:
            headers["Retry-After"] = headers["X-RateLimit-Reset"]
        return headers


class RateLimiter:
    """Tracks client windows and admits or rejects requests.

    The limiter owns its client map; every read-modify-write on it happens
    under ``self.lock``, so two concurrent requests from one client can never
    both take the last slot.
    """

    def __init__(
        self,
        limit: int = 100,
        window_s: float = 3600.0,
        max_clients: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self.limit = limit
        self.window_s = window_s
        self.max_clients = max_clients
        self.clock = clock
        self.lock = threading.Lock()
        # Ordered by last request, oldest first (used for the max_clients cap)
        self.windows: "OrderedDict[str, ClientWindow]" = OrderedDict()

    def admit(self, client_id: str) -> RateLimitDecision:
        """Admit or reject one request from ``client_id``."""
        with self.lock:
            now = self.clock()
            window = self.windows.get(client_id)

            if window is None:
                self._make_room(now)
                window = ClientWindow(count=1, reset_time=now + self.window_s)
                self.windows[client_id] = window
                return self._decision(True, window, now)

            self.windows.move_to_end(client_id)

            if now > window.reset_time:
                window.count = 1
                window.reset_time = now + self.window_s
                return self._decision(True, window, now)

            if window.count >= self.limit:
                return self._decision(False, window, now)

            window.count += 1
            return self._decision(True, window, now)

    def sweep(self) -> int:
        """Drop windows that have expired. Returns the number removed."""
        with self.lock:
            removed = self._sweep_locked(self.clock())
        if removed:
            logger.debug(f"Rate limiter swept {removed} expired client windows ({len(self.windows)} remaining)")
        return removed

    def reset(self, client_id: str):
        """Forget a client's window (for testing/admin)."""
        with self.lock:
            self.windows.pop(client_id, None)

    def get_window(self, client_id: str):
        with self.lock:
            window = self.windows.get(client_id)
            if window is None:
                return None
            return ClientWindow(count=window.count, reset_time=window.reset_time)

    def client_count(self) -> int:
        with self.lock:
            return len(self.windows)

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        """Serializable view of the current windows."""
        with self.lock:
            return {
                client_id: {"count": window.count, "reset_time": window.reset_time}
                for client_id, window in self.windows.items()
            }

    def _decision(self, allowed: bool, window: ClientWindow, now: float) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - window.count),
            reset_after=max(0.0, window.reset_time - now),
        )

    def _sweep_locked(self, now: float) -> int:
        expired = [client_id for client_id, window in self.windows.items() if now > window.reset_time]
        for client_id in expired:
            del self.windows[client_id]
        return len(expired)

    def _make_room(self, now: float):
        if not self.max_clients or len(self.windows) < self.max_clients:
            return
        self._sweep_locked(now)
        while len(self.windows) >= self.max_clients:
            client_id, _ = self.windows.popitem(last=False)
            logger.debug(f"Rate limiter at capacity ({self.max_clients}), evicted least recent client {client_id}")

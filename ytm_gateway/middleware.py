"""ASGI middleware that applies the rate limiter to every HTTP request.

Raw ASGI: relay responses must pass through without being buffered or
wrapped in a new task.
"""

import logging

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse

from .services.errors import RateLimitExceeded
from .services.metrics import gateway_rate_limit_decisions, gateway_rate_limit_tracked_clients
from .services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def client_identifier(scope, trust_forwarded_for: bool = False) -> str:
    """Key for rate limiting: the peer address, or the first forwarded hop."""
    if trust_forwarded_for:
        forwarded_for = Headers(scope=scope).get("x-forwarded-for")
        if forwarded_for:
            first_hop = forwarded_for.split(",")[0].strip()
            if first_hop:
                return first_hop
    client = scope.get("client")
    if client and client[0]:
        return client[0]
    return "unknown"


class RateLimitMiddleware:
    def __init__(self, app, limiter: RateLimiter, trust_forwarded_for: bool = False):
        self.app = app
        self.limiter = limiter
        self.trust_forwarded_for = trust_forwarded_for

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        client_id = client_identifier(scope, self.trust_forwarded_for)
        decision = self.limiter.admit(client_id)
        gateway_rate_limit_tracked_clients.set(self.limiter.client_count())
        rate_headers = decision.headers()

        if not decision.allowed:
            gateway_rate_limit_decisions.labels(decision="rejected").inc()
            logger.info(f"Rate limit exceeded for {client_id} on {scope.get('path')} (limit {decision.limit})")
            error = RateLimitExceeded(
                f"Too many requests: limit is {decision.limit} per window, "
                f"retry in {rate_headers['Retry-After']}s"
            )
            response = JSONResponse(error.to_dict(), status_code=error.status_code, headers=rate_headers)
            await response(scope, receive, send)
            return

        gateway_rate_limit_decisions.labels(decision="admitted").inc()

        async def send_with_rate_headers(message):
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for key, value in rate_headers.items():
                    headers.append(key, value)
            await send(message)

        await self.app(scope, receive, send_with_rate_headers)

"""Gateway error taxonomy.

Every error the request path can raise carries the HTTP status it maps to and
a short ``error`` label; the application renders them as
``{"error": <label>, "message": <detail>}``.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for errors that are translated into HTTP responses."""

    status_code = 500
    default_error = "Internal server error"

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error or self.default_error

    def relabel(self, error: str) -> "GatewayError":
        """Return a copy of this error with a route-specific label."""
        return type(self)(self.message, error=error)

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class ClientInputError(GatewayError):
    """Missing or malformed request parameter."""

    status_code = 400
    default_error = "Invalid request"


class RateLimitExceeded(GatewayError):
    status_code = 429
    default_error = "Rate limit exceeded"


class UpstreamError(GatewayError):
    """The metadata, search or stream provider failed."""

    status_code = 500
    default_error = "Upstream request failed"


class EncodingNotFoundError(GatewayError):
    """No encoding satisfies the requested filter and quality."""

    status_code = 422
    default_error = "No matching format"


class MidStreamError(Exception):
    """Upstream stream failed after bytes were already sent to the client.

    Not a GatewayError: the response has already started, so there is no
    status or body to render and the server aborts the connection.
    """

    def __init__(self, message: str, bytes_sent: int = 0):
        super().__init__(message)
        self.bytes_sent = bytes_sent


class ProxyConfigurationError(Exception):
    """The proxy pool cannot be built. Fatal at startup."""

"""Streaming relay from an upstream encoding to a client response.

The relay opens the upstream stream through the request's proxy and reads the
first chunk before any response is started. Anything that goes wrong up to
that point is an ordinary UpstreamError and becomes a JSON error response.
After that, headers are on the wire: a failure can only abort the connection
(MidStreamError).

Upstream reads are forwarded as they arrive; the next read happens only
after the server has accepted the previous chunk, so memory use stays at
one chunk per session regardless of media size.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Optional

import anyio
import httpx
from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse

from ...models.media import EncodingDescriptor
from ..errors import MidStreamError, UpstreamError
from ..metrics import gateway_relay_active, gateway_relay_bytes, gateway_relay_outcomes
from .config import (
    ATTACHMENT_CONTENT_TYPE,
    CONNECT_TIMEOUT,
    DISPOSITION_ATTACHMENT,
    DISPOSITION_INLINE,
    IDENTIFICATION_HEADERS,
    MAX_CONNECTIONS,
    MAX_KEEPALIVE_CONNECTIONS,
)
from .proxy_pool import ProxyEndpoint

logger = logging.getLogger(__name__)


class RelayOutcome(str, Enum):
    COMPLETED = "completed"
    UPSTREAM_FAILED = "upstream_failed"
    CLIENT_DISCONNECTED = "client_disconnected"


@dataclass(frozen=True)
class Disposition:
    kind: str
    filename: Optional[str] = None

    @classmethod
    def inline(cls) -> "Disposition":
        return cls(DISPOSITION_INLINE)

    @classmethod
    def attachment(cls, name: str, extension: str) -> "Disposition":
        return cls(DISPOSITION_ATTACHMENT, f"{name}.{extension}")

    @property
    def header(self) -> str:
        if self.filename:
            return f'{self.kind}; filename="{self.filename}"'
        return self.kind


class RelaySession:
    """One client's relay: the chosen encoding, proxy and open upstream response."""

    def __init__(
        self,
        encoding: EncodingDescriptor,
        proxy: Optional[ProxyEndpoint],
        disposition: Disposition,
        client: httpx.AsyncClient,
        response: httpx.Response,
        chunks: AsyncIterator[bytes],
        first_chunk: bytes,
    ):
        self.encoding = encoding
        self.proxy = proxy
        self.disposition = disposition
        self.client = client
        self.response = response
        self.chunks = chunks
        self.first_chunk = first_chunk

        self.bytes_sent = 0
        self.outcome: Optional[RelayOutcome] = None
        self.error: Optional[str] = None
        self.start_time = time.time()
        self._closed = False

        gateway_relay_active.inc()

    @property
    def headers(self) -> Dict[str, str]:
        if self.disposition.kind == DISPOSITION_ATTACHMENT:
            content_type = ATTACHMENT_CONTENT_TYPE
        else:
            content_type = self.encoding.mime_type or ATTACHMENT_CONTENT_TYPE
        headers = {
            "Content-Type": content_type,
            "Content-Disposition": self.disposition.header,
        }
        content_length = self.response.headers.get("content-length")
        if content_length and "content-encoding" not in self.response.headers:
            headers["Content-Length"] = content_length
        return headers

    async def body(self) -> AsyncIterator[bytes]:
        """Yield upstream bytes as the client consumes them."""
        try:
            if self.first_chunk:
                chunk, self.first_chunk = self.first_chunk, b""
                yield chunk
                self._count(len(chunk))

            async for chunk in self.chunks:
                yield chunk
                self._count(len(chunk))

        except httpx.HTTPError as e:
            self.finish(RelayOutcome.UPSTREAM_FAILED, error=f"{type(e).__name__}: {e}")
            raise MidStreamError(
                f"Upstream stream failed after {self.bytes_sent} bytes: {type(e).__name__}: {e}",
                bytes_sent=self.bytes_sent,
            ) from e
        except (asyncio.CancelledError, GeneratorExit):
            self.finish(RelayOutcome.CLIENT_DISCONNECTED)
            raise
        else:
            self.finish(RelayOutcome.COMPLETED)
        finally:
            await self.close_quietly()

    def finish(self, outcome: RelayOutcome, error: Optional[str] = None):
        """Record how the session ended. Only the first call counts."""
        if self.outcome is not None:
            return
        self.outcome = outcome
        self.error = error
        gateway_relay_active.dec()
        gateway_relay_outcomes.labels(outcome=outcome.value).inc()

        elapsed = time.time() - self.start_time
        summary = (
            f"Relay of format {self.encoding.format_id} via {self.proxy or 'direct connection'} "
            f"{outcome.value}: {self.bytes_sent / 1024:.1f} KB in {elapsed:.1f}s"
        )
        if outcome == RelayOutcome.UPSTREAM_FAILED:
            logger.warning(f"{summary} ({error})")
        else:
            logger.info(summary)

    async def aclose(self):
        """Close the upstream response and release the proxy connection."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.response.aclose()
        finally:
            await self.client.aclose()

    async def close_quietly(self):
        # Runs during cancellation too, so shield it from the cancelled scope
        with anyio.CancelScope(shield=True):
            await self.aclose()

    def _count(self, size: int):
        self.bytes_sent += size
        gateway_relay_bytes.inc(size)


class RelayResponse(StreamingResponse):
    """StreamingResponse that always settles and closes its relay session."""

    def __init__(self, session: RelaySession):
        super().__init__(session.body(), status_code=200, headers=session.headers)
        self.session = session

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        except ClientDisconnect:
            self.session.finish(RelayOutcome.CLIENT_DISCONNECTED)
        finally:
            if self.session.outcome is None:
                self.session.finish(RelayOutcome.CLIENT_DISCONNECTED)
            await self.session.close_quietly()


class StreamRelay:
    """Opens relay sessions for selected encodings."""

    def __init__(
        self,
        timeout_s: float = 30.0,
        read_timeout_s: float = 60.0,
        client_factory: Optional[Callable[[Optional[ProxyEndpoint]], httpx.AsyncClient]] = None,
    ):
        self.timeout_s = timeout_s
        self.read_timeout_s = read_timeout_s
        self.client_factory = client_factory or self.build_client

    def build_client(self, proxy: Optional[ProxyEndpoint]) -> httpx.AsyncClient:
        limits = httpx.Limits(
            max_connections=MAX_CONNECTIONS,
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
        )
        return httpx.AsyncClient(
            proxy=proxy.url if proxy else None,
            timeout=httpx.Timeout(
                self.timeout_s,
                connect=CONNECT_TIMEOUT,
                read=self.read_timeout_s or None,
            ),
            follow_redirects=True,
            limits=limits,
        )

    async def open(
        self,
        encoding: EncodingDescriptor,
        proxy: Optional[ProxyEndpoint],
        disposition: Disposition,
    ) -> RelaySession:
        """Open the upstream stream and read its first chunk.

        Raises:
            UpstreamError: If the upstream cannot be reached, answers with a
                non-2xx status, or fails before the first byte.
        """
        client = self.client_factory(proxy)
        headers = {
            **encoding.http_headers,
            **IDENTIFICATION_HEADERS,
            "Accept-Encoding": "identity",
        }
        response = None
        try:
            logger.info(
                f"Opening upstream stream for format {encoding.format_id} ({encoding.container}) "
                f"via {proxy or 'direct connection'}"
            )
            request = client.build_request("GET", encoding.url, headers=headers)
            response = await client.send(request, stream=True)
            response.raise_for_status()
            chunks = response.aiter_bytes()
            first_chunk = await anext(chunks, b"")
        except httpx.HTTPStatusError as e:
            await self._discard(client, response)
            logger.warning(f"Upstream stream for format {encoding.format_id} returned HTTP {e.response.status_code}")
            raise UpstreamError(f"Upstream stream returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            await self._discard(client, response)
            logger.warning(f"Upstream stream for format {encoding.format_id} failed before first byte: {type(e).__name__}: {e}")
            raise UpstreamError(f"Upstream stream failed: {type(e).__name__}: {e}") from e
        except BaseException:
            await self._discard(client, response)
            raise

        return RelaySession(
            encoding=encoding,
            proxy=proxy,
            disposition=disposition,
            client=client,
            response=response,
            chunks=chunks,
            first_chunk=first_chunk,
        )

    async def _discard(self, client: httpx.AsyncClient, response: Optional[httpx.Response]):
        with anyio.CancelScope(shield=True):
            try:
                if response is not None:
                    await response.aclose()
            finally:
                await client.aclose()

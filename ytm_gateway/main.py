from contextlib import asynccontextmanager
from dataclasses import asdict
from http import HTTPStatus
from typing import Optional
import asyncio
import logging
import random

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .core.config import Cfg, cfg
from .middleware import RateLimitMiddleware
from .models.media import EncodingDescriptor, ResolvedMedia
from .models.schemas import (
    ErrorResponse,
    FormatInfo,
    HealthResponse,
    InfoResponse,
    MediaInfo,
    SearchResponse,
    SearchResultItem,
    TrendingResponse,
)
from .services.errors import (
    ClientInputError,
    GatewayError,
    MidStreamError,
    UpstreamError,
)
from .services.format_selector import FormatCriteria, select_format
from .services.metrics import gateway_rate_limit_tracked_clients, gateway_upstream_errors, metrics_app
from .services.proxy.config import DEFAULT_FILENAME
from .services.proxy.proxy_pool import DirectSelector, ProxySelector
from .services.proxy.relay import Disposition, RelayResponse, RelaySession, StreamRelay
from .services.rate_limiter import RateLimiter
from .services.resolver import UpstreamResolver
from .services.search import SearchProvider
from .services.validators import (
    parse_limit,
    safe_filename,
    validate_media_url,
    validate_output_format,
)
from .utils.logging import setup

logger = logging.getLogger(__name__)

setup(cfg.LOG_LEVEL)

router = APIRouter()

ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 422, 429, 500)}


async def _sweep_loop(limiter: RateLimiter, interval_s: float):
    """Periodically drop expired client windows so the map stays bounded."""
    while True:
        await asyncio.sleep(interval_s)
        try:
            limiter.sweep()
            gateway_rate_limit_tracked_clients.set(limiter.client_count())
        except Exception as e:
            logger.error(f"Rate limiter sweep failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Cfg = app.state.settings
    logger.info(
        f"Gateway starting: rate limit {settings.RATE_LIMIT} per {settings.rate_limit_window_s:.0f}s, "
        f"{len(app.state.selector)} proxies"
        + ("" if settings.PROXY_ENABLED else " (proxying disabled)")
    )
    sweep_task = asyncio.create_task(
        _sweep_loop(app.state.rate_limiter, settings.RATE_LIMIT_SWEEP_INTERVAL_S)
    )

    yield

    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass
    logger.info("Gateway stopped")


# ---------------------------------------------------------------------------
# Request pipeline helpers
# ---------------------------------------------------------------------------

async def _resolve(request: Request, url: Optional[str], operation: str, label: str) -> ResolvedMedia:
    validate_media_url(url)
    try:
        return await request.app.state.resolver.resolve(url)
    except UpstreamError as e:
        gateway_upstream_errors.labels(operation=operation).inc()
        raise e.relabel(label) from e


async def _open_relay(
    request: Request,
    encoding: EncodingDescriptor,
    media: ResolvedMedia,
    disposition: Disposition,
    operation: str,
    label: str,
) -> RelaySession:
    # Same proxy as resolution: stream URLs are bound to the address that requested them
    try:
        return await request.app.state.relay.open(encoding, media.proxy, disposition)
    except UpstreamError as e:
        gateway_upstream_errors.labels(operation=operation).inc()
        raise e.relabel(label) from e


def _search_items(results) -> list:
    return [SearchResultItem(**asdict(result)) for result in results]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/", response_model=HealthResponse)
async def health():
    return HealthResponse(
        message="YouTube Music API is running with proxy support",
        version=__version__,
    )


@router.get("/api/search", response_model=SearchResponse, responses=ERROR_RESPONSES)
async def search(
    request: Request,
    q: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
):
    if not q or not q.strip():
        raise ClientInputError("Query parameter 'q' is required", error="Missing query")
    settings: Cfg = request.app.state.settings
    max_results = parse_limit(limit, settings.SEARCH_DEFAULT_LIMIT, settings.SEARCH_MAX_LIMIT)

    try:
        results = await request.app.state.search.search(q.strip(), max_results)
    except UpstreamError as e:
        gateway_upstream_errors.labels(operation="search").inc()
        raise e.relabel("Search failed") from e

    return SearchResponse(results=_search_items(results[:max_results]))


@router.get("/api/info", response_model=InfoResponse, responses=ERROR_RESPONSES)
async def info(request: Request, url: Optional[str] = Query(None)):
    media = await _resolve(request, url, "info", "Info failed")
    meta = media.metadata
    return InfoResponse(
        info=MediaInfo(
            id=meta.id,
            title=meta.title,
            author=meta.author,
            duration=meta.duration,
            description=meta.description,
            thumbnail=meta.thumbnail,
            formats=[FormatInfo(**f.to_dict()) for f in media.formats if f.has_audio],
        )
    )


@router.get("/api/stream", responses=ERROR_RESPONSES)
async def stream(
    request: Request,
    url: Optional[str] = Query(None),
    quality: str = Query("highestaudio"),
):
    media = await _resolve(request, url, "stream", "Streaming failed")
    encoding = select_format(media.formats, FormatCriteria(quality=quality, filter="audioonly"))
    session = await _open_relay(request, encoding, media, Disposition.inline(), "stream", "Streaming failed")
    return RelayResponse(session)


@router.get("/api/download", responses=ERROR_RESPONSES)
async def download(
    request: Request,
    url: Optional[str] = Query(None),
    output_format: str = Query("mp3", alias="format"),
):
    extension = validate_output_format(output_format)
    media = await _resolve(request, url, "download", "Download failed")
    encoding = select_format(media.formats, FormatCriteria(quality="highestaudio", filter="audioonly"))
    # No transcoding: the bytes are the selected encoding, only the filename carries the requested format
    filename = safe_filename(media.metadata.title, DEFAULT_FILENAME)
    disposition = Disposition.attachment(filename, extension)
    session = await _open_relay(request, encoding, media, disposition, "download", "Download failed")
    return RelayResponse(session)


@router.get("/api/trending", response_model=TrendingResponse, responses=ERROR_RESPONSES)
async def trending(request: Request, limit: Optional[str] = Query(None)):
    settings: Cfg = request.app.state.settings
    max_results = parse_limit(limit, settings.SEARCH_DEFAULT_LIMIT, settings.SEARCH_MAX_LIMIT)
    try:
        query, results = await request.app.state.search.trending(max_results)
    except UpstreamError as e:
        gateway_upstream_errors.labels(operation="trending").inc()
        raise e.relabel("Trending failed") from e
    return TrendingResponse(query=query, trending=_search_items(results[:max_results]))


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

async def gateway_error_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path}: {exc.error}: {exc.message}")
    else:
        logger.info(f"{request.url.path}: {exc.status_code} {exc.error}: {exc.message}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        body = {"error": "Not found", "message": f"Route {request.url.path} not found"}
    else:
        body = {"error": HTTPStatus(exc.status_code).phrase, "message": str(exc.detail)}
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": "Invalid request", "message": str(exc.errors())}, status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception):
    # Mid-stream failures land here too, after the response has started. This
    # body is never sent: the error is re-raised to the server, which aborts
    # the connection and logs it again with a traceback.
    if isinstance(exc, MidStreamError):
        logger.warning(f"{request.url.path}: aborting response: {exc}")
    else:
        logger.error(f"Unhandled error on {request.url.path}: {type(exc).__name__}: {exc}", exc_info=exc)
    return JSONResponse(
        {"error": "Internal server error", "message": "An unexpected error occurred"},
        status_code=500,
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Cfg] = None,
    *,
    rate_limiter: Optional[RateLimiter] = None,
    selector=None,
    resolver=None,
    search_provider=None,
    relay: Optional[StreamRelay] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """Build the gateway application.

    Every collaborator can be injected; anything not passed is built from
    ``settings`` (the environment-derived config by default).
    """
    settings = settings or cfg
    rng = rng or random.Random()

    if selector is None:
        if settings.PROXY_ENABLED:
            selector = ProxySelector.from_urls(settings.proxy_urls, rng=rng)
        else:
            selector = DirectSelector()
    if rate_limiter is None:
        rate_limiter = RateLimiter(
            limit=settings.RATE_LIMIT,
            window_s=settings.rate_limit_window_s,
            max_clients=settings.RATE_LIMIT_MAX_CLIENTS,
        )
    if resolver is None:
        resolver = UpstreamResolver(selector, timeout_s=settings.UPSTREAM_TIMEOUT_S)
    if search_provider is None:
        search_provider = SearchProvider(timeout_s=settings.UPSTREAM_TIMEOUT_S, rng=rng)
    if relay is None:
        relay = StreamRelay(
            timeout_s=settings.UPSTREAM_TIMEOUT_S,
            read_timeout_s=settings.STREAM_READ_TIMEOUT_S,
        )

    app = FastAPI(title="YouTube Music Gateway", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter
    app.state.selector = selector
    app.state.resolver = resolver
    app.state.search = search_provider
    app.state.relay = relay

    # Last added runs first: CORS wraps the limiter so 429s still carry CORS headers
    app.add_middleware(
        RateLimitMiddleware,
        limiter=rate_limiter,
        trust_forwarded_for=settings.TRUST_FORWARDED_FOR,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(router)
    app.mount("/metrics", metrics_app)
    return app


app = create_app()

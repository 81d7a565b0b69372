"""Upstream metadata resolution through yt-dlp.

The resolver validates the media reference, picks a proxy for the request and
asks yt-dlp for the video's metadata and format list. yt-dlp is blocking, so
extraction runs in a worker thread. Failures are not retried here.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import yt_dlp
from yt_dlp.utils import YoutubeDLError

from ..models.media import EncodingDescriptor, MediaMetadata, ResolvedMedia
from .errors import UpstreamError
from .proxy.config import AUDIO_CONTENT_TYPES, IDENTIFICATION_HEADERS
from .proxy.proxy_pool import ProxyEndpoint
from .validators import validate_media_url

logger = logging.getLogger(__name__)

STREAMABLE_PROTOCOLS = {"http", "https"}

# Socket and proxy failures can escape yt-dlp unwrapped
EXTRACTION_ERRORS = (YoutubeDLError, OSError)


def upstream_message(exc: Exception) -> str:
    """yt-dlp prefixes its messages with 'ERROR: '; strip it for clients."""
    message = str(exc).strip()
    if message.startswith("ERROR: "):
        message = message[len("ERROR: "):]
    return message or type(exc).__name__


def _has_codec(fmt: Dict[str, Any], codec_key: str, ext_key: str) -> bool:
    codec = fmt.get(codec_key)
    if codec is not None:
        return codec != "none"
    ext = fmt.get(ext_key)
    return ext is not None and ext != "none"


def descriptor_from_format(fmt: Dict[str, Any]) -> Optional[EncodingDescriptor]:
    """Build an EncodingDescriptor from one yt-dlp format dict.

    Returns None for formats that cannot be relayed as a plain byte stream
    (manifests, storyboards, entries without a URL).
    """
    url = fmt.get("url")
    protocol = fmt.get("protocol") or "https"
    if not url or protocol not in STREAMABLE_PROTOCOLS:
        return None

    has_audio = _has_codec(fmt, "acodec", "audio_ext")
    has_video = _has_codec(fmt, "vcodec", "video_ext")
    if not (has_audio or has_video):
        return None

    container = fmt.get("ext") or "bin"
    if has_video:
        mime_type = f"video/{container}"
    else:
        mime_type = AUDIO_CONTENT_TYPES.get(container, f"audio/{container}")

    size = fmt.get("filesize") or fmt.get("filesize_approx")
    height = fmt.get("height")
    return EncodingDescriptor(
        format_id=str(fmt.get("format_id")),
        container=container,
        url=url,
        quality_label=fmt.get("format_note") or fmt.get("format"),
        has_audio=has_audio,
        has_video=has_video,
        bitrate=fmt.get("tbr") or fmt.get("abr"),
        audio_bitrate=fmt.get("abr") if has_audio else None,
        height=int(height) if height else None,
        content_length=int(size) if size else None,
        mime_type=mime_type,
        http_headers=dict(fmt.get("http_headers") or {}),
    )


def metadata_from_info(info: Dict[str, Any]) -> MediaMetadata:
    thumbnails = info.get("thumbnails") or []
    # yt-dlp orders thumbnails by preference, best last
    thumbnail = thumbnails[-1].get("url") if thumbnails else info.get("thumbnail")
    duration = info.get("duration")
    return MediaMetadata(
        id=info["id"],
        title=info.get("title") or info["id"],
        author=info.get("uploader") or info.get("channel"),
        duration=int(duration) if duration is not None else None,
        description=info.get("description"),
        thumbnail=thumbnail,
        webpage_url=info.get("webpage_url"),
    )


class UpstreamResolver:
    """Resolves media URLs into metadata plus encoding descriptors."""

    def __init__(
        self,
        selector,
        timeout_s: float = 30.0,
        ydl_factory: Callable[[Dict[str, Any]], Any] = yt_dlp.YoutubeDL,
    ):
        self.selector = selector
        self.timeout_s = timeout_s
        self.ydl_factory = ydl_factory

    def ydl_options(self, proxy: Optional[ProxyEndpoint]) -> Dict[str, Any]:
        opts: Dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
            "socket_timeout": self.timeout_s,
            "http_headers": dict(IDENTIFICATION_HEADERS),
            "logger": logging.getLogger("yt_dlp"),
        }
        if proxy is not None:
            opts["proxy"] = proxy.url
        return opts

    def _extract(self, url: str, proxy: Optional[ProxyEndpoint]) -> Dict[str, Any]:
        with self.ydl_factory(self.ydl_options(proxy)) as ydl:
            return ydl.extract_info(url, download=False)

    async def resolve(self, media_url: Optional[str]) -> ResolvedMedia:
        """Resolve ``media_url`` through a proxy from the pool.

        Raises:
            ClientInputError: If the reference fails shape validation (no
                network call is made).
            UpstreamError: If the provider fails or returns an unexpected
                shape.
        """
        url = validate_media_url(media_url)
        proxy = self.selector.select()
        logger.info(f"Resolving {url} via {proxy or 'direct connection'}")

        try:
            info = await asyncio.to_thread(self._extract, url, proxy)
        except EXTRACTION_ERRORS as e:
            logger.warning(f"Upstream rejected {url} via {proxy or 'direct connection'}: {upstream_message(e)}")
            raise UpstreamError(upstream_message(e)) from e

        if not isinstance(info, dict) or not info.get("id"):
            logger.error(f"Malformed upstream response for {url}: {type(info).__name__}")
            raise UpstreamError("Upstream returned an unexpected response")

        formats: List[EncodingDescriptor] = []
        for fmt in info.get("formats") or []:
            descriptor = descriptor_from_format(fmt)
            if descriptor is not None:
                formats.append(descriptor)

        metadata = metadata_from_info(info)
        logger.info(f"Resolved {metadata.id} '{metadata.title}' with {len(formats)} streamable formats")
        return ResolvedMedia(metadata=metadata, formats=tuple(formats), proxy=proxy)

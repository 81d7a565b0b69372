"""Search provider backed by yt-dlp's ytsearch extractor"""

import asyncio
import logging
import random
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import yt_dlp

from ..models.media import SearchResult
from .errors import UpstreamError
from .proxy.config import IDENTIFICATION_HEADERS
from .resolver import EXTRACTION_ERRORS, upstream_message

logger = logging.getLogger(__name__)

TRENDING_SEEDS = (
    "top hits",
    "trending music",
    "new music this week",
    "popular songs",
    "viral songs",
    "top charts",
)

THUMBNAIL_URL = "https://i.ytimg.com/vi/{}/hqdefault.jpg"
WATCH_URL = "https://www.youtube.com/watch?v={}"


def format_timestamp(seconds: Optional[float]) -> Optional[str]:
    """Render a duration the way video sites display it: 3:07, 1:02:05."""
    if seconds is None:
        return None
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def result_from_entry(entry: Dict[str, Any]) -> Optional[SearchResult]:
    video_id = entry.get("id")
    if not video_id:
        return None
    thumbnails = entry.get("thumbnails") or []
    thumbnail = thumbnails[-1].get("url") if thumbnails else entry.get("thumbnail")
    url = entry.get("url") or entry.get("webpage_url")
    if not url or not url.startswith("http"):
        url = WATCH_URL.format(video_id)
    return SearchResult(
        id=video_id,
        title=entry.get("title") or video_id,
        url=url,
        author=entry.get("channel") or entry.get("uploader"),
        duration=format_timestamp(entry.get("duration")),
        thumbnail=thumbnail or THUMBNAIL_URL.format(video_id),
        views=entry.get("view_count"),
    )


class SearchProvider:
    def __init__(
        self,
        timeout_s: float = 30.0,
        rng: Optional[random.Random] = None,
        seeds: Sequence[str] = TRENDING_SEEDS,
        ydl_factory: Callable[[Dict[str, Any]], Any] = yt_dlp.YoutubeDL,
    ):
        self.timeout_s = timeout_s
        self.rng = rng or random.Random()
        self.seeds = tuple(seeds)
        self.ydl_factory = ydl_factory

    def _extract(self, query: str, limit: int) -> Dict[str, Any]:
        opts = {
            "quiet": True,
            "no_warnings": True,
            "extract_flat": True,
            "socket_timeout": self.timeout_s,
            "http_headers": dict(IDENTIFICATION_HEADERS),
            "logger": logging.getLogger("yt_dlp"),
        }
        with self.ydl_factory(opts) as ydl:
            return ydl.extract_info(f"ytsearch{limit}:{query}", download=False)

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        """Search for ``query`` and return up to ``limit`` results in provider order."""
        try:
            info = await asyncio.to_thread(self._extract, query, limit)
        except EXTRACTION_ERRORS as e:
            logger.warning(f"Search for {query!r} failed: {upstream_message(e)}")
            raise UpstreamError(upstream_message(e)) from e

        results = []
        for entry in (info or {}).get("entries") or []:
            if not entry:
                continue
            result = result_from_entry(entry)
            if result is not None:
                results.append(result)
        logger.debug(f"Search for {query!r} returned {len(results)} results")
        return results[:limit]

    def pick_seed(self) -> str:
        return self.rng.choice(self.seeds)

    async def trending(self, limit: int) -> Tuple[str, List[SearchResult]]:
        """Search a randomly chosen seed query. Returns the query and its results."""
        query = self.pick_seed()
        return query, await self.search(query, limit)

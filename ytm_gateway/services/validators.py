"""Shape checks for request parameters.

Nothing here touches the network: a reference that fails these checks is
rejected before the resolver runs.
"""

import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .errors import ClientInputError

ALLOWED_SCHEMES = {"http", "https"}
WATCH_HOSTS = {
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
    "youtube-nocookie.com",
    "www.youtube-nocookie.com",
}
SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
PATH_PREFIXES = ("shorts", "embed", "live", "v", "e")

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
OUTPUT_FORMAT_RE = re.compile(r"^[A-Za-z0-9]{1,8}$")
_FILENAME_UNSAFE_RE = re.compile(r'[^\w\-. ]+')

WATCH_URL = "https://www.youtube.com/watch?v={}"


def extract_video_id(value: str) -> Optional[str]:
    """Return the 11-character video id referenced by ``value``, if any."""
    value = value.strip()
    if VIDEO_ID_RE.match(value):
        return value

    parsed = urlparse(value)
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return None
    host = (parsed.hostname or "").lower()

    candidate = None
    if host in SHORT_HOSTS:
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif host in WATCH_HOSTS:
        segments = [s for s in parsed.path.split("/") if s]
        if segments[:1] == ["watch"]:
            candidate = (parse_qs(parsed.query).get("v") or [None])[0]
        elif len(segments) >= 2 and segments[0] in PATH_PREFIXES:
            candidate = segments[1]

    if candidate and VIDEO_ID_RE.match(candidate):
        return candidate
    return None


def validate_media_url(value: Optional[str]) -> str:
    """Validate a media reference and return its canonical watch URL.

    Raises:
        ClientInputError: If the value is missing or not a recognisable
            reference to the upstream provider.
    """
    if not value or not value.strip():
        raise ClientInputError("Query parameter 'url' is required", error="Missing URL")
    video_id = extract_video_id(value)
    if video_id is None:
        raise ClientInputError(f"Not a valid video URL: {value}", error="Invalid URL")
    return WATCH_URL.format(video_id)


def validate_output_format(value: str) -> str:
    """Output extensions end up in a response header, so keep them to a short alphanumeric token."""
    if not OUTPUT_FORMAT_RE.match(value or ""):
        raise ClientInputError(f"Invalid output format: {value!r}", error="Invalid format")
    return value.lower()


def parse_limit(raw: Optional[str], default: int, maximum: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        limit = int(raw)
    except ValueError:
        raise ClientInputError(f"limit must be an integer, got {raw!r}", error="Invalid limit")
    if limit < 1:
        raise ClientInputError("limit must be >= 1", error="Invalid limit")
    return min(limit, maximum)


def safe_filename(title: Optional[str], fallback: str) -> str:
    """Reduce a media title to something usable in Content-Disposition."""
    ascii_title = (title or "").encode("ascii", "ignore").decode("ascii")
    cleaned = _FILENAME_UNSAFE_RE.sub("", ascii_title)
    cleaned = re.sub(r"\s+", " ", cleaned)[:100].strip(" .")
    return cleaned or fallback

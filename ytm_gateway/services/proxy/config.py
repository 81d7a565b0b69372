"""Relay configuration and constants"""

from typing import Dict, Final

# Identification headers sent with every upstream call (metadata and stream).
# The provider rejects requests without a browser user agent and web client ids.
USER_AGENT: Final[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
CLIENT_NAME: Final[str] = "1"  # WEB
CLIENT_VERSION: Final[str] = "2.20240401.05.00"

IDENTIFICATION_HEADERS: Final[Dict[str, str]] = {
    "User-Agent": USER_AGENT,
    "Accept-Language": "en-US,en;q=0.9",
    "X-YouTube-Client-Name": CLIENT_NAME,
    "X-YouTube-Client-Version": CLIENT_VERSION,
}

# HTTP client configuration for relay connections
MAX_CONNECTIONS: Final[int] = 4  # Per relay session
MAX_KEEPALIVE_CONNECTIONS: Final[int] = 0  # Each session closes its proxy socket when done
CONNECT_TIMEOUT: Final[float] = 10.0

# Dispositions
DISPOSITION_INLINE: Final[str] = "inline"
DISPOSITION_ATTACHMENT: Final[str] = "attachment"

ATTACHMENT_CONTENT_TYPE: Final[str] = "application/octet-stream"
DEFAULT_FILENAME: Final[str] = "audio"

# Container extension -> MIME type for inline playback
AUDIO_CONTENT_TYPES: Final[Dict[str, str]] = {
    "webm": "audio/webm",
    "weba": "audio/webm",
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "aac": "audio/aac",
}

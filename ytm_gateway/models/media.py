from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..services.proxy.proxy_pool import ProxyEndpoint


@dataclass(frozen=True)
class EncodingDescriptor:
    """One stream variant advertised by the upstream provider."""
    format_id: str
    container: str
    url: str
    quality_label: Optional[str] = None
    has_audio: bool = False
    has_video: bool = False
    bitrate: Optional[float] = None  # kbps; audio bitrate for audio-only variants
    audio_bitrate: Optional[float] = None
    height: Optional[int] = None
    content_length: Optional[int] = None
    mime_type: Optional[str] = None
    http_headers: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict:
        return {
            "format_id": self.format_id,
            "container": self.container,
            "quality_label": self.quality_label,
            "mime_type": self.mime_type,
            "has_audio": self.has_audio,
            "has_video": self.has_video,
            "bitrate": self.bitrate,
            "audio_bitrate": self.audio_bitrate,
            "height": self.height,
            "content_length": self.content_length,
            "url": self.url,
        }


@dataclass(frozen=True)
class MediaMetadata:
    id: str
    title: str
    author: Optional[str] = None
    duration: Optional[int] = None  # seconds
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    webpage_url: Optional[str] = None


@dataclass(frozen=True)
class ResolvedMedia:
    metadata: MediaMetadata
    formats: Tuple[EncodingDescriptor, ...]
    proxy: Optional["ProxyEndpoint"] = None


@dataclass(frozen=True)
class SearchResult:
    id: str
    title: str
    url: str
    author: Optional[str] = None
    duration: Optional[str] = None  # "m:ss" / "h:mm:ss"
    thumbnail: Optional[str] = None
    views: Optional[int] = None

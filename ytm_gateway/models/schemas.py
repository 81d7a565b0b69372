from __future__ import annotations
from pydantic import BaseModel
from typing import Optional, List

class HealthResponse(BaseModel):
    message: str
    status: str = "ok"
    version: str

class ErrorResponse(BaseModel):
    error: str
    message: str

class FormatInfo(BaseModel):
    format_id: str
    container: str
    quality_label: Optional[str] = None
    mime_type: Optional[str] = None
    has_audio: bool
    has_video: bool
    bitrate: Optional[float] = None
    audio_bitrate: Optional[float] = None
    height: Optional[int] = None
    content_length: Optional[int] = None
    url: str

class MediaInfo(BaseModel):
    id: str
    title: str
    author: Optional[str] = None
    duration: Optional[int] = None
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    formats: List[FormatInfo] = []

class InfoResponse(BaseModel):
    success: bool = True
    info: MediaInfo

class SearchResultItem(BaseModel):
    id: str
    title: str
    author: Optional[str] = None
    duration: Optional[str] = None
    thumbnail: Optional[str] = None
    url: str
    views: Optional[int] = None

class SearchResponse(BaseModel):
    success: bool = True
    results: List[SearchResultItem]

class TrendingResponse(BaseModel):
    """Trending is a search seeded with a randomly chosen query."""
    success: bool = True
    query: str
    trending: List[SearchResultItem]

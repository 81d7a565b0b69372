"""Tests for yt-dlp backed metadata resolution"""

import random
from unittest.mock import MagicMock

import pytest
from yt_dlp.utils import DownloadError

from ytm_gateway.services.errors import ClientInputError, UpstreamError
from ytm_gateway.services.proxy.proxy_pool import DirectSelector, ProxySelector
from ytm_gateway.services.resolver import (
    UpstreamResolver,
    descriptor_from_format,
    metadata_from_info,
    upstream_message,
)

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"

INFO = {
    "id": "dQw4w9WgXcQ",
    "title": "Never Gonna Give You Up",
    "uploader": "Rick Astley",
    "duration": 212.0,
    "description": "The official video",
    "thumbnails": [{"url": "https://i.ytimg.com/small.jpg"}, {"url": "https://i.ytimg.com/large.jpg"}],
    "webpage_url": VIDEO_URL,
    "formats": [
        {"format_id": "sb0", "ext": "mhtml", "protocol": "mhtml", "url": "https://sb.example", "vcodec": "none", "acodec": "none"},
        {"format_id": "233", "ext": "mp4", "protocol": "m3u8_native", "url": "https://hls.example", "acodec": "mp4a", "vcodec": "none"},
        {"format_id": "251", "ext": "webm", "protocol": "https", "url": "https://media.example/251",
         "acodec": "opus", "vcodec": "none", "abr": 135.2, "tbr": 135.2, "format_note": "medium",
         "filesize": 3456789, "http_headers": {"Referer": "https://www.youtube.com/"}},
        {"format_id": "137", "ext": "mp4", "protocol": "https", "url": "https://media.example/137",
         "acodec": "none", "vcodec": "avc1", "height": 1080, "tbr": 4400.1},
    ],
}


class FakeYDL:
    """Stands in for yt_dlp.YoutubeDL, recording the options it was built with."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.opts = []
        self.urls = []

    def __call__(self, opts):
        self.opts.append(opts)
        return self

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False

    def extract_info(self, url, download=False):
        assert download is False
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.result


def test_descriptor_skips_unstreamable_formats():
    formats = [descriptor_from_format(f) for f in INFO["formats"]]
    assert formats[0] is None  # storyboard
    assert formats[1] is None  # HLS manifest
    assert formats[2] is not None
    assert formats[3] is not None


def test_descriptor_audio_fields():
    descriptor = descriptor_from_format(INFO["formats"][2])
    assert descriptor.format_id == "251"
    assert descriptor.container == "webm"
    assert descriptor.mime_type == "audio/webm"
    assert descriptor.has_audio and not descriptor.has_video
    assert descriptor.audio_bitrate == 135.2
    assert descriptor.content_length == 3456789
    assert descriptor.quality_label == "medium"
    assert descriptor.http_headers == {"Referer": "https://www.youtube.com/"}


def test_descriptor_video_mime_type():
    descriptor = descriptor_from_format(INFO["formats"][3])
    assert descriptor.mime_type == "video/mp4"
    assert descriptor.height == 1080
    assert descriptor.audio_bitrate is None


def test_metadata_uses_best_thumbnail():
    meta = metadata_from_info(INFO)
    assert meta.thumbnail == "https://i.ytimg.com/large.jpg"
    assert meta.author == "Rick Astley"
    assert meta.duration == 212


def test_upstream_message_strips_prefix():
    assert upstream_message(DownloadError("ERROR: Video unavailable")) == "Video unavailable"


@pytest.mark.asyncio
async def test_resolve_through_selected_proxy():
    ydl = FakeYDL(result=INFO)
    selector = ProxySelector.from_urls(["http://user:pw@proxy.local:8080"], rng=random.Random(0))
    resolver = UpstreamResolver(selector, timeout_s=12, ydl_factory=ydl)

    media = await resolver.resolve("https://youtu.be/dQw4w9WgXcQ")

    assert ydl.urls == [VIDEO_URL]
    opts = ydl.opts[0]
    assert opts["proxy"] == "http://user:pw@proxy.local:8080"
    assert opts["socket_timeout"] == 12
    assert opts["noplaylist"] is True
    assert media.proxy == selector.pool[0]
    assert media.metadata.id == "dQw4w9WgXcQ"
    assert [f.format_id for f in media.formats] == ["251", "137"]


@pytest.mark.asyncio
async def test_resolve_direct_has_no_proxy_option():
    ydl = FakeYDL(result=INFO)
    resolver = UpstreamResolver(DirectSelector(), ydl_factory=ydl)

    media = await resolver.resolve(VIDEO_URL)

    assert "proxy" not in ydl.opts[0]
    assert media.proxy is None


@pytest.mark.asyncio
async def test_invalid_url_never_reaches_upstream():
    ydl_factory = MagicMock()
    selector = MagicMock()
    resolver = UpstreamResolver(selector, ydl_factory=ydl_factory)

    with pytest.raises(ClientInputError):
        await resolver.resolve("https://example.com/watch?v=dQw4w9WgXcQ")

    ydl_factory.assert_not_called()
    selector.select.assert_not_called()


@pytest.mark.asyncio
async def test_upstream_failure_becomes_upstream_error():
    ydl = FakeYDL(error=DownloadError("ERROR: [youtube] dQw4w9WgXcQ: Sign in to confirm you're not a bot"))
    resolver = UpstreamResolver(DirectSelector(), ydl_factory=ydl)

    with pytest.raises(UpstreamError) as exc_info:
        await resolver.resolve(VIDEO_URL)

    assert exc_info.value.status_code == 500
    assert "Sign in to confirm" in exc_info.value.message
    assert not exc_info.value.message.startswith("ERROR")


@pytest.mark.asyncio
async def test_malformed_upstream_response():
    resolver = UpstreamResolver(DirectSelector(), ydl_factory=FakeYDL(result={"title": "no id"}))
    with pytest.raises(UpstreamError):
        await resolver.resolve(VIDEO_URL)


@pytest.mark.asyncio
async def test_network_failure_outside_yt_dlp_becomes_upstream_error():
    ydl = FakeYDL(error=ConnectionResetError("Connection reset by peer"))
    resolver = UpstreamResolver(DirectSelector(), ydl_factory=ydl)

    with pytest.raises(UpstreamError) as exc_info:
        await resolver.resolve(VIDEO_URL)

    assert exc_info.value.message == "Connection reset by peer"

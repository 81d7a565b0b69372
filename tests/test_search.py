"""Tests for search and trending"""

import random

import pytest
from yt_dlp.utils import DownloadError

from ytm_gateway.services.errors import UpstreamError
from ytm_gateway.services.search import (
    TRENDING_SEEDS,
    SearchProvider,
    format_timestamp,
    result_from_entry,
)


def entries(count):
    return [
        {
            "id": f"video{i:06d}",
            "title": f"Song {i}",
            "channel": f"Artist {i}",
            "duration": 180 + i,
            "view_count": 1000 * i,
            "url": f"https://www.youtube.com/watch?v=video{i:06d}",
        }
        for i in range(count)
    ]


class FakeYDL:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.queries = []
        self.opts = None

    def __call__(self, opts):
        self.opts = opts
        return self

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False

    def extract_info(self, query, download=False):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.result


@pytest.mark.parametrize("seconds,expected", [
    (None, None),
    (0, "0:00"),
    (7, "0:07"),
    (187, "3:07"),
    (3725, "1:02:05"),
    (212.6, "3:32"),
])
def test_format_timestamp(seconds, expected):
    assert format_timestamp(seconds) == expected


def test_result_from_entry_fills_defaults():
    result = result_from_entry({"id": "abcdefghijk", "url": "abcdefghijk"})
    assert result.url == "https://www.youtube.com/watch?v=abcdefghijk"
    assert result.title == "abcdefghijk"
    assert result.thumbnail == "https://i.ytimg.com/vi/abcdefghijk/hqdefault.jpg"
    assert result_from_entry({"title": "no id"}) is None


@pytest.mark.asyncio
async def test_search_returns_first_results_in_order():
    ydl = FakeYDL(result={"entries": entries(5)})
    provider = SearchProvider(ydl_factory=ydl)

    results = await provider.search("test", 2)

    assert [r.id for r in results] == ["video000000", "video000001"]
    assert ydl.queries == ["ytsearch2:test"]
    assert ydl.opts["extract_flat"] is True
    assert results[1].duration == "3:01"
    assert results[1].author == "Artist 1"


@pytest.mark.asyncio
async def test_search_skips_empty_entries():
    ydl = FakeYDL(result={"entries": [None, *entries(2)]})
    results = await SearchProvider(ydl_factory=ydl).search("test", 5)
    assert len(results) == 2


@pytest.mark.asyncio
async def test_search_failure():
    ydl = FakeYDL(error=DownloadError("ERROR: HTTP Error 429: Too Many Requests"))
    with pytest.raises(UpstreamError) as exc_info:
        await SearchProvider(ydl_factory=ydl).search("test", 5)
    assert exc_info.value.message == "HTTP Error 429: Too Many Requests"


@pytest.mark.asyncio
async def test_trending_uses_seeded_query():
    ydl = FakeYDL(result={"entries": entries(3)})
    provider = SearchProvider(rng=random.Random(7), ydl_factory=ydl)
    expected_seed = random.Random(7).choice(TRENDING_SEEDS)

    query, results = await provider.trending(3)

    assert query == expected_seed
    assert ydl.queries == [f"ytsearch3:{expected_seed}"]
    assert len(results) == 3


@pytest.mark.asyncio
async def test_search_network_failure():
    ydl = FakeYDL(error=OSError("Network is unreachable"))
    with pytest.raises(UpstreamError) as exc_info:
        await SearchProvider(ydl_factory=ydl).search("test", 5)
    assert exc_info.value.message == "Network is unreachable"

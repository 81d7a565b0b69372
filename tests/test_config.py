"""Tests for configuration validation"""

import pytest
from pydantic import ValidationError

from ytm_gateway.core.config import Cfg


def test_defaults():
    c = Cfg()
    assert c.PORT == 3000
    assert c.RATE_LIMIT == 100
    assert c.rate_limit_window_s == 3600.0
    assert len(c.proxy_urls) == 5
    assert c.SEARCH_DEFAULT_LIMIT <= c.SEARCH_MAX_LIMIT


def test_proxy_pool_is_split_and_trimmed():
    c = Cfg(PROXY_POOL=" http://a.local:1 , ,socks5://b.local:2")
    assert c.proxy_urls == ["http://a.local:1", "socks5://b.local:2"]


def test_log_level_is_normalised():
    assert Cfg(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"


@pytest.mark.parametrize("overrides", [
    {"PORT": 0},
    {"PORT": 70000},
    {"RATE_LIMIT": 0},
    {"RATE_LIMIT_WINDOW": -5},
    {"RATE_LIMIT_MAX_CLIENTS": -1},
    {"UPSTREAM_TIMEOUT_S": 0},
    {"STREAM_READ_TIMEOUT_S": -1},
    {"LOG_LEVEL": "LOUD"},
    {"SEARCH_DEFAULT_LIMIT": 60, "SEARCH_MAX_LIMIT": 50},
    {"PROXY_ENABLED": True, "PROXY_POOL": " , "},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        Cfg(**overrides)


def test_empty_pool_allowed_when_proxying_disabled():
    c = Cfg(PROXY_ENABLED=False, PROXY_POOL="")
    assert c.proxy_urls == []


def test_read_timeout_zero_disables():
    assert Cfg(STREAM_READ_TIMEOUT_S=0).STREAM_READ_TIMEOUT_S == 0

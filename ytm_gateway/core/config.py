import os
from typing import List

from pydantic import BaseModel, field_validator, model_validator
from dotenv import load_dotenv
load_dotenv()

# Free forward proxies the gateway rotates through by default
DEFAULT_PROXY_POOL = ",".join([
    "http://185.199.229.156:7492",
    "http://159.89.132.108:8989",
    "http://45.167.125.61:999",
    "http://89.208.219.121:8080",
    "http://190.61.88.147:8080",
])


def _as_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Cfg(BaseModel):
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", 3000))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Rate limiting
    RATE_LIMIT: int = int(os.getenv("RATE_LIMIT", 100))
    RATE_LIMIT_WINDOW: int = int(os.getenv("RATE_LIMIT_WINDOW", 60 * 60 * 1000))  # milliseconds
    RATE_LIMIT_MAX_CLIENTS: int = int(os.getenv("RATE_LIMIT_MAX_CLIENTS", 0))  # 0 = unbounded
    RATE_LIMIT_SWEEP_INTERVAL_S: int = int(os.getenv("RATE_LIMIT_SWEEP_INTERVAL_S", 300))
    # Key clients on the first X-Forwarded-For hop (only behind a trusted reverse proxy)
    TRUST_FORWARDED_FOR: bool = _as_bool("TRUST_FORWARDED_FOR", "false")

    # Forward proxies for upstream traffic
    PROXY_ENABLED: bool = _as_bool("PROXY_ENABLED", "true")
    PROXY_POOL: str = os.getenv("PROXY_POOL", DEFAULT_PROXY_POOL)

    # Upstream timeouts (the relay read timeout is per chunk, 0 disables it)
    UPSTREAM_TIMEOUT_S: float = float(os.getenv("UPSTREAM_TIMEOUT_S", 30))
    STREAM_READ_TIMEOUT_S: float = float(os.getenv("STREAM_READ_TIMEOUT_S", 60))

    # Search
    SEARCH_DEFAULT_LIMIT: int = int(os.getenv("SEARCH_DEFAULT_LIMIT", 20))
    SEARCH_MAX_LIMIT: int = int(os.getenv("SEARCH_MAX_LIMIT", 50))

    @property
    def rate_limit_window_s(self) -> float:
        return self.RATE_LIMIT_WINDOW / 1000.0

    @property
    def proxy_urls(self) -> List[str]:
        return [item.strip() for item in self.PROXY_POOL.split(",") if item.strip()]

    @field_validator('PORT')
    @classmethod
    def validate_port(cls, v):
        if not (1 <= v <= 65535):
            raise ValueError('PORT must be between 1-65535')
        return v

    @field_validator('RATE_LIMIT', 'RATE_LIMIT_WINDOW', 'RATE_LIMIT_SWEEP_INTERVAL_S', 'SEARCH_DEFAULT_LIMIT', 'SEARCH_MAX_LIMIT')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('Value must be > 0')
        return v

    @field_validator('RATE_LIMIT_MAX_CLIENTS')
    @classmethod
    def validate_max_clients(cls, v):
        if v < 0:
            raise ValueError('RATE_LIMIT_MAX_CLIENTS must be >= 0')
        return v

    @field_validator('UPSTREAM_TIMEOUT_S')
    @classmethod
    def validate_upstream_timeout(cls, v):
        if v <= 0:
            raise ValueError('UPSTREAM_TIMEOUT_S must be > 0')
        return v

    @field_validator('STREAM_READ_TIMEOUT_S')
    @classmethod
    def validate_stream_read_timeout(cls, v):
        if v < 0:
            raise ValueError('STREAM_READ_TIMEOUT_S must be >= 0')
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'LOG_LEVEL must be one of: {", ".join(valid_levels)}')
        return v.upper()

    @model_validator(mode='after')
    def validate_search_limits(self):
        if self.SEARCH_DEFAULT_LIMIT > self.SEARCH_MAX_LIMIT:
            raise ValueError('SEARCH_DEFAULT_LIMIT must be <= SEARCH_MAX_LIMIT')
        return self

    @model_validator(mode='after')
    def validate_proxy_pool(self):
        # An empty pool is a startup error, not a per-request condition
        if self.PROXY_ENABLED and not self.proxy_urls:
            raise ValueError('PROXY_POOL must list at least one proxy when PROXY_ENABLED is true')
        return self

cfg = Cfg()

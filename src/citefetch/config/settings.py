"""Settings for citefetch, loaded from the environment (and an optional .env file)."""

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from citefetch.core.exceptions import ConfigurationError
from citefetch.infrastructure.browser.browser_pool import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT_LIMITS: dict[str, int] = {
    "/health": 100,
    "/cite": 30,
    "/scrape": 20,
    "/doi": 20,
    "/isbn": 20,
    "/format": 50,
    "/formats": 100,
    "/track": 100,
    "/metrics": 10,
}


class BrowserConfig(BaseModel):
    """Remote headless browser backend."""

    ws_endpoint: str = "ws://chrome-headless:3000"
    token: str | None = None
    navigation_timeout_ms: int = Field(default=30_000, gt=0)
    max_concurrent_sessions: int = Field(default=5, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = Field(default=1280, gt=0, le=4096)
    viewport_height: int = Field(default=800, gt=0, le=4096)
    blocked_resource_types: list[str] = Field(default_factory=lambda: ["image", "media", "font"])


class CacheConfig(BaseModel):
    """Two-tier cache sizing and TTLs (milliseconds)."""

    result_ttl_ms: int = Field(default=3_600_000, gt=0)
    l1_max_items: int = Field(default=100, gt=0)
    l1_ttl_ms: int = Field(default=300_000, gt=0)
    l2_url: str | None = None
    l2_ttl_ms: int = Field(default=3_600_000, gt=0)
    l2_key_prefix: str = "citefetch"

    @property
    def l2_enabled(self) -> bool:
        return bool(self.l2_url)


class RateLimitConfig(BaseModel):
    """Fixed-window rate limiter."""

    window_ms: int = Field(default=60_000, gt=0)
    default_limit: int = Field(default=30, gt=0)
    max_buckets: int = Field(default=10_000, gt=0)
    endpoint_limits: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_ENDPOINT_LIMITS))


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker around the browser backend."""

    failure_threshold: int = Field(default=5, gt=0)
    cooldown_ms: int = Field(default=60_000, gt=0)


class RegistryConfig(BaseModel):
    """Bibliographic registries (Crossref, Open Library)."""

    crossref_url: str = "https://api.crossref.org/works"
    openlibrary_url: str = "https://openlibrary.org/api/books"
    timeout_s: float = Field(default=15.0, gt=0)
    mailto: str | None = None
    user_agent: str = "CiteFetch/1.0 (https://citegenerator.org)"


class Settings(BaseModel):
    """Top-level settings."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)


# env var -> (section, field)
ENV_MAPPING: dict[str, tuple[str, str]] = {
    "CHROME_WS_ENDPOINT": ("browser", "ws_endpoint"),
    "BROWSERLESS_TOKEN": ("browser", "token"),
    "SCRAPE_TIMEOUT_MS": ("browser", "navigation_timeout_ms"),
    "MAX_CONCURRENT_SESSIONS": ("browser", "max_concurrent_sessions"),
    "SCRAPE_CACHE_TTL_MS": ("cache", "result_ttl_ms"),
    "CACHE_L1_MAX_ITEMS": ("cache", "l1_max_items"),
    "CACHE_L1_TTL_MS": ("cache", "l1_ttl_ms"),
    "REDIS_URL": ("cache", "l2_url"),
    "CACHE_L2_TTL_MS": ("cache", "l2_ttl_ms"),
    "RATE_LIMIT_WINDOW_MS": ("rate_limit", "window_ms"),
    "RATE_LIMIT_MAX_REQUESTS": ("rate_limit", "default_limit"),
    "RATE_LIMIT_MAX_BUCKETS": ("rate_limit", "max_buckets"),
    "CIRCUIT_FAILURE_THRESHOLD": ("circuit_breaker", "failure_threshold"),
    "CIRCUIT_TIMEOUT_MS": ("circuit_breaker", "cooldown_ms"),
    "REGISTRY_TIMEOUT_S": ("registry", "timeout_s"),
    "CROSSREF_MAILTO": ("registry", "mailto"),
}


def settings_from_env(env: Mapping[str, str]) -> Settings:
    """Build settings from an environment mapping.

    Raises:
        ConfigurationError: If a value fails validation.
    """
    sections: dict[str, dict[str, str]] = {}
    for var, (section, name) in ENV_MAPPING.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        sections.setdefault(section, {})[name] = value

    try:
        return Settings.model_validate(sections)
    except ValidationError as exc:
        raise ConfigurationError("Invalid configuration", details=str(exc)) from exc


def load_settings(env_file: Path | str | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Load settings from ``env`` or the process environment.

    Args:
        env_file: Optional .env file; loaded into the process environment first.
        env: Explicit mapping, bypassing ``os.environ`` (used by tests).
    """
    if env is None:
        load_dotenv(env_file)
        env = os.environ
    settings = settings_from_env(env)
    logger.debug(
        "Loaded settings (backend=%s, max_sessions=%d, l2=%s)",
        settings.browser.ws_endpoint,
        settings.browser.max_concurrent_sessions,
        "on" if settings.cache.l2_enabled else "off",
    )
    return settings


__all__ = [
    "Settings",
    "BrowserConfig",
    "CacheConfig",
    "RateLimitConfig",
    "CircuitBreakerConfig",
    "RegistryConfig",
    "DEFAULT_ENDPOINT_LIMITS",
    "settings_from_env",
    "load_settings",
]

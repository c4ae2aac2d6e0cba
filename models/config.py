"""Application configuration using Pydantic v2.

Centralized settings for ani-harvest including:
- Target site and HTTP timeouts
- Headless browser behaviour
- Admission control (concurrency + circuit breaker)
- Response cache sizing and TTLs
- Retry policy and bulk job pacing
- Log sinks and levels
- OS-specific data paths

Configuration can be overridden via environment variables:
    ANI_HARVEST__ADMISSION__MAX_CONCURRENCY=4
    ANI_HARVEST__CACHE__MAX_ENTRIES=500
    ANI_HARVEST__BULK__CHUNK_SIZE=25
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def get_data_path() -> Path:
    """Get OS-specific data directory for ani-harvest.

    Returns:
        Path: ~/.local/state/ani-harvest (Linux/macOS) or %APPDATA%\\ani-harvest (Windows)
    """
    if os.name == "nt":
        return Path(os.environ.get("APPDATA", Path.home())) / "ani-harvest"
    return Path.home() / ".local" / "state" / "ani-harvest"


class ScraperSettings(BaseModel):
    """Target site selection and plain-HTTP timeouts (seconds)."""

    extractor: str = Field(
        "nineanime",
        min_length=1,
        description="Name of the extractor plugin used for search and extraction",
    )
    disabled_plugins: list[str] = Field(
        default_factory=list,
        description="Extractor plugins that should not be loaded",
    )
    user_agent: str = Field(DEFAULT_USER_AGENT, min_length=1)
    probe_timeout: float = Field(5.0, gt=0, description="Direct URL probe timeout")
    search_timeout: float = Field(15.0, gt=0, description="Keyword search timeout")
    hop_timeout: float = Field(15.0, gt=0, description="Out-of-band indirection fetch timeout")
    protection_timeout: float = Field(10.0, gt=0, description="Protection check fetch timeout")
    episode_list_timeout: float = Field(15.0, gt=0, description="Episode list fetch timeout")


class BrowserSettings(BaseModel):
    """Headless browser configuration (timeouts in seconds)."""

    headless: bool = True
    navigation_timeout: float = Field(10.0, gt=0)
    fallback_navigation_timeout: float = Field(5.0, gt=0)
    settle_delay: float = Field(2.0, ge=0, description="Wait for dynamic content after navigation")
    video_wait_timeout: float = Field(15.0, gt=0)
    nested_frame_wait: float = Field(3.0, ge=0)
    viewport_width: int = Field(1280, ge=320)
    viewport_height: int = Field(720, ge=240)


class AdmissionSettings(BaseModel):
    """Bounded concurrency and circuit breaker for the browser stage."""

    max_concurrency: int = Field(2, ge=1, le=32)
    breaker_threshold: int = Field(8, ge=1, description="Consecutive failures before opening")
    breaker_cooldown: float = Field(30.0, gt=0, description="Seconds the breaker stays open")


class CacheSettings(BaseModel):
    """In-memory response cache and on-disk row store location."""

    max_entries: int = Field(1000, ge=1)
    search_ttl: float = Field(60.0, gt=0, description="TTL for resolved episode pages")
    stream_ttl: float = Field(120.0, gt=0, description="TTL for extracted stream URLs")
    store_dir: Path = Field(
        default_factory=lambda: get_data_path() / "store",
        description="Path to the diskcache row store used by the CLI",
    )


class PipelineSettings(BaseModel):
    """Per-episode retry policy."""

    retries: int = Field(3, ge=1, le=10)
    retry_delay: float = Field(2.0, ge=0)
    timeout: float = Field(45.0, gt=0, description="Upper bound for one dynamic extraction")
    max_episodes: int = Field(50, ge=1)
    batch_delay: float = Field(2.0, ge=0, description="Delay between episodes in batch runs")


class BulkSettings(BaseModel):
    """Chunked bulk job pacing."""

    chunk_size: int = Field(50, ge=1, le=500)
    episode_delay: float = Field(2.0, ge=0, description="Throttle between episodes in a chunk")
    episode_retries: int = Field(2, ge=1, le=10)
    episode_timeout: float = Field(30.0, gt=0)


class LoggingSettings(BaseModel):
    """loguru sinks: stderr for the operator, a rotating file for post-mortems."""

    console_level: str = Field("WARNING", description="stderr level; --debug forces DEBUG")
    file_level: str = Field("DEBUG")
    file_enabled: bool = True
    rotation: str = Field("50 MB", description="loguru rotation condition")
    retention: int = Field(10, ge=1, description="Rotated files kept")


class AppSettings(BaseSettings):
    """Root application settings with environment variable support.

    Environment variables use the prefix ANI_HARVEST__ with nested delimiters:
    - ANI_HARVEST__ADMISSION__MAX_CONCURRENCY=4
    - ANI_HARVEST__CACHE__STREAM_TTL=300
    - ANI_HARVEST__SCRAPER__EXTRACTOR=nineanime
    - ANI_HARVEST__LOGGING__CONSOLE_LEVEL=INFO

    Can also be configured via .env file in project root.
    """

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="ANI_HARVEST__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    scraper: ScraperSettings = Field(default_factory=ScraperSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    admission: AdmissionSettings = Field(default_factory=AdmissionSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    bulk: BulkSettings = Field(default_factory=BulkSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Singleton instance - import and use throughout the app
settings = AppSettings()

"""Data models and configuration.

Pydantic models and configuration:
- models: Stage results, scrape outcomes and bulk job records
- config: Centralized configuration (Pydantic Settings)
"""

from models.models import (
    BulkJobProgress,
    EpisodeLogEntry,
    EpisodeStatus,
    JobStatus,
    ProtectionResult,
    ScrapeResult,
    SearchResult,
)
from models.config import settings, get_data_path

__all__ = [
    "BulkJobProgress",
    "EpisodeLogEntry",
    "EpisodeStatus",
    "JobStatus",
    "ProtectionResult",
    "ScrapeResult",
    "SearchResult",
    "settings",
    "get_data_path",
]

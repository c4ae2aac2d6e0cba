"""Pydantic data models for structured data transfer.

Defines the tagged results passed between pipeline stages and the
records tracked by bulk jobs:
- SearchResult / ExtractionResult / ProtectionResult: one per stage
- ScrapeResult: merged outcome of one episode scrape
- EpisodeOutcome / BatchSummary: per-episode rows of multi-episode runs
- BulkJobProgress / EpisodeLogEntry: chunked job state
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Bulk job lifecycle."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class EpisodeStatus(str, Enum):
    """Per-episode state inside a bulk job."""

    PENDING = "pending"
    SCRAPING = "scraping"
    SUCCESS = "success"
    FAILED = "failed"


class SearchResult(BaseModel):
    """Outcome of the search stage.

    Attributes:
        success: Whether an episode page was located
        anime_link: Absolute URL of the episode page
        anime_id: Site-specific anime identifier (usually the slug)
        via: "direct" when the slug fast path hit, "search" otherwise
        error: Failure description when success is False
    """

    success: bool
    anime_link: str | None = None
    anime_id: str | None = None
    via: Literal["direct", "search"] | None = None
    error: str | None = None

    @model_validator(mode="after")
    def validate_success_fields(self) -> "SearchResult":
        if self.success and not (self.anime_link and self.anime_id):
            raise ValueError("Successful search requires anime_link and anime_id")
        return self


class ExtractionResult(BaseModel):
    """Stream URL produced by the dynamic extraction stage."""

    stream_url: str = Field(..., min_length=1)
    anime_id: str = Field(..., min_length=1)
    episode_number: int = Field(..., ge=1)
    extracted_at: datetime = Field(default_factory=utcnow)

    @field_validator("stream_url")
    @classmethod
    def validate_stream_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Stream URL must be http(s), got: {v}")
        return v


class ProtectionResult(BaseModel):
    """Verdict of the anti-embedding check.

    Attributes:
        protected: True when the stream page should not be assumed embeddable
        reason: Comma separated description of what matched (None when clean)
        reasons: Individual matched signatures
    """

    protected: bool
    reason: str | None = None
    reasons: list[str] = Field(default_factory=list)


class EpisodeData(BaseModel):
    """Descriptive metadata merged into a successful scrape."""

    anime_title: str
    anime_id: str
    anime_link: str
    episode_number: int = Field(..., ge=1)
    extracted_at: datetime = Field(default_factory=utcnow)

    @property
    def title(self) -> str:
        return f"{self.anime_title} - Episode {self.episode_number}"


class ScrapeResult(BaseModel):
    """Final result of one scrape_episode call.

    Attributes:
        attempts: Number of pipeline attempts made (1 = no retry)
        retry_later: True when the admission breaker rejected the request
    """

    success: bool
    stream_url: str | None = None
    protection_detected: bool | None = None
    protection_reason: str | None = None
    episode_data: EpisodeData | None = None
    error: str | None = None
    attempts: int = Field(0, ge=0)
    retry_later: bool = False


class EpisodeRef(BaseModel):
    """Episode listed on an anime page."""

    number: int = Field(..., ge=1)
    title: str
    url: str


class EpisodeOutcome(BaseModel):
    """One row of a multi-episode run."""

    episode_number: int = Field(..., ge=1)
    status: Literal["success", "failed"]
    stream_url: str | None = None
    title: str | None = None
    protection_detected: bool | None = None
    protection_reason: str | None = None
    error: str | None = None
    scraped_at: datetime | None = None

    @classmethod
    def from_scrape(cls, episode_number: int, result: ScrapeResult, title: str | None = None):
        if result.success:
            return cls(
                episode_number=episode_number,
                status="success",
                stream_url=result.stream_url,
                title=title
                or (result.episode_data.title if result.episode_data else f"Episode {episode_number}"),
                protection_detected=result.protection_detected,
                protection_reason=result.protection_reason,
                scraped_at=utcnow(),
            )
        return cls(
            episode_number=episode_number,
            status="failed",
            title=title,
            error=result.error or "Scraping failed",
        )


class BatchSummary(BaseModel):
    """Aggregate counters of a multi-episode run."""

    total_episodes: int = Field(0, ge=0)
    success_count: int = Field(0, ge=0)
    error_count: int = Field(0, ge=0)
    success_rate: float = Field(0.0, ge=0, le=100)
    protection_detected: int = Field(0, ge=0)

    @classmethod
    def from_outcomes(cls, outcomes: list[EpisodeOutcome]) -> "BatchSummary":
        total = len(outcomes)
        successes = [o for o in outcomes if o.status == "success"]
        rate = round(len(successes) / total * 100, 1) if total else 0.0
        return cls(
            total_episodes=total,
            success_count=len(successes),
            error_count=total - len(successes),
            success_rate=rate,
            protection_detected=sum(1 for o in successes if o.protection_detected),
        )


class AllEpisodesResult(BaseModel):
    """Result of scraping every listed episode of an anime."""

    success: bool
    anime_title: str
    anime_id: str | None = None
    total_episodes: int = 0
    scraped_episodes: list[EpisodeOutcome] = Field(default_factory=list)
    failed_episodes: list[EpisodeOutcome] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    error: str | None = None


class BatchResult(BaseModel):
    """Result of scraping an explicit list of episode numbers."""

    success: bool
    results: list[EpisodeOutcome] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    error: str | None = None


class SaveResult(BaseModel):
    """Result of scrape_and_save_episode."""

    success: bool
    stream_url: str | None = None
    episode_data: EpisodeData | None = None
    saved: bool = False
    error: str | None = None


class BulkJobProgress(BaseModel):
    """Aggregate state of a chunked bulk job.

    Invariants:
        - completed_episodes + failed_episodes <= total_episodes
        - status is COMPLETED or FAILED only when the sum equals total_episodes
    """

    job_id: str = Field(..., min_length=1)
    anime_id: str = Field(..., min_length=1)
    anime_title: str = Field(..., min_length=1)
    total_episodes: int = Field(..., ge=1)
    completed_episodes: int = Field(0, ge=0)
    failed_episodes: int = Field(0, ge=0)
    current_chunk: int = Field(1, ge=1)
    total_chunks: int = Field(..., ge=1)
    chunk_size: int = Field(..., ge=1)
    status: JobStatus = JobStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_counts(self) -> "BulkJobProgress":
        if self.completed_episodes + self.failed_episodes > self.total_episodes:
            raise ValueError(
                f"Counted {self.completed_episodes + self.failed_episodes} episodes "
                f"for a job of {self.total_episodes}"
            )
        return self

    @property
    def processed_episodes(self) -> int:
        return self.completed_episodes + self.failed_episodes

    @property
    def is_terminal(self) -> bool:
        return self.processed_episodes == self.total_episodes

    def chunk_for(self, episode_number: int) -> int:
        return math.ceil(episode_number / self.chunk_size)

    def chunk_range(self, chunk_number: int) -> range:
        start = (chunk_number - 1) * self.chunk_size + 1
        end = min(chunk_number * self.chunk_size, self.total_episodes)
        return range(start, end + 1)


class EpisodeLogEntry(BaseModel):
    """Per-episode row of a bulk job (pending -> scraping -> success|failed)."""

    job_id: str = Field(..., min_length=1)
    episode_number: int = Field(..., ge=1)
    chunk_number: int = Field(..., ge=1)
    status: EpisodeStatus = EpisodeStatus.PENDING
    stream_url: str | None = None
    error_message: str | None = None
    scraped_at: datetime | None = None


class StartJobResult(BaseModel):
    """Result of start_job; ``progress`` is the freshly stored job record."""

    success: bool
    job_id: str | None = None
    total_chunks: int = Field(0, ge=0)
    progress: BulkJobProgress | None = None
    error: str | None = None


class ChunkResult(BaseModel):
    """Summary returned by scrape_chunk."""

    success: bool
    job_id: str
    chunk_number: int
    results: list[EpisodeOutcome] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    progress: BulkJobProgress | None = None
    error: str | None = None


class JobProgressReport(BaseModel):
    """Progress of a bulk job with derived rate and ETA."""

    success: bool
    progress: BulkJobProgress | None = None
    progress_percentage: int = Field(0, ge=0, le=100)
    estimated_time_remaining: str = "Calculating..."
    episodes_per_second: float = Field(0.0, ge=0)
    error: str | None = None


class AdmissionStats(BaseModel):
    """Snapshot of the admission controller."""

    state: Literal["closed", "open"]
    active_count: int = Field(0, ge=0)
    queued: int = Field(0, ge=0)
    max_concurrency: int = Field(..., ge=1)
    consecutive_failures: int = Field(0, ge=0)
    opened_at: float | None = None

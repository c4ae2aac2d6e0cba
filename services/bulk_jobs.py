"""Chunked bulk scraping of long episode ranges.

A job is one BulkJobProgress row plus one EpisodeLogEntry per episode,
partitioned into chunks of ``chunk_size``. Chunks are never advanced
automatically: each ``scrape_chunk`` call processes one chunk, sequentially
and with a fixed delay between episodes, so a single invocation stays
bounded in time and the upstream site is not hammered.

Job counters are recomputed from the episode logs after every chunk, so a
failed episode that succeeds on a later run moves from the failed count to
the completed count and the sum never exceeds the total. An episode left
in ``scraping`` by an interrupted run is picked up again by the next call
for its chunk.
"""

import asyncio
import math
from collections.abc import Awaitable, Callable
from datetime import datetime

from models.config import BulkSettings
from models.models import (
    BatchResult,
    BatchSummary,
    BulkJobProgress,
    ChunkResult,
    EpisodeLogEntry,
    EpisodeOutcome,
    EpisodeStatus,
    JobProgressReport,
    JobStatus,
    SaveResult,
    StartJobResult,
    utcnow,
)
from services.pipeline import EpisodeScraper
from services.row_store import RowStore
from utils.exceptions import JobNotFoundError, PersistenceError
from utils.logging import get_logger

logger = get_logger(__name__)

# a log still in scraping belongs to a run that died mid-episode
RETRYABLE = (EpisodeStatus.PENDING, EpisodeStatus.SCRAPING, EpisodeStatus.FAILED)


def job_id_for(anime_id: str) -> str:
    return f"{anime_id}-job"


def format_duration(seconds: float) -> str:
    """Human readable duration.

    Examples:
        45 -> "45s"
        125 -> "2m 5s"
        7320 -> "2h 2m"
        90000 -> "1d 1h 0m"
    """
    seconds = int(seconds)
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


class BulkJobOrchestrator:
    def __init__(
        self,
        scraper: EpisodeScraper,
        store: RowStore,
        bulk_settings: BulkSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.scraper = scraper
        self.store = store
        self.settings = bulk_settings or BulkSettings()
        self._clock = clock
        self._sleep = sleep

    async def _persist(self, func, *args) -> bool:
        """Run a store write off the loop; failures are logged, not raised."""
        try:
            await asyncio.to_thread(func, *args)
            return True
        except PersistenceError as exc:
            logger.error(f"Persistence failure in {func.__name__}: {exc}")
            return False

    async def start_job(
        self,
        anime_id: str,
        anime_title: str,
        total_episodes: int,
        chunk_size: int | None = None,
    ) -> StartJobResult:
        """Create (or overwrite) a job and its pending episode logs.

        Episode logs are written before the progress row, so a stored job
        always has its logs. A failed progress write clears the new logs.
        """
        job_id = job_id_for(anime_id)
        chunk_size = chunk_size or self.settings.chunk_size
        if total_episodes < 1:
            return StartJobResult(success=False, job_id=job_id, error="total_episodes must be at least 1")
        if chunk_size < 1:
            return StartJobResult(success=False, job_id=job_id, error="chunk_size must be at least 1")

        now = self._clock()
        progress = BulkJobProgress(
            job_id=job_id,
            anime_id=anime_id,
            anime_title=anime_title,
            total_episodes=total_episodes,
            total_chunks=math.ceil(total_episodes / chunk_size),
            chunk_size=chunk_size,
            status=JobStatus.IN_PROGRESS,
            started_at=now,
            updated_at=now,
        )
        logs = [
            EpisodeLogEntry(
                job_id=job_id,
                episode_number=episode,
                chunk_number=progress.chunk_for(episode),
            )
            for episode in range(1, total_episodes + 1)
        ]

        try:
            await asyncio.to_thread(self.store.clear_episode_logs, job_id)
            await asyncio.to_thread(self.store.upsert_episode_logs, logs)
        except PersistenceError as exc:
            logger.error(f"Cannot store episode logs of {job_id}: {exc}")
            return StartJobResult(success=False, job_id=job_id, error=str(exc))

        try:
            await asyncio.to_thread(self.store.upsert_job_progress, progress)
        except PersistenceError as exc:
            logger.error(f"Cannot store progress of {job_id}: {exc}")
            await self._persist(self.store.clear_episode_logs, job_id)
            return StartJobResult(success=False, job_id=job_id, error=str(exc))

        logger.info(
            f"Started bulk job {job_id}: '{anime_title}' "
            f"({total_episodes} episodes, {progress.total_chunks} chunks of {chunk_size})"
        )
        return StartJobResult(
            success=True, job_id=job_id, total_chunks=progress.total_chunks, progress=progress
        )

    async def scrape_chunk(self, job_id: str, chunk_number: int) -> ChunkResult:
        """Scrape the pending and failed episodes of one chunk."""
        try:
            progress = await asyncio.to_thread(self.store.get_job_progress, job_id)
            if progress is None:
                raise JobNotFoundError(f"Bulk job '{job_id}' not found")
            logs = {
                entry.episode_number: entry
                for entry in await asyncio.to_thread(self.store.list_episode_logs, job_id)
            }
        except (JobNotFoundError, PersistenceError) as exc:
            logger.error(f"Cannot scrape chunk {chunk_number} of {job_id}: {exc}")
            return ChunkResult(
                success=False, job_id=job_id, chunk_number=chunk_number, error=str(exc)
            )

        if not logs:
            return ChunkResult(
                success=False,
                job_id=job_id,
                chunk_number=chunk_number,
                progress=progress,
                error=f"Bulk job '{job_id}' has no episode logs, start it again",
            )

        if not 1 <= chunk_number <= progress.total_chunks:
            return ChunkResult(
                success=False,
                job_id=job_id,
                chunk_number=chunk_number,
                progress=progress,
                error=f"Chunk {chunk_number} out of range 1..{progress.total_chunks}",
            )

        todo = [
            logs[number]
            for number in progress.chunk_range(chunk_number)
            if number in logs and logs[number].status in RETRYABLE
        ]
        logger.info(f"Scraping chunk {chunk_number}/{progress.total_chunks} of {job_id}: {len(todo)} episodes")

        outcomes = []
        for index, entry in enumerate(todo):
            outcome = await self._scrape_logged(progress, entry, logs)
            outcomes.append(outcome)
            if index < len(todo) - 1:
                await self._sleep(self.settings.episode_delay)

        progress = self._recount(progress, logs.values(), chunk_number)
        await self._persist(self.store.upsert_job_progress, progress)

        summary = BatchSummary.from_outcomes(outcomes)
        logger.info(
            f"Chunk {chunk_number} of {job_id} done: "
            f"{summary.success_count} success, {summary.error_count} failed"
        )
        return ChunkResult(
            success=True,
            job_id=job_id,
            chunk_number=chunk_number,
            results=outcomes,
            summary=summary,
            progress=progress,
        )

    async def _scrape_logged(
        self,
        progress: BulkJobProgress,
        entry: EpisodeLogEntry,
        logs: dict[int, EpisodeLogEntry],
    ) -> EpisodeOutcome:
        number = entry.episode_number
        logs[number] = entry.model_copy(update={"status": EpisodeStatus.SCRAPING})
        await self._persist(self.store.upsert_episode_log, logs[number])

        result = await self.scraper.scrape_episode(
            progress.anime_title,
            number,
            timeout=self.settings.episode_timeout,
            retries=self.settings.episode_retries,
        )
        outcome = EpisodeOutcome.from_scrape(number, result)

        if result.success:
            await self._persist(
                self.store.upsert_episode, progress.anime_id, number, result.stream_url, outcome.title
            )
            logs[number] = entry.model_copy(
                update={
                    "status": EpisodeStatus.SUCCESS,
                    "stream_url": result.stream_url,
                    "error_message": None,
                    "scraped_at": self._clock(),
                }
            )
        else:
            logger.warning(f"Episode {number} of {progress.job_id} failed: {result.error}")
            logs[number] = entry.model_copy(
                update={"status": EpisodeStatus.FAILED, "error_message": result.error}
            )
        await self._persist(self.store.upsert_episode_log, logs[number])
        return outcome

    def _recount(self, progress: BulkJobProgress, logs, chunk_number: int) -> BulkJobProgress:
        statuses = [entry.status for entry in logs]
        completed = statuses.count(EpisodeStatus.SUCCESS)
        progress = progress.model_copy(
            update={
                "completed_episodes": completed,
                "failed_episodes": statuses.count(EpisodeStatus.FAILED),
                "current_chunk": min(chunk_number + 1, progress.total_chunks),
                "status": JobStatus.IN_PROGRESS,
                "updated_at": self._clock(),
            }
        )
        if progress.is_terminal:
            progress.status = JobStatus.COMPLETED if completed else JobStatus.FAILED
        return progress

    async def get_progress(self, job_id: str) -> JobProgressReport:
        """Progress with completion rate and a rough ETA."""
        try:
            progress = await asyncio.to_thread(self.store.get_job_progress, job_id)
        except PersistenceError as exc:
            return JobProgressReport(success=False, error=str(exc))
        if progress is None:
            return JobProgressReport(success=False, error=f"Bulk job '{job_id}' not found")

        percentage = round(progress.completed_episodes / progress.total_episodes * 100)
        elapsed = (self._clock() - progress.started_at).total_seconds()
        rate = progress.completed_episodes / elapsed if elapsed > 0 else 0.0
        remaining = progress.total_episodes - progress.completed_episodes
        eta = remaining / rate if rate > 0 else 0.0

        return JobProgressReport(
            success=True,
            progress=progress,
            progress_percentage=percentage,
            estimated_time_remaining=format_duration(eta) if eta > 0 else "Calculating...",
            episodes_per_second=rate,
        )

    async def batch_scrape_episodes(
        self,
        title: str,
        anime_id: str,
        episode_numbers: list[int],
        timeout: float | None = None,
        retries: int | None = None,
        delay: float | None = None,
        save: bool = False,
    ) -> BatchResult:
        """Scrape an explicit list of episodes one after another.

        When ``save`` is set, successful episodes are also written to the
        store under ``anime_id``.
        """
        if not episode_numbers:
            return BatchResult(success=False, error="No episode numbers given")

        delay = self.settings.episode_delay if delay is None else delay
        outcomes = []
        for index, number in enumerate(episode_numbers):
            result = await self.scraper.scrape_episode(
                title,
                number,
                timeout=timeout or self.settings.episode_timeout,
                retries=retries or self.settings.episode_retries,
            )
            outcome = EpisodeOutcome.from_scrape(number, result)
            outcomes.append(outcome)
            if result.success and save:
                await self._persist(
                    self.store.upsert_episode, anime_id, number, result.stream_url, outcome.title
                )
            if index < len(episode_numbers) - 1:
                await self._sleep(delay)

        summary = BatchSummary.from_outcomes(outcomes)
        logger.info(
            f"Batch for '{title}' completed: {summary.success_count}/{summary.total_episodes} successful"
        )
        return BatchResult(success=True, results=outcomes, summary=summary)

    async def scrape_and_save_episode(
        self,
        title: str,
        anime_id: str,
        episode_number: int = 1,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> SaveResult:
        """Scrape one episode and upsert it; a failed save keeps the stream URL."""
        result = await self.scraper.scrape_episode(
            title, episode_number, timeout=timeout, retries=retries
        )
        if not result.success:
            return SaveResult(success=False, error=result.error)

        saved = await self._persist(
            self.store.upsert_episode,
            anime_id,
            episode_number,
            result.stream_url,
            f"{title} - Episode {episode_number}",
        )
        return SaveResult(
            success=True,
            stream_url=result.stream_url,
            episode_data=result.episode_data,
            saved=saved,
            error=None if saved else "Scraped but failed to save episode",
        )

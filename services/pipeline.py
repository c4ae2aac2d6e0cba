"""Per-episode scrape pipeline: Search -> Dynamic Extraction -> Protection Check.

Only the dynamic stage goes through the admission controller. The whole
three-stage attempt is retried a bounded number of times with a fixed
delay, except when admission is denied: an open circuit returns at once
with ``retry_later=True``.

Public methods never raise; failures come back as result models.
"""

import asyncio
from collections.abc import Awaitable, Callable

import requests

from models.config import PipelineSettings, ScraperSettings
from models.models import (
    AllEpisodesResult,
    BatchSummary,
    EpisodeData,
    EpisodeOutcome,
    EpisodeRef,
    ExtractionResult,
    ScrapeResult,
    SearchResult,
)
from scrapers.loader import ExtractorProtocol
from services.admission import AdmissionController
from services.extraction import DynamicExtractionStage
from services.protection import ProtectionChecker
from services.search import SearchStage
from utils.exceptions import CircuitOpenError, ExtractionError, ScraperError, SearchError
from utils.http import PageFetcher
from utils.logging import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class EpisodeScraper:
    def __init__(
        self,
        search: SearchStage,
        extraction: DynamicExtractionStage,
        protection: ProtectionChecker,
        admission: AdmissionController,
        fetcher: PageFetcher,
        extractor: ExtractorProtocol,
        pipeline_settings: PipelineSettings | None = None,
        scraper_settings: ScraperSettings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.search = search
        self.extraction = extraction
        self.protection = protection
        self.admission = admission
        self.fetcher = fetcher
        self.extractor = extractor
        self.settings = pipeline_settings or PipelineSettings()
        self.scraper_settings = scraper_settings or ScraperSettings()
        self._sleep = sleep

    async def scrape_episode(
        self,
        title: str,
        episode_number: int = 1,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> ScrapeResult:
        """Scrape one episode with bounded retry.

        Args:
            title: Anime title as a user would type it
            episode_number: 1-based episode number
            timeout: Upper bound in seconds for one dynamic extraction
            retries: Total attempts (1 = no retry)

        Returns:
            ScrapeResult; ``attempts`` is the number of attempts made and
            ``error`` the last failure when every attempt failed.
        """
        timeout = timeout or self.settings.timeout
        retries = max(1, retries or self.settings.retries)
        logger.info(f"Scraping '{title}' episode {episode_number} (retries={retries})")

        last_error = "Unknown error occurred"
        for attempt in range(1, retries + 1):
            try:
                result = await self._attempt(title, episode_number, timeout)
            except CircuitOpenError as exc:
                logger.warning(f"Admission denied for '{title}' episode {episode_number}: {exc}")
                return ScrapeResult(
                    success=False, error=str(exc), attempts=attempt, retry_later=True
                )
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning(f"Attempt {attempt}/{retries} failed: {last_error}")
                if attempt < retries:
                    logger.info(f"Retrying in {self.settings.retry_delay}s ({attempt}/{retries})")
                    await self._sleep(self.settings.retry_delay)
                continue

            result.attempts = attempt
            return result

        return ScrapeResult(success=False, error=last_error, attempts=retries)

    async def _attempt(self, title: str, episode_number: int, timeout: float) -> ScrapeResult:
        search = await self.search.search(title, episode_number)
        if not search.success:
            raise SearchError(search.error or "Search failed")

        extraction = self.extraction.cached(search.anime_id, episode_number)
        if extraction is None:
            extraction = await self.admission.submit(
                lambda: self._bounded_extract(search, episode_number, timeout)
            )

        protection = await self.protection.check(extraction.stream_url)
        return ScrapeResult(
            success=True,
            stream_url=extraction.stream_url,
            protection_detected=protection.protected,
            protection_reason=protection.reason,
            episode_data=EpisodeData(
                anime_title=title,
                anime_id=search.anime_id,
                anime_link=search.anime_link,
                episode_number=episode_number,
                extracted_at=extraction.extracted_at,
            ),
        )

    async def _bounded_extract(
        self, search: SearchResult, episode_number: int, timeout: float
    ) -> ExtractionResult:
        try:
            return await asyncio.wait_for(
                self.extraction.extract(search.anime_link, search.anime_id, episode_number),
                timeout,
            )
        except asyncio.TimeoutError:
            raise ExtractionError(f"Dynamic extraction timed out after {timeout}s") from None

    async def get_available_episodes(
        self, anime_link: str, anime_id: str, max_episodes: int | None = None
    ) -> list[EpisodeRef]:
        """Episodes listed on the anime page, capped at ``max_episodes``.

        Raises:
            ScraperError: The anime page could not be fetched
        """
        max_episodes = max_episodes or self.settings.max_episodes
        try:
            response = await self.fetcher.get(
                anime_link, timeout=self.scraper_settings.episode_list_timeout
            )
        except requests.RequestException as exc:
            raise ScraperError(f"Failed to fetch episode list: {exc}") from exc
        if response.status_code >= 400:
            raise ScraperError(f"Episode list page returned status {response.status_code}")

        episodes = self.extractor.parse_episode_list(
            response.text, anime_link, anime_id, max_episodes
        )
        logger.info(f"Found {len(episodes)} episodes for {anime_id}")
        return episodes

    async def scrape_all_episodes(
        self,
        title: str,
        max_episodes: int | None = None,
        timeout: float | None = None,
        retries: int | None = 2,
    ) -> AllEpisodesResult:
        """Scrape every listed episode sequentially; failures are collected, not raised."""
        search = await self.search.search(title, 1)
        if not search.success:
            return AllEpisodesResult(
                success=False, anime_title=title, error=search.error or "Search failed"
            )

        try:
            episodes = await self.get_available_episodes(
                search.anime_link, search.anime_id, max_episodes
            )
        except ScraperError as exc:
            return AllEpisodesResult(
                success=False, anime_title=title, anime_id=search.anime_id, error=str(exc)
            )

        outcomes = []
        for index, episode in enumerate(episodes):
            result = await self.scrape_episode(title, episode.number, timeout=timeout, retries=retries)
            outcome = EpisodeOutcome.from_scrape(episode.number, result, title=episode.title)
            outcomes.append(outcome)
            if outcome.status == "success":
                logger.info(f"Episode {episode.number} scraped successfully")
            else:
                logger.warning(f"Episode {episode.number} failed: {outcome.error}")
            if index < len(episodes) - 1:
                await self._sleep(self.settings.batch_delay)

        return AllEpisodesResult(
            success=True,
            anime_title=title,
            anime_id=search.anime_id,
            total_episodes=len(episodes),
            scraped_episodes=[o for o in outcomes if o.status == "success"],
            failed_episodes=[o for o in outcomes if o.status == "failed"],
            summary=BatchSummary.from_outcomes(outcomes),
        )

"""ScrapeEngine: the in-process entry point wiring every stage together.

Usage:
    async with ScrapeEngine.from_settings(settings) as engine:
        result = await engine.scrape_episode("Jujutsu Kaisen", 3)
        started = await engine.start_large_scrape("jjk", "Jujutsu Kaisen", 120, 50)
        chunk = await engine.scrape_chunk(started.job_id, 1)

Every operation returns a result model with a success flag; nothing raises
past this class.
"""

from models.config import AppSettings
from models.models import (
    AdmissionStats,
    AllEpisodesResult,
    BatchResult,
    ChunkResult,
    JobProgressReport,
    SaveResult,
    ScrapeResult,
    StartJobResult,
)
from scrapers.loader import ExtractorProtocol, get_extractor
from services.admission import AdmissionController, CircuitBreaker
from services.browser_session import BrowserSessionManager
from services.bulk_jobs import BulkJobOrchestrator
from services.extraction import DynamicExtractionStage
from services.pipeline import EpisodeScraper
from services.protection import ProtectionChecker
from services.row_store import InMemoryRowStore, RowStore
from services.search import SearchStage
from utils.http import PageFetcher
from utils.logging import get_logger
from utils.ttl_cache import TTLCache

logger = get_logger(__name__)


class ScrapeEngine:
    def __init__(
        self,
        scraper: EpisodeScraper,
        bulk: BulkJobOrchestrator,
        sessions: BrowserSessionManager,
        admission: AdmissionController,
        cache: TTLCache,
    ) -> None:
        self.scraper = scraper
        self.bulk = bulk
        self.sessions = sessions
        self.admission = admission
        self.cache = cache

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        store: RowStore | None = None,
        extractor: ExtractorProtocol | None = None,
        fetcher: PageFetcher | None = None,
        sessions: BrowserSessionManager | None = None,
    ) -> "ScrapeEngine":
        extractor = extractor or get_extractor(settings.scraper.extractor)
        fetcher = fetcher or PageFetcher(user_agent=settings.scraper.user_agent)
        sessions = sessions or BrowserSessionManager(settings.browser, settings.scraper.user_agent)
        cache = TTLCache(max_entries=settings.cache.max_entries)
        admission = AdmissionController(
            max_concurrency=settings.admission.max_concurrency,
            breaker=CircuitBreaker(
                threshold=settings.admission.breaker_threshold,
                cooldown=settings.admission.breaker_cooldown,
            ),
        )

        scraper = EpisodeScraper(
            search=SearchStage(fetcher, extractor, cache, settings.scraper, settings.cache),
            extraction=DynamicExtractionStage(
                sessions,
                fetcher,
                extractor,
                cache,
                settings.browser,
                settings.scraper,
                settings.cache,
            ),
            protection=ProtectionChecker(fetcher, extractor, settings.scraper),
            admission=admission,
            fetcher=fetcher,
            extractor=extractor,
            pipeline_settings=settings.pipeline,
            scraper_settings=settings.scraper,
        )
        bulk = BulkJobOrchestrator(scraper, store or InMemoryRowStore(), settings.bulk)
        logger.debug(
            f"Engine ready: extractor={extractor.name}, "
            f"max_concurrency={settings.admission.max_concurrency}"
        )
        return cls(scraper, bulk, sessions, admission, cache)

    async def __aenter__(self) -> "ScrapeEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def scrape_episode(
        self,
        title: str,
        episode_number: int = 1,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> ScrapeResult:
        return await self.scraper.scrape_episode(title, episode_number, timeout, retries)

    async def scrape_all_episodes(
        self,
        title: str,
        max_episodes: int | None = None,
        timeout: float | None = None,
        retries: int | None = 2,
    ) -> AllEpisodesResult:
        return await self.scraper.scrape_all_episodes(title, max_episodes, timeout, retries)

    async def start_large_scrape(
        self, anime_id: str, title: str, total_episodes: int, chunk_size: int | None = None
    ) -> StartJobResult:
        return await self.bulk.start_job(anime_id, title, total_episodes, chunk_size)

    async def scrape_chunk(self, job_id: str, chunk_number: int) -> ChunkResult:
        return await self.bulk.scrape_chunk(job_id, chunk_number)

    async def get_progress(self, job_id: str) -> JobProgressReport:
        return await self.bulk.get_progress(job_id)

    async def batch_scrape_episodes(
        self, title: str, anime_id: str, episode_numbers: list[int], **options
    ) -> BatchResult:
        return await self.bulk.batch_scrape_episodes(title, anime_id, episode_numbers, **options)

    async def scrape_and_save_episode(
        self, title: str, anime_id: str, episode_number: int = 1, **options
    ) -> SaveResult:
        return await self.bulk.scrape_and_save_episode(title, anime_id, episode_number, **options)

    def stats(self) -> AdmissionStats:
        return self.admission.stats()

    async def close(self) -> None:
        await self.admission.close()
        await self.sessions.close()

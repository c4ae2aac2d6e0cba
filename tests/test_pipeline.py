"""
Tests for services/pipeline.py

Coverage:
- Search -> Extraction -> Protection merge into ScrapeResult
- Bounded retry with fixed delay, last error reported
- Open circuit returns retry_later without retrying
- Cached streams bypass admission control
- Extraction timeout counted as a failure
- Episode listing and scrape_all_episodes
"""

import asyncio

import pytest

from models.config import PipelineSettings, ScraperSettings
from models.models import ExtractionResult, ProtectionResult, SearchResult
from services.admission import AdmissionController, CircuitBreaker
from services.pipeline import EpisodeScraper
from utils.exceptions import ScraperError, StreamNotFoundError

LINK = "https://9anime.org.lv/dandadan-episode-1/"


class FakeSearch:
    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls = []

    async def search(self, title, episode_number):
        self.calls.append((title, episode_number))
        if self.results:
            return self.results.pop(0)
        return SearchResult(
            success=True,
            anime_link=LINK.replace("episode-1", f"episode-{episode_number}"),
            anime_id="dandadan",
            via="direct",
        )


class FakeExtraction:
    def __init__(self, failing=(), hang=False):
        self.failing = set(failing)
        self.hang = hang
        self.cache = {}
        self.calls = []

    def cached(self, anime_id, episode_number):
        return self.cache.get((anime_id, episode_number))

    async def extract(self, link, anime_id, episode_number):
        self.calls.append(episode_number)
        if self.hang:
            await asyncio.sleep(3600)
        if episode_number in self.failing:
            raise StreamNotFoundError(f"No stream URL found on {link}")
        return ExtractionResult(
            stream_url=f"https://megaplay.buzz/stream/s-2/{episode_number}/sub",
            anime_id=anime_id,
            episode_number=episode_number,
        )


class FakeProtection:
    def __init__(self, result=None):
        self.result = result or ProtectionResult(protected=False)

    async def check(self, url):
        return self.result


@pytest.fixture
def admission(clock):
    return AdmissionController(max_concurrency=2, breaker=CircuitBreaker(threshold=3, clock=clock))


def make_scraper(admission, sleep, fetcher, extractor, search=None, extraction=None, protection=None):
    return EpisodeScraper(
        search or FakeSearch(),
        extraction or FakeExtraction(),
        protection or FakeProtection(),
        admission,
        fetcher,
        extractor,
        PipelineSettings(retries=3, retry_delay=2.0, timeout=5, batch_delay=1.5),
        ScraperSettings(),
        sleep=sleep,
    )


class TestScrapeEpisode:
    def test_success_merges_stages(self, admission, sleep, fetcher, extractor):
        protection = FakeProtection(
            ProtectionResult(protected=True, reason="frameElement access", reasons=["frameElement access"])
        )
        scraper = make_scraper(admission, sleep, fetcher, extractor, protection=protection)

        result = asyncio.run(scraper.scrape_episode("Dandadan", 1))

        assert result.success
        assert result.stream_url == "https://megaplay.buzz/stream/s-2/1/sub"
        assert result.protection_detected is True
        assert result.protection_reason == "frameElement access"
        assert result.episode_data.anime_id == "dandadan"
        assert result.episode_data.anime_link == LINK
        assert result.episode_data.title == "Dandadan - Episode 1"
        assert result.attempts == 1
        assert sleep.delays == []

    def test_retry_after_search_failure(self, admission, sleep, fetcher, extractor):
        search = FakeSearch([SearchResult(success=False, error="Search request failed: reset")])
        scraper = make_scraper(admission, sleep, fetcher, extractor, search=search)

        result = asyncio.run(scraper.scrape_episode("Dandadan", 1, retries=2))

        assert result.success
        assert result.attempts == 2
        assert sleep.delays == [2.0]

    def test_all_attempts_fail_reports_last_error(self, admission, sleep, fetcher, extractor):
        extraction = FakeExtraction(failing={4})
        scraper = make_scraper(admission, sleep, fetcher, extractor, extraction=extraction)

        result = asyncio.run(scraper.scrape_episode("Dandadan", 4))

        assert not result.success
        assert result.attempts == 3
        assert "No stream URL found" in result.error
        assert extraction.calls == [4, 4, 4]
        assert sleep.delays == [2.0, 2.0]
        assert not result.retry_later

    def test_open_circuit_returns_retry_later(self, sleep, fetcher, extractor, clock):
        breaker = CircuitBreaker(threshold=1, clock=clock)
        breaker.record_failure()
        extraction = FakeExtraction()
        scraper = make_scraper(
            AdmissionController(breaker=breaker), sleep, fetcher, extractor, extraction=extraction
        )

        result = asyncio.run(scraper.scrape_episode("Dandadan", 1))

        assert not result.success
        assert result.retry_later
        assert result.attempts == 1
        assert "temporarily unavailable" in result.error
        assert extraction.calls == []
        assert sleep.delays == []

    def test_cached_stream_bypasses_admission(self, sleep, fetcher, extractor, clock):
        breaker = CircuitBreaker(threshold=1, clock=clock)
        breaker.record_failure()
        extraction = FakeExtraction()
        extraction.cache[("dandadan", 1)] = ExtractionResult(
            stream_url="https://megaplay.buzz/stream/s-2/1/sub", anime_id="dandadan", episode_number=1
        )
        scraper = make_scraper(
            AdmissionController(breaker=breaker), sleep, fetcher, extractor, extraction=extraction
        )

        result = asyncio.run(scraper.scrape_episode("Dandadan", 1))

        assert result.success
        assert extraction.calls == []

    def test_timeout_is_a_breaker_failure(self, admission, sleep, fetcher, extractor):
        scraper = make_scraper(admission, sleep, fetcher, extractor, extraction=FakeExtraction(hang=True))

        result = asyncio.run(scraper.scrape_episode("Dandadan", 1, timeout=0.01, retries=1))

        assert not result.success
        assert "timed out" in result.error
        assert admission.breaker.consecutive_failures == 1


class TestEpisodeListing:
    def test_get_available_episodes(self, admission, sleep, fetcher, extractor, episode_list_html):
        fetcher.add(LINK, episode_list_html)
        scraper = make_scraper(admission, sleep, fetcher, extractor)

        episodes = asyncio.run(scraper.get_available_episodes(LINK, "dandadan", 10))

        assert [e.number for e in episodes] == [1, 2, 3]
        assert episodes[0].url == "https://9anime.org.lv/dandadan-episode-1/"

    def test_listing_capped_by_max_episodes(self, admission, sleep, fetcher, extractor, episode_list_html):
        fetcher.add(LINK, episode_list_html)
        scraper = make_scraper(admission, sleep, fetcher, extractor)

        episodes = asyncio.run(scraper.get_available_episodes(LINK, "dandadan", 2))

        assert [e.number for e in episodes] == [1, 2]

    def test_listing_error_raises(self, admission, sleep, fetcher, extractor):
        scraper = make_scraper(admission, sleep, fetcher, extractor)
        with pytest.raises(ScraperError, match="404"):
            asyncio.run(scraper.get_available_episodes(LINK, "dandadan"))


class TestScrapeAll:
    def test_collects_successes_and_failures(self, admission, sleep, fetcher, extractor, episode_list_html):
        fetcher.add(LINK, episode_list_html)
        scraper = make_scraper(
            admission, sleep, fetcher, extractor, extraction=FakeExtraction(failing={2})
        )

        result = asyncio.run(scraper.scrape_all_episodes("Dandadan", max_episodes=10, retries=1))

        assert result.success
        assert result.anime_id == "dandadan"
        assert result.total_episodes == 3
        assert [o.episode_number for o in result.scraped_episodes] == [1, 3]
        assert [o.episode_number for o in result.failed_episodes] == [2]
        assert result.summary.success_count == 2
        assert result.summary.error_count == 1
        assert result.summary.success_rate == 66.7
        assert sleep.delays == [1.5, 1.5]

    def test_search_failure(self, admission, sleep, fetcher, extractor):
        search = FakeSearch([SearchResult(success=False, error="No anime links found")])
        scraper = make_scraper(admission, sleep, fetcher, extractor, search=search)

        result = asyncio.run(scraper.scrape_all_episodes("Nothing"))

        assert not result.success
        assert result.error == "No anime links found"

    def test_listing_failure(self, admission, sleep, fetcher, extractor):
        scraper = make_scraper(admission, sleep, fetcher, extractor)

        result = asyncio.run(scraper.scrape_all_episodes("Dandadan"))

        assert not result.success
        assert result.anime_id == "dandadan"
        assert "404" in result.error

"""Search stage: locate the episode page of a title with plain HTTP.

Order of attempts:
1. Direct URL built from the title slug, accepted only on a 200 probe
2. Keyword search page, candidates ranked by
   a. exact slug markers in the href
   b. word overlap between the title and the link text (fuzzy ratio breaks ties)
   c. any listing link, as a last resort

Runs outside admission control. Network errors become a failed
SearchResult so the pipeline's retry loop can try again.
"""

from dataclasses import dataclass

import requests
from selectolax.parser import HTMLParser, Node

from models.config import CacheSettings, ScraperSettings
from models.models import SearchResult
from scrapers.loader import ExtractorProtocol
from utils.http import PageFetcher
from utils.logging import get_logger
from utils.title_utils import similarity, title_slug, token_overlap
from utils.ttl_cache import TTLCache

logger = get_logger(__name__)


@dataclass
class Candidate:
    href: str
    text: str


def search_cache_key(title: str, episode_number: int) -> str:
    return f"search:{title}:{episode_number}"


class SearchStage:
    def __init__(
        self,
        fetcher: PageFetcher,
        extractor: ExtractorProtocol,
        cache: TTLCache,
        scraper_settings: ScraperSettings | None = None,
        cache_settings: CacheSettings | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.extractor = extractor
        self.cache = cache
        self.settings = scraper_settings or ScraperSettings()
        self.cache_settings = cache_settings or CacheSettings()

    async def search(self, title: str, episode_number: int = 1) -> SearchResult:
        key = search_cache_key(title, episode_number)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Search cache hit for {key}")
            return cached

        slug = title_slug(title)
        if not slug:
            return SearchResult(success=False, error=f"Cannot build a search slug from '{title}'")

        result = await self._direct(slug, episode_number)
        if result is None:
            try:
                result = await self._keyword_search(title, slug, episode_number)
            except requests.RequestException as exc:
                logger.warning(f"Keyword search for '{title}' failed: {exc}")
                return SearchResult(success=False, error=f"Search request failed: {exc}")

        if result.success:
            self.cache.set(key, result, self.cache_settings.search_ttl)
            logger.info(f"Resolved '{title}' episode {episode_number} via {result.via}: {result.anime_link}")
        return result

    async def _direct(self, slug: str, episode_number: int) -> SearchResult | None:
        url = self.extractor.direct_episode_url(slug, episode_number)
        try:
            response = await self.fetcher.get(url, timeout=self.settings.probe_timeout)
        except requests.RequestException as exc:
            logger.debug(f"Direct URL probe failed for {url}: {exc}")
            return None

        if not response.ok:
            logger.debug(f"Direct URL {url} returned status {response.status_code}")
            return None
        return SearchResult(success=True, anime_link=url, anime_id=slug, via="direct")

    async def _keyword_search(self, title: str, slug: str, episode_number: int) -> SearchResult:
        response = await self.fetcher.get(
            self.extractor.search_url(title),
            timeout=self.settings.search_timeout,
            full_headers=True,
        )
        if response.status_code >= 400:
            return SearchResult(
                success=False, error=f"Search page returned status {response.status_code}"
            )

        candidates = _candidates(HTMLParser(response.text))
        link = self.rank(title, slug, candidates)
        if link is None:
            return SearchResult(success=False, error="No anime links found in search results")

        link = self.extractor.episode_link(link, slug, episode_number)
        anime_id = self.extractor.anime_id_from_link(link) or slug
        return SearchResult(success=True, anime_link=link, anime_id=anime_id, via="search")

    def rank(self, title: str, slug: str, candidates: list[Candidate]) -> str | None:
        """Pick the best candidate href, or None."""
        for marker in self.extractor.exact_link_markers(slug):
            for candidate in candidates:
                if marker in candidate.href:
                    logger.debug(f"Exact match on marker '{marker}': {candidate.href}")
                    return candidate.href

        listings = [
            c
            for c in candidates
            if any(marker in c.href for marker in self.extractor.listing_markers)
        ]
        scored = [
            (token_overlap(title, c.text), similarity(title, c.text), index, c)
            for index, c in enumerate(listings)
        ]
        scored = [entry for entry in scored if entry[0] > 0]
        if scored:
            # Highest overlap, then highest similarity, then page order
            best = max(scored, key=lambda entry: (entry[0], entry[1], -entry[2]))
            logger.debug(f"Text match '{best[3].text}' (overlap={best[0]}, similarity={best[1]})")
            return best[3].href

        for marker in self.extractor.fallback_markers(slug):
            for candidate in candidates:
                if marker in candidate.href:
                    logger.debug(f"Using fallback marker '{marker}': {candidate.href}")
                    return candidate.href
        return None


def _candidates(tree: HTMLParser) -> list[Candidate]:
    return [
        Candidate(href=href, text=_text(node))
        for node in tree.css("a[href]")
        if (href := (node.attributes.get("href") or "").strip())
    ]


def _text(node: Node) -> str:
    return " ".join(node.text(separator=" ").split())

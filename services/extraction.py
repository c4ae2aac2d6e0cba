"""Dynamic extraction stage: render an episode page and find its stream URL.

Runs inside admission control, one browser context per call. Lookup order
on the rendered page:
1. Player iframes (extractor selectors, most specific first). An iframe on
   an indirection host is resolved with one out-of-band HTTP hop, falling
   back to the iframe's own content frame.
2. A ``<video>`` element
3. Regex scan of the rendered HTML
"""

from urllib.parse import urljoin

import requests
from playwright.async_api import BrowserContext, ElementHandle, Page
from playwright.async_api import Error as PlaywrightError

from models.config import BrowserSettings, CacheSettings, ScraperSettings
from models.models import ExtractionResult
from scrapers.loader import ExtractorProtocol
from scrapers.plugins.utils import IndirectionRule
from services.browser_session import BrowserSessionManager
from utils.exceptions import StreamNotFoundError
from utils.http import PageFetcher
from utils.logging import get_logger
from utils.ttl_cache import TTLCache

logger = get_logger(__name__)


def stream_cache_key(anime_id: str, episode_number: int) -> str:
    return f"stream:{anime_id}:{episode_number}"


def _ms(seconds: float) -> float:
    return seconds * 1000


class DynamicExtractionStage:
    def __init__(
        self,
        sessions: BrowserSessionManager,
        fetcher: PageFetcher,
        extractor: ExtractorProtocol,
        cache: TTLCache,
        browser_settings: BrowserSettings | None = None,
        scraper_settings: ScraperSettings | None = None,
        cache_settings: CacheSettings | None = None,
    ) -> None:
        self.sessions = sessions
        self.fetcher = fetcher
        self.extractor = extractor
        self.cache = cache
        self.browser_settings = browser_settings or BrowserSettings()
        self.scraper_settings = scraper_settings or ScraperSettings()
        self.cache_settings = cache_settings or CacheSettings()

    def cached(self, anime_id: str, episode_number: int) -> ExtractionResult | None:
        return self.cache.get(stream_cache_key(anime_id, episode_number))

    async def extract(self, link: str, anime_id: str, episode_number: int) -> ExtractionResult:
        """Render ``link`` and return the stream URL found on it.

        Raises:
            BrowserError: The browser or context could not be created
            StreamNotFoundError: Nothing on the page matched
        """
        cached = self.cached(anime_id, episode_number)
        if cached is not None:
            logger.debug(f"Stream cache hit for {anime_id} episode {episode_number}")
            return cached

        async with self.sessions.context() as context:
            stream_url = await self._extract_from_page(context, link)

        if not stream_url:
            raise StreamNotFoundError(f"No stream URL found on {link}")

        result = ExtractionResult(
            stream_url=stream_url, anime_id=anime_id, episode_number=episode_number
        )
        self.cache.set(
            stream_cache_key(anime_id, episode_number), result, self.cache_settings.stream_ttl
        )
        logger.info(f"Extracted stream for {anime_id} episode {episode_number}: {stream_url}")
        return result

    async def _extract_from_page(self, context: BrowserContext, link: str) -> str | None:
        page = await context.new_page()
        await self._navigate(page, link)
        await page.wait_for_timeout(_ms(self.browser_settings.settle_delay))

        stream_url = await self._from_player(page)
        if stream_url:
            return stream_url
        stream_url = await self._from_video(page)
        if stream_url:
            return stream_url
        return self.extractor.match_raw_html(await page.content())

    async def _navigate(self, page: Page, link: str) -> None:
        try:
            await page.goto(
                link,
                wait_until="domcontentloaded",
                timeout=_ms(self.browser_settings.navigation_timeout),
            )
            return
        except PlaywrightError as exc:
            logger.debug(f"domcontentloaded navigation to {link} failed: {exc}")

        try:
            await page.goto(
                link,
                wait_until="load",
                timeout=_ms(self.browser_settings.fallback_navigation_timeout),
            )
        except PlaywrightError as exc:
            # The player iframe is often present before the load event fires
            logger.warning(f"Navigation to {link} did not complete, inspecting partial page: {exc}")

    async def _from_player(self, page: Page) -> str | None:
        for selector in self.extractor.player_selectors:
            try:
                element = await page.query_selector(selector)
                if element is None:
                    continue
                src = await element.get_attribute("src")
            except PlaywrightError as exc:
                logger.debug(f"Selector '{selector}' failed: {exc}")
                continue

            if not src or not src.startswith("https"):
                continue

            logger.debug(f"Player iframe via '{selector}': {src}")
            if self.extractor.is_preferred_provider(src):
                return src
            rule = self.extractor.indirection_rule_for(src)
            if rule is None:
                return src
            return await self._resolve_indirection(src, rule, element)
        return None

    async def _resolve_indirection(
        self, src: str, rule: IndirectionRule, element: ElementHandle
    ) -> str:
        resolved = None
        try:
            response = await self.fetcher.get(
                src,
                timeout=self.scraper_settings.hop_timeout,
                referer=self.extractor.base_url + "/",
                full_headers=True,
            )
            if response.status_code < 400:
                resolved = rule.resolve(response.text)
            else:
                logger.debug(f"{rule.name} page returned status {response.status_code}")
        except requests.RequestException as exc:
            logger.debug(f"Fetching {rule.name} page {src} failed: {exc}")

        if resolved and (rule.preferred is None or rule.preferred.search(resolved)):
            logger.debug(f"Resolved {rule.name} hop to {resolved}")
            return resolved

        nested = await self._from_nested_frame(element)
        if nested:
            logger.debug(f"Resolved {rule.name} hop through the browser: {nested}")
            return nested

        if resolved is None:
            logger.warning(f"Could not resolve {rule.name} page, using it as the stream URL")
        return resolved or src

    async def _from_nested_frame(self, element: ElementHandle) -> str | None:
        try:
            frame = await element.content_frame()
            if frame is None:
                return None
            await frame.wait_for_timeout(_ms(self.browser_settings.nested_frame_wait))
            for selector in self.extractor.nested_iframe_selectors:
                nested = await frame.query_selector(selector)
                if nested is None:
                    continue
                src = await nested.get_attribute("src") or await nested.get_attribute("data-src")
                if not src:
                    continue
                # attributes may be relative to the intermediate page
                src = urljoin(frame.url, src)
                if not src.startswith(("http://", "https://")):
                    continue
                if self.extractor.is_preferred_provider(src) or "embed" in src:
                    return src
        except PlaywrightError as exc:
            logger.debug(f"Nested frame lookup failed: {exc}")
        return None

    async def _from_video(self, page: Page) -> str | None:
        try:
            video = await page.wait_for_selector(
                "video", timeout=_ms(self.browser_settings.video_wait_timeout)
            )
            if video is None:
                return None
            src = await video.evaluate("el => el.currentSrc || el.src")
        except PlaywrightError as exc:
            logger.debug(f"No video element found: {exc}")
            return None
        if src and src.startswith(("http://", "https://")):
            return src
        return None

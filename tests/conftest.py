"""
Shared test fixtures and fakes for the ani-harvest test suite.

This module provides:
- A controllable clock and a recording sleep
- FakeFetcher standing in for PageFetcher (no network)
- Fake Playwright browser / context / page / element objects
- Settings, extractor and store fixtures
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest
import requests
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from models.config import (
    AdmissionSettings,
    AppSettings,
    BrowserSettings,
    BulkSettings,
    CacheSettings,
    PipelineSettings,
)
from scrapers.plugins.nineanime import NineAnime
from services.row_store import InMemoryRowStore
from utils.http import PageResponse


# ========== Time ==========


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """utcnow() replacement advanced by hand."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """asyncio.sleep replacement that returns at once and records delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


# ========== HTTP ==========


class FakeFetcher:
    """PageFetcher stand-in serving canned pages.

    Routes map a URL to a PageResponse, an exception instance, or a list of
    those consumed one per call. Unknown URLs return 404.
    """

    def __init__(self, routes: dict | None = None) -> None:
        self.routes = dict(routes or {})
        self.calls: list[dict] = []

    def add(self, url: str, text: str = "", status: int = 200) -> None:
        self.routes[url] = PageResponse(url=url, status_code=status, text=text)

    def fail(self, url: str, exc: Exception | None = None) -> None:
        self.routes[url] = exc or requests.ConnectionError(f"connection refused: {url}")

    async def get(self, url, *, timeout, referer=None, full_headers=False) -> PageResponse:
        self.calls.append({"url": url, "timeout": timeout, "referer": referer})
        route = self.routes.get(url)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if route is None:
            return PageResponse(url=url, status_code=404, text="Not found")
        if isinstance(route, Exception):
            raise route
        return route

    def urls(self) -> list[str]:
        return [call["url"] for call in self.calls]


@pytest.fixture
def fetcher():
    return FakeFetcher()


# ========== Playwright ==========


@dataclass
class FakeElement:
    attributes: dict = field(default_factory=dict)
    frame: "FakeFrame | None" = None
    src: str | None = None

    async def get_attribute(self, name):
        return self.attributes.get(name)

    async def content_frame(self):
        return self.frame

    async def evaluate(self, expression):
        return self.src


@dataclass
class FakeFrame:
    elements: dict = field(default_factory=dict)
    waits: list = field(default_factory=list)
    url: str = ""

    async def wait_for_timeout(self, ms):
        self.waits.append(ms)

    async def query_selector(self, selector):
        return self.elements.get(selector)


class FakePage:
    def __init__(self, elements=None, video=None, html="", goto_errors=0):
        self.elements = elements or {}
        self.video = video
        self.html = html
        self.goto_errors = goto_errors
        self.gotos: list[tuple[str, str]] = []
        self.hang = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.gotos.append((url, wait_until))
        if self.goto_errors > 0:
            self.goto_errors -= 1
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded")

    async def wait_for_timeout(self, ms):
        if self.hang:
            await asyncio.sleep(3600)

    async def query_selector(self, selector):
        return self.elements.get(selector)

    async def wait_for_selector(self, selector, timeout=None):
        if selector == "video" and self.video is not None:
            return self.video
        raise PlaywrightTimeoutError(f"waiting for {selector} timed out")

    async def content(self):
        return self.html


class FakeContext:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False
        self.init_scripts: list[str] = []

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page_factory=None, fail_new_context=False) -> None:
        self.page_factory = page_factory or FakePage
        self.fail_new_context = fail_new_context
        self.connected = True
        self.closed = False
        self.contexts: list[FakeContext] = []
        self.context_options: list[dict] = []

    def is_connected(self) -> bool:
        return self.connected

    async def new_context(self, **options):
        if self.fail_new_context:
            raise RuntimeError("Target closed")
        self.context_options.append(options)
        context = FakeContext(self.page_factory())
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True
        self.connected = False


class FakeLauncher:
    """Launcher returning FakeBrowser instances; can fail on demand."""

    def __init__(self, page_factory=None, failures: int = 0) -> None:
        self.page_factory = page_factory
        self.failures = failures
        self.browsers: list[FakeBrowser] = []
        self.calls: list[tuple[bool, list[str]]] = []

    async def __call__(self, headless, args):
        self.calls.append((headless, args))
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("Executable doesn't exist")
        browser = FakeBrowser(self.page_factory)
        self.browsers.append(browser)
        return browser


# ========== Settings and collaborators ==========


@pytest.fixture
def app_settings(tmp_path):
    """Settings with short timeouts and an isolated store directory."""
    return AppSettings(
        browser=BrowserSettings(settle_delay=0, nested_frame_wait=0, video_wait_timeout=1),
        admission=AdmissionSettings(max_concurrency=2, breaker_threshold=3, breaker_cooldown=30),
        cache=CacheSettings(max_entries=100, store_dir=tmp_path / "store"),
        pipeline=PipelineSettings(retries=2, retry_delay=0, timeout=5, batch_delay=0),
        bulk=BulkSettings(chunk_size=50, episode_delay=0, episode_retries=1, episode_timeout=5),
    )


@pytest.fixture
def extractor():
    return NineAnime()


@pytest.fixture
def store():
    return InMemoryRowStore()


# ========== Sample pages ==========


@pytest.fixture
def search_page_html():
    """Keyword search results for "Jujutsu Kaisen"."""
    return """
    <html><body>
      <div class="film_list">
        <a href="/category/naruto-shippuden">Naruto Shippuden</a>
        <a href="/jujutsu-kaisen-episode-1/">Jujutsu Kaisen Episode 1</a>
        <a href="/category/jujutsu-kaisen-0">Jujutsu Kaisen 0</a>
      </div>
    </body></html>
    """


@pytest.fixture
def episode_list_html():
    return """
    <html><body>
      <ul class="episode-list">
        <li><a href="/dandadan-episode-2/">Episode 2</a></li>
        <li><a href="/dandadan-episode-1/">Episode 1</a></li>
        <li><a href="/dandadan-episode-2/">Episode 2</a></li>
        <li><a href="/dandadan-episode-3/">Episode 3</a></li>
        <li><a href="/other-show-episode-9/">Episode 9</a></li>
      </ul>
    </body></html>
    """

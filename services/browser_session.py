"""Headless browser lifecycle for the dynamic extraction stage.

One Chromium instance is shared by the whole process and launched lazily on
first use. Every scrape gets its own BrowserContext (cookies, viewport, user
agent) which is closed when the ``context()`` block exits, whatever the
exit path.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import Browser, BrowserContext, async_playwright

from models.config import DEFAULT_USER_AGENT, BrowserSettings
from utils.exceptions import BrowserError
from utils.logging import get_logger

logger = get_logger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
]

HIDE_AUTOMATION_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
Object.defineProperty(navigator, 'languages', {get: () => ['en-US', 'en']});
window.chrome = { runtime: {} };
"""

EXTRA_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
}

# (headless, args) -> connected browser
Launcher = Callable[[bool, list[str]], Awaitable[Any]]


class BrowserSessionManager:
    """Owns the shared browser handle and hands out isolated contexts.

    Args:
        browser_settings: Headless flag and viewport
        user_agent: User agent spoofed in every context
        launcher: Optional coroutine function ``(headless, args) -> Browser``.
                  Defaults to launching Chromium through Playwright.
    """

    def __init__(
        self,
        browser_settings: BrowserSettings | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        launcher: Launcher | None = None,
    ) -> None:
        self.settings = browser_settings or BrowserSettings()
        self.user_agent = user_agent
        self._launcher = launcher or self._launch_chromium
        self._playwright = None
        self._browser: Browser | None = None
        self._invalid = False
        self._lock = asyncio.Lock()
        self.launch_count = 0

    async def _launch_chromium(self, headless: bool, args: list[str]) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(headless=headless, args=args)

    def _usable(self) -> bool:
        return self._browser is not None and not self._invalid and self._browser.is_connected()

    async def acquire(self) -> Browser:
        """Return a connected browser, launching one if needed.

        Concurrent callers share a single launch.

        Raises:
            BrowserError: Launch failed; the next call starts from scratch
        """
        if self._usable():
            return self._browser

        async with self._lock:
            if self._usable():
                return self._browser

            if self._browser is not None:
                logger.warning("Browser disconnected or invalidated, relaunching")
                await self._discard()

            logger.info(f"Launching headless browser (headless={self.settings.headless})")
            try:
                browser = await self._launcher(self.settings.headless, list(LAUNCH_ARGS))
            except Exception as exc:
                logger.error(f"Browser launch failed: {exc}")
                raise BrowserError(f"Failed to launch browser: {exc}") from exc

            self._browser = browser
            self._invalid = False
            self.launch_count += 1
            return browser

    @asynccontextmanager
    async def context(self) -> AsyncIterator[BrowserContext]:
        """Isolated browsing context, closed on every exit path.

        Raises:
            BrowserError: Launch or context creation failed
        """
        browser = await self.acquire()
        try:
            context = await browser.new_context(
                user_agent=self.user_agent,
                viewport={
                    "width": self.settings.viewport_width,
                    "height": self.settings.viewport_height,
                },
                bypass_csp=True,
                java_script_enabled=True,
                extra_http_headers=EXTRA_HEADERS,
            )
        except Exception as exc:
            self.invalidate()
            raise BrowserError(f"Failed to create browser context: {exc}") from exc

        try:
            await context.add_init_script(HIDE_AUTOMATION_SCRIPT)
            yield context
        finally:
            try:
                await context.close()
            except Exception as exc:
                logger.debug(f"Error closing browser context: {exc}")

    def invalidate(self) -> None:
        """Mark the browser as unusable; the next acquire relaunches it."""
        self._invalid = True

    async def _discard(self) -> None:
        browser, self._browser = self._browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except Exception as exc:
            logger.debug(f"Error closing discarded browser: {exc}")

    async def close(self) -> None:
        async with self._lock:
            await self._discard()
            if self._playwright is not None:
                playwright, self._playwright = self._playwright, None
                await playwright.stop()
        logger.debug("Browser session closed")

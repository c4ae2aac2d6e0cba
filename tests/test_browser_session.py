"""
Tests for services/browser_session.py

Coverage:
- Lazy single-flight launch with countermeasure flags
- Relaunch after disconnect or invalidation
- Launch failure affects only that call
- Context options and deterministic close on every exit path
"""

import asyncio

import pytest

from conftest import FakeBrowser, FakeLauncher
from models.config import BrowserSettings
from services.browser_session import LAUNCH_ARGS, BrowserSessionManager
from utils.exceptions import BrowserError


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def sessions(launcher):
    return BrowserSessionManager(BrowserSettings(), user_agent="test-agent", launcher=launcher)


class TestAcquire:
    def test_launches_lazily_with_countermeasure_flags(self, sessions, launcher):
        assert launcher.calls == []
        browser = asyncio.run(sessions.acquire())

        assert isinstance(browser, FakeBrowser)
        headless, args = launcher.calls[0]
        assert headless is True
        assert "--disable-blink-features=AutomationControlled" in args
        assert "--no-sandbox" in args
        assert args == LAUNCH_ARGS

    def test_reuses_connected_browser(self, sessions, launcher):
        async def scenario():
            first = await sessions.acquire()
            second = await sessions.acquire()
            return first, second

        first, second = asyncio.run(scenario())
        assert first is second
        assert sessions.launch_count == 1

    def test_concurrent_callers_share_one_launch(self, sessions, launcher):
        async def scenario():
            return await asyncio.gather(*(sessions.acquire() for _ in range(5)))

        browsers = asyncio.run(scenario())
        assert len(launcher.calls) == 1
        assert all(browser is browsers[0] for browser in browsers)

    def test_relaunches_after_disconnect(self, sessions, launcher):
        async def scenario():
            first = await sessions.acquire()
            first.connected = False
            second = await sessions.acquire()
            return first, second

        first, second = asyncio.run(scenario())
        assert first is not second
        assert sessions.launch_count == 2

    def test_relaunches_after_invalidate(self, sessions, launcher):
        async def scenario():
            first = await sessions.acquire()
            sessions.invalidate()
            second = await sessions.acquire()
            return first, second

        first, second = asyncio.run(scenario())
        assert first is not second
        assert first.closed

    def test_launch_failure_does_not_poison_next_acquire(self):
        launcher = FakeLauncher(failures=1)
        sessions = BrowserSessionManager(launcher=launcher)

        async def scenario():
            with pytest.raises(BrowserError, match="Failed to launch browser"):
                await sessions.acquire()
            return await sessions.acquire()

        browser = asyncio.run(scenario())
        assert isinstance(browser, FakeBrowser)
        assert len(launcher.calls) == 2


class TestContext:
    def test_context_is_isolated_and_spoofed(self, sessions, launcher):
        async def scenario():
            async with sessions.context() as context:
                return context

        context = asyncio.run(scenario())
        options = launcher.browsers[0].context_options[0]
        assert options["user_agent"] == "test-agent"
        assert options["viewport"] == {"width": 1280, "height": 720}
        assert options["bypass_csp"] is True
        assert "webdriver" in context.init_scripts[0]
        assert context.closed

    def test_context_closed_when_body_raises(self, sessions, launcher):
        async def scenario():
            with pytest.raises(RuntimeError):
                async with sessions.context():
                    raise RuntimeError("selector blew up")

        asyncio.run(scenario())
        assert launcher.browsers[0].contexts[0].closed

    def test_context_closed_on_timeout(self, sessions, launcher):
        async def scenario():
            async def slow():
                async with sessions.context():
                    await asyncio.sleep(3600)

            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(slow(), 0.01)

        asyncio.run(scenario())
        assert launcher.browsers[0].contexts[0].closed

    def test_context_creation_failure_invalidates_browser(self, sessions, launcher):
        async def scenario():
            browser = await sessions.acquire()
            browser.fail_new_context = True
            with pytest.raises(BrowserError, match="Failed to create browser context"):
                async with sessions.context():
                    pass
            return await sessions.acquire()

        replacement = asyncio.run(scenario())
        assert replacement is launcher.browsers[1]
        assert sessions.launch_count == 2

    def test_close_shuts_browser(self, sessions, launcher):
        async def scenario():
            await sessions.acquire()
            await sessions.close()

        asyncio.run(scenario())
        assert launcher.browsers[0].closed

"""Tests for flowboard.browser helpers (no real browser)."""

import sys
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

_here = Path(__file__).resolve().parent
for _p in (_here.parent, _here):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

from playwright.async_api import Error as PlaywrightError

from flow_fakes import FLOW_URL
from flowboard.browser import BrowserSession, pick_target_page
from flowboard.config import FlowConfig


class TestPickTargetPage(unittest.TestCase):

    def test_first_matching_url(self):
        pages = [SimpleNamespace(url="about:blank"), SimpleNamespace(url=FLOW_URL), SimpleNamespace(url=FLOW_URL)]
        self.assertIs(pick_target_page(pages, "labs.google"), pages[1])

    def test_none_when_absent(self):
        self.assertIsNone(pick_target_page([SimpleNamespace(url="https://mail.google.com")], "labs.google"))
        self.assertIsNone(pick_target_page([], "labs.google"))


class TestSession(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.cfg = FlowConfig(state_dir=self._td.name)

    def tearDown(self):
        self._td.cleanup()

    async def test_find_target_page_before_enter(self):
        self.assertIsNone(await BrowserSession(self.cfg).find_target_page())

    async def test_find_target_page_uses_hint(self):
        session = BrowserSession(self.cfg)
        flow = SimpleNamespace(url=FLOW_URL)
        session._context = SimpleNamespace(pages=[SimpleNamespace(url="about:blank"), flow])
        self.assertIs(await session.find_target_page(), flow)
        self.assertIsNone(await session.find_target_page("example.com"))

    async def test_open_flow_requires_enter(self):
        with self.assertRaises(RuntimeError):
            await BrowserSession(self.cfg).open_flow()

    async def test_screenshot_failure_returns_empty(self):
        session = BrowserSession(self.cfg)
        page = MagicMock()
        page.screenshot = AsyncMock(side_effect=PlaywrightError("Target closed"))
        self.assertEqual(await session.capture_debug_artifacts(page, tag="t"), {})

    async def test_attached_context_is_not_closed(self):
        session = BrowserSession(self.cfg)
        context, browser, pw = MagicMock(), MagicMock(), MagicMock()
        context.close, browser.close, pw.stop = AsyncMock(), AsyncMock(), AsyncMock()
        session._context, session._browser, session._playwright = context, browser, pw
        session.attached = True
        await session.close()
        context.close.assert_not_awaited()
        browser.close.assert_awaited_once()
        pw.stop.assert_awaited_once()
        self.assertIsNone(session.context)

    async def test_failed_launch_stops_driver(self):
        pw = MagicMock()
        pw.stop = AsyncMock()
        pw.chromium.launch_persistent_context = AsyncMock(
            side_effect=PlaywrightError("Executable doesn't exist"))
        starter = MagicMock()
        starter.start = AsyncMock(return_value=pw)

        session = BrowserSession(self.cfg, attach=False)
        with patch("flowboard.browser.async_playwright", return_value=starter):
            with self.assertRaises(PlaywrightError):
                async with session:
                    self.fail("body must not run")
        pw.stop.assert_awaited_once()
        self.assertIsNone(session._playwright)

    async def test_headless_from_env(self):
        with patch.dict("os.environ", {"BROWSER_HEADLESS": "true"}):
            self.assertTrue(BrowserSession(self.cfg).headless)
        self.assertFalse(BrowserSession(self.cfg, headless=False).headless)


if __name__ == "__main__":
    unittest.main()

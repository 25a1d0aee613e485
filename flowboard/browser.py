"""Playwright async browser session for flowboard runs.

Provides:
- CDP attach to the user's running, logged-in Chromium (preferred: Flow
  requires a Google login that a fresh profile does not have)
- Fallback launch of a persistent profile under state/browser/profile
- Lookup of the open Flow tab by URL hint
- Screenshot capture on failure (debug artifacts)
- LIFO cleanup with timeouts; an attached browser is disconnected, never closed

Dependencies: playwright (pip install playwright && playwright install chromium)

Usage:
    cfg, _ = load_flow_config()
    async with BrowserSession(cfg) as session:
        page = await session.find_target_page()
        if page is None:
            page = await session.open_flow()
        ...
        await session.capture_debug_artifacts(page, tag="scene_timeout")
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Optional

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from flowboard.common import slugify, stamp
from flowboard.config import FlowConfig

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_VIEWPORT = {"width": 1440, "height": 900}

LAUNCH_ARGS = [
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-sync",
    "--disable-blink-features=AutomationControlled",
]


async def is_cdp_available(cdp_url: str, timeout: float = 1.0) -> bool:
    """True if a browser answers on the CDP endpoint."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            r = await client.get(f"{cdp_url.rstrip('/')}/json/version")
            return r.status_code == 200
    except httpx.HTTPError:
        return False


def pick_target_page(pages: list[Any], url_hint: str) -> Optional[Any]:
    """First page whose URL contains the hint."""
    for page in pages:
        try:
            url = page.url or ""
        except PlaywrightError:
            continue
        if url_hint in url:
            return page
    return None


# ---------------------------------------------------------------------------
# BrowserSession
# ---------------------------------------------------------------------------

class BrowserSession:
    """Async context manager for the browser that hosts Flow.

    Settings come from constructor kwargs, then BROWSER_* env vars, then
    defaults. With ``attach=True`` (default) the session first tries CDP on
    ``cfg.cdp_url`` and reuses the first existing context (its cookies hold
    the Google login); a new context would be logged out.
    """

    def __init__(
        self,
        cfg: FlowConfig,
        *,
        attach: bool = True,
        headless: Optional[bool] = None,
        viewport: dict[str, int] | None = None,
    ):
        self.cfg = cfg
        self.attach = attach
        if headless is None:
            headless = os.environ.get("BROWSER_HEADLESS", "false").lower() not in ("false", "0", "no")
        self.headless = headless
        self.viewport = viewport or DEFAULT_VIEWPORT

        self._browser_dir = Path(cfg.state_dir) / "browser"
        self._profile_dir = self._browser_dir / "profile"
        self._debug_dir = self._browser_dir / "debug"

        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._owned_pages: list[Any] = []
        self.attached = False

    @property
    def context(self) -> Any:
        return self._context

    async def __aenter__(self) -> "BrowserSession":
        self._debug_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()
        try:
            await self._open_context()
        except BaseException:
            await self.close()
            raise
        return self

    async def _open_context(self) -> None:
        if self.attach and await is_cdp_available(self.cfg.cdp_url):
            try:
                self._browser = await self._playwright.chromium.connect_over_cdp(self.cfg.cdp_url)
                if not self._browser.contexts:
                    raise RuntimeError("CDP connected but no browser contexts found")
                self._context = self._browser.contexts[0]
                self.attached = True
                log.info("attached to browser at %s", self.cfg.cdp_url)
                return
            except (PlaywrightError, RuntimeError) as exc:
                log.warning("CDP attach failed (%s), launching profile", exc)
                if self._browser is not None:
                    try:
                        await asyncio.wait_for(self._browser.close(), timeout=5.0)
                    except (PlaywrightError, asyncio.TimeoutError):
                        pass
                    self._browser = None

        self._profile_dir.mkdir(parents=True, exist_ok=True)
        self._context = await self._playwright.chromium.launch_persistent_context(
            str(self._profile_dir),
            headless=self.headless,
            viewport=self.viewport,
            accept_downloads=True,
            args=LAUNCH_ARGS,
        )
        log.info("launched persistent profile at %s", self._profile_dir)

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -- pages --------------------------------------------------------------

    async def find_target_page(self, url_hint: str = "") -> Optional[Any]:
        """Open page whose URL contains the hint (default cfg.target_url_hint), else None."""
        if self._context is None:
            return None
        return pick_target_page(list(self._context.pages), url_hint or self.cfg.target_url_hint)

    async def open_flow(self) -> Any:
        """Open a new tab on the Flow URL and wait for it to load."""
        if self._context is None:
            raise RuntimeError("BrowserSession not entered (use async with)")
        page = await self._context.new_page()
        self._owned_pages.append(page)
        await page.goto(self.cfg.flow_url, wait_until="domcontentloaded")
        return page

    async def capture_debug_artifacts(self, page: Any, *, tag: str = "error") -> dict[str, str]:
        """Save a full-page screenshot for post-mortem. Returns {"screenshot": path} or {}."""
        artifacts: dict[str, str] = {}
        path = self._debug_dir / f"{stamp()}_{slugify(tag)}_screenshot.png"
        try:
            await page.screenshot(path=str(path), full_page=True)
            artifacts["screenshot"] = str(path)
        except PlaywrightError as exc:
            log.warning("screenshot failed: %s", exc)
        return artifacts

    # -- cleanup ------------------------------------------------------------

    async def close(self) -> None:
        """Close owned pages -> context -> browser -> playwright (LIFO)."""
        for page in reversed(self._owned_pages):
            try:
                await asyncio.wait_for(page.close(), timeout=3.0)
            except (PlaywrightError, asyncio.TimeoutError):
                pass
        self._owned_pages.clear()

        if self._context is not None and not self.attached:
            try:
                await asyncio.wait_for(self._context.close(), timeout=5.0)
            except (PlaywrightError, asyncio.TimeoutError):
                pass
        self._context = None

        if self._browser is not None:
            # For a CDP browser, close() only drops the connection.
            try:
                await asyncio.wait_for(self._browser.close(), timeout=5.0)
            except (PlaywrightError, asyncio.TimeoutError):
                pass
            self._browser = None

        if self._playwright is not None:
            try:
                await asyncio.wait_for(self._playwright.stop(), timeout=5.0)
            except (PlaywrightError, asyncio.TimeoutError):
                pass
            self._playwright = None

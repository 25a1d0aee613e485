"""Inbound surface of the engine: run requests, liveness pings, ready notice.

A relay sits next to one Flow tab. Callers reach it through
``handle_message`` (action-tagged dicts) or the typed methods. The page is
resolved per run through ``page_provider``; when no Flow page is loaded the
run fails fast with ``error_message="transport unavailable"`` and no phase is
attempted. Only one run may be in flight; a second call is rejected.

Message contract:
    {"action": "START_STORYBOARD", "data": {...}} -> StoryboardResult.to_dict() + "success"
    {"action": "PING"}                            -> {"success": True, "status": "ready"}
    anything else                                 -> {"success": False, "error": "Unknown action"}
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from flowboard.config import FlowConfig
from flowboard.engine.events import RunEventLog
from flowboard.engine.orchestrator import StoryboardOrchestrator
from flowboard.engine.schema import StoryboardRequest, StoryboardResult, request_from_dict
from flowboard.errors import TransportUnavailable

log = logging.getLogger(__name__)

ACTION_START = "START_STORYBOARD"
ACTION_PING = "PING"
READY_NOTICE = {"action": "contentReady"}

PageProvider = Callable[[], Awaitable[Any]]


class StoryboardRelay:
    def __init__(
        self,
        page_provider: PageProvider,
        cfg: Optional[FlowConfig] = None,
        *,
        on_ready: Optional[Callable[[dict[str, Any]], Any]] = None,
        on_event: Optional[Callable[[Any], Any]] = None,
        orchestrator_factory: Callable[..., StoryboardOrchestrator] = StoryboardOrchestrator,
        sleep=asyncio.sleep,
    ):
        self._page_provider = page_provider
        self.cfg = cfg or FlowConfig()
        self._on_ready = on_ready
        self._on_event = on_event
        self._factory = orchestrator_factory
        self._sleep = sleep
        self._running = False
        self._announced = False
        self.last_events: Optional[RunEventLog] = None

    @property
    def busy(self) -> bool:
        return self._running

    # -- liveness -----------------------------------------------------------

    def ping(self) -> dict[str, str]:
        return {"status": "ready"}

    async def announce_ready(self) -> bool:
        """Send the ready notice once. Returns False if already sent or nobody listens."""
        if self._announced or self._on_ready is None:
            return False
        self._announced = True
        try:
            maybe = self._on_ready(dict(READY_NOTICE))
            if inspect.isawaitable(maybe):
                await maybe
        except Exception as exc:
            # listener errors are logged, never raised
            log.warning("ready notice not delivered: %s", exc)
        return True

    # -- runs ---------------------------------------------------------------

    async def _resolve_page(self) -> Any:
        try:
            page = await self._page_provider()
        except PlaywrightError as exc:
            raise TransportUnavailable() from exc
        if page is None:
            raise TransportUnavailable()
        url = getattr(page, "url", "") or ""
        if self.cfg.target_url_hint and self.cfg.target_url_hint not in url:
            log.debug("page %r does not match %r", url, self.cfg.target_url_hint)
            raise TransportUnavailable()
        return page

    async def run_storyboard(self, request: StoryboardRequest) -> StoryboardResult:
        total = len(request.prompts)
        if self._running:
            return StoryboardResult.failure(total, "a storyboard run is already in progress")

        self._running = True
        try:
            try:
                page = await self._resolve_page()
            except TransportUnavailable as exc:
                log.error("run rejected: %s", exc)
                return StoryboardResult.failure(total, str(exc))

            events = RunEventLog(listener=self._on_event)
            self.last_events = events
            orch = self._factory(page, self.cfg, events=events, sleep=self._sleep)
            return await orch.run(request)
        finally:
            self._running = False

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any]:
        action = message.get("action") if isinstance(message, dict) else None
        if action == ACTION_PING:
            return {"success": True, **self.ping()}
        if action == ACTION_START:
            data = message.get("data") or {}
            try:
                request = request_from_dict(data)
            except ValueError as exc:
                result = StoryboardResult.failure(_prompt_count(data), f"invalid request: {exc}")
            else:
                result = await self.run_storyboard(request)
            return {"success": result.succeeded, **result.to_dict()}
        return {"success": False, "error": "Unknown action"}


def _prompt_count(data: Any) -> int:
    prompts = data.get("prompts") if isinstance(data, dict) else None
    return len(prompts) if isinstance(prompts, list) else 0

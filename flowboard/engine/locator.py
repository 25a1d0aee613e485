"""Heuristic element lookup over a live, re-rendering page.

``find`` walks a role's strategies in order. For each strategy it collects
the elements under the strategy's CSS scope in one round-trip, snapshots them
as ``ElementInfo`` records, and matches in Python. The first strategy with a
match wins; strategies are never merged.

Not found is ``None``, never an exception. A Playwright error while reading
the page (navigation, detached frame) counts as no candidates for that
strategy, so callers sampling the page while it re-renders see ``None`` or 0.

Usage:
    el = await find(page, "generate_button")
    option = await find(page, "mode_option", text="Frames to Video")
    last_clip = await find(page, "timeline_clip", nth=-1)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError

from flowboard.engine.selectors import ElementInfo, Strategy, strategies_for

log = logging.getLogger(__name__)


_COLLECT_JS = "(sel) => Array.from(document.querySelectorAll(sel))"

_DESCRIBE_JS = """(els) => els.map((el, i) => {
    const r = el.getBoundingClientRect();
    const text = (el.innerText || el.textContent || el.value || '').trim();
    return {
        index: i,
        tag: el.tagName.toLowerCase(),
        text: text.slice(0, 300),
        html: (el.innerHTML || '').slice(0, 2000),
        top: r.top,
        left: r.left,
        width: r.width,
        height: r.height,
        disabled: !!el.disabled || el.getAttribute('aria-disabled') === 'true',
        placeholder: el.getAttribute('placeholder') || '',
        aria_label: el.getAttribute('aria-label') || '',
        role: el.getAttribute('role') || '',
        has_file_input: el.matches('input[type="file"]') || !!el.querySelector('input[type="file"]'),
        in_control: !!el.closest('button, [role="menuitem"]'),
    };
})"""


# ---------------------------------------------------------------------------
# Pure matching (usable on captured snapshots)
# ---------------------------------------------------------------------------

def match_strategy(strategy: Strategy, infos: list[ElementInfo], context: dict[str, Any] | None = None) -> list[ElementInfo]:
    """All candidates satisfying the strategy, in document order."""
    return [info for info in infos if strategy.matches(info, context)]


def pick(hits: list[ElementInfo], nth: int = 0) -> Optional[ElementInfo]:
    """Nth hit (negative counts from the end), or None when out of range."""
    if not hits:
        return None
    try:
        return hits[nth]
    except IndexError:
        return None


def match_snapshot(
    role: str,
    snapshots: dict[str, list[ElementInfo]],
    *,
    nth: int = 0,
    **context: Any,
) -> Optional[ElementInfo]:
    """Resolve a role offline against ``{scope: [ElementInfo, ...]}`` captures."""
    for strategy in strategies_for(role):
        chosen = pick(match_strategy(strategy, snapshots.get(strategy.scope, []), context), nth)
        if chosen is not None:
            return chosen
    return None


# ---------------------------------------------------------------------------
# Page access
# ---------------------------------------------------------------------------

async def _dispose(handle: Any) -> None:
    try:
        await handle.dispose()
    except PlaywrightError:
        pass


async def _collect(page: Any, scope: str) -> tuple[Any, list[ElementInfo]]:
    """Return (array handle, snapshots) for a CSS scope; (None, []) on page errors."""
    try:
        handle = await page.evaluate_handle(_COLLECT_JS, scope)
    except PlaywrightError as exc:
        log.debug("collect %r failed: %s", scope, exc)
        return None, []
    try:
        raw = await handle.evaluate(_DESCRIBE_JS)
    except PlaywrightError as exc:
        log.debug("describe %r failed: %s", scope, exc)
        await _dispose(handle)
        return None, []
    return handle, [ElementInfo.from_dict(r) for r in raw or []]


def _context(text: Optional[str], extra: dict[str, Any]) -> dict[str, Any]:
    ctx = dict(extra)
    if text is not None:
        ctx["text"] = text
    return ctx


async def find(page: Any, role: str, *, text: Optional[str] = None, nth: int = 0, **context: Any) -> Any:
    """Locate one element for ``role``. Returns an ElementHandle or None."""
    ctx = _context(text, context)
    for strategy in strategies_for(role):
        handle, infos = await _collect(page, strategy.scope)
        if handle is None:
            continue
        try:
            chosen = pick(match_strategy(strategy, infos, ctx), nth)
            if chosen is None:
                continue
            prop = await handle.get_property(str(chosen.index))
            element = prop.as_element()
            if element is not None:
                log.debug("%s -> %s %r via %s", role, chosen.tag, chosen.text[:40], strategy.scope)
                return element
            await _dispose(prop)
        except PlaywrightError as exc:
            log.debug("%s: element vanished during lookup: %s", role, exc)
        finally:
            await _dispose(handle)
    return None


async def describe(page: Any, role: str, *, text: Optional[str] = None, nth: int = 0, **context: Any) -> Optional[ElementInfo]:
    """Snapshot of the element ``find`` would return, without a handle."""
    ctx = _context(text, context)
    for strategy in strategies_for(role):
        handle, infos = await _collect(page, strategy.scope)
        if handle is None:
            continue
        await _dispose(handle)
        chosen = pick(match_strategy(strategy, infos, ctx), nth)
        if chosen is not None:
            return chosen
    return None


async def count(page: Any, role: str, *, text: Optional[str] = None, **context: Any) -> int:
    """Number of matches of the first strategy that matches anything."""
    ctx = _context(text, context)
    for strategy in strategies_for(role):
        handle, infos = await _collect(page, strategy.scope)
        if handle is None:
            continue
        await _dispose(handle)
        hits = match_strategy(strategy, infos, ctx)
        if hits:
            return len(hits)
    return 0

"""Bounded condition polling over page side effects.

Flow gives no completion callback for generation or rendering; the only
evidence is what appears on the page. ``poll_until`` samples a value at a
fixed interval until a predicate holds or the deadline passes, and returns a
``PollResult`` either way. Predicates compose with ``any_of``.

Generation is considered finished when any of these hold:
  1. a progress indicator reads 100%
  2. the timeline duration readout grew past its value at poll start
  3. more ready clips are on the page than before the scene started

Usage:
    baseline = await sample_generation_signals(page)
    # ... click generate ...
    res = await wait_for_generation(page, baseline, timeout_s=300, interval_s=1)
    if not res.satisfied:
        ...  # scene failed
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from flowboard.engine import locator
from flowboard.engine.schema import PollResult

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]
Predicate = Callable[[Any], bool]


# ---------------------------------------------------------------------------
# Core loop
# ---------------------------------------------------------------------------

async def poll_until(
    sample_fn: Callable[[], Any],
    is_satisfied: Predicate,
    *,
    interval_s: float,
    timeout_s: float,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> PollResult:
    """Sleep, sample, test; repeat until satisfied or ``timeout_s`` elapses.

    Each wait is ``min(interval_s, remaining)`` so the loop never overshoots
    the deadline by more than one sample. ``sample_fn`` may be sync or async.
    """
    if interval_s <= 0:
        raise ValueError(f"interval_s must be > 0 (got {interval_s})")

    start = clock()
    last: Any = None
    while True:
        remaining = timeout_s - (clock() - start)
        if remaining <= 0:
            break
        await sleep(min(interval_s, remaining))
        last = sample_fn()
        if inspect.isawaitable(last):
            last = await last
        if is_satisfied(last):
            return PollResult(True, last, _ms(clock() - start))
    return PollResult(False, last, _ms(clock() - start))


def any_of(*predicates: Predicate) -> Predicate:
    """OR-combine predicates over the same sample."""
    def check(value: Any) -> bool:
        return any(p(value) for p in predicates)
    return check


def _ms(seconds: float) -> int:
    return int(round(seconds * 1000))


# ---------------------------------------------------------------------------
# Samplers
# ---------------------------------------------------------------------------

_PERCENT_RE = re.compile(r"(\d{1,3})\s*%")
_DURATION_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def parse_percent(text: str) -> Optional[int]:
    m = _PERCENT_RE.search(text or "")
    if not m:
        return None
    value = int(m.group(1))
    return value if 0 <= value <= 100 else None


def parse_duration(text: str) -> Optional[float]:
    """'1:05' -> 65.0, '1:02:03' -> 3723.0; None if not a readout."""
    m = _DURATION_RE.match((text or "").strip())
    if not m:
        return None
    a, b, c = m.group(1), m.group(2), m.group(3)
    if c is None:
        return float(int(a) * 60 + int(b))
    return float(int(a) * 3600 + int(b) * 60 + int(c))


async def read_progress_percent(page: Any) -> Optional[int]:
    info = await locator.describe(page, "progress_indicator")
    return parse_percent(info.text) if info else None


async def read_duration_seconds(page: Any) -> Optional[float]:
    info = await locator.describe(page, "duration_readout")
    return parse_duration(info.text) if info else None


async def read_ready_count(page: Any) -> int:
    return await locator.count(page, "clip_ready_marker")


@dataclass
class GenerationSignals:
    percent: Optional[int] = None
    duration_s: Optional[float] = None
    ready_count: int = 0


async def sample_generation_signals(page: Any) -> GenerationSignals:
    return GenerationSignals(
        percent=await read_progress_percent(page),
        duration_s=await read_duration_seconds(page),
        ready_count=await read_ready_count(page),
    )


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def percent_complete(baseline: GenerationSignals) -> Predicate:
    # A 100% left over from the previous scene is not a signal.
    stale = baseline.percent == 100

    def check(s: GenerationSignals) -> bool:
        return not stale and s.percent == 100
    return check


def duration_grew(baseline: GenerationSignals) -> Predicate:
    """Duration readout grew past its value at poll start.

    With no readout in the baseline, an empty page (no ready clips) starts
    from 0. Otherwise the readout was only hidden by a re-render, so the first
    readout seen during the poll becomes the start value.
    """
    start: list[Optional[float]] = [baseline.duration_s]
    if start[0] is None and baseline.ready_count == 0:
        start[0] = 0.0

    def check(s: GenerationSignals) -> bool:
        if s.duration_s is None:
            return False
        if start[0] is None:
            start[0] = s.duration_s
            return False
        return s.duration_s > start[0]
    return check


def ready_count_grew(baseline: GenerationSignals) -> Predicate:
    def check(s: GenerationSignals) -> bool:
        return s.ready_count > baseline.ready_count
    return check


def generation_finished(baseline: GenerationSignals) -> Predicate:
    return any_of(percent_complete(baseline), duration_grew(baseline), ready_count_grew(baseline))


# ---------------------------------------------------------------------------
# Named waits
# ---------------------------------------------------------------------------

async def wait_for_generation(
    page: Any,
    baseline: GenerationSignals,
    *,
    timeout_s: float,
    interval_s: float,
    sleep: Sleep = asyncio.sleep,
    on_progress: Optional[Callable[[int], Any]] = None,
    clock: Clock = time.monotonic,
) -> PollResult:
    """Poll until the scene's video is done. Reports each new percent to ``on_progress``."""
    last_pct: list[Optional[int]] = [baseline.percent]

    async def sample() -> GenerationSignals:
        s = await sample_generation_signals(page)
        if s.percent is not None and s.percent != last_pct[0]:
            last_pct[0] = s.percent
            if on_progress is not None:
                on_progress(s.percent)
        return s

    return await poll_until(
        sample, generation_finished(baseline),
        interval_s=interval_s, timeout_s=timeout_s, sleep=sleep, clock=clock,
    )


async def wait_for_present(
    page: Any,
    role: str,
    *,
    timeout_s: float,
    interval_s: float,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
    **context: Any,
) -> PollResult:
    """Poll until ``role`` resolves to an element snapshot."""
    async def sample() -> Any:
        return await locator.describe(page, role, **context)

    return await poll_until(
        sample, lambda info: info is not None,
        interval_s=interval_s, timeout_s=timeout_s, sleep=sleep, clock=clock,
    )


async def wait_for_enabled(page: Any, role: str = "generate_button", **kwargs: Any) -> PollResult:
    """Enabled-ness is part of the role's strategy (``enabled_only``)."""
    return await wait_for_present(page, role, **kwargs)


async def wait_for_extend_mode(page: Any, **kwargs: Any) -> PollResult:
    return await wait_for_present(page, "extend_indicator", **kwargs)


async def wait_for_download(
    page: Any,
    captured: list[Any],
    *,
    timeout_s: float,
    interval_s: float,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> PollResult:
    """Poll until a download was captured or the render notice offers Dismiss."""
    async def sample() -> dict[str, Any]:
        dismiss = await locator.describe(page, "dismiss_button")
        return {"downloads": len(captured), "dismiss": dismiss is not None}

    return await poll_until(
        sample, lambda v: v["downloads"] > 0 or v["dismiss"],
        interval_s=interval_s, timeout_s=timeout_s, sleep=sleep, clock=clock,
    )

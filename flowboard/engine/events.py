"""Append-only run event log.

Each storyboard run owns one ``RunEventLog``. Events are timestamped and
tagged (info / success / warning / error), mirrored to the ``logging`` tree,
and optionally pushed to a listener as they happen so a UI can stream them.
Readers get a read-only ``Sequence``; iteration can be restarted at will.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, overload

log = logging.getLogger(__name__)

LEVELS = ("info", "success", "warning", "error")

_TAGS = {"info": "•", "success": "✅", "warning": "⚠️", "error": "❌"}
_LOG_LEVELS = {"info": logging.INFO, "success": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


@dataclass(frozen=True)
class RunEvent:
    timestamp: dt.datetime
    level: str
    message: str
    phase: str = ""
    scene_index: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "phase": self.phase,
            "scene_index": self.scene_index,
        }


def format_line(event: RunEvent) -> str:
    """'[14:03:22] ✅ Scene 1 done'."""
    return f"[{event.timestamp:%H:%M:%S}] {_TAGS.get(event.level, '•')} {event.message}"


class RunEventLog(Sequence):
    """Append-only, read-only to consumers."""

    def __init__(
        self,
        *,
        listener: Optional[Callable[[RunEvent], Any]] = None,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
    ):
        self._events: list[RunEvent] = []
        self._listener = listener
        self._clock = clock

    def record(self, level: str, message: str, *, phase: str = "", scene_index: Optional[int] = None) -> RunEvent:
        if level not in LEVELS:
            raise ValueError(f"Unknown event level {level!r}")
        event = RunEvent(self._clock(), level, message, phase, scene_index)
        self._events.append(event)
        log.log(_LOG_LEVELS[level], "%s%s", f"[{phase}] " if phase else "", message)
        if self._listener is not None:
            try:
                self._listener(event)
            except Exception as exc:
                # listener errors are logged, never raised into the run
                log.warning("event listener failed: %s", exc)
        return event

    def info(self, message: str, **kw: Any) -> RunEvent:
        return self.record("info", message, **kw)

    def success(self, message: str, **kw: Any) -> RunEvent:
        return self.record("success", message, **kw)

    def warning(self, message: str, **kw: Any) -> RunEvent:
        return self.record("warning", message, **kw)

    def error(self, message: str, **kw: Any) -> RunEvent:
        return self.record("error", message, **kw)

    @overload
    def __getitem__(self, index: int) -> RunEvent: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[RunEvent, ...]: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._events[index])
        return self._events[index]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[RunEvent]:
        return iter(tuple(self._events))

    def lines(self) -> list[str]:
        return [format_line(e) for e in self._events]

    def errors(self) -> list[RunEvent]:
        return [e for e in self._events if e.level == "error"]

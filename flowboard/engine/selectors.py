"""Role -> ordered lookup strategies for the Flow UI.

Each role maps to a list of ``Strategy`` records tried in order; the first
strategy with a match wins. A strategy narrows candidates by CSS scope, then
applies a pure predicate over an ``ElementInfo`` snapshot (text, markup,
bounding box, structural hints). The predicate is side-effect free so the
table can be checked against captured snapshots without a browser.

Geometric thresholds were calibrated on a 1440x900 viewport with the prompt
bar docked at the bottom. When Flow changes layout, update this file.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Element snapshot
# ---------------------------------------------------------------------------

@dataclass
class ElementInfo:
    """Point-in-time description of one candidate element."""
    index: int = 0
    tag: str = ""
    text: str = ""
    html: str = ""
    top: float = 0.0
    left: float = 0.0
    width: float = 0.0
    height: float = 0.0
    disabled: bool = False
    placeholder: str = ""
    aria_label: str = ""
    role: str = ""
    has_file_input: bool = False
    in_control: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ElementInfo":
        return cls(
            index=int(raw.get("index", 0)),
            tag=str(raw.get("tag", "")),
            text=str(raw.get("text", "") or ""),
            html=str(raw.get("html", "") or ""),
            top=float(raw.get("top", 0) or 0),
            left=float(raw.get("left", 0) or 0),
            width=float(raw.get("width", 0) or 0),
            height=float(raw.get("height", 0) or 0),
            disabled=bool(raw.get("disabled", False)),
            placeholder=str(raw.get("placeholder", "") or ""),
            aria_label=str(raw.get("aria_label", "") or ""),
            role=str(raw.get("role", "") or ""),
            has_file_input=bool(raw.get("has_file_input", False)),
            in_control=bool(raw.get("in_control", False)),
        )

    @property
    def visible(self) -> bool:
        return self.width > 0 and self.height > 0


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

def _fill(value: str, context: dict[str, Any]) -> str:
    """Substitute {name} placeholders from context; unknown ones stay literal."""
    for key, sub in context.items():
        value = value.replace("{" + key + "}", str(sub))
    return value


@dataclass(frozen=True)
class Strategy:
    """One way of finding a role. Unset fields do not constrain."""
    scope: str
    text_exact: tuple[str, ...] = ()
    text_contains: tuple[str, ...] = ()
    text_pattern: str = ""
    text_excludes: tuple[str, ...] = ()
    ignore_case: bool = False
    html_contains: tuple[str, ...] = ()
    aria_contains: tuple[str, ...] = ()
    placeholder_contains: tuple[str, ...] = ()
    min_top: Optional[float] = None
    max_top: Optional[float] = None
    min_width: Optional[float] = None
    max_width: Optional[float] = None
    enabled_only: bool = False
    has_file_input: bool = False
    outside_controls: bool = False
    visible_only: bool = True

    def matches(self, info: ElementInfo, context: dict[str, Any] | None = None) -> bool:
        ctx = context or {}
        if self.visible_only and not info.visible:
            return False
        if self.enabled_only and info.disabled:
            return False
        if self.has_file_input and not info.has_file_input:
            return False
        if self.outside_controls and info.in_control:
            return False

        if self.min_top is not None and info.top <= self.min_top:
            return False
        if self.max_top is not None and info.top >= self.max_top:
            return False
        if self.min_width is not None and info.width <= self.min_width:
            return False
        if self.max_width is not None and info.width >= self.max_width:
            return False

        text = info.text.strip()
        fold = (lambda s: s.lower()) if self.ignore_case else (lambda s: s)
        ftext = fold(text)

        if self.text_exact and ftext not in {fold(_fill(t, ctx)) for t in self.text_exact}:
            return False
        if self.text_contains and not any(fold(_fill(t, ctx)) in ftext for t in self.text_contains):
            return False
        if self.text_pattern:
            flags = re.IGNORECASE if self.ignore_case else 0
            if not re.search(_fill(self.text_pattern, ctx), text, flags):
                return False
        if self.text_excludes and any(fold(t) in ftext for t in self.text_excludes):
            return False

        if self.html_contains and not any(tok in info.html for tok in self.html_contains):
            return False
        if self.aria_contains and not any(t.lower() in info.aria_label.lower() for t in self.aria_contains):
            return False
        if self.placeholder_contains and not any(
            t.lower() in info.placeholder.lower() for t in self.placeholder_contains
        ):
            return False
        return True


# ---------------------------------------------------------------------------
# Role table
# ---------------------------------------------------------------------------

MODE_LABELS = ("Text to Video", "Frames to Video", "Ingredients to Video", "Create Image")

# Content of the prompt bar sits below this offset; the scene timeline below 450.
PROMPT_BAR_TOP = 500
MODE_BAR_TOP = 600
TIMELINE_TOP = 450

ROLES: dict[str, list[Strategy]] = {
    "prompt_input": [
        Strategy("#PINHOLE_TEXT_AREA_ELEMENT_ID"),
        Strategy("textarea", min_width=200, min_top=PROMPT_BAR_TOP),
        Strategy("textarea", min_width=200),
    ],
    "mode_selector": [
        Strategy("button, [role='combobox']", text_contains=MODE_LABELS,
                 min_top=MODE_BAR_TOP, min_width=100, max_width=300),
        Strategy("div, span", text_contains=MODE_LABELS,
                 min_top=MODE_BAR_TOP, min_width=100, max_width=300),
    ],
    "mode_option": [
        Strategy("[role='option'], li", text_exact=("{text}",)),
        Strategy("div, span", text_exact=("{text}",)),
    ],
    "settings_button": [
        Strategy("button", html_contains=("tune",), min_top=PROMPT_BAR_TOP),
        Strategy("button", aria_contains=("settings",)),
    ],
    "settings_dropdown": [
        Strategy("[role='combobox'], button", text_contains=("{text}",)),
    ],
    "settings_option": [
        Strategy("[role='option'], li", text_exact=("{text}",)),
        Strategy("[role='option'], li", text_contains=("{text}",)),
        Strategy("div, span", text_exact=("{text}",)),
    ],
    "add_image_button": [
        Strategy("button", text_exact=("add", "+")),
        Strategy("button", aria_contains=("upload", "add image")),
    ],
    "file_input": [
        Strategy("input[type='file']", visible_only=False),
        Strategy("div, label, button", has_file_input=True, visible_only=False),
    ],
    "crop_aspect_selector": [
        Strategy("[role='combobox'], button", text_contains=("landscape", "portrait", "square"),
                 ignore_case=True),
    ],
    "crop_aspect_option": [
        Strategy("[role='option'], li", text_contains=("{text}",), ignore_case=True),
        Strategy("div, span", text_contains=("{text}",), ignore_case=True),
    ],
    "crop_and_save": [
        Strategy("button", text_contains=("Crop and Save",)),
    ],
    "generate_button": [
        Strategy("button", html_contains=("arrow_forward",), enabled_only=True),
    ],
    "add_to_scene_button": [
        Strategy("button, div", text_contains=("add to scene",), ignore_case=True, max_width=300),
    ],
    "timeline_clip": [
        Strategy("[data-index]", min_top=TIMELINE_TOP, min_width=40),
        Strategy("video", min_top=TIMELINE_TOP, min_width=40),
    ],
    "clear_timeline_button": [
        Strategy("button", html_contains=("delete",), min_top=TIMELINE_TOP),
        Strategy("button", aria_contains=("clear",)),
    ],
    "confirm_button": [
        Strategy("button", text_exact=("Delete", "Confirm", "Clear")),
    ],
    "jump_to_end_button": [
        Strategy("button", html_contains=("skip_next",), min_top=TIMELINE_TOP),
    ],
    "extend_button": [
        Strategy("button, [role='menuitem']", text_contains=("Extend",)),
        Strategy("button", text_exact=("+", "add"), min_top=TIMELINE_TOP),
    ],
    "extend_indicator": [
        Strategy("textarea", placeholder_contains=("extend", "what happens next")),
        Strategy("div, span", text_contains=("Extend",), min_top=PROMPT_BAR_TOP, max_width=300,
                 outside_controls=True),
    ],
    "progress_indicator": [
        Strategy("div, span", text_pattern=r"^\d{1,3}\s*%$", max_width=100),
    ],
    "duration_readout": [
        Strategy("div, span", text_pattern=r"^\d{1,2}:\d{2}(:\d{2})?$", min_top=TIMELINE_TOP),
    ],
    "clip_ready_marker": [
        Strategy("video", min_width=40),
    ],
    "download_button": [
        Strategy("button", html_contains=("download", "file_download"), min_top=TIMELINE_TOP),
    ],
    "download_quality_option": [
        Strategy("[role='menuitem'], div, span", text_contains=("1080",), text_excludes=("credit",),
                 ignore_case=True),
    ],
    "dismiss_button": [
        Strategy("button, a, span", text_exact=("Dismiss",)),
    ],
}


def strategies_for(role: str) -> list[Strategy]:
    try:
        return ROLES[role]
    except KeyError:
        raise KeyError(f"Unknown role {role!r}. Known: {', '.join(sorted(ROLES))}") from None

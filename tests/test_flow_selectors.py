"""Tests for the Flow role table and offline strategy matching."""

import sys
import unittest
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
if str(_repo) not in sys.path:
    sys.path.insert(0, str(_repo))

from flowboard.engine.locator import match_snapshot, match_strategy, pick
from flowboard.engine.selectors import ROLES, ElementInfo, Strategy, strategies_for


def el(text="", tag="button", *, html="", top=700.0, width=150.0, height=40.0, **kw):
    return ElementInfo(tag=tag, text=text, html=html, top=top, width=width, height=height, **kw)


class TestStrategyPredicates(unittest.TestCase):

    def test_exact_text_with_placeholder(self):
        s = Strategy("li", text_exact=("{text}",))
        self.assertTrue(s.matches(el("Frames to Video"), {"text": "Frames to Video"}))
        self.assertFalse(s.matches(el("Frames to Video extra"), {"text": "Frames to Video"}))

    def test_unfilled_placeholder_matches_nothing(self):
        s = Strategy("li", text_exact=("{text}",))
        self.assertFalse(s.matches(el("Frames to Video")))

    def test_contains_case_insensitive(self):
        s = Strategy("div", text_contains=("add to scene",), ignore_case=True)
        self.assertTrue(s.matches(el("Add To Scene")))

    def test_excludes(self):
        s = Strategy("span", text_contains=("1080",), text_excludes=("credit",), ignore_case=True)
        self.assertTrue(s.matches(el("Upscaled (1080p)")))
        self.assertFalse(s.matches(el("1080p - 10 Credits")))

    def test_pattern_with_braces_is_not_formatted(self):
        s = Strategy("span", text_pattern=r"^\d{1,3}\s*%$")
        self.assertTrue(s.matches(el("42%"), {"text": "ignored"}))
        self.assertFalse(s.matches(el("1234%")))

    def test_bounding_box(self):
        s = Strategy("textarea", min_width=200, min_top=500)
        self.assertTrue(s.matches(el(top=760, width=600)))
        self.assertFalse(s.matches(el(top=300, width=600)))
        self.assertFalse(s.matches(el(top=760, width=150)))

    def test_invisible_skipped_unless_allowed(self):
        hidden = el(tag="input", width=0, height=0)
        self.assertFalse(Strategy("input").matches(hidden))
        self.assertTrue(Strategy("input", visible_only=False).matches(hidden))

    def test_enabled_only(self):
        s = Strategy("button", html_contains=("arrow_forward",), enabled_only=True)
        self.assertTrue(s.matches(el(html="<i>arrow_forward</i>")))
        self.assertFalse(s.matches(el(html="<i>arrow_forward</i>", disabled=True)))

    def test_placeholder_and_aria(self):
        s = Strategy("textarea", placeholder_contains=("what happens next",))
        self.assertTrue(s.matches(el(placeholder="What happens next?")))
        a = Strategy("button", aria_contains=("settings",))
        self.assertTrue(a.matches(el(aria_label="Open Settings")))


class TestPick(unittest.TestCase):

    def test_nth_and_negative(self):
        hits = [el("a"), el("b"), el("c")]
        self.assertEqual(pick(hits).text, "a")
        self.assertEqual(pick(hits, -1).text, "c")
        self.assertIsNone(pick(hits, 5))
        self.assertIsNone(pick([], 0))


class TestRoleTable(unittest.TestCase):

    def test_every_role_has_strategies(self):
        for role, strategies in ROLES.items():
            self.assertTrue(strategies, role)
            for s in strategies:
                self.assertTrue(s.scope, role)

    def test_unknown_role(self):
        with self.assertRaises(KeyError):
            strategies_for("nope")

    def test_prompt_input_prefers_pinhole_id(self):
        snap = {
            "#PINHOLE_TEXT_AREA_ELEMENT_ID": [el(tag="textarea", top=100, width=300)],
            "textarea": [el("other", tag="textarea", top=760, width=600)],
        }
        self.assertEqual(match_snapshot("prompt_input", snap).top, 100)

    def test_prompt_input_falls_back_to_bottom_textarea(self):
        snap = {"textarea": [
            el("search", tag="textarea", top=40, width=300),
            el("", tag="textarea", top=780, width=700),
        ]}
        self.assertEqual(match_snapshot("prompt_input", snap).top, 780)

    def test_mode_selector_geometry(self):
        scope = ROLES["mode_selector"][0].scope
        snap = {scope: [
            el("Text to Video", top=120, width=200),        # header, too high
            el("Text to Video arrow_drop_down", top=820, width=180),
        ]}
        self.assertEqual(match_snapshot("mode_selector", snap).top, 820)

    def test_generate_button_requires_icon_and_enabled(self):
        snap = {"button": [
            el(html="<i>arrow_forward</i>", disabled=True),
            el(html="<i>add</i>"),
        ]}
        self.assertIsNone(match_snapshot("generate_button", snap))
        snap["button"].append(el(html="<i class='g'>arrow_forward</i>"))
        self.assertIsNotNone(match_snapshot("generate_button", snap))

    def test_first_matching_strategy_wins_no_aggregation(self):
        first, second = ROLES["timeline_clip"][0].scope, ROLES["timeline_clip"][1].scope
        snap = {
            first: [el(tag="div", top=600, width=120)],
            second: [el(tag="video", top=600, width=120), el(tag="video", top=600, width=120)],
        }
        hits = match_strategy(ROLES["timeline_clip"][0], snap[first])
        self.assertEqual(len(hits), 1)
        self.assertEqual(match_snapshot("timeline_clip", snap, nth=-1).tag, "div")

    def test_extend_indicator_ignores_extend_control_label(self):
        scope = ROLES["extend_indicator"][1].scope
        label = el("Extend", tag="span", top=780, width=80, in_control=True)
        menuitem = el("Extend", tag="div", top=780, width=120, role="menuitem", in_control=True)
        self.assertIsNone(match_snapshot("extend_indicator", {scope: [label, menuitem]}))

        chip = el("Extend", tag="span", top=780, width=80)
        self.assertIs(match_snapshot("extend_indicator", {scope: [label, chip]}), chip)

    def test_extend_indicator_prefers_prompt_placeholder(self):
        snap = {"textarea": [el(tag="textarea", top=780, width=600, placeholder="What happens next?")]}
        self.assertEqual(match_snapshot("extend_indicator", snap).tag, "textarea")

    def test_download_quality_skips_paid_option(self):
        scope = ROLES["download_quality_option"][0].scope
        snap = {scope: [el("1080p Upscaled · 20 credits"), el("Upscaled (1080p)")]}
        self.assertEqual(match_snapshot("download_quality_option", snap).text, "Upscaled (1080p)")

    def test_file_input_may_be_hidden(self):
        snap = {"input[type='file']": [el(tag="input", width=0, height=0, has_file_input=True)]}
        self.assertIsNotNone(match_snapshot("file_input", snap))

    def test_duration_readout(self):
        scope = ROLES["duration_readout"][0].scope
        snap = {scope: [el("0:08", top=600, width=40)]}
        self.assertEqual(match_snapshot("duration_readout", snap).text, "0:08")

    def test_mode_option_uses_context(self):
        scope = ROLES["mode_option"][0].scope
        snap = {scope: [el("Text to Video"), el("Frames to Video")]}
        self.assertEqual(match_snapshot("mode_option", snap, text="Frames to Video").text, "Frames to Video")


if __name__ == "__main__":
    unittest.main()

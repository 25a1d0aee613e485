"""Tests for flowboard.engine.pollers (fake clock, no real sleeping)."""

import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

_here = Path(__file__).resolve().parent
for _p in (_here.parent, _here):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

from flow_fakes import FakeClock, FakeElement, FakePage
from flowboard.engine import pollers
from flowboard.engine.pollers import (
    GenerationSignals,
    any_of,
    generation_finished,
    parse_duration,
    parse_percent,
    poll_until,
)


class TestPollUntil(unittest.IsolatedAsyncioTestCase):

    async def test_counter_crossing_is_detected_within_one_interval(self):
        clock = FakeClock()
        crossing = 0.55
        res = await poll_until(
            lambda: clock.now, lambda v: v >= crossing,
            interval_s=0.1, timeout_s=1.0, sleep=clock.sleep, clock=clock,
        )
        self.assertTrue(res.satisfied)
        self.assertGreaterEqual(res.last_value, crossing)
        self.assertLessEqual(res.elapsed_ms, int((crossing + 0.1) * 1000) + 1)

    async def test_never_crossing_times_out_at_deadline(self):
        clock = FakeClock()
        res = await poll_until(
            lambda: clock.now, lambda v: v >= 2.0,
            interval_s=0.1, timeout_s=1.0, sleep=clock.sleep, clock=clock,
        )
        self.assertFalse(res.satisfied)
        self.assertEqual(res.elapsed_ms, 1000)
        self.assertLessEqual(max(clock.sleeps), 0.1)

    async def test_last_wait_is_clipped_to_deadline(self):
        clock = FakeClock()
        res = await poll_until(
            lambda: 0, lambda v: False,
            interval_s=0.4, timeout_s=1.0, sleep=clock.sleep, clock=clock,
        )
        self.assertFalse(res.satisfied)
        self.assertAlmostEqual(clock.sleeps[-1], 0.2)
        self.assertAlmostEqual(clock.now, 1.0)

    async def test_async_sampler(self):
        clock = FakeClock()
        sample = AsyncMock(side_effect=[1, 2, 3])
        res = await poll_until(
            sample, lambda v: v == 3,
            interval_s=0.5, timeout_s=10, sleep=clock.sleep, clock=clock,
        )
        self.assertTrue(res.satisfied)
        self.assertEqual(res.last_value, 3)
        self.assertEqual(sample.await_count, 3)

    async def test_rejects_zero_interval(self):
        with self.assertRaises(ValueError):
            await poll_until(lambda: 1, bool, interval_s=0, timeout_s=1)


class TestPredicates(unittest.TestCase):

    def test_any_of(self):
        check = any_of(lambda v: v > 10, lambda v: v < 0)
        self.assertTrue(check(11))
        self.assertTrue(check(-1))
        self.assertFalse(check(5))

    def test_percent_reaching_100(self):
        done = generation_finished(GenerationSignals(percent=0))
        self.assertFalse(done(GenerationSignals(percent=99)))
        self.assertTrue(done(GenerationSignals(percent=100)))

    def test_stale_100_is_ignored(self):
        done = generation_finished(GenerationSignals(percent=100))
        self.assertFalse(done(GenerationSignals(percent=100)))

    def test_duration_increase(self):
        done = generation_finished(GenerationSignals(duration_s=8.0))
        self.assertFalse(done(GenerationSignals(duration_s=8.0)))
        self.assertTrue(done(GenerationSignals(duration_s=15.0)))

    def test_duration_from_empty_timeline(self):
        done = generation_finished(GenerationSignals())
        self.assertTrue(done(GenerationSignals(duration_s=8.0)))

    def test_hidden_duration_readout_uses_first_poll_value(self):
        # Timeline already holds one clip but its readout was mid re-render.
        done = generation_finished(GenerationSignals(ready_count=1))
        self.assertFalse(done(GenerationSignals(duration_s=None, ready_count=1)))
        self.assertFalse(done(GenerationSignals(duration_s=8.0, ready_count=1)))
        self.assertFalse(done(GenerationSignals(duration_s=8.0, ready_count=1)))
        self.assertTrue(done(GenerationSignals(duration_s=16.0, ready_count=1)))

    def test_ready_count_increase(self):
        done = generation_finished(GenerationSignals(ready_count=2))
        self.assertFalse(done(GenerationSignals(ready_count=2)))
        self.assertTrue(done(GenerationSignals(ready_count=3)))


class TestParsers(unittest.TestCase):

    def test_parse_percent(self):
        self.assertEqual(parse_percent("42%"), 42)
        self.assertEqual(parse_percent("100 %"), 100)
        self.assertIsNone(parse_percent("loading"))
        self.assertIsNone(parse_percent("250%"))

    def test_parse_duration(self):
        self.assertEqual(parse_duration("0:08"), 8.0)
        self.assertEqual(parse_duration("1:05"), 65.0)
        self.assertEqual(parse_duration("1:02:03"), 3723.0)
        self.assertIsNone(parse_duration("8s"))


class TestSamplers(unittest.IsolatedAsyncioTestCase):

    async def test_sample_generation_signals(self):
        page = FakePage()
        page.add("div, span", FakeElement("span", "37%", width=40))
        page.add("video", FakeElement("video", width=320))
        s = await pollers.sample_generation_signals(page)
        self.assertEqual(s.percent, 37)
        self.assertEqual(s.ready_count, 1)

    async def test_wait_for_generation_reports_progress(self):
        clock = FakeClock()
        samples = [
            GenerationSignals(percent=10),
            GenerationSignals(percent=10),
            GenerationSignals(percent=60),
            GenerationSignals(percent=100),
        ]
        seen = []
        with patch.object(pollers, "sample_generation_signals", AsyncMock(side_effect=samples)):
            res = await pollers.wait_for_generation(
                object(), GenerationSignals(), timeout_s=300, interval_s=1,
                sleep=clock.sleep, clock=clock, on_progress=seen.append,
            )
        self.assertTrue(res.satisfied)
        self.assertEqual(seen, [10, 60, 100])

    async def test_wait_for_present_times_out(self):
        clock = FakeClock()
        with patch.object(pollers.locator, "describe", AsyncMock(return_value=None)):
            res = await pollers.wait_for_extend_mode(object(), timeout_s=10, interval_s=0.5, sleep=clock.sleep, clock=clock)
        self.assertFalse(res.satisfied)
        self.assertEqual(len(clock.sleeps), 20)

    async def test_wait_for_download_sees_captured_file(self):
        clock = FakeClock()
        captured = []

        async def describe(page, role, **kw):
            captured.append("download")
            return None

        with patch.object(pollers.locator, "describe", describe):
            res = await pollers.wait_for_download(object(), captured, timeout_s=240, interval_s=2, sleep=clock.sleep, clock=clock)
        self.assertTrue(res.satisfied)
        self.assertEqual(res.last_value["downloads"], 1)


if __name__ == "__main__":
    unittest.main()

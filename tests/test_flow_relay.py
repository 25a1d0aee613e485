"""Tests for flowboard.engine.relay."""

import asyncio
import sys
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

_here = Path(__file__).resolve().parent
for _p in (_here.parent, _here):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

from playwright.async_api import Error as PlaywrightError

from flow_fakes import FLOW_URL
from flowboard.engine.relay import ACTION_PING, ACTION_START, READY_NOTICE, StoryboardRelay
from flowboard.engine.schema import StoryboardRequest, StoryboardResult


def make_factory(result=None, gate=None):
    """Orchestrator factory returning a stub whose run() yields ``result``."""
    calls = []

    def factory(page, cfg, *, events, sleep):
        calls.append(page)

        async def run(request):
            if gate is not None:
                await gate.wait()
            events.success("scene done")
            return result or StoryboardResult.build(scenes_completed=len(request.prompts),
                                                    total_scenes=len(request.prompts))

        return SimpleNamespace(run=run)

    factory.calls = calls
    return factory


def provider_for(page):
    async def provide():
        return page
    return provide


class TestTransport(unittest.IsolatedAsyncioTestCase):

    async def test_no_page_fails_without_running(self):
        factory = make_factory()
        relay = StoryboardRelay(provider_for(None), orchestrator_factory=factory)
        result = await relay.run_storyboard(StoryboardRequest(prompts=["a", "b"]))
        self.assertFalse(result.succeeded)
        self.assertEqual(result.scenes_completed, 0)
        self.assertEqual(result.total_scenes, 2)
        self.assertEqual(result.error_message, "transport unavailable")
        self.assertEqual(factory.calls, [])

    async def test_wrong_page_is_unavailable(self):
        factory = make_factory()
        page = SimpleNamespace(url="https://example.com/")
        relay = StoryboardRelay(provider_for(page), orchestrator_factory=factory)
        result = await relay.run_storyboard(StoryboardRequest(prompts=["a"]))
        self.assertEqual(result.error_message, "transport unavailable")
        self.assertEqual(factory.calls, [])

    async def test_provider_error_is_unavailable(self):
        provider = AsyncMock(side_effect=PlaywrightError("Browser has been closed"))
        relay = StoryboardRelay(provider, orchestrator_factory=make_factory())
        result = await relay.run_storyboard(StoryboardRequest(prompts=["a"]))
        self.assertEqual(result.error_message, "transport unavailable")
        self.assertFalse(relay.busy)

    async def test_runs_against_flow_page(self):
        factory = make_factory()
        page = SimpleNamespace(url=FLOW_URL)
        seen = []
        relay = StoryboardRelay(provider_for(page), orchestrator_factory=factory, on_event=seen.append)
        result = await relay.run_storyboard(StoryboardRequest(prompts=["a", "b"]))
        self.assertTrue(result.succeeded)
        self.assertEqual(factory.calls, [page])
        self.assertEqual(len(seen), 1)
        self.assertEqual(len(relay.last_events), 1)


class TestConcurrency(unittest.IsolatedAsyncioTestCase):

    async def test_second_run_rejected_while_busy(self):
        gate = asyncio.Event()
        factory = make_factory(gate=gate)
        relay = StoryboardRelay(provider_for(SimpleNamespace(url=FLOW_URL)), orchestrator_factory=factory)

        first = asyncio.create_task(relay.run_storyboard(StoryboardRequest(prompts=["a"])))
        await asyncio.sleep(0)
        self.assertTrue(relay.busy)

        second = await relay.run_storyboard(StoryboardRequest(prompts=["x", "y"]))
        self.assertFalse(second.succeeded)
        self.assertEqual(second.total_scenes, 2)
        self.assertIn("already in progress", second.error_message)

        gate.set()
        result = await first
        self.assertTrue(result.succeeded)
        self.assertFalse(relay.busy)
        self.assertEqual(len(factory.calls), 1)


class TestLiveness(unittest.IsolatedAsyncioTestCase):

    async def test_ping_is_idempotent_and_side_effect_free(self):
        factory = make_factory()
        relay = StoryboardRelay(provider_for(None), orchestrator_factory=factory)
        self.assertEqual(relay.ping(), {"status": "ready"})
        self.assertEqual(relay.ping(), {"status": "ready"})
        self.assertFalse(relay.busy)
        self.assertEqual(factory.calls, [])

    async def test_ready_notice_sent_once(self):
        listener = MagicMock()
        relay = StoryboardRelay(provider_for(None), on_ready=listener)
        self.assertTrue(await relay.announce_ready())
        self.assertFalse(await relay.announce_ready())
        listener.assert_called_once_with(READY_NOTICE)

    async def test_ready_notice_listener_failure_is_logged(self):
        listener = AsyncMock(side_effect=ConnectionError("no receiver"))
        relay = StoryboardRelay(provider_for(None), on_ready=listener)
        with self.assertLogs("flowboard.engine.relay", level="WARNING"):
            self.assertTrue(await relay.announce_ready())

    async def test_no_listener(self):
        self.assertFalse(await StoryboardRelay(provider_for(None)).announce_ready())


class TestHandleMessage(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.factory = make_factory()
        self.relay = StoryboardRelay(provider_for(SimpleNamespace(url=FLOW_URL)),
                                     orchestrator_factory=self.factory)

    async def test_ping(self):
        resp = await self.relay.handle_message({"action": ACTION_PING})
        self.assertEqual(resp, {"success": True, "status": "ready"})

    async def test_unknown_action(self):
        resp = await self.relay.handle_message({"action": "REBOOT"})
        self.assertEqual(resp, {"success": False, "error": "Unknown action"})
        self.assertEqual(await self.relay.handle_message({}), resp)

    async def test_start(self):
        resp = await self.relay.handle_message({
            "action": ACTION_START,
            "data": {"prompts": ["one", "two"], "aspectRatio": "16:9", "outputs": 1},
        })
        self.assertTrue(resp["success"])
        self.assertEqual(resp["scenes_completed"], 2)
        self.assertEqual(resp["failed_scene_indices"], [])

    async def test_start_with_bad_payload(self):
        resp = await self.relay.handle_message({
            "action": ACTION_START,
            "data": {"prompts": ["one"], "aspectRatio": "4:3"},
        })
        self.assertFalse(resp["success"])
        self.assertTrue(resp["error_message"].startswith("invalid request"))
        self.assertEqual(resp["total_scenes"], 1)
        self.assertEqual(self.factory.calls, [])

    async def test_start_with_non_object_image(self):
        resp = await self.relay.handle_message({
            "action": ACTION_START,
            "data": {"prompts": ["a"], "images": ["hero.png"]},
        })
        self.assertFalse(resp["success"])
        self.assertIn("Image 1 must be an object", resp["error_message"])
        self.assertEqual(resp["total_scenes"], 1)
        self.assertEqual(self.factory.calls, [])

    async def test_start_with_list_payload(self):
        resp = await self.relay.handle_message({"action": ACTION_START, "data": ["a", "b"]})
        self.assertFalse(resp["success"])
        self.assertTrue(resp["error_message"].startswith("invalid request: payload must be an object"))
        self.assertEqual(resp["total_scenes"], 0)
        self.assertEqual(self.factory.calls, [])

    async def test_non_dict_message(self):
        resp = await self.relay.handle_message(["PING"])
        self.assertEqual(resp, {"success": False, "error": "Unknown action"})


if __name__ == "__main__":
    unittest.main()

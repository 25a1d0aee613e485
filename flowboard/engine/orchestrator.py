"""Storyboard run state machine.

Phases run strictly in order:

    ClearTimeline -> SwitchMode -> ConfigureSettings -> UploadImages* ->
    [ExtendMode(i>0) -> GenerateScene(i)]* -> VerifyClipCount -> Download

Each phase returns a ``PhaseOutcome``. What happens on a failed outcome is
decided by ``FAILURE_POLICY`` alone, so the continue/skip/abort behaviour is
a table, not scattered control flow. ``StoryboardOrchestrator.run`` never
raises; the returned ``StoryboardResult`` is the only artifact of a run.

Usage:
    orch = StoryboardOrchestrator(page, cfg, events=RunEventLog())
    result = await orch.run(request)
    print(result.scenes_completed, sorted(result.failed_scene_indices))
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError

from flowboard.common import stamp
from flowboard.config import FlowConfig
from flowboard.engine import actions, locator, pollers
from flowboard.engine.events import RunEventLog
from flowboard.engine.schema import (
    AspectRatio,
    ImageAttachment,
    Mode,
    PhaseOutcome,
    StoryboardRequest,
    StoryboardResult,
    validate_request,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Phases and failure policy
# ---------------------------------------------------------------------------

class Phase(str, Enum):
    IDLE = "idle"
    CLEAR_TIMELINE = "clear_timeline"
    SWITCH_MODE = "switch_mode"
    CONFIGURE_SETTINGS = "configure_settings"
    UPLOAD_IMAGES = "upload_images"
    CROP_CONFIRM = "crop_confirm"
    EXTEND_MODE = "extend_mode"
    GENERATE_SCENE = "generate_scene"
    VERIFY_CLIP_COUNT = "verify_clip_count"
    DOWNLOAD = "download"
    DONE = "done"


class OnFailure(str, Enum):
    CONTINUE = "continue"        # log and move to the next phase
    SKIP_SCENE = "skip_scene"    # scene never started; record it failed
    FAIL_SCENE = "fail_scene"    # scene started but did not finish
    OBSERVE = "observe"          # informational only
    ABORT = "abort"              # stop before scene generation


FAILURE_POLICY: dict[Phase, OnFailure] = {
    Phase.CLEAR_TIMELINE: OnFailure.CONTINUE,
    Phase.SWITCH_MODE: OnFailure.CONTINUE,
    Phase.CONFIGURE_SETTINGS: OnFailure.CONTINUE,
    Phase.UPLOAD_IMAGES: OnFailure.CONTINUE,
    # A file is already attached; generating now would use a half-configured frame.
    Phase.CROP_CONFIRM: OnFailure.ABORT,
    # Without extend mode the new prompt would overwrite scene 0.
    Phase.EXTEND_MODE: OnFailure.SKIP_SCENE,
    Phase.GENERATE_SCENE: OnFailure.FAIL_SCENE,
    Phase.VERIFY_CLIP_COUNT: OnFailure.OBSERVE,
    Phase.DOWNLOAD: OnFailure.CONTINUE,
}

OUTPUTS_LABEL = "Outputs per prompt"
ASPECT_LABEL = "Aspect Ratio"


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class StoryboardOrchestrator:
    """Drives one storyboard run against a loaded Flow page."""

    def __init__(
        self,
        page: Any,
        cfg: Optional[FlowConfig] = None,
        *,
        events: Optional[RunEventLog] = None,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        self.page = page
        self.cfg = cfg or FlowConfig()
        self.events = events if events is not None else RunEventLog()
        self._sleep = sleep
        self._clock = clock
        self.phase = Phase.IDLE
        self._outcomes: list[PhaseOutcome] = []
        self._completed = 0
        self._failed: set[int] = set()
        self._downloads: list[str] = []

    # -- entry point --------------------------------------------------------

    async def run(self, request: StoryboardRequest) -> StoryboardResult:
        total = len(request.prompts)
        errors = validate_request(request)
        if errors:
            self.events.error(f"Invalid request: {'; '.join(errors)}")
            return StoryboardResult.failure(total, f"invalid request: {'; '.join(errors)}")

        self.events.info(f"Starting storyboard: {total} scene(s), mode {request.mode.value}")
        try:
            error_message = await self._run(request)
        except Exception as exc:
            log.exception("storyboard run crashed in phase %s", self.phase.value)
            self.events.error(f"Unexpected error in {self.phase.value}: {exc}")
            error_message = f"internal error: {exc}"

        self.phase = Phase.DONE
        result = StoryboardResult.build(
            scenes_completed=self._completed,
            total_scenes=total,
            failed_scene_indices=self._failed,
            error_message=error_message,
            outcomes=self._outcomes,
            downloaded_files=self._downloads,
        )
        if result.succeeded:
            self.events.success(f"Done! {result.scenes_completed}/{total} scenes completed")
        else:
            self.events.error(f"No scenes completed{': ' + error_message if error_message else ''}")
        return result

    async def _run(self, request: StoryboardRequest) -> Optional[str]:
        self._apply(await self._clear_timeline())
        self._apply(await self._switch_mode(request.mode))
        self._apply(await self._configure_settings(request.aspect_ratio, request.outputs_per_prompt))

        abort = await self._upload_images(request.images, request.aspect_ratio)
        if abort:
            return abort

        total = len(request.prompts)
        for i, prompt in enumerate(request.prompts):
            self.events.info(f"Scene {i + 1}/{total}", phase=Phase.GENERATE_SCENE.value, scene_index=i)
            if i > 0:
                if self._apply(await self._enter_extend_mode(i)) is OnFailure.SKIP_SCENE:
                    self._failed.add(i)
                    continue
            if self._apply(await self._generate_scene(i, prompt)) is OnFailure.FAIL_SCENE:
                self._failed.add(i)
            else:
                self._completed += 1

        self._apply(await self._verify_clip_count())

        if self._completed > 0:
            self._apply(await self._download())
        else:
            self._apply(self._outcome(Phase.DOWNLOAD, False, "skipped: no scenes completed"))
        return None

    # -- bookkeeping --------------------------------------------------------

    def _outcome(self, phase: Phase, ok: bool, detail: str = "", scene_index: Optional[int] = None) -> PhaseOutcome:
        self.phase = phase
        return PhaseOutcome(phase.value, ok, detail, scene_index)

    def _apply(self, outcome: PhaseOutcome) -> Optional[OnFailure]:
        """Record an outcome; return the policy action if it failed."""
        self._outcomes.append(outcome)
        if outcome.succeeded:
            return None
        action = FAILURE_POLICY[Phase(outcome.phase)]
        kw = {"phase": outcome.phase, "scene_index": outcome.scene_index}
        if action in (OnFailure.CONTINUE, OnFailure.OBSERVE):
            self.events.warning(f"{outcome.phase}: {outcome.detail}", **kw)
        else:
            self.events.error(f"{outcome.phase}: {outcome.detail}", **kw)
        return action

    # -- phases -------------------------------------------------------------

    async def _clear_timeline(self) -> PhaseOutcome:
        self.phase = Phase.CLEAR_TIMELINE
        clips = await locator.count(self.page, "timeline_clip")
        if clips == 0:
            return self._outcome(Phase.CLEAR_TIMELINE, True, "timeline already empty")

        self.events.info(f"Clearing {clips} clip(s) from timeline...", phase=Phase.CLEAR_TIMELINE.value)
        for _ in range(clips):
            if not await actions.click(self.page, "clear_timeline_button"):
                break
            await self._sleep(self.cfg.settle_short_s)
            await actions.click(self.page, "confirm_button")
            await self._sleep(self.cfg.settle_short_s)
            if await locator.count(self.page, "timeline_clip") == 0:
                break

        remaining = await locator.count(self.page, "timeline_clip")
        if remaining:
            return self._outcome(Phase.CLEAR_TIMELINE, False, f"{remaining} clip(s) still on timeline")
        return self._outcome(Phase.CLEAR_TIMELINE, True, f"removed {clips} clip(s)")

    async def _switch_mode(self, mode: Mode) -> PhaseOutcome:
        self.phase = Phase.SWITCH_MODE
        current = await locator.describe(self.page, "mode_selector")
        if current is None:
            return self._outcome(Phase.SWITCH_MODE, False, "mode selector not found")
        if mode.value in current.text:
            return self._outcome(Phase.SWITCH_MODE, True, f"already in {mode.value}")

        self.events.info(f"Switching to {mode.value} mode...", phase=Phase.SWITCH_MODE.value)
        if not await actions.click(self.page, "mode_selector"):
            return self._outcome(Phase.SWITCH_MODE, False, "mode selector vanished")
        await self._sleep(self.cfg.settle_short_s)
        if not await actions.click(self.page, "mode_option", text=mode.value):
            await actions.press_key(self.page, "Escape")
            return self._outcome(Phase.SWITCH_MODE, False, f"option {mode.value!r} not found")
        await self._sleep(self.cfg.settle_short_s)
        return self._outcome(Phase.SWITCH_MODE, True, f"switched to {mode.value}")

    async def _choose_setting(self, label: str, value: str) -> bool:
        if not await actions.click(self.page, "settings_dropdown", text=label):
            return False
        await self._sleep(self.cfg.settle_short_s)
        ok = await actions.click(self.page, "settings_option", text=value)
        await self._sleep(self.cfg.settle_short_s)
        return ok

    async def _configure_settings(self, aspect: AspectRatio, outputs: int) -> PhaseOutcome:
        self.phase = Phase.CONFIGURE_SETTINGS
        if not await actions.click(self.page, "settings_button"):
            return self._outcome(Phase.CONFIGURE_SETTINGS, False, "settings button not found")
        await self._sleep(self.cfg.settle_short_s)

        missed = []
        if not await self._choose_setting(ASPECT_LABEL, aspect.value):
            missed.append(f"aspect ratio {aspect.value}")
        if not await self._choose_setting(OUTPUTS_LABEL, str(outputs)):
            missed.append(f"outputs per prompt {outputs}")
        await actions.press_key(self.page, "Escape")
        await self._sleep(self.cfg.settle_short_s)

        if missed:
            return self._outcome(Phase.CONFIGURE_SETTINGS, False, "could not set " + ", ".join(missed))
        return self._outcome(Phase.CONFIGURE_SETTINGS, True, f"{aspect.value}, {outputs} output(s)")

    async def _upload_images(self, images: list[ImageAttachment], aspect: AspectRatio) -> Optional[str]:
        """Upload each image in turn. Returns an error message if the run must stop."""
        for n, image in enumerate(images, start=1):
            self.phase = Phase.UPLOAD_IMAGES
            self.events.info(f"Uploading image {n}/{len(images)}: {image.name}", phase=Phase.UPLOAD_IMAGES.value)

            if not await actions.click(self.page, "add_image_button"):
                self._apply(self._outcome(Phase.UPLOAD_IMAGES, False, f"{image.name}: add button not found"))
                continue
            await self._sleep(self.cfg.upload_open_s)

            if not await actions.attach_image(self.page, image):
                await actions.press_key(self.page, "Escape")
                self._apply(self._outcome(Phase.UPLOAD_IMAGES, False, f"{image.name}: file input not found"))
                continue
            self._apply(self._outcome(Phase.UPLOAD_IMAGES, True, f"{image.name} attached"))
            await self._sleep(self.cfg.upload_crop_s)

            crop = await self._confirm_crop(image, aspect)
            if self._apply(crop) is OnFailure.ABORT:
                return f"image upload incomplete: {crop.detail}"
            await self._sleep(self.cfg.upload_after_s)
        return None

    async def _confirm_crop(self, image: ImageAttachment, aspect: AspectRatio) -> PhaseOutcome:
        self.phase = Phase.CROP_CONFIRM
        # Orientation is optional; the dialog defaults to landscape.
        if await actions.click(self.page, "crop_aspect_selector"):
            await self._sleep(self.cfg.settle_short_s)
            await actions.click(self.page, "crop_aspect_option", text=aspect.orientation)
            await self._sleep(self.cfg.settle_short_s)
        if not await actions.click(self.page, "crop_and_save"):
            return self._outcome(Phase.CROP_CONFIRM, False, f"{image.name}: crop dialog not confirmed")
        return self._outcome(Phase.CROP_CONFIRM, True, f"{image.name} cropped ({aspect.orientation})")

    async def _enter_extend_mode(self, index: int) -> PhaseOutcome:
        self.phase = Phase.EXTEND_MODE
        if not await actions.click(self.page, "timeline_clip", nth=-1):
            return self._outcome(Phase.EXTEND_MODE, False, "no timeline clip to extend from", index)
        await self._sleep(self.cfg.settle_short_s)

        if not await actions.click(self.page, "jump_to_end_button"):
            await actions.press_key(self.page, "End")
        await self._sleep(self.cfg.settle_short_s)

        if not await actions.click(self.page, "extend_button"):
            return self._outcome(Phase.EXTEND_MODE, False, "extend control not found", index)

        res = await pollers.wait_for_extend_mode(
            self.page,
            timeout_s=self.cfg.extend_timeout_s,
            interval_s=self.cfg.extend_poll_s,
            sleep=self._sleep,
            clock=self._clock,
        )
        if not res.satisfied:
            return self._outcome(
                Phase.EXTEND_MODE, False,
                f"extend mode not confirmed after {self.cfg.extend_timeout_s:g}s", index,
            )
        return self._outcome(Phase.EXTEND_MODE, True, "extending from last clip", index)

    async def _generate_scene(self, index: int, prompt: str) -> PhaseOutcome:
        self.phase = Phase.GENERATE_SCENE
        baseline = await pollers.sample_generation_signals(self.page)

        if not await actions.set_prompt_text(self.page, prompt):
            return self._outcome(Phase.GENERATE_SCENE, False, "prompt field not found", index)
        await self._sleep(self.cfg.settle_short_s)

        enabled = await pollers.wait_for_enabled(
            self.page,
            timeout_s=self.cfg.enable_timeout_s,
            interval_s=self.cfg.enable_poll_s,
            sleep=self._sleep,
            clock=self._clock,
        )
        if not enabled.satisfied:
            return self._outcome(Phase.GENERATE_SCENE, False, "generate button never enabled", index)
        if not await actions.click(self.page, "generate_button"):
            return self._outcome(Phase.GENERATE_SCENE, False, "generate button vanished", index)

        self.events.info("Generating...", phase=Phase.GENERATE_SCENE.value, scene_index=index)
        res = await pollers.wait_for_generation(
            self.page,
            baseline,
            timeout_s=self.cfg.generation_timeout_s,
            interval_s=self.cfg.poll_interval_s,
            sleep=self._sleep,
            clock=self._clock,
            on_progress=lambda pct: self.events.info(
                f"Progress: {pct}%", phase=Phase.GENERATE_SCENE.value, scene_index=index,
            ),
        )
        if not res.satisfied:
            return self._outcome(
                Phase.GENERATE_SCENE, False,
                f"generation timed out after {self.cfg.generation_timeout_s:g}s", index,
            )

        if index == 0:
            # First clip has to land on the timeline before later scenes can extend it.
            if await actions.click(self.page, "add_to_scene_button"):
                await self._sleep(self.cfg.settle_s)

        self.events.success(f"Scene {index + 1} done ({res.elapsed_ms / 1000:.0f}s)",
                            phase=Phase.GENERATE_SCENE.value, scene_index=index)
        return self._outcome(Phase.GENERATE_SCENE, True, f"completed in {res.elapsed_ms}ms", index)

    async def _verify_clip_count(self) -> PhaseOutcome:
        self.phase = Phase.VERIFY_CLIP_COUNT
        clips = await locator.count(self.page, "timeline_clip")
        if clips != self._completed:
            return self._outcome(
                Phase.VERIFY_CLIP_COUNT, False,
                f"timeline shows {clips} clip(s), expected {self._completed}",
            )
        return self._outcome(Phase.VERIFY_CLIP_COUNT, True, f"{clips} clip(s) on timeline")

    async def _download(self) -> PhaseOutcome:
        self.phase = Phase.DOWNLOAD
        self.events.info("Downloading video...", phase=Phase.DOWNLOAD.value)
        captured: list[Any] = []

        def on_download(download: Any) -> None:
            captured.append(download)

        self.page.on("download", on_download)
        try:
            if not await actions.click(self.page, "download_button"):
                return self._outcome(Phase.DOWNLOAD, False, "download button not found")
            await self._sleep(self.cfg.settle_s)

            if await actions.click(self.page, "download_quality_option"):
                self.events.info("Selected 1080p", phase=Phase.DOWNLOAD.value)
            else:
                self.events.warning("1080p option not found, using default quality", phase=Phase.DOWNLOAD.value)

            res = await pollers.wait_for_download(
                self.page, captured,
                timeout_s=self.cfg.download_timeout_s,
                interval_s=self.cfg.download_poll_s,
                sleep=self._sleep,
                clock=self._clock,
            )
            if not res.satisfied:
                return self._outcome(
                    Phase.DOWNLOAD, False, f"render not ready after {self.cfg.download_timeout_s:g}s",
                )

            if await actions.click(self.page, "dismiss_button"):
                await self._sleep(self.cfg.settle_s)
            saved = await self._save_downloads(captured)
        finally:
            self.page.remove_listener("download", on_download)

        if saved:
            self.events.success(f"Saved {', '.join(Path(p).name for p in saved)}", phase=Phase.DOWNLOAD.value)
            return self._outcome(Phase.DOWNLOAD, True, f"{len(saved)} file(s) saved")
        return self._outcome(Phase.DOWNLOAD, True, "render ready; download handled by browser")

    async def _save_downloads(self, downloads: list[Any]) -> list[str]:
        out_dir = Path(self.cfg.downloads_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        saved: list[str] = []
        for download in downloads:
            target = out_dir / f"{stamp()}_{download.suggested_filename or 'storyboard.mp4'}"
            try:
                await download.save_as(str(target))
            except PlaywrightError as exc:
                self.events.warning(f"Could not save {download.suggested_filename}: {exc}", phase=Phase.DOWNLOAD.value)
                continue
            saved.append(str(target))
        self._downloads.extend(saved)
        return saved

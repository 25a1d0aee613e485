"""Storyboard run schema: modes, request validation, phase and run results.

Stdlib only. Everything here lives for a single run; nothing is persisted
except what the caller chooses to serialize from ``StoryboardResult.to_dict``.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_IMAGES = 3
MAX_OUTPUTS_PER_PROMPT = 4
MAX_PROMPT_LENGTH = 2000


class Mode(str, Enum):
    """Generation modes, valued by their label in the Flow UI."""
    TEXT_TO_VIDEO = "Text to Video"
    FRAMES_TO_VIDEO = "Frames to Video"
    INGREDIENTS_TO_VIDEO = "Ingredients to Video"
    CREATE_IMAGE = "Create Image"

    @classmethod
    def from_label(cls, label: str) -> "Mode":
        norm = (label or "").strip().lower()
        for mode in cls:
            if mode.value.lower() == norm or mode.name.lower() == norm.replace(" ", "_"):
                return mode
        raise ValueError(f"Unknown mode {label!r}. Must be one of: {', '.join(m.value for m in cls)}")


class AspectRatio(str, Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    SQUARE = "1:1"

    @property
    def orientation(self) -> str:
        """Label used by the crop dialog's orientation combobox."""
        return {"16:9": "landscape", "9:16": "portrait", "1:1": "square"}[self.value]


def mode_for_image_count(count: int) -> Mode:
    """0 images -> text, 1 -> frames, 2+ -> ingredients."""
    if count <= 0:
        return Mode.TEXT_TO_VIDEO
    if count == 1:
        return Mode.FRAMES_TO_VIDEO
    return Mode.INGREDIENTS_TO_VIDEO


# ---------------------------------------------------------------------------
# Image attachments
# ---------------------------------------------------------------------------

def sniff_image_mime(data: bytes) -> str:
    """Return the MIME type from magic bytes, or "" if unrecognized."""
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return ""


@dataclass
class ImageAttachment:
    name: str
    mime_type: str
    data: bytes = field(repr=False)

    @classmethod
    def from_path(cls, path: str | Path) -> "ImageAttachment":
        p = Path(path)
        data = p.read_bytes()
        mime = sniff_image_mime(data)
        if not mime:
            raise ValueError(f"Unknown image format (header: {data[:8].hex()}): {p}")
        return cls(name=p.name, mime_type=mime, data=data)

    @classmethod
    def from_data_url(cls, name: str, data_url: str, mime_type: str = "") -> "ImageAttachment":
        """Decode a ``data:<mime>;base64,<payload>`` string (or bare base64)."""
        header, sep, payload = data_url.partition(",")
        if not sep:
            payload, header = data_url, ""
        if header.startswith("data:") and not mime_type:
            mime_type = header[5:].split(";", 1)[0]
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Image {name!r} is not valid base64: {exc}") from exc
        return cls(name=name, mime_type=mime_type or sniff_image_mime(data), data=data)

    def as_file_payload(self) -> dict[str, Any]:
        """Shape accepted by Playwright's ``set_input_files``."""
        return {"name": self.name, "mimeType": self.mime_type, "buffer": self.data}


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@dataclass
class StoryboardRequest:
    prompts: list[str]
    images: list[ImageAttachment] = field(default_factory=list)
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    outputs_per_prompt: int = 1
    mode: Mode = Mode.TEXT_TO_VIDEO

    @property
    def total_scenes(self) -> int:
        return len(self.prompts)


def validate_request(req: StoryboardRequest) -> list[str]:
    """Validate a StoryboardRequest and return a list of error strings (empty = valid)."""
    errors: list[str] = []

    if not req.prompts:
        errors.append("At least one prompt is required")
    for i, prompt in enumerate(req.prompts):
        if not isinstance(prompt, str) or not prompt.strip():
            errors.append(f"Prompt {i + 1} is empty")
        elif len(prompt) > MAX_PROMPT_LENGTH:
            errors.append(f"Prompt {i + 1} exceeds {MAX_PROMPT_LENGTH} characters ({len(prompt)})")

    if len(req.images) > MAX_IMAGES:
        errors.append(f"At most {MAX_IMAGES} images allowed, got {len(req.images)}")
    for img in req.images:
        if not img.data:
            errors.append(f"Image {img.name!r} has no data")

    if not isinstance(req.outputs_per_prompt, int) or not (1 <= req.outputs_per_prompt <= MAX_OUTPUTS_PER_PROMPT):
        errors.append(f"outputs_per_prompt must be 1-{MAX_OUTPUTS_PER_PROMPT}, got {req.outputs_per_prompt!r}")

    if not isinstance(req.mode, Mode):
        errors.append(f"Invalid mode {req.mode!r}")
    if not isinstance(req.aspect_ratio, AspectRatio):
        errors.append(f"Invalid aspect_ratio {req.aspect_ratio!r}")

    return errors


def request_from_dict(data: dict[str, Any]) -> StoryboardRequest:
    """Build a request from a relay payload.

    Accepts ``{prompts, images: [{name, type, base64}], aspectRatio, outputs, mode}``
    (snake_case keys also accepted). A missing mode is derived from the image count.
    Raises ValueError on malformed fields; range checks are left to validate_request.
    """
    if not isinstance(data, dict):
        raise ValueError(f"payload must be an object, got {type(data).__name__}")

    prompts = data.get("prompts") or []
    if isinstance(prompts, str):
        prompts = [line for line in prompts.splitlines() if line.strip()]
    if not isinstance(prompts, list):
        raise ValueError(f"prompts must be a list, got {type(prompts).__name__}")
    prompts = [str(p).strip() for p in prompts]

    raw_images = data.get("images") or []
    if not isinstance(raw_images, list):
        raise ValueError(f"images must be a list, got {type(raw_images).__name__}")
    images = []
    for i, raw in enumerate(raw_images):
        if not isinstance(raw, dict):
            raise ValueError(f"Image {i + 1} must be an object, got {type(raw).__name__}")
        name = str(raw.get("name") or f"image_{i + 1}")
        payload = raw.get("base64") or raw.get("data") or ""
        if not isinstance(payload, str):
            raise ValueError(f"Image {name!r} data must be a base64 string")
        mime_type = raw.get("type") or raw.get("mime_type") or ""
        images.append(ImageAttachment.from_data_url(name, payload, str(mime_type)))

    aspect = data.get("aspectRatio", data.get("aspect_ratio", AspectRatio.LANDSCAPE.value))
    try:
        aspect_ratio = AspectRatio(aspect)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid aspect ratio {aspect!r}") from None

    outputs = data.get("outputs", data.get("outputs_per_prompt", 1))
    try:
        outputs = int(outputs)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid outputs per prompt {outputs!r}") from None

    mode_label = data.get("mode")
    if mode_label and not isinstance(mode_label, str):
        raise ValueError(f"Invalid mode {mode_label!r}")
    mode = Mode.from_label(mode_label) if mode_label else mode_for_image_count(len(images))

    return StoryboardRequest(
        prompts=prompts,
        images=images,
        aspect_ratio=aspect_ratio,
        outputs_per_prompt=outputs,
        mode=mode,
    )


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass
class PhaseOutcome:
    phase: str
    succeeded: bool
    detail: str = ""
    scene_index: Optional[int] = None


@dataclass
class PollResult:
    satisfied: bool
    last_value: Any = None
    elapsed_ms: int = 0


@dataclass
class StoryboardResult:
    """Run summary. ``succeeded`` is true iff at least one scene completed."""
    succeeded: bool
    scenes_completed: int
    total_scenes: int
    failed_scene_indices: set[int] = field(default_factory=set)
    error_message: Optional[str] = None
    outcomes: list[PhaseOutcome] = field(default_factory=list)
    downloaded_files: list[str] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        *,
        scenes_completed: int,
        total_scenes: int,
        failed_scene_indices: set[int] | None = None,
        error_message: str | None = None,
        outcomes: list[PhaseOutcome] | None = None,
        downloaded_files: list[str] | None = None,
    ) -> "StoryboardResult":
        if not 0 <= scenes_completed <= total_scenes:
            raise ValueError(f"scenes_completed {scenes_completed} outside [0, {total_scenes}]")
        failed = set(failed_scene_indices or ())
        bad = sorted(i for i in failed if not 0 <= i < total_scenes)
        if bad:
            raise ValueError(f"failed scene indices out of range: {bad}")
        return cls(
            succeeded=scenes_completed > 0,
            scenes_completed=scenes_completed,
            total_scenes=total_scenes,
            failed_scene_indices=failed,
            error_message=error_message,
            outcomes=list(outcomes or ()),
            downloaded_files=list(downloaded_files or ()),
        )

    @classmethod
    def failure(cls, total_scenes: int, error_message: str) -> "StoryboardResult":
        """Result for a run that never reached scene generation."""
        return cls.build(scenes_completed=0, total_scenes=total_scenes, error_message=error_message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "scenes_completed": self.scenes_completed,
            "total_scenes": self.total_scenes,
            "failed_scene_indices": sorted(self.failed_scene_indices),
            "error_message": self.error_message,
            "downloaded_files": list(self.downloaded_files),
            "outcomes": [
                {"phase": o.phase, "succeeded": o.succeeded, "detail": o.detail, "scene_index": o.scene_index}
                for o in self.outcomes
            ],
        }

"""Storyboard prompt generation via the Gemini generateContent API (httpx async).

Turns a one-line story idea into N numbered scene prompts. Independent of the
page engine: a run can use generated prompts or hand-written ones.

Dependencies: httpx (pip install httpx)

Usage:
    prompts = await generate_prompts(
        "a lost robot finds its way home", 5, "cinematic",
        api_key=secrets.gemini_api_key,
    )
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

from flowboard.errors import PromptGenerationError

log = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TIMEOUT_S = 60.0

STYLES = ("cinematic", "anime", "realistic", "documentary", "fantasy", "cartoon")

_NUMBERED_RE = re.compile(r"^\d+\.")
_PREFIX_RE = re.compile(r"^\d+\.\s*")


# ---------------------------------------------------------------------------
# Prompt template + parsing
# ---------------------------------------------------------------------------

def build_storyboard_prompt(story: str, scene_count: int, style: str) -> str:
    return (
        "You are a professional video storyboard creator. Create a storyboard "
        "for a short video.\n\n"
        f'Story/Concept: "{story}"\n'
        f"Style: {style}\n"
        f"Number of scenes: {scene_count}\n\n"
        "Requirements:\n"
        "- Each scene description should be 15-30 words\n"
        "- Describe visual elements only: subjects, actions, environment, lighting, camera angle\n"
        "- Keep characters and setting consistent across scenes\n"
        "- Scenes must flow into each other as one continuous story\n\n"
        "Output format: Return ONLY the scene descriptions, one per line, numbered.\n"
        "Example:\n"
        "1. A young woman walks through a misty forest at dawn, soft golden light filtering through tall pines\n"
        "2. Close-up of her face as she discovers a glowing crystal on the mossy ground\n\n"
        f"Now create {scene_count} scenes:"
    )


def parse_numbered_lines(text: str) -> list[str]:
    """Keep lines that start with 'N.', strip the prefix and whitespace."""
    out = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not _NUMBERED_RE.match(line):
            continue
        body = _PREFIX_RE.sub("", line, count=1).strip()
        if body:
            out.append(body)
    return out


def _extract_text(data: Any) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        msg = (data.get("error") or {}).get("message")
        if msg:
            return str(msg)
    return f"HTTP {resp.status_code}"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GeminiClient:
    """Minimal async client for generateContent."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
    ):
        if not api_key:
            raise PromptGenerationError("API key not configured")
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self._client = client
        self._timeout = timeout

    @property
    def url(self) -> str:
        return f"{GEMINI_API_BASE}/{self.model}:generateContent"

    async def generate(self, prompt: str, *, temperature: float = 0.8, max_tokens: int = 2048) -> str:
        """POST one prompt; return the candidate text. Raises PromptGenerationError."""
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        try:
            if self._client is not None:
                resp = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await self._post(client, payload)
        except httpx.HTTPError as exc:
            raise PromptGenerationError(f"request failed: {exc}") from exc

        if resp.status_code >= 300:
            raise PromptGenerationError(_error_message(resp), status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as exc:
            raise PromptGenerationError("response is not JSON") from exc
        return _extract_text(data)

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        return await client.post(self.url, params={"key": self.api_key}, json=payload)


async def generate_prompts(
    story: str,
    scene_count: int,
    style: str = "cinematic",
    *,
    api_key: str,
    model: str = DEFAULT_MODEL,
    client: Optional[httpx.AsyncClient] = None,
) -> list[str]:
    """Ask Gemini for ``scene_count`` numbered scene prompts.

    Returns at most ``scene_count`` trimmed prompts in order. Raises
    PromptGenerationError on a missing key, upstream/transport failure, or
    when no numbered line comes back.
    """
    if not story or not story.strip():
        raise ValueError("story must not be empty")
    if scene_count < 1:
        raise ValueError(f"scene_count must be >= 1 (got {scene_count})")

    gemini = GeminiClient(api_key, model=model, client=client)
    text = await gemini.generate(build_storyboard_prompt(story.strip(), scene_count, style))
    prompts = parse_numbered_lines(text)
    if not prompts:
        raise PromptGenerationError("Could not parse scenes from response")
    if len(prompts) != scene_count:
        log.warning("asked for %d scenes, got %d", scene_count, len(prompts))
    return prompts[:scene_count]


async def probe_api(
    *,
    api_key: str,
    model: str = DEFAULT_MODEL,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Connectivity probe. Returns 'API OK! <reply>'."""
    gemini = GeminiClient(api_key, model=model, client=client)
    reply = await gemini.generate("Say hello in one short sentence.", max_tokens=64)
    return f"API OK! {reply.strip()}"

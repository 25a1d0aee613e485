"""Atomic page interactions.

Every executor does the same thing: locate, and if nothing is found return
False; otherwise perform exactly one interaction and return True. An
element that detaches mid-interaction (Flow re-renders constantly) is also
False. No polling, no retries: the orchestrator owns both.
"""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Error as PlaywrightError

from flowboard.engine import locator
from flowboard.engine.schema import ImageAttachment

log = logging.getLogger(__name__)


# Flow's prompt box is a React-controlled textarea: assigning .value directly
# is ignored by the framework, so go through the prototype's native setter
# and fire the events React listens for.
_SET_PROMPT_JS = """(el, text) => {
    el.focus();
    if (el.isContentEditable) {
        el.textContent = text;
        el.dispatchEvent(new InputEvent('input', {bubbles: true, data: text}));
        return el.textContent === text;
    }
    const proto = el instanceof HTMLTextAreaElement
        ? HTMLTextAreaElement.prototype
        : HTMLInputElement.prototype;
    const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
    setter.call(el, text);
    el.dispatchEvent(new Event('input', {bubbles: true}));
    el.dispatchEvent(new Event('change', {bubbles: true}));
    return el.value === text;
}"""


async def click(page: Any, role: str, **context: Any) -> bool:
    """Click the element for ``role``. Context is passed through to the locator."""
    el = await locator.find(page, role, **context)
    if el is None:
        log.debug("click: %s not found", role)
        return False
    try:
        await el.click()
    except PlaywrightError as exc:
        log.debug("click: %s failed: %s", role, exc)
        return False
    return True


async def set_prompt_text(page: Any, text: str) -> bool:
    """Write ``text`` into the prompt field through its reactive binding."""
    el = await locator.find(page, "prompt_input")
    if el is None:
        log.debug("set_prompt_text: prompt field not found")
        return False
    try:
        took = await el.evaluate(_SET_PROMPT_JS, text)
    except PlaywrightError as exc:
        log.debug("set_prompt_text failed: %s", exc)
        return False
    return bool(took)


async def attach_image(page: Any, image: ImageAttachment) -> bool:
    """Inject an in-memory image into the file input. No rollback."""
    el = await locator.find(page, "file_input")
    if el is None:
        log.debug("attach_image: file input not found")
        return False
    try:
        tag = await el.evaluate("(el) => el.tagName.toLowerCase() === 'input' ? 'input' : 'wrapper'")
        if tag != "input":
            inner = await el.query_selector("input[type='file']")
            if inner is None:
                return False
            el = inner
        await el.set_input_files(files=[image.as_file_payload()])
    except PlaywrightError as exc:
        log.debug("attach_image %s failed: %s", image.name, exc)
        return False
    return True


async def press_key(page: Any, key: str = "End") -> bool:
    """Synthetic key press on the focused element. Best-effort."""
    try:
        await page.keyboard.press(key)
    except PlaywrightError as exc:
        log.debug("press_key %s failed: %s", key, exc)
        return False
    return True

#!/usr/bin/env python3
"""Flowboard CLI: single entrypoint for storyboard runs.

Subcommands:
    prompts     Generate numbered scene prompts from a story idea (Gemini)
    test-api    Check the Gemini API key with a one-line request
    run         Drive Flow through a full storyboard (clear, mode, settings,
                upload, scenes, verify, download)
    ping        Check that a Flow tab is open and reachable

Exit codes:
    0 = OK
    1 = WARN (some scenes failed)
    2 = CRITICAL (no scene completed / Flow not reachable)
    3 = ERROR (config/runtime error)

Usage:
    python3 flowboard_cli.py prompts --story "a fox crosses a frozen lake" --scenes 4 --out prompts.json
    python3 flowboard_cli.py run --prompts-file prompts.json --aspect 16:9
    python3 flowboard_cli.py run --prompts-file prompts.txt --image hero.png --json
    python3 flowboard_cli.py ping

Chromium must be running with --remote-debugging-port (default 9222) and a
Flow tab open, unless --launch is given.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Ensure repo root is in path
_repo = Path(__file__).resolve().parent
if str(_repo) not in sys.path:
    sys.path.insert(0, str(_repo))

from flowboard.common import load_json, save_json, stamp
from flowboard.config import ExitCode, load_flow_config
from flowboard.errors import PromptGenerationError
from flowboard.logs import setup_logger


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = int(ExitCode.OK)
EXIT_WARN = int(ExitCode.WARN)
EXIT_CRITICAL = int(ExitCode.CRITICAL)
EXIT_ERROR = int(ExitCode.ERROR)


def exit_code_for(result) -> int:
    if not result.succeeded:
        return EXIT_CRITICAL
    if result.failed_scene_indices:
        return EXIT_WARN
    return EXIT_OK


# ---------------------------------------------------------------------------
# Subcommand: prompts / test-api
# ---------------------------------------------------------------------------

def cmd_prompts(args: argparse.Namespace) -> int:
    """Generate scene prompts and print or save them."""
    from flowboard.prompts import generate_prompts

    _, secrets = load_flow_config(env_file=args.env_file)
    try:
        prompts = asyncio.run(generate_prompts(
            args.story, args.scenes, args.style,
            api_key=secrets.gemini_api_key, model=secrets.gemini_model,
        ))
    except (PromptGenerationError, ValueError) as exc:
        print(f"[cli] Prompt generation failed: {exc}", file=sys.stderr)
        return EXIT_ERROR

    if args.out:
        save_json(args.out, {"story": args.story, "style": args.style, "prompts": prompts})
        print(f"[cli] Saved {len(prompts)} prompt(s) to {args.out}", file=sys.stderr)
    for i, prompt in enumerate(prompts, start=1):
        print(f"{i}. {prompt}")
    if len(prompts) < args.scenes:
        print(f"[cli] Asked for {args.scenes} scenes, got {len(prompts)}", file=sys.stderr)
        return EXIT_WARN
    return EXIT_OK


def cmd_test_api(args: argparse.Namespace) -> int:
    from flowboard.prompts import probe_api

    _, secrets = load_flow_config(env_file=args.env_file)
    try:
        reply = asyncio.run(probe_api(api_key=secrets.gemini_api_key, model=secrets.gemini_model))
    except PromptGenerationError as exc:
        print(f"[cli] API error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    print(reply)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Subcommand: run
# ---------------------------------------------------------------------------

def load_prompts_file(path: str | Path) -> list[str]:
    """Prompts from JSON (list or {"prompts": [...]}) or text (numbered or one per line)."""
    from flowboard.prompts import parse_numbered_lines

    p = Path(path)
    if p.suffix.lower() == ".json":
        data = load_json(p, default=[])
        if isinstance(data, dict):
            data = data.get("prompts", [])
        return [str(x).strip() for x in data if str(x).strip()]

    text = p.read_text(encoding="utf-8")
    numbered = parse_numbered_lines(text)
    if numbered:
        return numbered
    return [line.strip() for line in text.splitlines() if line.strip()]


def build_request(args: argparse.Namespace):
    """StoryboardRequest from --request or --prompts-file plus flags."""
    from flowboard.engine.schema import (
        AspectRatio, ImageAttachment, Mode, StoryboardRequest,
        mode_for_image_count, request_from_dict,
    )

    if args.request:
        data = load_json(args.request, default={})
        return request_from_dict(data)

    prompts = load_prompts_file(args.prompts_file)
    images = [ImageAttachment.from_path(p) for p in (args.image or [])]
    mode = Mode.from_label(args.mode) if args.mode else mode_for_image_count(len(images))
    return StoryboardRequest(
        prompts=prompts,
        images=images,
        aspect_ratio=AspectRatio(args.aspect),
        outputs_per_prompt=args.outputs,
        mode=mode,
    )


async def _run_async(cfg, request, args: argparse.Namespace, run_dir: Path):
    from flowboard.browser import BrowserSession
    from flowboard.engine.events import format_line
    from flowboard.engine.relay import StoryboardRelay

    async with BrowserSession(cfg, attach=not args.launch) as session:
        if args.launch and await session.find_target_page() is None:
            await session.open_flow()

        relay = StoryboardRelay(
            session.find_target_page,
            cfg,
            on_ready=lambda notice: print(f"[cli] Flow page ready ({notice['action']})", file=sys.stderr),
            on_event=lambda e: print(format_line(e), flush=True),
        )
        if await session.find_target_page() is not None:
            await relay.announce_ready()
        result = await relay.run_storyboard(request)
        if relay.last_events is not None:
            (run_dir / "events.txt").write_text("\n".join(relay.last_events.lines()) + "\n", encoding="utf-8")

        if result.failed_scene_indices or not result.succeeded:
            page = await session.find_target_page()
            if page is not None:
                artifacts = await session.capture_debug_artifacts(page, tag="storyboard")
                if artifacts:
                    print(f"[cli] Debug screenshot: {artifacts['screenshot']}", file=sys.stderr)
        return result


def cmd_run(args: argparse.Namespace) -> int:
    from flowboard.engine.schema import validate_request

    cfg, _ = load_flow_config(env_file=args.env_file)
    if args.cdp_url:
        cfg.cdp_url = args.cdp_url

    try:
        request = build_request(args)
    except (OSError, ValueError) as exc:
        print(f"[cli] Bad request: {exc}", file=sys.stderr)
        return EXIT_ERROR
    errors = validate_request(request)
    if errors:
        for err in errors:
            print(f"[cli] {err}", file=sys.stderr)
        return EXIT_ERROR

    run_dir = Path(cfg.state_dir) / "runs" / stamp()
    setup_logger(run_dir, "run", console_level=logging.DEBUG if args.verbose else logging.WARNING)

    result = asyncio.run(_run_async(cfg, request, args, run_dir))
    save_json(run_dir / "result.json", result.to_dict())

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        failed = ", ".join(str(i + 1) for i in sorted(result.failed_scene_indices)) or "none"
        print(f"\n  Scenes: {result.scenes_completed}/{result.total_scenes} (failed: {failed})")
        if result.error_message:
            print(f"  Error: {result.error_message}")
        for path in result.downloaded_files:
            print(f"  Saved: {path}")
        print(f"  Log: {run_dir}")
    return exit_code_for(result)


# ---------------------------------------------------------------------------
# Subcommand: ping
# ---------------------------------------------------------------------------

async def _ping_async(cfg) -> dict:
    from flowboard.browser import BrowserSession, is_cdp_available
    from flowboard.engine.relay import StoryboardRelay

    if not await is_cdp_available(cfg.cdp_url):
        return {"success": False, "error": f"no browser at {cfg.cdp_url}"}
    async with BrowserSession(cfg) as session:
        page = await session.find_target_page()
        if page is None:
            return {"success": False, "error": "transport unavailable"}
        relay = StoryboardRelay(session.find_target_page, cfg)
        return {"success": True, **relay.ping(), "url": page.url}


def cmd_ping(args: argparse.Namespace) -> int:
    cfg, _ = load_flow_config(env_file=args.env_file)
    if args.cdp_url:
        cfg.cdp_url = args.cdp_url
    reply = asyncio.run(_ping_async(cfg))
    print(json.dumps(reply))
    return EXIT_OK if reply.get("success") else EXIT_CRITICAL


# ---------------------------------------------------------------------------
# CLI parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="flowboard",
        description="Flowboard CLI: storyboard automation for Google Flow",
    )
    p.add_argument("--env-file", default=None, help="Path to .env (default: <repo>/.env)")
    sub = p.add_subparsers(dest="cmd")

    # prompts
    g = sub.add_parser("prompts", help="Generate scene prompts from a story idea")
    g.add_argument("--story", required=True, help="Story or concept, one sentence is enough")
    g.add_argument("--scenes", type=int, default=5, help="Number of scenes (default: 5)")
    g.add_argument("--style", default="cinematic", help="Visual style (default: cinematic)")
    g.add_argument("--out", default="", help="Save prompts as JSON to this path")

    sub.add_parser("test-api", help="Check the Gemini API key")

    # run
    r = sub.add_parser("run", help="Run a storyboard in the open Flow tab")
    src = r.add_mutually_exclusive_group(required=True)
    src.add_argument("--prompts-file", help="JSON list / numbered text of scene prompts")
    src.add_argument("--request", help="Full request JSON (prompts, images, aspectRatio, outputs, mode)")
    r.add_argument("--image", action="append", help="Reference image (repeat, max 3)")
    r.add_argument("--aspect", default="16:9", choices=("16:9", "9:16", "1:1"))
    r.add_argument("--outputs", type=int, default=1, help="Outputs per prompt (1-4)")
    r.add_argument("--mode", default="", help="Mode label; default derived from image count")
    r.add_argument("--cdp-url", default="", help="CDP endpoint (default: from config)")
    r.add_argument("--launch", action="store_true", help="Launch a persistent profile instead of attaching")
    r.add_argument("--json", action="store_true", help="Print the result as JSON")
    r.add_argument("--verbose", "-v", action="store_true", help="Debug logging to console")

    # ping
    pg = sub.add_parser("ping", help="Check that a Flow tab is reachable")
    pg.add_argument("--cdp-url", default="", help="CDP endpoint (default: from config)")

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return EXIT_ERROR

    try:
        if args.cmd == "prompts":
            return cmd_prompts(args)
        if args.cmd == "test-api":
            return cmd_test_api(args)
        if args.cmd == "run":
            return cmd_run(args)
        if args.cmd == "ping":
            return cmd_ping(args)
    except ValueError as exc:
        # Config sanity checks (FlowConfig.__post_init__) land here.
        print(f"[cli] Config error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    parser.print_help()
    return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())

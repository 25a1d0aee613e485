"""Central configuration contract for flowboard runs.

Single source of truth for:
- Generation, enable, extend and download poll deadlines
- Settle delays between page interactions
- Target page hint, Flow URL and CDP endpoint
- State / download paths
- Environment variable loading

Usage:
    from flowboard.config import load_flow_config

    cfg, secrets = load_flow_config()
    print(cfg.generation_timeout_s)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from flowboard.common import load_env_file, project_root


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

class ExitCode(IntEnum):
    OK = 0
    WARN = 1       # partial: some scenes failed
    CRITICAL = 2   # nothing completed
    ERROR = 3      # config / runtime error


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------

@dataclass
class FlowConfig:
    """All tunables for a storyboard run. Durations are seconds."""
    target_url_hint: str = "labs.google"
    flow_url: str = "https://labs.google/fx/tools/flow"
    cdp_url: str = "http://127.0.0.1:9222"

    # Generation
    generation_timeout_s: float = 300.0
    poll_interval_s: float = 1.0

    # Generate button enable wait
    enable_timeout_s: float = 10.0
    enable_poll_s: float = 0.5

    # Extend-mode confirmation
    extend_timeout_s: float = 10.0
    extend_poll_s: float = 0.5

    # Download render
    download_timeout_s: float = 240.0
    download_poll_s: float = 2.0

    # Settle delays
    settle_short_s: float = 0.5
    settle_s: float = 1.0
    upload_open_s: float = 2.0
    upload_crop_s: float = 8.0
    upload_after_s: float = 3.0

    # Paths (relative to repo root)
    state_dir: str = ""
    downloads_dir: str = ""

    def __post_init__(self):
        root = str(project_root())
        if not self.state_dir:
            self.state_dir = os.path.join(root, "state")
        if not self.downloads_dir:
            self.downloads_dir = os.path.join(self.state_dir, "downloads")

        # Sanity: every poll interval must fit inside its deadline
        pairs = (
            ("poll_interval_s", self.poll_interval_s, "generation_timeout_s", self.generation_timeout_s),
            ("enable_poll_s", self.enable_poll_s, "enable_timeout_s", self.enable_timeout_s),
            ("extend_poll_s", self.extend_poll_s, "extend_timeout_s", self.extend_timeout_s),
            ("download_poll_s", self.download_poll_s, "download_timeout_s", self.download_timeout_s),
        )
        for interval_name, interval, timeout_name, timeout in pairs:
            if interval <= 0:
                raise ValueError(f"{interval_name} must be > 0 (got {interval})")
            if interval >= timeout:
                raise ValueError(
                    f"{interval_name} ({interval}s) must be < {timeout_name} ({timeout}s)."
                )


# ---------------------------------------------------------------------------
# Secrets (never serialized, never logged)
# ---------------------------------------------------------------------------

@dataclass
class SecretsConfig:
    """Environment secrets, loaded once, never written to disk."""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    def __repr__(self) -> str:
        masked = "***" if self.gemini_api_key else "''"
        return f"SecretsConfig(gemini_api_key={masked}, gemini_model={self.gemini_model!r})"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def _env(prefixed: str, fallback: str, default: str = "") -> str:
    """Read env var: try FLOWBOARD_* prefix first, then unprefixed fallback."""
    return os.environ.get(prefixed, os.environ.get(fallback, default))


def _env_float(prefixed: str, fallback: str, default: str) -> float:
    """Read numeric env var with FLOWBOARD_* prefix + fallback."""
    return float(_env(prefixed, fallback, default))


def load_flow_config(
    *,
    env_file: str | Path | None = None,
) -> tuple[FlowConfig, SecretsConfig]:
    """Load config from environment variables.

    Reads .env file if present (does not override existing env vars).
    Supports FLOWBOARD_* prefix with unprefixed fallback.
    Returns (FlowConfig, SecretsConfig).
    """
    load_env_file(env_file)

    cfg = FlowConfig(
        target_url_hint=_env("FLOWBOARD_TARGET_URL_HINT", "TARGET_URL_HINT", "labs.google"),
        flow_url=_env("FLOWBOARD_FLOW_URL", "FLOW_URL", "https://labs.google/fx/tools/flow"),
        cdp_url=_env("FLOWBOARD_CDP_URL", "CDP_URL", "http://127.0.0.1:9222"),
        generation_timeout_s=_env_float("FLOWBOARD_GENERATION_TIMEOUT_S", "GENERATION_TIMEOUT_S", "300"),
        poll_interval_s=_env_float("FLOWBOARD_POLL_INTERVAL_S", "POLL_INTERVAL_S", "1"),
        enable_timeout_s=_env_float("FLOWBOARD_ENABLE_TIMEOUT_S", "ENABLE_TIMEOUT_S", "10"),
        enable_poll_s=_env_float("FLOWBOARD_ENABLE_POLL_S", "ENABLE_POLL_S", "0.5"),
        extend_timeout_s=_env_float("FLOWBOARD_EXTEND_TIMEOUT_S", "EXTEND_TIMEOUT_S", "10"),
        extend_poll_s=_env_float("FLOWBOARD_EXTEND_POLL_S", "EXTEND_POLL_S", "0.5"),
        download_timeout_s=_env_float("FLOWBOARD_DOWNLOAD_TIMEOUT_S", "DOWNLOAD_TIMEOUT_S", "240"),
        download_poll_s=_env_float("FLOWBOARD_DOWNLOAD_POLL_S", "DOWNLOAD_POLL_S", "2"),
        state_dir=_env("FLOWBOARD_STATE_DIR", "STATE_DIR"),
        downloads_dir=_env("FLOWBOARD_DOWNLOADS_DIR", "DOWNLOADS_DIR"),
    )

    secrets = SecretsConfig(
        gemini_api_key=_env("FLOWBOARD_GEMINI_API_KEY", "GEMINI_API_KEY").strip(),
        gemini_model=_env("FLOWBOARD_GEMINI_MODEL", "GEMINI_MODEL", "gemini-2.0-flash").strip(),
    )

    return cfg, secrets

"""Shared utilities for flowboard modules."""

from __future__ import annotations

import datetime as dt
import json
import os
import re
from pathlib import Path
from typing import Any


def project_root() -> Path:
    """Resolve the project root directory."""
    return Path(os.environ.get("FLOWBOARD_ROOT", Path(__file__).resolve().parent.parent))


def stamp() -> str:
    """Compact UTC stamp for artifact filenames (YYYYmmdd_HHMMSS)."""
    return dt.datetime.now(dt.timezone.utc).strftime("%Y%m%d_%H%M%S")


def load_json(path: str | Path, default: Any = None) -> Any:
    """Load a JSON file, returning default if missing."""
    if not os.path.exists(path):
        return default
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_json(path: str | Path, data: Any) -> None:
    """Write data as formatted JSON (atomic: tmp + replace)."""
    path = str(path)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def load_env_file(path: str | Path | None) -> None:
    """Load KEY=VALUE pairs from a file into os.environ (does not overwrite existing)."""
    if path is None:
        path = project_root() / ".env"
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                raw = line.strip()
                if not raw or raw.startswith("#") or "=" not in raw:
                    continue
                key, value = raw.split("=", 1)
                key = key.strip()
                if key.startswith("export "):
                    key = key[len("export "):].strip()
                if key and key not in os.environ:
                    v = value.strip()
                    if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
                        v = v[1:-1]
                    os.environ[key] = v
    except OSError:
        return


def slugify(value: str, max_len: int = 56) -> str:
    """Convert a string to a filesystem-safe slug."""
    out = re.sub(r"[^a-z0-9]+", "_", value.lower()).strip("_")
    out = re.sub(r"_+", "_", out)
    return (out[:max_len] or "value").strip("_")

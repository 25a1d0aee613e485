"""Logger setup for CLI runs: file log per run plus console output."""

from __future__ import annotations

import logging
from pathlib import Path


def setup_logger(
    log_dir: str | Path | None,
    name: str = "flowboard",
    *,
    console_level: int = logging.INFO,
) -> logging.Logger:
    """Configure the ``flowboard`` logger tree.

    Writes DEBUG and above to ``<log_dir>/<name>.log`` when ``log_dir`` is given,
    ``console_level`` and above to stderr.
    """
    logger = logging.getLogger("flowboard")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path / f"{name}.log", encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(fh)

    sh = logging.StreamHandler()
    sh.setLevel(console_level)
    sh.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(sh)
    return logger

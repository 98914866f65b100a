from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level '{level}'")
    return value


def configure_logging(level: str | int = "INFO", log_file: Optional[str | Path] = None) -> None:
    """
    Console handler on stderr plus an optional file handler on the root
    logger. Safe to call more than once.
    """
    root = logging.getLogger()
    lvl = _parse_level(level)
    root.setLevel(lvl)

    if not any(getattr(h, "_ar844_console", False) for h in root.handlers):
        ch = logging.StreamHandler(sys.stderr)
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        ch._ar844_console = True  # type: ignore[attr-defined]
        root.addHandler(ch)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        target = str(path.resolve())

        for h in root.handlers:
            if isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target:
                return

        fh = logging.FileHandler(path, encoding="utf-8", delay=True)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(fh)

"""
Logging configuration for the coaching service.

- Console: always on, level from LOG_LEVEL.
- File: full DEBUG logs when LOG_FILE is set (directory created on demand).
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from live_coach.config import get_settings

_FILE_FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_CONSOLE_FMT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> Optional[Path]:
    """
    Configure the root logger. Replaces existing handlers so repeated calls
    (e.g. app reload) do not duplicate output.

    Returns the log file path, or None when logging to console only.
    """
    settings = get_settings()
    level_name = (level or settings.LOG_LEVEL or "INFO").upper()
    console_level = getattr(logging, level_name, logging.INFO)
    file_setting = log_file if log_file is not None else settings.LOG_FILE

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FMT))

    root = logging.getLogger()
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.addHandler(console_handler)

    log_path: Optional[Path] = None
    if (file_setting or "").strip():
        log_path = Path(file_setting)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(_FILE_FMT))
            root.addHandler(file_handler)
        except OSError as e:
            logging.getLogger(__name__).warning("Log file %s unavailable: %s", log_path, e)
            log_path = None

    root.setLevel(logging.DEBUG if log_path is not None else console_level)
    logging.getLogger(__name__).info("Logging configured (level=%s, file=%s)", level_name, log_path)
    return log_path

"""Application-wide logging configuration utilities."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from tabi import app_paths

_LOG_PATH: Optional[Path] = None


def configure_logging(level: int = logging.INFO, path: Optional[Path] = None) -> Path:
    """Configure logging to write to the Tabi log file.

    Parameters
    ----------
    level:
        The minimum logging level for the root logger. ``logging.INFO`` keeps
        a record of sync summaries and failed replays without request noise.
    path:
        Optional override for the log file location.

    Returns
    -------
    pathlib.Path
        The path to the log file.
    """

    global _LOG_PATH

    if _LOG_PATH is not None and path is None:
        return _LOG_PATH

    log_path = Path(path) if path is not None else app_paths.logs_path("tabi.log")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        log_path.touch(exist_ok=True)
    except OSError:
        pass

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.setLevel(level)
    else:
        root_logger.setLevel(min(root_logger.level, level))

    already_configured = any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == str(log_path.resolve())
        for handler in root_logger.handlers
    )
    if not already_configured:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _LOG_PATH = log_path
    root_logger.debug("Logging configured. Writing to %s", log_path)
    return log_path

"""Logging helpers for the exporter."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .config import data_dir


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the root logging handlers and return the package logger."""
    log_level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    numeric_level = getattr(logging, log_level, logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")

    root = logging.getLogger()
    while root.handlers:
        root.handlers.pop()

    root.setLevel(numeric_level)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    log_file_env = os.getenv("LOG_FILE")
    log_file = Path(log_file_env) if log_file_env else data_dir() / "logs" / "takealot_export.log"
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(numeric_level)
        root.addHandler(file_handler)
    except OSError as error:
        root.warning("Unable to open log file %s (%s)", log_file, error)

    # urllib3 logs every pooled connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.INFO))

    return logging.getLogger("takealot_export")

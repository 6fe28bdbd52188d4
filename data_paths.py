"""Centralized helpers for resolving the application's data directory."""
from __future__ import annotations

import logging
import os
from pathlib import Path

LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent
DATA_ROOT = Path(os.environ["FIELDLOG_DATA_DIR"]) if os.environ.get("FIELDLOG_DATA_DIR") else APP_ROOT / "data"

SETTINGS_FILENAME = "settings.json"
VISITS_CACHE_FILENAME = "visits_cache.json"
UPLOADS_DIRNAME = "uploads"

_announced = False


def ensure_data_root() -> Path:
    """Return the canonical data root, creating it as needed."""
    global _announced

    DATA_ROOT.mkdir(parents=True, exist_ok=True)
    if not _announced:
        _announced = True
        LOGGER.info("Using data directory %s", DATA_ROOT)
    return DATA_ROOT


def uploads_dir() -> Path:
    """Directory holding uploaded visit photos."""
    path = ensure_data_root() / UPLOADS_DIRNAME
    path.mkdir(parents=True, exist_ok=True)
    return path

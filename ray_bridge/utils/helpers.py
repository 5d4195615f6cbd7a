"""Filesystem and time helpers shared across modules."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create a directory (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Resolve the active data directory.

    ``RAY_BRIDGE_DATA_DIR`` wins over the default ``~/.ray-bridge``.
    """
    override = os.environ.get("RAY_BRIDGE_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".ray-bridge"


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()

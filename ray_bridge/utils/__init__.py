"""Utility helpers."""

from ray_bridge.utils.helpers import ensure_dir, get_data_path, now_iso

__all__ = ["ensure_dir", "get_data_path", "now_iso"]

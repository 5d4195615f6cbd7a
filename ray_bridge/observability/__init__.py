"""Observability helpers for runtime metrics."""

from ray_bridge.observability.metrics import MetricsStore

__all__ = ["MetricsStore"]

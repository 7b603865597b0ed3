"""Dispatch metrics."""

from .registry import EMPTY_PREFIX_KEY, CommandStats, MetricsRegistry, MetricsSnapshot

__all__ = [
    "EMPTY_PREFIX_KEY",
    "CommandStats",
    "MetricsRegistry",
    "MetricsSnapshot",
]

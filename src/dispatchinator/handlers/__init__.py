"""Built-in command handlers."""

from .builtin import (
    HandlerCatalog,
    HelpHandler,
    MetricsHandler,
    PingHandler,
    StartHandler,
    StatsHandler,
    format_uptime,
)

__all__ = [
    "HandlerCatalog",
    "HelpHandler",
    "MetricsHandler",
    "PingHandler",
    "StartHandler",
    "StatsHandler",
    "format_uptime",
]

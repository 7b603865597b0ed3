"""Dispatchinator - a command dispatch pipeline for chat bots."""

__version__ = "0.1.0"

from .config import CacheConfig, MetricsConfig, PipelineConfig, RateLimitConfig, ValidationConfig
from .core import (
    BotCommand,
    Chat,
    ChatKind,
    Command,
    CommandHandler,
    CommandRouter,
    FormatHint,
    RequestContext,
    Response,
    User,
)
from .core.pipeline import CommandPipeline
from .logging import get_logger, get_structured_logger, setup_logging

__all__ = [
    "__version__",
    "BotCommand",
    "CacheConfig",
    "Chat",
    "ChatKind",
    "Command",
    "CommandHandler",
    "CommandPipeline",
    "CommandRouter",
    "FormatHint",
    "MetricsConfig",
    "PipelineConfig",
    "RateLimitConfig",
    "RequestContext",
    "Response",
    "User",
    "ValidationConfig",
    "get_logger",
    "get_structured_logger",
    "setup_logging",
]

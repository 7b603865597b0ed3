"""Dispatch middleware."""

from .activity import ActivityMiddleware
from .auth import REGISTRATION_FAILED_TEXT, AuthMiddleware
from .base import HandlerFunc, Middleware
from .caching import HIT_MARKER, CachingMiddleware, cache_key
from .metrics import MetricsMiddleware
from .ratelimit import RateLimitMiddleware
from .request_logging import LoggingMiddleware
from .validation import CommandValidator, ValidationMiddleware, default_validators, sanitize_text

__all__ = [
    "ActivityMiddleware",
    "AuthMiddleware",
    "CachingMiddleware",
    "CommandValidator",
    "HandlerFunc",
    "HIT_MARKER",
    "LoggingMiddleware",
    "MetricsMiddleware",
    "Middleware",
    "RateLimitMiddleware",
    "REGISTRATION_FAILED_TEXT",
    "ValidationMiddleware",
    "cache_key",
    "default_validators",
    "sanitize_text",
]

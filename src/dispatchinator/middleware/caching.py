"""Per-user response caching for read-heavy commands."""

import hashlib
from dataclasses import replace
from typing import Any, Dict, Iterable

from ..cache import TTLCache
from ..config import CacheConfig, DEFAULT_CACHEABLE_PREFIXES
from ..core.types import Command, RequestContext, Response
from ..logging import StructuredLogger, get_structured_logger
from .base import HandlerFunc, Middleware

HIT_MARKER = "🔄 "


def cache_key(user_id: str, text: str) -> str:
    """Cache key for a user's command.

    The user id is part of the key so one user's reply is never served to
    another.
    """
    normalized = " ".join(text.split())
    digest = hashlib.sha256(f"user:{user_id}:cmd:{normalized}".encode("utf-8", "replace")).hexdigest()
    return f"cache:{digest}"


class CachingMiddleware(Middleware):
    """Serves repeated cacheable commands from a TTLCache.

    Only commands whose prefix is in ``cacheable_prefixes`` are considered.
    A Response is stored only when it carries no error and has text.
    """

    name = "caching"

    def __init__(
        self,
        cache: TTLCache,
        config: CacheConfig = None,
        cacheable_prefixes: Iterable[str] = DEFAULT_CACHEABLE_PREFIXES,
        logger: StructuredLogger = None,
    ):
        self.cache = cache
        self.config = config or CacheConfig()
        self.cacheable_prefixes = frozenset(cacheable_prefixes)
        self.log = logger or get_structured_logger(__name__)

    def is_cacheable(self, prefix: str) -> bool:
        return prefix in self.cacheable_prefixes

    def wrap(self, next_: HandlerFunc) -> HandlerFunc:
        def handle(ctx: RequestContext, cmd: Command) -> Response:
            prefix = cmd.head
            if not self.is_cacheable(prefix):
                return next_(ctx, cmd)

            key = cache_key(cmd.user.id, cmd.text)
            cached, found = self.cache.get(key)
            if found:
                self.log.debug("Cache hit", prefix=prefix, user_id=cmd.user.id)
                if self.config.mark_hits:
                    return replace(cached, text=HIT_MARKER + cached.text)
                return replace(cached)

            response = next_(ctx, cmd)
            if response.error is None and response.text:
                ttl = self.config.ttl_for(prefix)
                self.cache.set_with_ttl(key, replace(response), ttl)
                self.log.debug("Response cached", prefix=prefix, user_id=cmd.user.id, ttl_s=ttl)
            return response

        return handle

    def stats(self) -> Dict[str, Any]:
        return {
            "cache_size": self.cache.size(),
            "default_ttl_seconds": self.config.default_ttl_seconds,
            "cacheable_prefixes": len(self.cacheable_prefixes),
        }

    def clear(self) -> None:
        self.cache.clear()
        self.log.info("Response cache cleared")

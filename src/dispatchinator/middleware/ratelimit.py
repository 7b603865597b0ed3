"""Per-user sliding-window rate limiting."""

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

from ..cache import ReadWriteLock
from ..core.types import Command, FormatHint, RequestContext, Response
from ..errors import RateLimitExceeded
from ..logging import StructuredLogger, get_structured_logger
from .base import HandlerFunc, Middleware


class _UserWindow:
    __slots__ = ("lock", "timestamps", "retired")

    def __init__(self):
        self.lock = threading.Lock()
        self.timestamps: Deque[float] = deque()
        # Set by cleanup() once the window is dropped from the table
        self.retired = False


class RateLimitMiddleware(Middleware):
    """Allows at most ``max_requests`` per user in any ``window`` seconds.

    The user table is guarded by a reader/writer lock; each user's
    timestamp list by its own lock. A throttled request is not recorded.
    """

    name = "ratelimit"

    def __init__(
        self,
        max_requests: int = 10,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        logger: StructuredLogger = None,
    ):
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._users: Dict[str, _UserWindow] = {}
        self._table_lock = ReadWriteLock()
        self.log = logger or get_structured_logger(__name__)

    def _window_for(self, user_id: str) -> _UserWindow:
        with self._table_lock.read_locked():
            entry = self._users.get(user_id)
        if entry is not None:
            return entry
        with self._table_lock.write_locked():
            return self._users.setdefault(user_id, _UserWindow())

    def wrap(self, next_: HandlerFunc) -> HandlerFunc:
        def handle(ctx: RequestContext, cmd: Command) -> Response:
            user_id = cmd.user.id

            while True:
                entry = self._window_for(user_id)
                with entry.lock:
                    if entry.retired:
                        continue
                    throttled, retry_after = self._admit(entry)
                break

            if throttled:
                self.log.warning(
                    "Rate limit exceeded",
                    user_id=user_id,
                    max_requests=self.max_requests,
                    window_s=self.window,
                )
                seconds = int(math.ceil(retry_after)) or 1
                return Response(
                    text=f"⚠️ Too many requests! Please try again in {seconds} seconds.",
                    format_hint=FormatHint.HTML,
                    error=RateLimitExceeded(f"rate limit exceeded for user {user_id}", retry_after=retry_after),
                )

            return next_(ctx, cmd)

        return handle

    def _admit(self, entry: _UserWindow) -> Tuple[bool, float]:
        """Trim the window and record a request if there is room.

        Must be called with ``entry.lock`` held.

        Returns:
            ``(throttled, retry_after_seconds)``
        """
        now = self._clock()
        cutoff = now - self.window
        timestamps = entry.timestamps
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

        if len(timestamps) >= self.max_requests:
            return True, max(0.0, timestamps[0] + self.window - now)

        timestamps.append(now)
        return False, 0.0

    def cleanup(self) -> int:
        """Forget users idle for longer than twice the window.

        Returns:
            Number of users removed
        """
        cutoff = self._clock() - 2 * self.window
        removed = 0
        with self._table_lock.write_locked():
            for user_id in list(self._users):
                entry = self._users[user_id]
                with entry.lock:
                    if not entry.timestamps or entry.timestamps[-1] <= cutoff:
                        entry.retired = True
                        del self._users[user_id]
                        removed += 1
        if removed:
            self.log.debug("Rate limit table cleaned", removed=removed)
        return removed

    def tracked_users(self) -> int:
        with self._table_lock.read_locked():
            return len(self._users)

"""Fire-and-forget activity logging."""

from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional

from ..core.ports import ActivityStore
from ..core.types import Command, RequestContext, Response
from ..logging import StructuredLogger, get_structured_logger
from .base import HandlerFunc, Middleware


class ActivityMiddleware(Middleware):
    """Records successful dispatches in the activity store.

    Writes happen on a small worker pool so the reply is never delayed;
    failures are logged and dropped.
    """

    name = "activity"

    def __init__(self, store: ActivityStore, workers: int = 2, logger: StructuredLogger = None):
        self.store = store
        self.log = logger or get_structured_logger(__name__)
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="activity-log")

    def wrap(self, next_: HandlerFunc) -> HandlerFunc:
        def handle(ctx: RequestContext, cmd: Command) -> Response:
            response = next_(ctx, cmd)
            if response.error is None:
                self.submit(cmd.user.id, cmd.text, datetime.now(timezone.utc))
            return response

        return handle

    def submit(self, user_id: str, text: str, at: datetime) -> Optional[Future]:
        """Queue an activity write. Returns None if the pool is already closed."""
        try:
            return self._executor.submit(self._log_activity, user_id, text, at)
        except RuntimeError as e:
            self.log.warning("Dropped user activity", user_id=user_id, error=str(e))
            return None

    def _log_activity(self, user_id: str, text: str, at: datetime) -> None:
        try:
            self.store.log(user_id, text, at)
        except Exception as e:
            self.log.warning("Failed to log user activity", user_id=user_id, error=str(e))

    def close(self) -> None:
        """Wait for pending writes and stop the worker pool."""
        self._executor.shutdown(wait=True)

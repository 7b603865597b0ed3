"""Messaging-platform adapter contract."""

from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Generic, Optional, TypeVar

from ..core.pipeline import CommandPipeline
from ..core.types import Command, RequestContext, Response
from ..logging import get_logger

logger = get_logger(__name__)

E = TypeVar("E")


class PlatformAdapter(ABC, Generic[E]):
    """Bridges platform events to the dispatch pipeline.

    Subclasses translate a platform event into a Command and deliver the
    resulting Response back to the platform. Every event is dispatched on a
    worker pool with its own deadline, so many commands may be in flight at
    once.

    Subclasses must implement:
    - to_command(): Build a Command from an event, or None to ignore it
    - deliver(): Send a Response back for an event
    """

    platform = "generic"
    DEFAULT_TIMEOUT = 30.0
    DEFAULT_WORKERS = 8

    def __init__(
        self,
        pipeline: CommandPipeline,
        request_timeout: float = None,
        max_workers: int = DEFAULT_WORKERS,
    ):
        self.pipeline = pipeline
        self.request_timeout = request_timeout or pipeline.config.request_timeout_seconds or self.DEFAULT_TIMEOUT
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dispatch")

    @abstractmethod
    def to_command(self, event: E) -> Optional[Command]:
        """Translate a platform event into a Command (None to skip the event)."""

    @abstractmethod
    def deliver(self, event: E, response: Response) -> Any:
        """Send ``response`` to wherever ``event`` came from."""

    def handle_event(self, event: E) -> Optional[Response]:
        """Dispatch one event synchronously and deliver the reply.

        Returns:
            The Response delivered, or None if the event was skipped
        """
        cmd = self.to_command(event)
        if cmd is None:
            return None

        ctx = RequestContext.with_timeout(self.request_timeout).with_value("platform", self.platform)
        response = self.pipeline.dispatch(ctx, cmd)
        try:
            self.deliver(event, response)
        except Exception as e:
            logger.error(f"Failed to deliver response for command {cmd.id}: {e}")
        return response

    def submit(self, event: E) -> Future:
        """Dispatch an event on the worker pool."""
        future = self._executor.submit(self.handle_event, event)
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Event handling failed: {error}")

    def close(self) -> None:
        """Wait for in-flight events and stop the worker pool."""
        self._executor.shutdown(wait=True)

"""Timing and success/failure accounting for every dispatch."""

import time

from ..core.types import Command, RequestContext, Response
from ..logging import StructuredLogger, get_structured_logger
from ..metrics import MetricsRegistry
from .base import HandlerFunc, Middleware


class MetricsMiddleware(Middleware):
    """Records each dispatch into a MetricsRegistry.

    A dispatch counts as failed when the Response carries an error or the
    inner stage raises. Dispatches slower than ``slow_threshold`` seconds
    emit a warning.
    """

    name = "metrics"

    def __init__(
        self,
        registry: MetricsRegistry,
        slow_threshold: float = 2.0,
        logger: StructuredLogger = None,
    ):
        self.registry = registry
        self.slow_threshold = slow_threshold
        self.log = logger or get_structured_logger(__name__)

    def wrap(self, next_: HandlerFunc) -> HandlerFunc:
        def handle(ctx: RequestContext, cmd: Command) -> Response:
            prefix = cmd.head
            start = time.perf_counter_ns()
            try:
                response = next_(ctx, cmd)
            except Exception:
                self._finish(cmd, prefix, start, failed=True)
                raise
            self._finish(cmd, prefix, start, failed=response.error is not None)
            return response

        return handle

    def _finish(self, cmd: Command, prefix: str, start_ns: int, failed: bool) -> None:
        duration_ns = time.perf_counter_ns() - start_ns
        self.registry.record(prefix, duration_ns, failed)

        duration_s = duration_ns / 1e9
        if duration_s > self.slow_threshold:
            self.log.warning(
                "Slow command execution",
                prefix=prefix,
                user_id=cmd.user.id,
                duration_s=round(duration_s, 3),
                threshold_s=self.slow_threshold,
            )

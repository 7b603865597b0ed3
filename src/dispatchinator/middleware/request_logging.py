"""Start/finish logging for every dispatch."""

import time

from ..core.types import Command, RequestContext, Response
from ..logging import StructuredLogger, get_structured_logger
from .base import HandlerFunc, Middleware


class LoggingMiddleware(Middleware):
    """Logs when a command starts and finishes. Never short-circuits.

    Exceptions from inner stages are logged as a failed finish record and
    re-raised for the router to turn into the failure Response.
    """

    name = "logging"

    def __init__(self, logger: StructuredLogger = None):
        self.log = logger or get_structured_logger(__name__)

    def wrap(self, next_: HandlerFunc) -> HandlerFunc:
        def handle(ctx: RequestContext, cmd: Command) -> Response:
            log = self.log.bind(command_id=cmd.id, prefix=cmd.head, user_id=cmd.user.id)
            platform = ctx.values.get("platform")
            if platform:
                log = log.bind(platform=platform)

            start = time.perf_counter()
            log.info("Command processing started")

            try:
                response = next_(ctx, cmd)
            except Exception as e:
                log.error(
                    "Command processing failed",
                    duration_ms=round((time.perf_counter() - start) * 1000, 3),
                    error=repr(e),
                )
                raise

            duration_ms = round((time.perf_counter() - start) * 1000, 3)
            if response.error is not None:
                log.error("Command processing failed", duration_ms=duration_ms, error=repr(response.error))
            else:
                log.info(
                    "Command processing completed",
                    duration_ms=duration_ms,
                    response_length=len(response.text),
                )
            return response

        return handle

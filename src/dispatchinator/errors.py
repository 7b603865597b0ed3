"""Exception types used across the dispatch pipeline.

Dispatch-time errors are normalized into Responses by the router and
observed by middleware through ``Response.error``. Router errors are
programmer errors and propagate at startup.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .core.types import Response


class DispatchError(Exception):
    """Base class for errors raised while dispatching a command.

    Attributes:
        response: Optional Response to deliver to the user instead of the
            generic failure message.
    """

    def __init__(self, message: str = "", response: Optional["Response"] = None):
        super().__init__(message)
        self.response = response


class HandlerError(DispatchError):
    """A handler (or one of its collaborators) failed."""


class DeadlineExceeded(DispatchError):
    """The request deadline passed before the work could finish."""


class DispatchCancelled(DispatchError):
    """The request was cancelled by its caller."""


class RateLimitExceeded(DispatchError):
    """The user exceeded the request budget for the current window."""

    def __init__(self, message: str = "", retry_after: float = 0.0, response: Optional["Response"] = None):
        super().__init__(message, response=response)
        self.retry_after = retry_after


class RegistrationError(DispatchError):
    """The user could not be registered with the user service."""


class RouterError(Exception):
    """Misconfiguration of the router detected at startup."""


class DuplicatePrefixError(RouterError, ValueError):
    """Two different handlers claim the same command prefix."""


class RouterSealedError(RouterError, RuntimeError):
    """Registration attempted after the first dispatch."""

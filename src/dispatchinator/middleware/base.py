"""Middleware contract.

A middleware wraps the next stage of the chain and returns a new stage.
The returned stage may call ``next_`` (possibly with a derived context or
command), short-circuit by returning its own Response, or inspect and
annotate the Response on the way out.

Middleware instances are shared by every in-flight dispatch, so any state
they own must be guarded for concurrent use.
"""

from abc import ABC, abstractmethod
from typing import Callable

from ..core.types import Command, RequestContext, Response

HandlerFunc = Callable[[RequestContext, Command], Response]


class Middleware(ABC):
    """Base class for dispatch middleware."""

    #: Short name used in logs
    name: str = "middleware"

    @abstractmethod
    def wrap(self, next_: HandlerFunc) -> HandlerFunc:
        """Return a stage that runs this middleware around ``next_``."""

    def close(self) -> None:
        """Release background resources owned by this middleware."""

"""Command routing and middleware chain assembly."""

import threading
from functools import reduce
from typing import Dict, List, Optional

from ..errors import DuplicatePrefixError, HandlerError, RouterSealedError
from ..logging import StructuredLogger, get_structured_logger
from ..middleware.base import HandlerFunc, Middleware
from .handler import CommandHandler
from .types import Command, FormatHint, HandlerView, RequestContext, Response

UNKNOWN_COMMAND_TEXT = "❓ Unknown command. Type /help"
FAILURE_TEXT = "❌ Something went wrong while running your command"


class CommandRouter:
    """Routes commands to handlers through an ordered middleware chain.

    Handlers and middleware are registered at startup. The first dispatch
    seals the router: the middleware list is folded into a single chain
    that is reused by every later dispatch, and further registration raises
    RouterSealedError.

    Middleware run in registration order on the way in and in reverse on
    the way out: for [m1, m2, m3] a dispatch runs
    ``m1.wrap(m2.wrap(m3.wrap(route)))``.

    ``dispatch()`` never raises. Failures become a Response with the generic
    failure text and the original exception in ``Response.error``.
    """

    def __init__(self, logger: StructuredLogger = None):
        self.log = logger or get_structured_logger(__name__)
        self._handlers: List[CommandHandler] = []
        self._by_prefix: Dict[str, CommandHandler] = {}
        self._middleware: List[Middleware] = []
        self._chain: Optional[HandlerFunc] = None
        self._seal_lock = threading.Lock()

    @property
    def sealed(self) -> bool:
        return self._chain is not None

    def register_handler(self, handler: CommandHandler) -> None:
        """Register a handler.

        Registering the same handler object again is a no-op.

        Raises:
            DuplicatePrefixError: Another handler already claims one of its prefixes
            RouterSealedError: The router has already dispatched
        """
        self._ensure_open()
        if any(h is handler for h in self._handlers):
            return

        prefixes = frozenset(handler.prefixes)
        if not prefixes:
            raise ValueError(f"{type(handler).__name__} claims no prefixes")

        for prefix in sorted(prefixes):
            owner = self._by_prefix.get(prefix)
            if owner is not None:
                raise DuplicatePrefixError(
                    f"prefix {prefix!r} is already claimed by {type(owner).__name__}"
                )

        self._handlers.append(handler)
        for prefix in prefixes:
            self._by_prefix[prefix] = handler
        self.log.debug("Registered handler", handler=type(handler).__name__, prefixes=",".join(sorted(prefixes)))

    def register_middleware(self, middleware: Middleware) -> None:
        """Append middleware to the chain (first registered runs outermost)."""
        self._ensure_open()
        self._middleware.append(middleware)
        self.log.debug("Registered middleware", middleware=middleware.name, position=len(self._middleware))

    def _ensure_open(self) -> None:
        if self._chain is not None:
            raise RouterSealedError("router is sealed; register handlers and middleware before dispatching")

    def find_handler(self, token: str) -> Optional[CommandHandler]:
        """Return the first registered handler claiming ``token``."""
        for handler in self._handlers:
            if handler.claims(token):
                return handler
        return None

    def enumerate(self) -> List[HandlerView]:
        """Read-only descriptions of the registered handlers, in registration order."""
        return [h.view() for h in self._handlers]

    def get_help_text(self) -> str:
        lines = []
        for view in self.enumerate():
            usage = view.usage or view.primary
            lines.append(f"{usage} - {view.description}" if view.description else usage)
        return "\n".join(lines)

    @property
    def middleware(self) -> List[Middleware]:
        return list(self._middleware)

    def _build_chain(self) -> HandlerFunc:
        with self._seal_lock:
            if self._chain is None:
                self._chain = reduce(
                    lambda next_, m: m.wrap(next_),
                    reversed(self._middleware),
                    self._route,
                )
                self.log.debug("Middleware chain built", middleware=len(self._middleware), handlers=len(self._handlers))
            return self._chain

    def dispatch(self, ctx: RequestContext, cmd: Command) -> Response:
        """Run ``cmd`` through the middleware chain and its handler.

        Always returns a Response with non-empty text.
        """
        chain = self._chain or self._build_chain()
        try:
            response = chain(ctx, cmd)
        except Exception as e:
            self.log.error("Dispatch failed", command_id=cmd.id, prefix=cmd.head, error=repr(e), exc_info=True)
            return Response(text=FAILURE_TEXT, error=e)

        if response is None or not response.text:
            error = response.error if response is not None else None
            return Response(text=FAILURE_TEXT, error=error or HandlerError("empty response"))
        return response

    def _route(self, ctx: RequestContext, cmd: Command) -> Response:
        """Innermost stage: look up the handler and normalize its outcome."""
        head = cmd.head
        handler = self.find_handler(head) if head else None
        if handler is None:
            self.log.debug("Unknown command", command_id=cmd.id, prefix=head)
            return Response(text=UNKNOWN_COMMAND_TEXT, format_hint=FormatHint.PLAIN)

        try:
            ctx.check()
            response = handler.invoke(ctx, cmd)
        except HandlerError as e:
            self.log.error("Command execution failed", command_id=cmd.id, prefix=head, error=str(e))
            if e.response is not None and e.response.text:
                return e.response.with_error(e)
            return Response(text=FAILURE_TEXT, error=e)
        except Exception as e:
            self.log.error("Command execution failed", command_id=cmd.id, prefix=head, error=repr(e), exc_info=True)
            return Response(text=FAILURE_TEXT, error=e)

        if response is None or not response.text:
            error = HandlerError(f"{type(handler).__name__} returned an empty response")
            self.log.error("Command execution failed", command_id=cmd.id, prefix=head, error=str(error))
            return Response(text=FAILURE_TEXT, error=error)

        self.log.debug("Command executed", command_id=cmd.id, prefix=head)
        return response

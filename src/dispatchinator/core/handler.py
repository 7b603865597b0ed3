"""Handler contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, Optional

from .types import Command, HandlerView, RequestContext, Response


class CommandHandler(ABC):
    """A unit of command business logic.

    A handler claims a command when the command token (the first
    whitespace-separated word of the text) is exactly one of its
    ``prefixes``; matching is case-sensitive.

    Handlers raise on failure. To deliver a reply *and* report a failure,
    raise ``HandlerError(message, response=Response(...))``. Handlers never
    touch the router, metrics or cache directly.
    """

    #: Literal command tokens this handler claims (e.g. {"/repo", "/user"})
    prefixes: FrozenSet[str] = frozenset()

    def claims(self, token: str) -> bool:
        return token in self.prefixes

    @abstractmethod
    def invoke(self, ctx: RequestContext, cmd: Command) -> Response:
        """Handle ``cmd`` and return the reply."""

    def description(self) -> str:
        return ""

    def usage(self) -> str:
        return ""

    def view(self) -> HandlerView:
        return HandlerView(
            prefixes=frozenset(self.prefixes),
            description=self.description(),
            usage=self.usage(),
        )


@dataclass(eq=False)
class BotCommand(CommandHandler):
    """Handler built from a plain function.

    Attributes:
        name: Primary command token (e.g., "/ping"); a missing "/" is added
        summary: Human-readable description
        handler: Function called with (ctx, cmd); may return a Response or
            a plain string
        aliases: Additional tokens claimed by the same function
        usage_hint: Optional usage example (e.g., "/weather <city>")
    """
    name: str
    summary: str
    handler: Callable[[RequestContext, Command], object]
    aliases: Iterable[str] = field(default_factory=tuple)
    usage_hint: Optional[str] = None

    def __post_init__(self):
        names = [self.name, *self.aliases]
        self.prefixes = frozenset(n if n.startswith("/") else f"/{n}" for n in names)
        if not self.name.startswith("/"):
            self.name = f"/{self.name}"

    def invoke(self, ctx: RequestContext, cmd: Command) -> Response:
        result = self.handler(ctx, cmd)
        if isinstance(result, Response):
            return result
        return Response(text="" if result is None else str(result))

    def description(self) -> str:
        return self.summary

    def usage(self) -> str:
        return self.usage_hint or self.name

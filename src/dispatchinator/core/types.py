"""Type definitions for the dispatch pipeline."""

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from ..errors import DeadlineExceeded, DispatchCancelled


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChatKind(str, Enum):
    PRIVATE = "private"
    GROUP = "group"


class FormatHint(str, Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"
    HTML = "html"


@dataclass
class User:
    """A chat user as known to the user service.

    Attributes:
        id: Stable external id (platform user id / UUID)
        username: Display handle (may be empty)
        first_name: Given name (may be empty)
        last_name: Family name (may be empty)
        language: Language tag (e.g., "en", "uz")
        is_active: Whether the user is active
        created_at: When the user was registered (None for snapshots)
    """
    id: str
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    language: str = "en"
    is_active: bool = True
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """Best available human-readable name."""
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.username or self.id


@dataclass
class Chat:
    """The conversation a command arrived in."""
    id: str
    kind: ChatKind = ChatKind.PRIVATE
    title: Optional[str] = None

    @property
    def is_group(self) -> bool:
        return self.kind == ChatKind.GROUP


@dataclass
class Command:
    """One inbound request.

    Attributes:
        text: Command text, trimmed on construction
        user: Snapshot of the sender as reported by the platform
        chat: Conversation the command arrived in
        id: Correlation id, unique per process
        timestamp: When the command was received (UTC)
        attachments: Opaque attachment descriptors, passed through untouched
    """
    text: str
    user: User
    chat: Chat
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=_utc_now)
    attachments: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        if self.text is None:
            raise ValueError("Command.text must not be None")
        if self.user is None:
            raise ValueError("Command.user must not be None")
        if self.chat is None:
            raise ValueError("Command.chat must not be None")
        self.text = self.text.strip()

    @property
    def head(self) -> str:
        """The command token: first whitespace-separated word ("" if none)."""
        parts = self.text.split(None, 1)
        return parts[0] if parts else ""

    @property
    def args(self) -> str:
        """Everything after the command token."""
        parts = self.text.split(None, 1)
        return parts[1] if len(parts) > 1 else ""

    def with_text(self, text: str) -> "Command":
        """Return a copy of this command carrying different text."""
        return replace(self, text=text)


@dataclass
class Response:
    """One outbound reply.

    Attributes:
        text: Reply text (non-empty when delivered)
        format_hint: How the adapter should render ``text``
        disable_link_preview: Ask the platform not to unfurl links
        error: Error observed while producing this response. Never
            delivered to the user; middleware use it to tell failures apart.
    """
    text: str
    format_hint: FormatHint = FormatHint.PLAIN
    disable_link_preview: bool = False
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)

    @property
    def failed(self) -> bool:
        return self.error is not None

    def with_error(self, error: Optional[BaseException]) -> "Response":
        """Return a copy of this response carrying ``error``."""
        return replace(self, error=error)


@dataclass
class RequestContext:
    """Per-request context threaded through the middleware chain.

    Derived contexts (``with_user``, ``with_value``) share the deadline and
    the cancellation event of their parent.

    Attributes:
        deadline: ``time.monotonic()`` value after which work should stop
            (None for no deadline)
        user: Authoritative user, attached by the auth middleware
        values: Free-form per-request values
    """
    deadline: Optional[float] = None
    user: Optional[User] = None
    values: Dict[str, Any] = field(default_factory=dict)
    _cancel_event: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @classmethod
    def with_timeout(cls, seconds: float) -> "RequestContext":
        """Create a context whose deadline is ``seconds`` from now."""
        return cls(deadline=time.monotonic() + seconds)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (None without a deadline)."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._cancel_event.set()

    def check(self) -> None:
        """Raise if the request was cancelled or its deadline passed."""
        if self._cancel_event.is_set():
            raise DispatchCancelled("request cancelled")
        if self.expired:
            raise DeadlineExceeded("request deadline exceeded")

    def with_user(self, user: User) -> "RequestContext":
        return replace(self, user=user)

    def with_value(self, key: str, value: Any) -> "RequestContext":
        values = dict(self.values)
        values[key] = value
        return replace(self, values=values)


@dataclass(frozen=True)
class HandlerView:
    """Read-only description of a registered handler (used by /help)."""
    prefixes: FrozenSet[str]
    description: str
    usage: str = ""

    @property
    def primary(self) -> str:
        """The first prefix in sorted order, used for listings."""
        return sorted(self.prefixes)[0] if self.prefixes else ""


@dataclass
class Activity:
    """One persisted command invocation."""
    user_id: str
    command: str
    created_at: datetime
    id: Optional[int] = None

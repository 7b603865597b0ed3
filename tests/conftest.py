"""Shared fixtures for dispatchinator tests."""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from dispatchinator.config import CacheConfig, PipelineConfig, RateLimitConfig
from dispatchinator.core.handler import BotCommand
from dispatchinator.core.pipeline import CommandPipeline
from dispatchinator.core.types import Activity, Chat, ChatKind, Command, RequestContext, Response, User
from dispatchinator.database import BotRepository, create_sqlite_engine


# ==================== Time ====================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ==================== Collaborators ====================

class FakeUserService:
    """In-memory user service recording every call."""

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.registered: List[str] = []
        self.touched: List[str] = []
        self.register_language = "en"
        self.fail_get = False
        self.fail_register = False
        self.fail_touch = False

    def get(self, external_id: str) -> Optional[User]:
        if self.fail_get:
            raise RuntimeError("lookup failed")
        return self.users.get(external_id)

    def register(self, external_id, username, first_name, last_name) -> User:
        if self.fail_register:
            raise RuntimeError("database is locked")
        user = User(
            id=external_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            language=self.register_language,
            created_at=datetime.now(timezone.utc),
        )
        self.users[external_id] = user
        self.registered.append(external_id)
        return user

    def touch(self, external_id: str) -> None:
        if self.fail_touch:
            raise RuntimeError("touch failed")
        self.touched.append(external_id)

    def stats(self) -> Dict[str, int]:
        return {"total": len(self.users), "active": len(self.users), "new_today": 0, "active_today": 0}


class FakeActivityStore:
    """In-memory activity store; ``logged`` is set after every write."""

    def __init__(self):
        self.entries: List[tuple] = []
        self.logged = threading.Event()
        self.fail = False
        self._lock = threading.Lock()

    def log(self, external_id, command_text, at) -> None:
        if self.fail:
            self.logged.set()
            raise RuntimeError("disk full")
        with self._lock:
            self.entries.append((external_id, command_text, at))
        self.logged.set()

    def popular(self, limit: int = 10) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for _, text, _ in self.entries:
            counts[text] = counts.get(text, 0) + 1
        return dict(sorted(counts.items(), key=lambda kv: -kv[1])[:limit])

    def daily(self) -> Dict[str, int]:
        return {"new_users_today": 0, "activities_today": len(self.entries), "active_users_today": 0}

    def recent(self, external_id: str, limit: int = 10) -> List[Activity]:
        return [
            Activity(user_id=uid, command=text, created_at=at)
            for uid, text, at in reversed(self.entries) if uid == external_id
        ][:limit]


@pytest.fixture
def user_service():
    return FakeUserService()


@pytest.fixture
def activity_store():
    return FakeActivityStore()


# ==================== Commands ====================

def make_command(text: str, user_id: str = "1", chat_kind: ChatKind = ChatKind.PRIVATE, **user_fields) -> Command:
    """Build a Command from a user id and text."""
    return Command(
        text=text,
        user=User(id=user_id, username=user_fields.pop("username", f"user{user_id}"), **user_fields),
        chat=Chat(id=f"chat-{user_id}", kind=chat_kind),
    )


@pytest.fixture
def make_cmd():
    return make_command


@pytest.fixture
def ctx():
    return RequestContext.with_timeout(30)


def echo(text: str):
    """A handler function returning a fixed reply."""
    def handler(ctx: RequestContext, cmd: Command) -> Response:
        return Response(text=text)
    return handler


@pytest.fixture
def ping_command():
    return BotCommand(name="/ping", summary="Ping", handler=echo("pong"))


class RecordingHandler(BotCommand):
    """BotCommand that remembers every (ctx, cmd) it was invoked with."""

    def __init__(self, name: str, reply: str = "ok", aliases=()):
        self.calls: List[tuple] = []
        self._lock = threading.Lock()
        self._reply = reply
        super().__init__(name=name, summary=f"{name} handler", handler=self._handle, aliases=aliases)

    def _handle(self, ctx, cmd):
        with self._lock:
            self.calls.append((ctx, cmd))
        return Response(text=self._reply)


@pytest.fixture
def recording_handler():
    return RecordingHandler


# ==================== Pipeline ====================

@pytest.fixture
def pipeline_config():
    return PipelineConfig(
        cache=CacheConfig(default_ttl_seconds=60, per_prefix_ttl={"/weather": 60}),
        ratelimit=RateLimitConfig(max_requests=10, window_seconds=60),
    )


@pytest.fixture
def pipeline(pipeline_config, user_service, activity_store, clock):
    """A standard pipeline without background threads."""
    p = CommandPipeline(
        pipeline_config,
        users=user_service,
        activity=activity_store,
        clock=clock,
        start_background=False,
    )
    yield p
    p.close()


# ==================== Database ====================

@pytest.fixture
def in_memory_engine():
    """Create an in-memory SQLite database engine."""
    return create_sqlite_engine(":memory:")


@pytest.fixture
def repo(in_memory_engine):
    return BotRepository(in_memory_engine)

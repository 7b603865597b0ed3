"""Dispatch core: command types, handler contract and router."""

from .types import (
    Activity,
    Chat,
    ChatKind,
    Command,
    FormatHint,
    HandlerView,
    RequestContext,
    Response,
    User,
)
from .handler import BotCommand, CommandHandler
from .ports import ActivityStore, UserService
from .router import FAILURE_TEXT, UNKNOWN_COMMAND_TEXT, CommandRouter

__all__ = [
    "Activity",
    "ActivityStore",
    "BotCommand",
    "Chat",
    "ChatKind",
    "Command",
    "CommandHandler",
    "CommandRouter",
    "FAILURE_TEXT",
    "FormatHint",
    "HandlerView",
    "RequestContext",
    "Response",
    "UNKNOWN_COMMAND_TEXT",
    "User",
    "UserService",
]

"""Messaging-platform adapters."""

from .base import PlatformAdapter
from .signal_adapter import SignalAdapter
from .signal_client import SignalClient, SignalMessage, SignalRPCError

__all__ = [
    "PlatformAdapter",
    "SignalAdapter",
    "SignalClient",
    "SignalMessage",
    "SignalRPCError",
]

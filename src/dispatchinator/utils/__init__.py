"""Utility modules for Dispatchinator."""

from .message_utils import (
    SIGNAL_MAX_MESSAGE_LENGTH,
    render_plain,
    split_long_message,
    strip_html,
    strip_markdown,
)

__all__ = [
    "SIGNAL_MAX_MESSAGE_LENGTH",
    "render_plain",
    "split_long_message",
    "strip_html",
    "strip_markdown",
]

"""Message text utilities for platform adapters."""

import html
import re
from typing import List

from ..core.types import FormatHint

# Signal has a ~2000 character limit for messages
SIGNAL_MAX_MESSAGE_LENGTH = 2000

_BOLD = re.compile(r"\*\*(.*?)\*\*", re.DOTALL)
_ITALIC = re.compile(r"\*(.*?)\*", re.DOTALL)
_INLINE_CODE = re.compile(r"`([^`]*)`")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKDOWN_ESCAPE = re.compile(r"\\([-_!.*`\[\]()#+>|{}=~])")
# Only formatting tags; free text such as "<owner/repository>" is kept
_HTML_TAG = re.compile(r"</?(?:b|i|u|s|em|strong|code|pre|a)(?:\s[^>]*)?>", re.IGNORECASE)


def strip_markdown(text: str) -> str:
    """Remove markdown formatting, keeping the text it wraps."""
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _INLINE_CODE.sub(r"\1", text)
    text = _LINK.sub(r"\1", text)
    return _MARKDOWN_ESCAPE.sub(r"\1", text)


def strip_html(text: str) -> str:
    """Remove HTML formatting tags and unescape entities."""
    return html.unescape(_HTML_TAG.sub("", text))


def render_plain(text: str, format_hint: FormatHint) -> str:
    """Downgrade formatted text for platforms that render neither markdown nor HTML."""
    if format_hint == FormatHint.MARKDOWN:
        return strip_markdown(text)
    if format_hint == FormatHint.HTML:
        return strip_html(text)
    return text


def split_long_message(text: str, max_length: int = SIGNAL_MAX_MESSAGE_LENGTH) -> List[str]:
    """Split a long message into multiple parts that fit within the platform limit.

    Tries to split at natural boundaries:
    1. Paragraph breaks (\\n\\n)
    2. Single newlines (\\n)
    3. Sentence boundaries (. ! ?)
    4. Word boundaries (space)
    5. Hard cut (last resort)

    Args:
        text: The message text to split
        max_length: Maximum length per message

    Returns:
        List of message parts, each at most max_length characters
    """
    if len(text) <= max_length:
        return [text]

    # Reserve space for part indicator like " (1/3)"
    effective_max = max_length - 10
    half = effective_max // 2
    parts = []
    remaining = text

    while remaining:
        if len(remaining) <= effective_max:
            parts.append(remaining)
            break

        chunk = remaining[:effective_max]
        split_pos = chunk.rfind("\n\n")
        if split_pos < half:
            split_pos = chunk.rfind("\n")
        if split_pos < half:
            split_pos = max(chunk.rfind(p) for p in (". ", "! ", "? "))
            if split_pos >= half:
                split_pos += 1
        if split_pos < half:
            split_pos = chunk.rfind(" ")
        if split_pos < half:
            split_pos = effective_max

        parts.append(remaining[:split_pos].rstrip())
        remaining = remaining[split_pos:].lstrip()

    if len(parts) > 1:
        total = len(parts)
        parts = [f"{part} ({i + 1}/{total})" for i, part in enumerate(parts)]

    return parts

"""Tests for message rendering and splitting utilities."""

import pytest

from dispatchinator.core.types import FormatHint
from dispatchinator.utils.message_utils import (
    SIGNAL_MAX_MESSAGE_LENGTH,
    render_plain,
    split_long_message,
    strip_html,
    strip_markdown,
)


class TestRenderPlain:
    """Tests for downgrading formatted replies."""

    @pytest.mark.parametrize("text,expected", [
        ("**Pong!**", "Pong!"),
        ("*italic*", "italic"),
        ("`/weather <city>`", "/weather <city>"),
        ("see [docs](https://example.com)", "see docs"),
        ("1\\. escaped", "1. escaped"),
    ])
    def test_strip_markdown(self, text, expected):
        assert strip_markdown(text) == expected

    def test_strip_html_keeps_placeholders(self):
        """Formatting tags go, angle-bracket placeholders stay."""
        text = "💡 <b>Correct format:</b>\n<code>/repo <owner/repository></code>"
        assert strip_html(text) == "💡 Correct format:\n/repo <owner/repository>"

    def test_strip_html_unescapes_entities(self):
        assert strip_html("a &lt;b&gt; &amp; c") == "a <b> & c"

    def test_plain_untouched(self):
        assert render_plain("**x**", FormatHint.PLAIN) == "**x**"

    def test_dispatches_on_hint(self):
        assert render_plain("**x**", FormatHint.MARKDOWN) == "x"
        assert render_plain("<i>x</i>", FormatHint.HTML) == "x"


class TestSplitLongMessage:
    """Tests for message splitting functionality."""

    def test_short_message_not_split(self):
        """Test that short messages are returned as-is."""
        assert split_long_message("Hello world") == ["Hello world"]

    def test_message_at_limit_not_split(self):
        """Test message exactly at limit is not split."""
        assert len(split_long_message("x" * SIGNAL_MAX_MESSAGE_LENGTH)) == 1

    def test_split_at_paragraph(self):
        """Test splitting at paragraph boundary."""
        para1 = "First paragraph. " * 50
        para2 = "Second paragraph. " * 50
        result = split_long_message(f"{para1}\n\n{para2}", max_length=1000)

        assert len(result) >= 2
        assert "(1/" in result[0]

    def test_split_at_space(self):
        """Test words are not cut in the middle."""
        result = split_long_message("word " * 500, max_length=100)

        assert len(result) >= 2
        for part in result:
            content = part.rsplit(" (", 1)[0]
            assert content.split()[-1] == "word"

    def test_hard_cut(self):
        """Test hard cut when no good boundary is found."""
        result = split_long_message("x" * 5000, max_length=1000)
        assert len(result) >= 5

    def test_parts_fit_limit(self):
        result = split_long_message("Hello world. " * 200, max_length=500)
        assert all(len(part) <= 500 for part in result)

    def test_part_indicators(self):
        """Test that part indicators are added."""
        result = split_long_message("Hello world. " * 200, max_length=500)

        total = len(result)
        assert result[0].endswith(f"(1/{total})")
        assert result[-1].endswith(f"({total}/{total})")

    def test_empty_message(self):
        assert split_long_message("") == [""]

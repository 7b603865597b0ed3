"""Tests for input sanitizing and validation."""

import pytest

from dispatchinator.core.types import FormatHint, Response
from dispatchinator.middleware import CommandValidator, ValidationMiddleware, sanitize_text


@pytest.fixture
def seen():
    return []


@pytest.fixture
def validate(seen, ctx):
    """Run a command through ValidationMiddleware and return the Response."""
    mw = ValidationMiddleware()

    def terminal(ctx, cmd):
        seen.append(cmd)
        return Response(text="handled")

    handle = mw.wrap(terminal)
    return lambda cmd: handle(ctx, cmd)


class TestSanitize:
    """Tests for sanitize_text."""

    def test_collapses_whitespace(self):
        assert sanitize_text("/weather   New\t\tYork\n") == "/weather New York"

    def test_strips_control_characters(self):
        assert sanitize_text("/ping\x00\x07") == "/ping"

    @pytest.mark.parametrize("dirty", [
        "/user <script>octocat",
        "/user <SCRIPT>octocat</Script>",
        "/user JavaScript:octocat",
    ])
    def test_removes_script_markers(self, dirty):
        assert sanitize_text(dirty) == "/user octocat"

    def test_strips_lone_surrogates(self):
        assert sanitize_text("/ping \ud800x\udfff") == "/ping x"


class TestValidationMiddleware:
    """Tests for ValidationMiddleware."""

    def test_unknown_prefix_passes_through(self, validate, seen, make_cmd):
        assert validate(make_cmd("/anything goes here")).text == "handled"
        assert len(seen) == 1

    def test_valid_repo_passes(self, validate, seen, make_cmd):
        assert validate(make_cmd("/repo microsoft/vscode")).text == "handled"

    def test_invalid_repo_rejected_with_usage(self, validate, seen, make_cmd):
        response = validate(make_cmd("/repo invalidformat"))

        assert seen == []
        assert "/repo <owner/repository>" in response.text
        assert "/repo microsoft/vscode" in response.text
        assert response.format_hint == FormatHint.HTML
        assert response.error is None

    def test_too_few_arguments(self, validate, seen, make_cmd):
        response = validate(make_cmd("/weather"))
        assert seen == []
        assert "/weather <city>" in response.text

    def test_too_many_arguments(self, validate, seen, make_cmd):
        response = validate(make_cmd("/user octo cat"))
        assert seen == []
        assert "/user <username>" in response.text

    def test_weather_with_multiword_city(self, validate, seen, make_cmd):
        assert validate(make_cmd("/weather New York")).text == "handled"

    def test_weather_rejects_digits(self, validate, seen, make_cmd):
        validate(make_cmd("/weather 12345"))
        assert seen == []

    def test_too_long_rejected(self, validate, seen, make_cmd):
        response = validate(make_cmd("/echo " + "a" * 600))
        assert seen == []
        assert "500" in response.text

    def test_length_counted_in_bytes(self, validate, seen, make_cmd):
        # 250 two-byte characters plus the prefix exceed 500 bytes
        validate(make_cmd("/echo " + "é" * 250))
        assert seen == []

    def test_length_error_names_bytes(self, validate, make_cmd):
        response = validate(make_cmd("/echo " + "a" * 600))
        assert response.text.endswith("Maximum length: 500 bytes")
        assert response.error is None

    def test_lone_surrogate_reaches_handler_sanitized(self, validate, seen, make_cmd):
        response = validate(make_cmd("/ping \ud800"))

        assert response.text == "handled"
        assert seen[0].text == "/ping"

    def test_handler_receives_sanitized_copy(self, validate, seen, make_cmd):
        original = make_cmd("/echo   hi <script>there")
        validate(original)

        assert seen[0].text == "/echo hi there"
        assert original.text == "/echo   hi <script>there"
        assert seen[0].id == original.id

    def test_prefix_match_is_case_sensitive(self, validate, seen, make_cmd):
        """Only the exact token is validated; other spellings pass through."""
        validate(make_cmd("/REPO invalidformat"))
        assert len(seen) == 1

    def test_custom_validator(self, ctx, make_cmd):
        mw = ValidationMiddleware(validators={})
        mw.add_validator("/num", {
            "pattern": r"/num \d+",
            "min_tokens": 2,
            "max_tokens": 2,
            "description": "A number is required",
            "usage": "/num <n>",
        })
        handle = mw.wrap(lambda c, m: Response(text="ok"))

        assert handle(ctx, make_cmd("/num 42")).text == "ok"
        assert "/num <n>" in handle(ctx, make_cmd("/num x")).text

    def test_validator_soundness(self, ctx, make_cmd):
        """No command failing its pattern reaches the handler."""
        mw = ValidationMiddleware()
        reached = []
        handle = mw.wrap(lambda c, m: reached.append(m.text) or Response(text="ok"))

        samples = [
            "/repo a/b", "/repo a", "/repo a/b/c", "/repo !/?", "/user octocat", "/user oc@cat",
            "/weather Paris", "/weather P4ris", "/weather x", "/weather O'Hare",
        ]
        for text in samples:
            handle(ctx, make_cmd(text))

        validators = mw.validators
        for text in reached:
            prefix = text.split()[0]
            assert validators[prefix].pattern.fullmatch(text)

    def test_compiles_string_patterns(self):
        validator = CommandValidator(pattern=r"/x \w+", min_tokens=2, max_tokens=2, description="", usage="")
        assert validator.pattern.fullmatch("/x abc")

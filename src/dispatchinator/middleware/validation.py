"""Input sanitizing and per-command argument validation."""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Pattern, Union

from ..core.types import Command, FormatHint, RequestContext, Response
from ..logging import StructuredLogger, get_structured_logger
from .base import HandlerFunc, Middleware

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ud800-\udfff]")
_WHITESPACE = re.compile(r"\s+")
_DANGEROUS = re.compile(r"<script>|</script>|javascript:", re.IGNORECASE)


def sanitize_text(text: str) -> str:
    """Remove control characters, lone surrogates and script markers, then collapse whitespace."""
    text = _CONTROL_CHARS.sub("", text)
    text = _DANGEROUS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


@dataclass
class CommandValidator:
    """Validation rule for one command prefix.

    Token counts include the command token itself, so ``min_tokens=2``
    means "at least one argument".

    Attributes:
        pattern: Regular expression the whole sanitized text must match
        min_tokens: Minimum number of whitespace-separated tokens
        max_tokens: Maximum number of whitespace-separated tokens
        description: What the command expects, shown on rejection
        usage: Usage hint (e.g., "/repo <owner/repository>")
        example: Example invocation shown on pattern mismatch
    """
    pattern: Pattern
    min_tokens: int
    max_tokens: int
    description: str
    usage: str
    example: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.pattern, str):
            self.pattern = re.compile(self.pattern)

    def rejection(self, include_example: bool = False) -> Response:
        text = f"❌ {self.description}\n\n💡 <b>Correct format:</b>\n<code>{self.usage}</code>"
        if include_example and self.example:
            text += f"\n\n📝 <b>Example:</b>\n<code>{self.example}</code>"
        return Response(text=text, format_hint=FormatHint.HTML)


def default_validators() -> Dict[str, CommandValidator]:
    """Validators for the read-heavy lookup commands."""
    return {
        "/weather": CommandValidator(
            pattern=r"^/weather\s+[a-zA-Z\s\-']{2,50}$",
            min_tokens=2,
            max_tokens=5,
            description="City name is required (letters only)",
            usage="/weather <city>",
            example="/weather London",
        ),
        "/repo": CommandValidator(
            pattern=r"^/repo\s+[a-zA-Z0-9\-_.]+/[a-zA-Z0-9\-_.]+$",
            min_tokens=2,
            max_tokens=2,
            description="Repository must be given as owner/repository",
            usage="/repo <owner/repository>",
            example="/repo microsoft/vscode",
        ),
        "/user": CommandValidator(
            pattern=r"^/user\s+[a-zA-Z0-9\-_.]+$",
            min_tokens=2,
            max_tokens=2,
            description="A GitHub username is required",
            usage="/user <username>",
            example="/user octocat",
        ),
    }


class ValidationMiddleware(Middleware):
    """Sanitizes every command and rejects malformed ones.

    Rejections are ordinary Responses without an error: bad input is the
    user's fault and counts as a successful dispatch.
    """

    name = "validation"

    def __init__(
        self,
        validators: Dict[str, CommandValidator] = None,
        max_length: int = 500,
        logger: StructuredLogger = None,
    ):
        self.validators = default_validators() if validators is None else dict(validators)
        self.max_length = max_length
        self.log = logger or get_structured_logger(__name__)

    def add_validator(self, prefix: str, validator: Union[CommandValidator, dict]) -> None:
        if isinstance(validator, dict):
            validator = CommandValidator(**validator)
        self.validators[prefix] = validator

    def wrap(self, next_: HandlerFunc) -> HandlerFunc:
        def handle(ctx: RequestContext, cmd: Command) -> Response:
            text = sanitize_text(cmd.text)
            if text != cmd.text:
                cmd = cmd.with_text(text)

            length = len(text.encode("utf-8"))
            if length > self.max_length:
                self.log.warning(
                    "Command too long",
                    user_id=cmd.user.id,
                    command_length=length,
                    max_length=self.max_length,
                )
                return Response(
                    text=f"❌ Command is too long. Maximum length: {self.max_length} bytes",
                    format_hint=FormatHint.HTML,
                )

            rejection = self.validate(cmd)
            if rejection is not None:
                return rejection

            return next_(ctx, cmd)

        return handle

    def validate(self, cmd: Command) -> Optional[Response]:
        """Return a rejection Response, or None when ``cmd`` is acceptable."""
        tokens = cmd.text.split()
        if not tokens:
            return None

        prefix = tokens[0]
        validator = self.validators.get(prefix)
        if validator is None:
            return None

        if len(tokens) < validator.min_tokens:
            self.log.warning(
                "Command has too few arguments",
                user_id=cmd.user.id,
                prefix=prefix,
                args_provided=len(tokens) - 1,
                min_required=validator.min_tokens - 1,
            )
            return validator.rejection()

        if len(tokens) > validator.max_tokens:
            self.log.warning(
                "Command has too many arguments",
                user_id=cmd.user.id,
                prefix=prefix,
                args_provided=len(tokens) - 1,
                max_allowed=validator.max_tokens - 1,
            )
            return validator.rejection()

        if not validator.pattern.fullmatch(cmd.text):
            self.log.warning(
                "Command pattern validation failed",
                user_id=cmd.user.id,
                prefix=prefix,
            )
            return validator.rejection(include_example=True)

        self.log.debug("Command validation passed", user_id=cmd.user.id, prefix=prefix)
        return None

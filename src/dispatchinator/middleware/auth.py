"""Ensures every command comes from a registered user."""

from ..core.ports import UserService
from ..core.types import Command, FormatHint, RequestContext, Response
from ..errors import RegistrationError
from ..logging import StructuredLogger, get_structured_logger
from .base import HandlerFunc, Middleware

REGISTRATION_FAILED_TEXT = "❌ Could not register you. Please try again later."


class AuthMiddleware(Middleware):
    """Looks the sender up in the user service, registering unknown users.

    The authoritative User is attached to the context with
    ``ctx.with_user()``; later stages read it from there.
    """

    name = "auth"

    def __init__(self, users: UserService, logger: StructuredLogger = None):
        self.users = users
        self.log = logger or get_structured_logger(__name__)

    def wrap(self, next_: HandlerFunc) -> HandlerFunc:
        def handle(ctx: RequestContext, cmd: Command) -> Response:
            ctx.check()
            snapshot = cmd.user

            try:
                user = self.users.get(snapshot.id)
            except Exception as e:
                self.log.warning("User lookup failed, attempting registration", user_id=snapshot.id, error=str(e))
                user = None

            if user is None:
                try:
                    user = self.users.register(
                        snapshot.id,
                        snapshot.username,
                        snapshot.first_name,
                        snapshot.last_name,
                    )
                except Exception as e:
                    self.log.error("Failed to register user", user_id=snapshot.id, error=str(e))
                    error = RegistrationError(f"registration failed for user {snapshot.id}: {e}")
                    error.__cause__ = e
                    return Response(
                        text=REGISTRATION_FAILED_TEXT,
                        format_hint=FormatHint.HTML,
                        error=error,
                    )
                self.log.info("New user registered", user_id=snapshot.id)
            else:
                try:
                    self.users.touch(snapshot.id)
                except Exception as e:
                    self.log.warning("Failed to update user activity", user_id=snapshot.id, error=str(e))

            return next_(ctx.with_user(user), cmd)

        return handle

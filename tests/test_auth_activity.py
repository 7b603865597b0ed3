"""Tests for the auth and activity-log middleware."""

import threading
from unittest.mock import MagicMock

import pytest

from dispatchinator.core.types import Response, User
from dispatchinator.errors import RegistrationError
from dispatchinator.middleware import REGISTRATION_FAILED_TEXT, ActivityMiddleware, AuthMiddleware


@pytest.fixture
def seen_ctx():
    return []


@pytest.fixture
def auth_handle(user_service, seen_ctx):
    def terminal(ctx, cmd):
        seen_ctx.append(ctx)
        return Response(text="ok")

    return AuthMiddleware(user_service).wrap(terminal)


class TestAuthMiddleware:
    """Tests for AuthMiddleware."""

    def test_registers_unknown_user(self, auth_handle, user_service, seen_ctx, ctx, make_cmd):
        user_service.register_language = "uz"
        auth_handle(ctx, make_cmd("/start", user_id="42", first_name="Ali"))

        assert user_service.registered == ["42"]
        assert seen_ctx[0].user.language == "uz"
        assert seen_ctx[0].user.first_name == "Ali"

    def test_known_user_is_touched(self, auth_handle, user_service, seen_ctx, ctx, make_cmd):
        user_service.users["7"] = User(id="7", language="de")
        auth_handle(ctx, make_cmd("/start", user_id="7"))

        assert user_service.registered == []
        assert user_service.touched == ["7"]
        assert seen_ctx[0].user.language == "de"

    def test_context_user_comes_from_service(self, auth_handle, user_service, seen_ctx, ctx, make_cmd):
        """The handler sees the stored record, not the platform snapshot."""
        user_service.users["7"] = User(id="7", first_name="Stored")
        cmd = make_cmd("/start", user_id="7", first_name="Snapshot")
        auth_handle(ctx, cmd)

        assert seen_ctx[0].user.first_name == "Stored"
        assert cmd.user.first_name == "Snapshot"

    def test_original_context_not_mutated(self, auth_handle, seen_ctx, ctx, make_cmd):
        auth_handle(ctx, make_cmd("/start"))
        assert ctx.user is None
        assert seen_ctx[0].deadline == ctx.deadline

    def test_registration_failure_short_circuits(self, auth_handle, user_service, seen_ctx, ctx, make_cmd):
        user_service.fail_register = True
        response = auth_handle(ctx, make_cmd("/start"))

        assert seen_ctx == []
        assert response.text == REGISTRATION_FAILED_TEXT
        assert isinstance(response.error, RegistrationError)

    def test_lookup_failure_falls_back_to_register(self, auth_handle, user_service, seen_ctx, ctx, make_cmd):
        user_service.fail_get = True
        auth_handle(ctx, make_cmd("/start", user_id="9"))

        assert user_service.registered == ["9"]
        assert len(seen_ctx) == 1

    def test_touch_failure_is_ignored(self, auth_handle, user_service, seen_ctx, ctx, make_cmd):
        user_service.users["7"] = User(id="7")
        user_service.fail_touch = True

        assert auth_handle(ctx, make_cmd("/start", user_id="7")).text == "ok"


class TestActivityMiddleware:
    """Tests for ActivityMiddleware."""

    def test_logs_successful_dispatch(self, activity_store, ctx, make_cmd):
        mw = ActivityMiddleware(activity_store)
        handle = mw.wrap(lambda c, m: Response(text="ok"))
        handle(ctx, make_cmd("/start", user_id="42"))
        mw.close()

        assert len(activity_store.entries) == 1
        user_id, text, at = activity_store.entries[0]
        assert (user_id, text) == ("42", "/start")
        assert at.tzinfo is not None

    def test_skips_failed_dispatch(self, activity_store, ctx, make_cmd):
        mw = ActivityMiddleware(activity_store)
        handle = mw.wrap(lambda c, m: Response(text="x", error=RuntimeError("boom")))
        handle(ctx, make_cmd("/start"))
        mw.close()

        assert activity_store.entries == []

    def test_store_failure_is_logged_and_dropped(self, activity_store, ctx, make_cmd):
        activity_store.fail = True
        mw = ActivityMiddleware(activity_store)
        handle = mw.wrap(lambda c, m: Response(text="ok"))

        assert handle(ctx, make_cmd("/start")).text == "ok"
        assert activity_store.logged.wait(2)
        mw.close()

    def test_does_not_block_response(self, ctx, make_cmd):
        store = MagicMock()
        release = threading.Event()
        store.log.side_effect = lambda *a: release.wait(5)

        mw = ActivityMiddleware(store)
        handle = mw.wrap(lambda c, m: Response(text="ok"))
        assert handle(ctx, make_cmd("/start")).text == "ok"

        release.set()
        mw.close()
        store.log.assert_called_once()

    def test_dispatch_after_close_keeps_response(self, activity_store, ctx, make_cmd):
        mw = ActivityMiddleware(activity_store)
        handle = mw.wrap(lambda c, m: Response(text="ok"))
        mw.close()

        response = handle(ctx, make_cmd("/start"))

        assert response.text == "ok"
        assert response.error is None
        assert activity_store.entries == []
        assert mw.submit("1", "/start", None) is None

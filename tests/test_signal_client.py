"""Tests for the signal-cli daemon client."""

import json
from unittest.mock import Mock, patch

import pytest
import requests

from dispatchinator.adapters import SignalClient
from dispatchinator.adapters.signal_client import SignalRPCError


@pytest.fixture
def client():
    """Create a SignalClient for testing."""
    return SignalClient("+1234567890")


@pytest.fixture
def rpc_ok():
    return {"jsonrpc": "2.0", "id": 1, "result": {"timestamp": 1700000000000}}


def rpc_response(body):
    response = Mock()
    response.json.return_value = body
    response.raise_for_status = Mock()
    return response


def group_envelope(text="/ping", mentions=None):
    return {
        "source": "+1111111111",
        "sourceUuid": "user-uuid-1",
        "sourceNumber": "+1111111111",
        "sourceName": "Ana Lima",
        "timestamp": 1700000000000,
        "dataMessage": {
            "timestamp": 1700000000000,
            "message": text,
            "groupInfo": {"groupId": "group-123", "groupName": "Test Group"},
            "mentions": mentions or [],
        },
    }


class TestSignalClientInit:
    """Tests for SignalClient initialization."""

    def test_default_urls(self, client):
        assert client.rpc_url == "http://localhost:8080/api/v1/rpc"
        assert client.events_url == "http://localhost:8080/api/v1/events"

    def test_custom_host_port(self):
        client = SignalClient("+1234567890", host="signal-daemon", port=9090)
        assert client.rpc_url == "http://signal-daemon:9090/api/v1/rpc"


class TestSignalClientRPC:
    """Tests for JSON-RPC calls."""

    def test_call_rpc_success(self, client, rpc_ok):
        """Test a successful RPC call returns the result."""
        with patch("requests.post", return_value=rpc_response(rpc_ok)) as mock_post:
            result = client._call_rpc("testMethod", {"param": "value"})

        assert result == {"timestamp": 1700000000000}
        assert mock_post.call_args[0][0] == client.rpc_url
        payload = mock_post.call_args[1]["json"]
        assert payload["method"] == "testMethod"
        assert payload["params"] == {"param": "value"}

    def test_call_rpc_error(self, client):
        """Test an RPC error object raises SignalRPCError."""
        body = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32600, "message": "Invalid request"}}
        with patch("requests.post", return_value=rpc_response(body)):
            with pytest.raises(SignalRPCError) as exc_info:
                client._call_rpc("badMethod")

        assert exc_info.value.code == -32600
        assert "Invalid request" in str(exc_info.value)

    def test_call_rpc_increments_id(self, client, rpc_ok):
        """Test that request ids increase."""
        with patch("requests.post", return_value=rpc_response(rpc_ok)) as mock_post:
            client._call_rpc("a")
            client._call_rpc("b")

        ids = [c[1]["json"]["id"] for c in mock_post.call_args_list]
        assert ids[1] > ids[0]

    def test_is_daemon_running(self, client, rpc_ok):
        with patch("requests.post", return_value=rpc_response(rpc_ok)):
            assert client.is_daemon_running() is True

    def test_is_daemon_running_connection_error(self, client):
        with patch("requests.post", side_effect=requests.ConnectionError("refused")):
            assert client.is_daemon_running() is False


class TestSignalClientMessaging:
    """Tests for sending messages."""

    def test_send_to_group(self, client):
        with patch.object(client, "_call_rpc", return_value={}) as rpc:
            assert client.send_message("Hello group!", group_id="group-123") is True

        method, params = rpc.call_args[0]
        assert method == "send"
        assert params["groupId"] == "group-123"
        assert params["message"] == "Hello group!"

    def test_send_to_recipient(self, client):
        with patch.object(client, "_call_rpc", return_value={}) as rpc:
            assert client.send_message("Hi", recipient="uuid-123") is True

        assert rpc.call_args[0][1]["recipient"] == ["uuid-123"]

    def test_send_without_target_raises(self, client):
        with pytest.raises(ValueError):
            client.send_message("Hello!")

    def test_send_failure_returns_false(self, client):
        with patch.object(client, "_call_rpc", side_effect=SignalRPCError(-1, "boom")):
            assert client.send_message("Hi", recipient="uuid-123") is False


class TestSignalClientIdentity:
    """Tests for resolving the bot's own UUID."""

    def test_uuid_from_group_membership(self, client):
        groups = [{"id": "g", "members": [{"number": "+1234567890", "uuid": "bot-uuid"}]}]
        with patch.object(client, "list_groups", return_value=groups):
            assert client.get_own_uuid() == "bot-uuid"

    def test_uuid_from_user_status(self, client):
        status = [{"number": "+1234567890", "uuid": "status-uuid"}]
        with patch.object(client, "list_groups", return_value=[]), \
                patch.object(client, "_call_rpc", return_value=status):
            assert client.get_own_uuid() == "status-uuid"

    def test_uuid_lookup_failure(self, client):
        with patch.object(client, "list_groups", side_effect=requests.ConnectionError("down")):
            assert client.get_own_uuid() is None


class TestSignalClientParsing:
    """Tests for envelope parsing and SSE streaming."""

    def test_parse_group_envelope(self, client):
        mentions = [{"start": 0, "length": 1, "uuid": "bot-uuid"}]
        msg = client._parse_envelope(group_envelope("\uFFFC /ping", mentions))

        assert msg.source_uuid == "user-uuid-1"
        assert msg.source_name == "Ana Lima"
        assert msg.group_id == "group-123"
        assert msg.group_name == "Test Group"
        assert msg.mentions == mentions

    def test_parse_receipt_envelope(self, client):
        assert client._parse_envelope({"source": "+1", "receiptMessage": {}}) is None

    def test_parse_source_object(self, client):
        envelope = group_envelope()
        del envelope["sourceUuid"], envelope["sourceNumber"]
        envelope["source"] = {"uuid": "obj-uuid", "number": "+2"}

        msg = client._parse_envelope(envelope)
        assert msg.source_uuid == "obj-uuid"
        assert msg.source_number == "+2"

    def test_stream_messages(self, client):
        events = [
            Mock(data=json.dumps({"envelope": group_envelope("/help")})),
            Mock(data=""),
            Mock(data="not json"),
            Mock(data=json.dumps({"envelope": {"receiptMessage": {}}})),
        ]
        response = Mock()
        client._running = True

        with patch("requests.get", return_value=response) as mock_get, \
                patch("sseclient.SSEClient") as mock_sse:
            mock_sse.return_value.events.return_value = iter(events)
            messages = list(client.stream_messages())

        assert [m.message for m in messages] == ["/help"]
        assert mock_get.call_args[0][0] == client.events_url
        response.close.assert_called_once()

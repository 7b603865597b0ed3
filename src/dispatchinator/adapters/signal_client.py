"""signal-cli daemon client.

Two communication channels:
- SSE (GET /api/v1/events) - Real-time message reception
- JSON-RPC (POST /api/v1/rpc) - Sending messages
"""

import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generator, List, Optional

import requests
import sseclient

from ..logging import anonymize_uuid, get_logger

logger = get_logger(__name__)


class SignalRPCError(Exception):
    """The daemon answered a JSON-RPC call with an error object."""

    def __init__(self, code: Any, message: str):
        super().__init__(f"RPC error {code}: {message}")
        self.code = code


@dataclass
class SignalMessage:
    """Received Signal message."""
    timestamp: int
    source_uuid: Optional[str]
    source_number: Optional[str]
    source_name: Optional[str]
    group_id: Optional[str]
    group_name: Optional[str]
    message: Optional[str]
    mentions: List[Dict[str, Any]] = field(default_factory=list)
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    raw_envelope: Dict[str, Any] = field(default_factory=dict)


class SignalClient:
    """Client for a signal-cli daemon running in HTTP mode.

    Example:
        client = SignalClient("+1234567890", "signal-daemon", 8080)
        client.add_handler(lambda msg: print(msg.message))
        client.start_streaming()
    """

    RPC_TIMEOUT = 30

    def __init__(self, phone_number: str, host: str = "localhost", port: int = 8080):
        """Initialize the client.

        Args:
            phone_number: The registered Signal phone number
            host: Hostname where signal-cli daemon is running
            port: Port number of the daemon's HTTP API
        """
        self.phone_number = phone_number
        self.host = host
        self.port = port
        self.rpc_url = f"http://{host}:{port}/api/v1/rpc"
        self.events_url = f"http://{host}:{port}/api/v1/events"
        self._handlers: List[Callable[[SignalMessage], None]] = []
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._request_id = 0
        self._rpc_lock = threading.Lock()

    # =========================================================================
    # JSON-RPC
    # =========================================================================

    def _call_rpc(self, method: str, params: dict = None) -> Any:
        """Make a JSON-RPC 2.0 call to the daemon.

        Raises:
            requests.RequestException: On transport or HTTP errors
            SignalRPCError: If the daemon returns an error object
        """
        with self._rpc_lock:
            self._request_id += 1
            request_id = self._request_id

        payload = {"jsonrpc": "2.0", "method": method, "id": request_id}
        if params:
            payload["params"] = params

        response = requests.post(self.rpc_url, json=payload, timeout=self.RPC_TIMEOUT)
        response.raise_for_status()
        result = response.json()

        if "error" in result:
            error = result["error"]
            raise SignalRPCError(error.get("code"), error.get("message"))
        return result.get("result")

    def is_daemon_running(self) -> bool:
        """Check if the daemon is reachable."""
        try:
            self._call_rpc("listGroups", {"account": self.phone_number})
            return True
        except (requests.RequestException, SignalRPCError, ValueError) as e:
            logger.debug(f"Daemon not accessible: {e}")
            return False

    def send_message(self, message: str, group_id: str = None, recipient: str = None) -> bool:
        """Send a text message to a group or a single recipient.

        Returns:
            True if the daemon accepted the message
        """
        if group_id:
            params = {"account": self.phone_number, "message": message, "groupId": group_id}
        elif recipient:
            params = {"account": self.phone_number, "message": message, "recipient": [recipient]}
        else:
            raise ValueError("Must specify either group_id or recipient")

        try:
            self._call_rpc("send", params)
        except (requests.RequestException, SignalRPCError, ValueError) as e:
            logger.error(f"Failed to send message: {e}")
            return False

        logger.debug(f"Message sent to {'group' if group_id else anonymize_uuid(recipient)}")
        return True

    def list_groups(self) -> List[Dict[str, Any]]:
        result = self._call_rpc("listGroups", {"account": self.phone_number})
        return result if result else []

    def get_own_uuid(self) -> Optional[str]:
        """Get the bot's own UUID.

        Mentions carry the UUID shown in group membership, so that is
        checked first; getUserStatus is the fallback.
        """
        try:
            for group in self.list_groups():
                for member in group.get("members", []):
                    if member.get("number") == self.phone_number and member.get("uuid"):
                        return member["uuid"]

            result = self._call_rpc("getUserStatus", {
                "account": self.phone_number,
                "recipient": [self.phone_number],
            })
            for user in result or []:
                if user.get("number") == self.phone_number:
                    return user.get("uuid")
            logger.warning("Could not find UUID for phone number")
        except (requests.RequestException, SignalRPCError, ValueError) as e:
            logger.error(f"Failed to get bot UUID: {e}")
        return None

    # =========================================================================
    # SSE streaming
    # =========================================================================

    def add_handler(self, handler: Callable[[SignalMessage], None]) -> None:
        self._handlers.append(handler)

    def _parse_envelope(self, envelope: dict) -> Optional[SignalMessage]:
        """Parse a signal-cli envelope; None for envelopes without a data message."""
        data_message = envelope.get("dataMessage")
        if not isinstance(data_message, dict):
            return None

        source = envelope.get("source")
        if isinstance(source, dict):
            source_uuid = envelope.get("sourceUuid") or source.get("uuid")
            source_number = envelope.get("sourceNumber") or source.get("number")
        else:
            source_uuid = envelope.get("sourceUuid") or source
            source_number = envelope.get("sourceNumber")

        group_info = data_message.get("groupInfo") or {}
        return SignalMessage(
            timestamp=envelope.get("timestamp", 0),
            source_uuid=source_uuid,
            source_number=source_number,
            source_name=envelope.get("sourceName"),
            group_id=group_info.get("groupId"),
            group_name=group_info.get("groupName") or group_info.get("name"),
            message=data_message.get("message"),
            mentions=data_message.get("mentions") or [],
            attachments=data_message.get("attachments") or [],
            raw_envelope=envelope,
        )

    def stream_messages(self) -> Generator[SignalMessage, None, None]:
        """Stream messages via SSE.

        Yields:
            SignalMessage objects as they arrive
        """
        logger.info(f"Connecting to SSE stream at {self.host}:{self.port}")
        response = requests.get(self.events_url, stream=True, timeout=None)
        try:
            response.raise_for_status()
            client = sseclient.SSEClient(response)
            logger.info("SSE connected, waiting for messages...")

            for event in client.events():
                if not self._running:
                    break
                if not event.data:
                    continue
                try:
                    data = json.loads(event.data)
                except json.JSONDecodeError as e:
                    logger.warning(f"Failed to decode SSE event: {e}")
                    continue
                msg = self._parse_envelope(data.get("envelope", data))
                if msg:
                    yield msg
        finally:
            response.close()

    def start_streaming(self) -> None:
        """Start SSE streaming in a background thread, reconnecting with backoff."""
        if self._running:
            return
        self._running = True

        def stream_loop():
            reconnect_delay = 1
            while self._running:
                try:
                    for msg in self.stream_messages():
                        if not self._running:
                            break
                        for handler in self._handlers:
                            try:
                                handler(msg)
                            except Exception as e:
                                logger.error(f"Handler error: {e}")
                    reconnect_delay = 1
                except (requests.RequestException, OSError) as e:
                    logger.error(f"SSE error: {e}")
                    if self._running:
                        time.sleep(reconnect_delay)
                        reconnect_delay = min(reconnect_delay * 2, 60)

        self._thread = threading.Thread(target=stream_loop, name="signal-sse", daemon=True)
        self._thread.start()
        logger.info("SSE streaming started")

    def stop_streaming(self) -> None:
        self._running = False
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("SSE streaming stopped")

"""Signal adapter: signal-cli messages in, pipeline replies out."""

import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..core.pipeline import CommandPipeline
from ..core.types import Chat, ChatKind, Command, Response, User
from ..logging import get_logger
from ..utils.message_utils import SIGNAL_MAX_MESSAGE_LENGTH, render_plain, split_long_message
from .base import PlatformAdapter
from .signal_client import SignalClient, SignalMessage

logger = get_logger(__name__)


class SignalAdapter(PlatformAdapter[SignalMessage]):
    """Runs the command pipeline behind a signal-cli daemon.

    Direct messages are always processed. Group messages are processed
    only when the bot is @mentioned; the mention placeholder is removed
    before the text becomes a Command. Replies are downgraded to plain text
    (Signal renders neither markdown nor HTML) and split to fit Signal's
    message limit.
    """

    platform = "signal"

    # Unicode object replacement character used by Signal for @mentions
    MENTION_PLACEHOLDER = "\uFFFC"
    DEDUP_LIMIT = 1000

    def __init__(
        self,
        pipeline: CommandPipeline,
        client: SignalClient,
        request_timeout: float = None,
        max_workers: int = PlatformAdapter.DEFAULT_WORKERS,
    ):
        super().__init__(pipeline, request_timeout=request_timeout, max_workers=max_workers)
        self.client = client
        self.bot_uuid: Optional[str] = None
        self._running = False
        self._processed: set = set()
        self._processed_lock = threading.Lock()

    # ==================== Mentions ====================

    def is_bot_mentioned(self, mentions: List[Dict]) -> bool:
        """Check if the bot is @mentioned (by UUID or phone number)."""
        if not mentions:
            return False
        for mention in mentions:
            if self.bot_uuid and mention.get("uuid") == self.bot_uuid:
                return True
            if mention.get("number") == self.client.phone_number:
                return True
        return False

    def extract_command_text(self, text: str, mentions: List[Dict]) -> str:
        """Remove the bot's @mention placeholders from ``text``."""
        if not text:
            return ""
        if not mentions:
            return text.strip()

        bot_mentions = [
            m for m in mentions
            if (self.bot_uuid and m.get("uuid") == self.bot_uuid)
            or m.get("number") == self.client.phone_number
        ]
        # Reverse order keeps earlier offsets valid
        bot_mentions.sort(key=lambda m: m.get("start", 0), reverse=True)

        result = text
        for mention in bot_mentions:
            start = mention.get("start", 0)
            length = mention.get("length", 1)
            result = result[:start] + result[start + length:]
        return result.replace(self.MENTION_PLACEHOLDER, " ").strip()

    # ==================== PlatformAdapter ====================

    def _seen(self, msg: SignalMessage) -> bool:
        key = (msg.timestamp, msg.source_uuid, msg.group_id or "dm")
        with self._processed_lock:
            if key in self._processed:
                return True
            if len(self._processed) >= self.DEDUP_LIMIT:
                self._processed.clear()
            self._processed.add(key)
            return False

    def to_command(self, msg: SignalMessage) -> Optional[Command]:
        if not msg.message:
            return None
        if (self.bot_uuid and msg.source_uuid == self.bot_uuid) or msg.source_number == self.client.phone_number:
            return None
        if self._seen(msg):
            return None

        if msg.group_id:
            if not self.is_bot_mentioned(msg.mentions):
                return None
            text = self.extract_command_text(msg.message, msg.mentions)
            chat = Chat(id=msg.group_id, kind=ChatKind.GROUP, title=msg.group_name)
        else:
            text = msg.message.strip()
            chat = Chat(id=msg.source_uuid or msg.source_number, kind=ChatKind.PRIVATE)

        if not text.startswith("/"):
            return None

        sender = msg.source_uuid or msg.source_number
        if not sender:
            return None

        if msg.timestamp:
            received = datetime.fromtimestamp(msg.timestamp / 1000, tz=timezone.utc)
        else:
            received = datetime.now(timezone.utc)

        first, _, last = (msg.source_name or "").partition(" ")
        return Command(
            text=text,
            user=User(id=sender, username=msg.source_number or "", first_name=first, last_name=last),
            chat=chat,
            timestamp=received,
            attachments=list(msg.attachments),
        )

    def deliver(self, msg: SignalMessage, response: Response) -> bool:
        text = render_plain(response.text, response.format_hint)
        delivered = True
        for part in split_long_message(text, SIGNAL_MAX_MESSAGE_LENGTH):
            if msg.group_id:
                ok = self.client.send_message(part, group_id=msg.group_id)
            else:
                ok = self.client.send_message(part, recipient=msg.source_uuid or msg.source_number)
            delivered = delivered and ok
        return delivered

    # ==================== Main loop ====================

    def run(self) -> None:
        """Connect to the daemon and process messages until interrupted."""
        logger.info("Starting Signal adapter...")

        self._running = True
        if not self._wait_for_daemon():
            logger.error("Failed to connect to Signal daemon")
            self._running = False
            return

        self.bot_uuid = self.client.get_own_uuid()
        if self.bot_uuid:
            logger.info(f"Bot UUID: {self.bot_uuid}")
        else:
            logger.warning("Could not get bot UUID - @mention detection may not work")

        self.client.add_handler(self.submit)
        self.client.start_streaming()
        logger.info("Signal adapter is now running. Press Ctrl+C to stop.")

        try:
            while self._running:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Received interrupt, shutting down...")
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop streaming and wait for in-flight commands."""
        self._running = False
        self.client.stop_streaming()
        self.close()
        logger.info("Signal adapter stopped.")

    def _wait_for_daemon(self, max_attempts: int = 30, delay: float = 2.0) -> bool:
        for attempt in range(max_attempts):
            if not self._running:
                return False
            if self.client.is_daemon_running():
                logger.info("Connected to Signal daemon")
                return True
            logger.info(f"Waiting for Signal daemon... (attempt {attempt + 1}/{max_attempts})")
            time.sleep(delay)
        return False

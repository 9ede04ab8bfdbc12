"""
In-memory message feed.

A bounded FIFO of CanonicalMessages with broadcast fan-out. The oldest
message is evicted once capacity is reached; reads never reorder or promote
entries. Subscribers only see messages added after they subscribe.

Messages live only in process memory and are lost on restart. add_message()
is the single write path, so a persistence hook belongs there.
"""
import logging
from collections import deque
from typing import Callable, Optional

from socialhub.models.schemas import CanonicalMessage

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000

Subscriber = Callable[[CanonicalMessage], None]


class MessageBus:
    """Bounded, append-only feed with publish/subscribe."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("MessageBus capacity must be positive")
        self.capacity = capacity
        self._messages: deque[CanonicalMessage] = deque(maxlen=capacity)
        self._subscribers: list[Subscriber] = []

    def __len__(self) -> int:
        return len(self._messages)

    # --- Publish / subscribe ---

    def add_message(self, message: CanonicalMessage) -> None:
        """Append a message (evicting the oldest when full) and broadcast it."""
        self._messages.append(message)
        logger.info(
            f"New message received: platform={message.platform} "
            f"message_id={message.message_id}"
        )

        for callback in list(self._subscribers):
            try:
                callback(message)
            except Exception as e:
                logger.error(f"Message subscriber failed: {e}", exc_info=True)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a live subscriber. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # --- Reads ---

    def get_messages(self, limit: int = 50) -> list[CanonicalMessage]:
        """Most recent `limit` messages, oldest first."""
        if limit <= 0:
            return []
        return list(self._messages)[-limit:]

    def get_messages_by_platform(self, platform: str, limit: int = 50) -> list[CanonicalMessage]:
        if limit <= 0:
            return []
        return [m for m in self._messages if m.platform == platform][-limit:]

    def get_forwarded_messages(self, limit: int = 50) -> list[CanonicalMessage]:
        if limit <= 0:
            return []
        return [m for m in self._messages if m.is_forwarded][-limit:]

    def get_messages_forwarded_from(self, user: str, limit: int = 50) -> list[CanonicalMessage]:
        """Forwarded messages whose original sender matches a user id or username."""
        if limit <= 0:
            return []
        matches = [
            m for m in self._messages
            if m.is_forwarded
            and m.forwarded_from is not None
            and user in (m.forwarded_from.user_id, m.forwarded_from.username)
        ]
        return matches[-limit:]

    def find_message(self, message_id: str, platform: Optional[str] = None) -> Optional[CanonicalMessage]:
        """Latest message with the given id (optionally restricted to a platform)."""
        for message in reversed(self._messages):
            if message.message_id == message_id and (platform is None or message.platform == platform):
                return message
        return None

    def clear_messages(self) -> None:
        """Drop all history. Live subscriptions are kept."""
        self._messages.clear()
        logger.info("Messages cleared")

import logging
import threading
from typing import Callable, Dict, List, Tuple

from shared.events import Event
from shared.pubsub import PubSubClient, table_channel

logger = logging.getLogger(__name__)

Key = Tuple[str, str]


class SubscriptionRegistry:
    """
    Live change-feed subscriptions, one per (table_id, purpose).

    Purposes are collection names such as "matches" or "queue_entries".
    Starting a key that is already active replaces its handler. The
    registry only mirrors data for display; nothing in the engine
    depends on it.
    """

    def __init__(self, pubsub: PubSubClient):
        self.pubsub = pubsub
        self._subscriptions: Dict[Key, str] = {}
        self._lock = threading.Lock()

    def start(self, table_id: str, purpose: str, handler: Callable[[Event], None]) -> str:
        channel = table_channel(table_id, purpose)
        with self._lock:
            if (table_id, purpose) in self._subscriptions:
                logger.debug(f"Replacing subscription {purpose} for table {table_id}")
                self.pubsub.unsubscribe(channel)
            self.pubsub.subscribe(channel, handler)
            self._subscriptions[(table_id, purpose)] = channel
        self.pubsub.start_listening()
        logger.info(f"Subscribed to {channel}")
        return channel

    def stop(self, table_id: str, purpose: str) -> bool:
        with self._lock:
            channel = self._subscriptions.pop((table_id, purpose), None)
            if channel is None:
                return False
            self.pubsub.unsubscribe(channel)
        logger.info(f"Unsubscribed from {channel}")
        return True

    def stop_table(self, table_id: str) -> int:
        keys = [k for k in self.active() if k[0] == table_id]
        for tid, purpose in keys:
            self.stop(tid, purpose)
        return len(keys)

    def stop_all(self) -> int:
        keys = self.active()
        for table_id, purpose in keys:
            self.stop(table_id, purpose)
        return len(keys)

    def active(self) -> List[Key]:
        with self._lock:
            return list(self._subscriptions)

    def __contains__(self, key: Key) -> bool:
        return key in self._subscriptions

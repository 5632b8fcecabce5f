import os
import logging
import redis
from typing import Callable, Dict
from .events import Event

logger = logging.getLogger(__name__)


def table_channel(table_id: str, topic: str = "events") -> str:
    return f"table:{table_id}:{topic}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}:notifications"


class PubSubClient:
    """
    Redis pub/sub for table events and user notifications.

    With enabled=False nothing is sent to Redis: events are logged and
    delivered only to handlers subscribed in this process.
    """

    def __init__(self, redis_url: str = None, enabled: bool = True):
        self.redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379')
        self.enabled = enabled
        self.redis = None
        if self.enabled:
            self.redis = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        else:
            logger.info("PubSubClient running in local mode (no Redis publishing)")
        self._pubsub = None
        self._listener_thread = None
        self._handlers: Dict[str, Callable[[Event], None]] = {}

    def publish(self, channel: str, event: Event) -> bool:
        if not self.enabled:
            logger.debug(f"Local mode: {event.type} on {channel}")
            self._dispatch(channel, event)
            return True

        try:
            self.redis.publish(channel, event.to_json())
            return True
        except redis.RedisError as e:
            logger.error(f"Failed to publish {event.type} on {channel}: {e}")
            return False

    def publish_table_event(self, table_id: str, event: Event) -> bool:
        return self.publish(table_channel(table_id), event)

    def publish_change(self, table_id: str, collection: str, event: Event) -> bool:
        return self.publish(table_channel(table_id, collection), event)

    def publish_user_notification(self, user_id: str, event: Event) -> bool:
        return self.publish(user_channel(user_id), event)

    def subscribe(self, channel: str, handler: Callable[[Event], None]):
        self._handlers[channel] = handler
        if not self.enabled:
            return

        if self._pubsub is None:
            self._pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        self._pubsub.subscribe(**{channel: self._message_handler})

    def unsubscribe(self, channel: str):
        self._handlers.pop(channel, None)
        if self.enabled and self._pubsub is not None:
            self._pubsub.unsubscribe(channel)

    def is_subscribed(self, channel: str) -> bool:
        return channel in self._handlers

    def _dispatch(self, channel: str, event: Event):
        handler = self._handlers.get(channel)
        if handler is None:
            return
        try:
            handler(event)
        except Exception:
            logger.exception(f"Error handling message on {channel}")

    def _message_handler(self, message):
        if message['type'] != 'message':
            return
        try:
            event = Event.from_json(message['data'])
        except (ValueError, KeyError) as e:
            logger.error(f"Dropping malformed message on {message['channel']}: {e}")
            return
        self._dispatch(message['channel'], event)

    def start_listening(self):
        if not self.enabled or self._pubsub is None or self._listener_thread is not None:
            return
        self._listener_thread = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)

    def stop_listening(self):
        if self._listener_thread is not None:
            self._listener_thread.stop()
            self._listener_thread = None
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None
        self._handlers.clear()

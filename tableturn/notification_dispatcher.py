import logging

from shared.events import turn_notification_event
from shared.pubsub import PubSubClient
from .models import db, Notification, Table

logger = logging.getLogger(__name__)

TURN_NOTIFICATION = 'turn_notification'


class NotificationDispatcher:
    """Stores turn notifications and pushes them to the player's channel."""

    def __init__(self, pubsub: PubSubClient = None):
        self.pubsub = pubsub

    def notify_player_turn(self, player_id: str, table_id: str) -> bool:
        """
        Tell a player it is their turn at a table.

        Returns False on any failure; callers treat notification as
        best effort.
        """
        try:
            table = db.session.get(Table, table_id)
            table_name = table.name if table and table.name else 'a table'
            message = f"It's your turn to play on {table_name}"

            notification = Notification(
                user_id=player_id,
                type=TURN_NOTIFICATION,
                message=message,
                read=False,
                notification_metadata={
                    'table_id': table_id,
                    'action': 'start_match'
                }
            )
            db.session.add(notification)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error notifying player {player_id} for table {table_id}: {e}")
            return False

        logger.info(f"Notified player {player_id} of their turn on table {table_id}")
        if self.pubsub is not None:
            self.pubsub.publish_user_notification(
                player_id,
                turn_notification_event(table_id, player_id, message)
            )
        return True

    def unread_for(self, player_id: str):
        return (
            Notification.query
            .filter_by(user_id=player_id, read=False)
            .order_by(Notification.created_at.desc())
            .all()
        )

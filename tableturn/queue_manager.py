import logging
from typing import List, Optional

from shared.events import ChangeType, row_changed_event
from shared.pubsub import PubSubClient
from .exceptions import (
    PlayerAlreadyQueued,
    PlayerNotFound,
    QueueEntryNotFound,
    TableNotFound,
)
from .locks import TableLocks
from .models import db, Player, QueueEntry, Table

logger = logging.getLogger(__name__)

COLLECTION = 'queue_entries'


class QueueManager:
    """
    Waiting line for each table.

    Positions are 1-based and dense: after any removal the remaining
    entries are renumbered 1..N in their existing order.
    """

    def __init__(self, locks: TableLocks = None, pubsub: PubSubClient = None):
        self.locks = locks or TableLocks()
        self.pubsub = pubsub

    # ==================== Reads ====================

    def get_queue(self, table_id: str) -> List[QueueEntry]:
        return (
            QueueEntry.query
            .filter_by(table_id=table_id)
            .order_by(QueueEntry.position.asc())
            .all()
        )

    def get_entry(self, entry_id: str) -> QueueEntry:
        entry = db.session.get(QueueEntry, entry_id)
        if entry is None:
            raise QueueEntryNotFound(entry_id)
        return entry

    def find_entry(self, table_id: str, player_id: str) -> Optional[QueueEntry]:
        return QueueEntry.query.filter_by(table_id=table_id, player_id=player_id).first()

    def next_position(self, table_id: str) -> int:
        last = (
            QueueEntry.query
            .filter_by(table_id=table_id)
            .order_by(QueueEntry.position.desc())
            .first()
        )
        return last.position + 1 if last else 1

    # ==================== Mutations ====================

    def add_to_queue(self, table_id: str, player_id: str) -> QueueEntry:
        """Append a player to the tail of a table's queue."""
        with self.locks.hold(table_id):
            if db.session.get(Table, table_id) is None:
                raise TableNotFound(table_id)
            if db.session.get(Player, player_id) is None:
                raise PlayerNotFound(player_id)
            if self.find_entry(table_id, player_id) is not None:
                raise PlayerAlreadyQueued(table_id, player_id)

            entry = QueueEntry(
                table_id=table_id,
                player_id=player_id,
                position=self.next_position(table_id),
                skipped=False,
                notified=False
            )
            db.session.add(entry)
            db.session.commit()

            logger.info(f"Queued player {player_id} at position {entry.position} for table {table_id}")
            self._publish(table_id, ChangeType.INSERT, new=entry.to_dict(include_player=False))
            return entry

    def remove_from_queue(self, entry_id: str) -> dict:
        """Delete a queue entry by id and renumber the rest of its table."""
        entry = self.get_entry(entry_id)
        table_id = entry.table_id
        with self.locks.hold(table_id):
            snapshot = entry.to_dict(include_player=False)
            db.session.delete(entry)
            db.session.commit()
            self._publish(table_id, ChangeType.DELETE, old=snapshot)

            self.reorder_positions(table_id)
            return snapshot

    def remove_player_from_queue(self, table_id: str, player_id: str) -> bool:
        """Remove a player from a table's queue. False if they were not queued."""
        with self.locks.hold(table_id):
            entry = self.find_entry(table_id, player_id)
            if entry is None:
                logger.info(f"Player {player_id} not found in queue for table {table_id}")
                return False

            snapshot = entry.to_dict(include_player=False)
            db.session.delete(entry)
            db.session.commit()
            self._publish(table_id, ChangeType.DELETE, old=snapshot)

            self.reorder_positions(table_id)
            return True

    def toggle_skip(self, entry_id: str) -> QueueEntry:
        entry = self.get_entry(entry_id)
        with self.locks.hold(entry.table_id):
            old = entry.to_dict(include_player=False)
            entry.skipped = not entry.skipped
            db.session.commit()
            self._publish(entry.table_id, ChangeType.UPDATE,
                          new=entry.to_dict(include_player=False), old=old)
            return entry

    def mark_notified(self, entry_id: str) -> QueueEntry:
        entry = self.get_entry(entry_id)
        entry.notified = True
        db.session.commit()
        return entry

    def reorder_positions(self, table_id: str) -> int:
        """
        Rewrite positions to 1..N in current order.

        Only entries whose position actually changes are written.
        Returns the number of rewritten entries.
        """
        with self.locks.hold(table_id):
            changed = 0
            for index, entry in enumerate(self.get_queue(table_id)):
                if entry.position != index + 1:
                    entry.position = index + 1
                    changed += 1

            if changed:
                db.session.commit()
                logger.debug(f"Renumbered {changed} queue entries for table {table_id}")
                self._publish(table_id, ChangeType.UPDATE, new={'reordered': changed})
            return changed

    def _publish(self, table_id: str, change: ChangeType, new: dict = None, old: dict = None):
        if self.pubsub is None:
            return
        self.pubsub.publish_change(
            table_id, COLLECTION,
            row_changed_event(table_id, COLLECTION, change, new=new, old=old)
        )

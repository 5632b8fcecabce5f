from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
import json


class EventType(str, Enum):
    # Match lifecycle
    MATCH_STARTED = "match.started"
    MATCH_SCORE_UPDATED = "match.score_updated"
    MATCH_COMPLETED = "match.completed"
    MATCH_ARCHIVED = "match.archived"

    # Table / queue
    TABLE_AVAILABILITY = "table.availability"
    QUEUE_ROTATED = "queue.rotated"

    # Row-level change feed (INSERT / UPDATE / DELETE)
    ROW_CHANGED = "row.changed"

    # User notifications
    TURN_NOTIFICATION = "notification.turn"


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class Event:
    type: EventType
    table_id: str
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            now = datetime.now(timezone.utc).replace(tzinfo=None)
            self.timestamp = now.isoformat() + "Z"
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "table_id": self.table_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]) if data["type"] in [e.value for e in EventType] else data["type"],
            table_id=data["table_id"],
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))


def row_changed_event(table_id: str, collection: str, change: ChangeType,
                      new: dict = None, old: dict = None) -> Event:
    return Event(
        type=EventType.ROW_CHANGED,
        table_id=table_id,
        data={
            "collection": collection,
            "eventType": change.value,
            "new": new or {},
            "old": old or {}
        }
    )


def match_started_event(table_id: str, match_id: str, race_to: int) -> Event:
    return Event(
        type=EventType.MATCH_STARTED,
        table_id=table_id,
        data={
            "match_id": match_id,
            "race_to": race_to
        }
    )


def match_completed_event(table_id: str, match_id: str, winner_team_index: int) -> Event:
    return Event(
        type=EventType.MATCH_COMPLETED,
        table_id=table_id,
        data={
            "match_id": match_id,
            "winner_team_index": winner_team_index
        }
    )


def queue_rotated_event(table_id: str, result: dict) -> Event:
    return Event(
        type=EventType.QUEUE_ROTATED,
        table_id=table_id,
        data=result
    )


def turn_notification_event(table_id: str, player_id: str, message: str) -> Event:
    return Event(
        type=EventType.TURN_NOTIFICATION,
        table_id=table_id,
        data={
            "player_id": player_id,
            "message": message
        }
    )

import uuid
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

MATCH_STATUS_ACTIVE = 'active'
MATCH_STATUS_COMPLETED = 'completed'


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None


class Table(db.Model):
    __tablename__ = 'tables'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    venue_id = db.Column(db.String(36), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(50), nullable=False, default='8-ball')
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    table_metadata = db.Column('metadata', db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=utcnow)

    queue_entries = db.relationship(
        'QueueEntry',
        back_populates='table',
        order_by='QueueEntry.position',
        cascade='all, delete-orphan'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'venue_id': self.venue_id,
            'name': self.name,
            'type': self.type,
            'is_available': self.is_available,
            'metadata': self.table_metadata or {},
            'created_at': isoformat(self.created_at),
        }


class Player(db.Model):
    __tablename__ = 'players'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(200), nullable=True)
    rating = db.Column(db.Integer, nullable=False, default=1500)
    avatar_url = db.Column(db.String(500), nullable=True)
    player_metadata = db.Column('metadata', db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'rating': self.rating,
            'avatar_url': self.avatar_url,
            'created_at': isoformat(self.created_at),
        }


class Match(db.Model):
    __tablename__ = 'matches'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    table_id = db.Column(db.String(36), db.ForeignKey('tables.id'), nullable=False, index=True)

    # Raw JSON as stored; read through tableturn.validation
    teams = db.Column(db.JSON, nullable=True)
    score = db.Column(db.JSON, nullable=True)
    match_metadata = db.Column('metadata', db.JSON, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=MATCH_STATUS_ACTIVE, index=True)
    start_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    end_time = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'table_id': self.table_id,
            'teams': self.teams,
            'score': self.score,
            'status': self.status,
            'start_time': isoformat(self.start_time),
            'end_time': isoformat(self.end_time),
            'metadata': self.match_metadata,
        }


class QueueEntry(db.Model):
    __tablename__ = 'queue_entries'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    table_id = db.Column(db.String(36), db.ForeignKey('tables.id'), nullable=False, index=True)
    player_id = db.Column(db.String(36), db.ForeignKey('players.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False)
    skipped = db.Column(db.Boolean, nullable=False, default=False)
    notified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    table = db.relationship('Table', back_populates='queue_entries')
    player = db.relationship('Player')

    __table_args__ = (
        db.UniqueConstraint('table_id', 'player_id', name='unique_player_per_queue'),
    )

    def to_dict(self, include_player: bool = True):
        data = {
            'id': self.id,
            'table_id': self.table_id,
            'player_id': self.player_id,
            'position': self.position,
            'skipped': self.skipped,
            'notified': self.notified,
            'created_at': isoformat(self.created_at),
        }
        if include_player:
            data['player'] = self.player.to_dict() if self.player else None
        return data


class MatchArchive(db.Model):
    __tablename__ = 'match_archives'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    match_id = db.Column(db.String(36), nullable=False, unique=True, index=True)
    table_id = db.Column(db.String(36), db.ForeignKey('tables.id'), nullable=False, index=True)
    players = db.Column(db.JSON, nullable=False)
    final_score = db.Column(db.JSON, nullable=True)
    winner_player_id = db.Column(db.String(36), nullable=True)
    winner_team = db.Column(db.String(100), nullable=True)
    loser_team = db.Column(db.String(100), nullable=True)
    match_type = db.Column(db.String(50), nullable=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=True)
    archive_metadata = db.Column('metadata', db.JSON, nullable=True)
    archived_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'table_id': self.table_id,
            'players': self.players,
            'final_score': self.final_score,
            'winner_player_id': self.winner_player_id,
            'winner_team': self.winner_team,
            'loser_team': self.loser_team,
            'match_type': self.match_type,
            'start_time': isoformat(self.start_time),
            'end_time': isoformat(self.end_time),
            'duration_minutes': self.duration_minutes,
            'metadata': self.archive_metadata,
            'archived_at': isoformat(self.archived_at),
        }


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)
    message = db.Column(db.String(500), nullable=False)
    read = db.Column(db.Boolean, nullable=False, default=False)
    notification_metadata = db.Column('metadata', db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'message': self.message,
            'read': self.read,
            'metadata': self.notification_metadata or {},
            'created_at': isoformat(self.created_at),
        }

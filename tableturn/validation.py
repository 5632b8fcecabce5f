"""
Structured records for the JSON columns on matches.

Teams, score and metadata are stored as free-form JSON. Everything that
reads them goes through one validator per entity. Validators never
raise: malformed input is normalized to a safe default shape.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

BALL_GROUPS = ('stripes', 'solids')
UNDECIDED = 'undecided'

DEFAULT_GAMES_TO_WIN = 3
DEFAULT_MATCH_TYPE = '8-ball'


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class TeamData:
    name: str
    players: List[str] = field(default_factory=list)
    type: str = UNDECIDED
    player_details: List[dict] = field(default_factory=list)

    @property
    def first_player(self) -> Optional[str]:
        return self.players[0] if self.players else None

    def to_dict(self, with_details: bool = False) -> dict:
        data = {
            'name': self.name,
            'players': list(self.players),
            'type': self.type,
        }
        if with_details:
            data['playerDetails'] = list(self.player_details)
        return data


@dataclass
class ScoreData:
    current_score: List[int] = field(default_factory=lambda: [0, 0])
    games_to_win: int = DEFAULT_GAMES_TO_WIN
    winner: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            'current_score': list(self.current_score),
            'games_to_win': self.games_to_win,
        }
        if self.winner is not None:
            data['winner'] = self.winner
        return data


@dataclass
class RatingChange:
    initial: int
    final: int

    def to_dict(self) -> dict:
        return {'initial': self.initial, 'final': self.final}


@dataclass
class MatchMetadata:
    name: Optional[str] = None
    type: Optional[str] = None
    winner_team: Optional[str] = None
    loser_team: Optional[str] = None
    winner_team_index: Optional[int] = None
    teams: List[TeamData] = field(default_factory=list)
    rating_changes: Dict[str, RatingChange] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {}
        for key in ('name', 'type', 'winner_team', 'loser_team', 'winner_team_index'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.teams:
            data['teams'] = [t.to_dict() for t in self.teams]
        if self.rating_changes:
            data['rating_changes'] = {
                player_id: change.to_dict()
                for player_id, change in self.rating_changes.items()
            }
        return data


@dataclass
class MatchRecord:
    """A match as read from the store, with every JSON column validated."""
    id: str
    table_id: str
    teams: List[TeamData]
    score: ScoreData
    status: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    metadata: MatchMetadata

    @property
    def name(self) -> str:
        return self.metadata.name or f"Match #{self.id[:8]}"

    @property
    def type(self) -> str:
        return self.metadata.type or DEFAULT_MATCH_TYPE

    @property
    def player_ids(self) -> List[str]:
        ids = []
        for team in self.teams:
            ids.extend(team.players)
        return ids

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'table_id': self.table_id,
            'teams': [t.to_dict(with_details=True) for t in self.teams],
            'score': self.score.to_dict(),
            'status': self.status,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'metadata': self.metadata.to_dict(),
            'name': self.name,
            'type': self.type,
        }


def default_teams() -> List[TeamData]:
    return [TeamData(name='Team 1'), TeamData(name='Team 2')]


def validate_score(score_data: Any) -> ScoreData:
    """Normalize a stored score. Missing or malformed parts fall back to [0, 0] / race to 3."""
    result = ScoreData()
    if not isinstance(score_data, dict):
        return result

    current = score_data.get('current_score')
    if isinstance(current, (list, tuple)) and len(current) >= 2:
        if _is_number(current[0]) and _is_number(current[1]):
            result.current_score = [current[0], current[1]]

    games_to_win = score_data.get('games_to_win')
    if games_to_win and _is_number(games_to_win):
        result.games_to_win = games_to_win

    winner = score_data.get('winner')
    if winner in (0, 1) and not isinstance(winner, bool):
        result.winner = winner

    return result


def _validate_team(team: dict, index: int) -> TeamData:
    players = team.get('players')
    return TeamData(
        name=team['name'] if isinstance(team.get('name'), str) else f"Team {index + 1}",
        players=[p for p in players if isinstance(p, str)] if isinstance(players, list) else [],
        type=team.get('type') if team.get('type') in BALL_GROUPS else UNDECIDED,
    )


def validate_teams(teams_data: Any) -> List[TeamData]:
    """
    Normalize stored teams into exactly two TeamData records.

    Empty slots become 'Team N' placeholders with no players and an
    undecided ball group.
    """
    if not isinstance(teams_data, list):
        return default_teams()

    teams = [
        _validate_team(team, i)
        for i, team in enumerate(teams_data)
        if isinstance(team, dict)
    ]
    if not teams:
        return default_teams()

    while len(teams) < 2:
        teams.append(TeamData(name=f"Team {len(teams) + 1}"))
    return teams[:2]


def validate_metadata(metadata: Any) -> MatchMetadata:
    if not isinstance(metadata, dict):
        return MatchMetadata()

    result = MatchMetadata()
    for key in ('name', 'type', 'winner_team', 'loser_team'):
        if isinstance(metadata.get(key), str):
            setattr(result, key, metadata[key])

    index = metadata.get('winner_team_index')
    if index in (0, 1) and not isinstance(index, bool):
        result.winner_team_index = index

    if isinstance(metadata.get('teams'), list):
        result.teams = [
            TeamData(
                name=team['name'] if isinstance(team.get('name'), str) else 'Unknown Team',
                players=[p for p in team.get('players') or [] if isinstance(p, str)],
                type=team['type'] if isinstance(team.get('type'), str) else UNDECIDED,
            )
            for team in metadata['teams']
            if isinstance(team, dict)
        ]

    changes = metadata.get('rating_changes')
    if isinstance(changes, dict):
        for player_id, change in changes.items():
            if not isinstance(change, dict):
                continue
            initial, final = change.get('initial'), change.get('final')
            if _is_number(initial) and _is_number(final):
                result.rating_changes[player_id] = RatingChange(initial=initial, final=final)

    return result


def sanitize_match(match, players: Optional[List] = None) -> MatchRecord:
    """
    Build a MatchRecord from a Match row.

    If players (Player rows) are given, each team gets the details of
    the players it references.
    """
    if match is None:
        raise ValueError("Cannot sanitize null match")

    teams = validate_teams(match.teams)
    if players:
        by_id = {p.id: p.to_dict() for p in players if p is not None and p.id}
        for team in teams:
            team.player_details = [by_id[pid] for pid in team.players if pid in by_id]

    return MatchRecord(
        id=match.id,
        table_id=match.table_id,
        teams=teams,
        score=validate_score(match.score),
        status=match.status,
        start_time=match.start_time,
        end_time=match.end_time,
        metadata=validate_metadata(match.match_metadata),
    )


def get_safe_team(record: Optional[MatchRecord], team_index: int) -> TeamData:
    if record is None or team_index not in (0, 1) or team_index >= len(record.teams):
        return TeamData(name=f"Team {team_index + 1}")
    return record.teams[team_index]


def get_safe_score(record: Optional[MatchRecord]) -> List[int]:
    if record is None:
        return [0, 0]
    return list(record.score.current_score[:2])

"""
Queue rotation: what happens at a table the moment a match ends.

Winner stays. The loser goes to the back of the line, and the head of
the line is paired with the winner in a fresh match. When the loser is
the only one waiting, the two players get an immediate rematch with
sides swapped.

Rotation never raises. Any failure degrades to a result that frees
the table and notifies nobody.
"""
import logging
from dataclasses import dataclass, asdict
from typing import List, Optional, Protocol

from .exceptions import UnsupportedTeamSize
from .queue_manager import QueueManager
from .validation import MatchRecord, TeamData, UNDECIDED

logger = logging.getLogger(__name__)


class MatchStarter(Protocol):
    """Anything that can open a new match on a table."""

    def start_match(self, table_id: str, teams: List[dict], race_to: int = 1):
        ...


@dataclass
class RotationResult:
    next_player: Optional[dict]
    table_available: bool
    queue_updated: bool
    winner_stays: bool
    new_match_created: bool
    new_match_id: Optional[str] = None

    @classmethod
    def safe_default(cls) -> "RotationResult":
        return cls(
            next_player=None,
            table_available=True,
            queue_updated=False,
            winner_stays=False,
            new_match_created=False
        )

    def to_dict(self) -> dict:
        return asdict(self)


def require_single_player(team: TeamData):
    if len(team.players) > 1:
        raise UnsupportedTeamSize(
            f"Rotation supports one player per team, '{team.name}' has {len(team.players)}"
        )


class QueueRotationEngine:
    def __init__(self, queue_manager: QueueManager, match_starter: MatchStarter):
        self.queue = queue_manager
        self.match_starter = match_starter

    def process_queue_after_match(
        self,
        table_id: str,
        completed_match: MatchRecord,
        winner_team_index: int
    ) -> RotationResult:
        """
        Decide the table's next occupant after `completed_match` ended.

        `completed_match` is the snapshot taken before the match was
        marked completed. Returns RotationResult.safe_default() on any
        error.
        """
        logger.info(f"Processing queue for table {table_id} after match {completed_match.id}")
        try:
            return self._rotate(table_id, completed_match, winner_team_index)
        except Exception:
            logger.exception(f"Error processing queue for table {table_id}")
            return RotationResult.safe_default()

    def _rotate(self, table_id: str, match: MatchRecord, winner_team_index: int) -> RotationResult:
        if winner_team_index not in (0, 1):
            raise ValueError(f"winner_team_index must be 0 or 1, got {winner_team_index!r}")

        winner_team = match.teams[winner_team_index]
        loser_team = match.teams[1 - winner_team_index]
        require_single_player(winner_team)
        require_single_player(loser_team)

        winner_id = winner_team.first_player
        loser_id = loser_team.first_player

        queue = self.queue.get_queue(table_id)

        winner_stays = winner_id is not None
        if winner_stays:
            logger.info(f"Winner {winner_id} stays at table {table_id}")
            if loser_id and not any(e.player_id == loser_id for e in queue):
                entry = self.queue.add_to_queue(table_id, loser_id)
                logger.info(f"Added loser {loser_id} to end of queue at position {entry.position}")
                queue = self.queue.get_queue(table_id)

        head = queue[0] if queue else None
        next_player = head.to_dict() if head else None
        race_to = match.score.games_to_win or 1

        new_match = None
        two_player_rotation = (
            winner_stays
            and loser_id is not None
            and len(queue) == 1
            and head.player_id == loser_id
        )

        if two_player_rotation:
            logger.info(f"Detected 2-player rotation between {winner_id} and {loser_id}")
            # Sides swap: the previous loser takes the home slot
            teams = [
                TeamData(name=loser_team.name, players=[loser_id], type=loser_team.type).to_dict(),
                TeamData(name=winner_team.name, players=[winner_id], type=winner_team.type).to_dict(),
            ]
            new_match = self._start_and_seat(table_id, teams, race_to, loser_id)

        elif head is not None and winner_stays:
            self.queue.mark_notified(head.id)
            next_player['notified'] = True
            player_name = head.player.name if head.player else None
            logger.info(f"Next player {player_name} ({head.player_id}) is up at table {table_id}")

            teams = [
                TeamData(name=winner_team.name, players=[winner_id], type=UNDECIDED).to_dict(),
                TeamData(
                    name=f"{player_name}'s Team" if player_name else "Team 2",
                    players=[head.player_id],
                    type=UNDECIDED
                ).to_dict(),
            ]
            new_match = self._start_and_seat(table_id, teams, race_to, head.player_id)

        elif head is None:
            logger.info(f"No players in queue for table {table_id}")

        return RotationResult(
            next_player=next_player,
            table_available=not winner_stays,
            queue_updated=True,
            winner_stays=winner_stays,
            new_match_created=new_match is not None,
            new_match_id=new_match.id if new_match is not None else None
        )

    def _start_and_seat(self, table_id: str, teams: List[dict], race_to: int, seated_player_id: str):
        """
        Start the follow-up match, then take the seated player out of the queue.

        If the match cannot be started the player keeps their place and
        None is returned.
        """
        try:
            new_match = self.match_starter.start_match(table_id, teams, race_to)
        except Exception:
            logger.exception(f"Error creating next match on table {table_id}")
            return None

        if new_match is None:
            return None

        logger.info(f"New match {new_match.id} created on table {table_id}")
        self.queue.remove_player_from_queue(table_id, seated_player_id)
        return new_match

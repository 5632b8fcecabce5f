import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from .models import db, Player
from .validation import RatingChange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingPolicy:
    """A flat win/loss rating step. Losers never drop below the floor."""
    name: str
    delta: int
    floor: int = 1000


def apply_result(rating: int, won: bool, delta: int, floor: int = 1000) -> int:
    """
    New rating for one player after a match.

    Winners gain delta with no ceiling; everyone else loses delta,
    floored at `floor`.
    """
    if won:
        return rating + delta
    return max(rating - delta, floor)


class RatingEngine:
    """
    Applies rating policies to stored players.

    Two policies exist side by side: one used when a match is archived
    and one used by the direct completion path. They are configured
    separately.
    """

    def __init__(
        self,
        archive_policy: RatingPolicy,
        direct_completion_policy: RatingPolicy,
        default_rating: int = 1500
    ):
        self.archive_policy = archive_policy
        self.direct_completion_policy = direct_completion_policy
        self.default_rating = default_rating

    @classmethod
    def from_config(cls, cfg) -> "RatingEngine":
        floor = cfg.get('RATING_FLOOR', 1000)
        return cls(
            archive_policy=RatingPolicy(
                'archive', cfg.get('ARCHIVE_RATING_DELTA', 5), floor
            ),
            direct_completion_policy=RatingPolicy(
                'direct_completion', cfg.get('DIRECT_COMPLETION_RATING_DELTA', 15), floor
            ),
            default_rating=cfg.get('DEFAULT_RATING', 1500),
        )

    def update_ratings(
        self,
        player_ids: Iterable[str],
        winner_player_id: Optional[str],
        delta: Optional[int] = None,
        policy: Optional[RatingPolicy] = None,
        commit: bool = True
    ) -> Dict[str, RatingChange]:
        """
        Apply a match result to every listed player.

        The player whose id equals winner_player_id gains; all others lose.
        Unknown players are skipped. Returns {} instead of raising when
        there is nothing to do or the store fails, so callers treat an
        empty map as "no rating change".

        With commit=False the new ratings are only staged on the session
        and land with the caller's next commit.
        """
        policy = policy or self.archive_policy
        if delta is None:
            delta = policy.delta

        player_ids = [pid for pid in dict.fromkeys(player_ids or []) if pid]
        if not player_ids or not winner_player_id:
            return {}

        changes: Dict[str, RatingChange] = {}
        try:
            players = Player.query.filter(Player.id.in_(player_ids)).all()
            by_id = {p.id: p for p in players}

            for player_id in player_ids:
                player = by_id.get(player_id)
                if player is None:
                    logger.warning(f"Skipping rating update for unknown player {player_id}")
                    continue

                initial = player.rating if player.rating is not None else self.default_rating
                final = apply_result(initial, player_id == winner_player_id, delta, policy.floor)
                player.rating = final
                changes[player_id] = RatingChange(initial=initial, final=final)

            if commit:
                db.session.commit()
        except Exception:
            logger.exception(f"Rating update failed for players {player_ids}")
            db.session.rollback()
            return {}

        logger.info(f"Applied {policy.name} ratings (delta={delta}) to {len(changes)} players")
        return changes

    def apply_team_result(self, winner_ids, loser_ids, delta: Optional[int] = None) -> Dict[str, RatingChange]:
        """
        Direct completion: every player on the winning team gains,
        every player on the losing team loses.
        """
        policy = self.direct_completion_policy
        if delta is None:
            delta = policy.delta

        winners = set(winner_ids or [])
        everyone = list(dict.fromkeys(list(winner_ids or []) + list(loser_ids or [])))
        if not everyone or not winners:
            return {}

        changes: Dict[str, RatingChange] = {}
        try:
            players = Player.query.filter(Player.id.in_(everyone)).all()
            for player in players:
                initial = player.rating if player.rating is not None else self.default_rating
                final = apply_result(initial, player.id in winners, delta, policy.floor)
                player.rating = final
                changes[player.id] = RatingChange(initial=initial, final=final)
            db.session.commit()
        except Exception:
            logger.exception(f"Direct completion rating update failed for {everyone}")
            db.session.rollback()
            return {}

        return changes

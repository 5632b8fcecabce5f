import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from shared.events import (
    ChangeType,
    Event,
    EventType,
    match_completed_event,
    match_started_event,
    queue_rotated_event,
    row_changed_event,
)
from shared.pubsub import PubSubClient
from shared.state_machine import MatchStateMachine, TransitionError
from .deadline import Deadline, DeadlineExceeded
from .exceptions import MatchNotFound, TableNotFound, TableOccupied
from .models import (
    db,
    Match,
    MatchArchive,
    Player,
    Table,
    MATCH_STATUS_ACTIVE,
    MATCH_STATUS_COMPLETED,
    utcnow,
)
from .queue_manager import QueueManager
from .queue_rotation import QueueRotationEngine, RotationResult
from .rating_engine import RatingEngine
from .validation import (
    MatchMetadata,
    MatchRecord,
    ScoreData,
    sanitize_match,
    validate_score,
    validate_teams,
)

logger = logging.getLogger(__name__)

# match_archives.players is NOT NULL; used when a match had nobody on it
PLACEHOLDER_PLAYER_ID = '00000000-0000-0000-0000-000000000000'


@dataclass
class ActiveMatchesResult:
    active_matches: List[dict] = field(default_factory=list)
    error: Optional[str] = None
    stale_data: bool = False

    def to_dict(self) -> dict:
        return {
            'active_matches': self.active_matches,
            'error': self.error,
            'stale_data': self.stale_data,
        }


class MatchLifecycle:
    """
    Start, score, end and archive matches on a table.

    Ending a match runs the queue rotation, applies the resulting table
    availability, notifies the next player and archives the finished
    match. Each of those follow-up steps is isolated: a failure is
    logged and the remaining steps still run.
    """

    def __init__(
        self,
        queue_manager: QueueManager,
        rating_engine: RatingEngine,
        notifier=None,
        pubsub: PubSubClient = None,
        default_race_to: int = 1,
        active_matches_timeout: float = 15.0,
        rotation_engine: QueueRotationEngine = None
    ):
        self.queue = queue_manager
        self.locks = queue_manager.locks
        self.ratings = rating_engine
        self.notifier = notifier
        self.pubsub = pubsub
        self.default_race_to = default_race_to
        self.active_matches_timeout = active_matches_timeout
        self.rotation = rotation_engine or QueueRotationEngine(queue_manager, match_starter=self)
        self._last_active_matches: Dict[str, List[dict]] = {}
        self._cache_lock = threading.Lock()

    # ==================== Reads ====================

    def get_match(self, match_id: str) -> Match:
        match = db.session.get(Match, match_id)
        if match is None:
            raise MatchNotFound(match_id)
        return match

    def get_table(self, table_id: str) -> Table:
        table = db.session.get(Table, table_id)
        if table is None:
            raise TableNotFound(table_id)
        return table

    def get_active_match(self, table_id: str) -> Optional[Match]:
        return Match.query.filter_by(table_id=table_id, status=MATCH_STATUS_ACTIVE).first()

    def fetch_match(self, match_id: str) -> MatchRecord:
        """A match with validated JSON and player details on each team."""
        match = self.get_match(match_id)
        return self._with_players(match)

    def fetch_table_with_details(self, table_id: str) -> dict:
        table = self.get_table(table_id)
        match = self.get_active_match(table_id)
        return {
            'table': table.to_dict(),
            'match': self._with_players(match).to_dict() if match else None,
            'queue': [e.to_dict() for e in self.queue.get_queue(table_id)],
        }

    def fetch_active_matches_by_user(
        self,
        player_id: str,
        timeout: float = None,
        deadline: Deadline = None
    ) -> ActiveMatchesResult:
        """
        Active matches that include `player_id`, bounded by a deadline.

        On timeout or a store error this returns a soft error together
        with the last complete result for the player (stale_data=True),
        or whatever was read so far if there is none.
        """
        if deadline is None:
            deadline = Deadline(self.active_matches_timeout if timeout is None else timeout)

        found: List[dict] = []
        try:
            matches = (
                Match.query
                .filter_by(status=MATCH_STATUS_ACTIVE)
                .order_by(Match.start_time.desc())
                .all()
            )
            for match in matches:
                deadline.check()
                if player_id in sanitize_match(match).player_ids:
                    found.append(self._with_players(match).to_dict())
        except DeadlineExceeded as e:
            logger.warning(f"Fetching active matches for {player_id} timed out after {e.timeout}s")
            return self._soft_failure(player_id, found, str(e))
        except Exception as e:
            logger.error(f"Error fetching active matches for {player_id}: {e}", exc_info=True)
            return self._soft_failure(player_id, found, f"Failed to fetch active matches: {e}")

        self._remember_active_matches(player_id, found)
        return ActiveMatchesResult(active_matches=found)

    def _remember_active_matches(self, player_id: str, found: List[dict]):
        # Entries exist only for players with at least one active match
        with self._cache_lock:
            if found:
                self._last_active_matches[player_id] = found
            else:
                self._last_active_matches.pop(player_id, None)

    def _soft_failure(self, player_id: str, partial: List[dict], error: str) -> ActiveMatchesResult:
        with self._cache_lock:
            stale = self._last_active_matches.get(player_id)
        if stale is not None:
            return ActiveMatchesResult(active_matches=list(stale), error=error, stale_data=True)
        return ActiveMatchesResult(active_matches=partial, error=error, stale_data=False)

    def _with_players(self, match: Match) -> MatchRecord:
        record = sanitize_match(match)
        if not record.player_ids:
            return record
        players = Player.query.filter(Player.id.in_(record.player_ids)).all()
        return sanitize_match(match, players)

    # ==================== Start / Score ====================

    def start_match(self, table_id: str, teams: Sequence[dict], race_to: int = None) -> Match:
        """
        Open a match on a table and mark the table unavailable.

        Raises if the table is unknown, already has an active match, or
        either write fails. A failure on the table update leaves the
        match row in place.
        """
        race_to = race_to or self.default_race_to
        with self.locks.hold(table_id):
            table = self.get_table(table_id)
            existing = self.get_active_match(table_id)
            if existing is not None:
                raise TableOccupied(table_id, existing.id)

            validated = validate_teams(list(teams) if teams else None)
            match = Match(
                table_id=table_id,
                teams=[t.to_dict() for t in validated],
                status=MATCH_STATUS_ACTIVE,
                start_time=utcnow(),
                score=ScoreData(current_score=[0, 0], games_to_win=race_to).to_dict(),
                match_metadata=MatchMetadata(
                    name=f"{validated[0].name} vs {validated[1].name}",
                    type=table.type or '8-ball'
                ).to_dict()
            )
            try:
                db.session.add(match)
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception(f"Error starting match on table {table_id}")
                raise

            self._publish_change(table_id, 'matches', ChangeType.INSERT, new=match.to_dict())
            self._publish(match_started_event(table_id, match.id, race_to))

            try:
                self.set_table_availability(table_id, False)
            except Exception:
                logger.error(
                    f"Match {match.id} started but table {table_id} could not be marked unavailable",
                    exc_info=True
                )
                raise

            logger.info(f"Started match {match.id} on table {table_id} (race to {race_to})")
            return match

    def update_score(self, match_id: str, score: Sequence[int]) -> Match:
        """Overwrite the running score; games_to_win is preserved."""
        if score is None or len(score) != 2:
            raise ValueError("score must have exactly two entries")

        match = self.get_match(match_id)
        sm = MatchStateMachine.from_state_string(match.status)
        sm.transition('update_score')

        old = match.to_dict()
        preserved = validate_score(match.score).games_to_win
        match.score = {
            'current_score': [score[0], score[1]],
            'games_to_win': preserved
        }
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception(f"Error updating score for match {match_id}")
            raise

        self._publish_change(match.table_id, 'matches', ChangeType.UPDATE, new=match.to_dict(), old=old)
        self._publish(Event(
            type=EventType.MATCH_SCORE_UPDATED,
            table_id=match.table_id,
            data={'match_id': match_id, 'score': match.score}
        ))
        return match

    def set_table_availability(self, table_id: str, available: bool) -> Table:
        table = self.get_table(table_id)
        if table.is_available != available:
            old = table.to_dict()
            table.is_available = available
            db.session.commit()
            self._publish_change(table_id, 'tables', ChangeType.UPDATE, new=table.to_dict(), old=old)
            self._publish(Event(
                type=EventType.TABLE_AVAILABILITY,
                table_id=table_id,
                data={'is_available': available}
            ))
        return table

    # ==================== End ====================

    def end_match(self, match_id: str, table_id: str, winner_team_index: int) -> RotationResult:
        """
        Complete a match and hand the table to whoever is next.

        Only marking the match completed can fail this call. Rotation,
        table availability, notification and archival are each caught
        and logged, so the caller always gets the rotation outcome.
        """
        if winner_team_index not in (0, 1):
            raise ValueError(f"winner_team_index must be 0 or 1, got {winner_team_index!r}")

        with self.locks.hold(table_id):
            match = self.get_match(match_id)
            if match.table_id != table_id:
                raise ValueError(f"Match {match_id} is on table {match.table_id}, not {table_id}")
            snapshot = sanitize_match(match)

            sm = MatchStateMachine.from_state_string(match.status)
            sm.transition('end', {'winner_team_index': winner_team_index})

            old = match.to_dict()
            metadata = dict(match.match_metadata or {})
            metadata['winner_team_index'] = winner_team_index
            match.match_metadata = metadata
            match.status = MATCH_STATUS_COMPLETED
            match.end_time = utcnow()
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception(f"Error ending match {match_id}")
                raise

            logger.info(f"Match {match_id} completed, winner team {winner_team_index}")
            self._publish_change(table_id, 'matches', ChangeType.UPDATE, new=match.to_dict(), old=old)
            self._publish(match_completed_event(table_id, match_id, winner_team_index))

            result = self.rotation.process_queue_after_match(table_id, snapshot, winner_team_index)

            try:
                self.set_table_availability(table_id, result.table_available)
            except Exception:
                db.session.rollback()
                logger.error(f"Error updating availability for table {table_id}", exc_info=True)

            if result.next_player and self.notifier is not None:
                try:
                    self.notifier.notify_player_turn(result.next_player['player_id'], table_id)
                except Exception:
                    logger.error(f"Error notifying next player on table {table_id}", exc_info=True)

            try:
                self.archive_match(match_id)
            except Exception:
                logger.error(f"Error archiving match {match_id}", exc_info=True)

            self._publish(queue_rotated_event(table_id, result.to_dict()))
            return result

    # ==================== Archive ====================

    def archive_match(self, match_id: str) -> Optional[MatchArchive]:
        """
        Move a match into match_archives and delete the live row.

        Returns None when the match is already gone. If an archive row
        exists from an earlier attempt whose delete failed, only the
        delete is retried.
        """
        match = db.session.get(Match, match_id)
        if match is None:
            logger.info(f"Match {match_id} already archived, nothing to do")
            return None

        existing = MatchArchive.query.filter_by(match_id=match_id).first()
        if existing is not None:
            logger.warning(f"Archive for match {match_id} already exists, removing live row")
            self._delete_archived(match)
            return existing

        sm = MatchStateMachine.from_state_string(match.status)
        if not sm.can_transition('archive'):
            raise TransitionError(match.status, 'archived')

        record = sanitize_match(match)
        index = record.metadata.winner_team_index
        if index is None:
            index = record.score.winner if record.score.winner is not None else 0
        winner_team = record.teams[index]
        loser_team = record.teams[1 - index]
        winner_player_id = winner_team.first_player

        rating_changes = self.ratings.update_ratings(
            record.player_ids,
            winner_player_id,
            policy=self.ratings.archive_policy,
            commit=False
        )

        end_time = record.end_time or utcnow()
        start_time = record.start_time or end_time
        duration_minutes = round((end_time - start_time).total_seconds() / 60)

        metadata = MatchMetadata(
            name=record.name,
            type=record.type,
            winner_team=winner_team.name,
            loser_team=loser_team.name,
            winner_team_index=index,
            teams=record.teams,
            rating_changes=rating_changes
        )

        archive = MatchArchive(
            match_id=match_id,
            table_id=record.table_id,
            players=record.player_ids or [PLACEHOLDER_PLAYER_ID],
            final_score=list(record.score.current_score),
            winner_player_id=winner_player_id,
            winner_team=winner_team.name,
            loser_team=loser_team.name,
            match_type=record.type,
            start_time=start_time,
            end_time=end_time,
            duration_minutes=duration_minutes,
            archive_metadata=metadata.to_dict()
        )
        # Ratings and the archive row commit together; a failed insert undoes both
        try:
            db.session.add(archive)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception(f"Error archiving match {match_id}")
            raise

        self._delete_archived(match)
        logger.info(f"Archived match {match_id} ({duration_minutes} min)")
        self._publish(Event(
            type=EventType.MATCH_ARCHIVED,
            table_id=record.table_id,
            data={'match_id': match_id, 'archive_id': archive.id}
        ))
        return archive

    def _delete_archived(self, match: Match):
        table_id, old = match.table_id, match.to_dict()
        try:
            db.session.delete(match)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.error(f"Archive written but match {match.id} could not be deleted", exc_info=True)
            raise
        self._publish_change(table_id, 'matches', ChangeType.DELETE, old=old)

    # ==================== Direct completion ====================

    def complete_match_with_ratings(
        self,
        match_id: str,
        winner_index: int,
        rating_change: int = None
    ) -> bool:
        """
        Finish a match with the direct-completion rating policy.

        No rotation and no archive: the match stays as completed and
        the table is freed.
        """
        match = self.get_match(match_id)
        with self.locks.hold(match.table_id):
            sm = MatchStateMachine.from_state_string(match.status)
            sm.transition('complete', {'winner_team_index': winner_index})

            score = validate_score(match.score)
            score.winner = winner_index
            metadata = dict(match.match_metadata or {})
            metadata['winner_team_index'] = winner_index

            match.score = score.to_dict()
            match.match_metadata = metadata
            match.status = MATCH_STATUS_COMPLETED
            match.end_time = utcnow()
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception(f"Error completing match {match_id}")
                raise

            record = sanitize_match(match)
            self.ratings.apply_team_result(
                record.teams[winner_index].players,
                record.teams[1 - winner_index].players,
                delta=rating_change
            )
            self.set_table_availability(match.table_id, True)
            self._publish(match_completed_event(match.table_id, match_id, winner_index))
            return True

    # ==================== Events ====================

    def _publish(self, event: Event):
        if self.pubsub is not None:
            self.pubsub.publish_table_event(event.table_id, event)

    def _publish_change(self, table_id: str, collection: str, change: ChangeType,
                        new: dict = None, old: dict = None):
        if self.pubsub is not None:
            self.pubsub.publish_change(
                table_id, collection,
                row_changed_event(table_id, collection, change, new=new, old=old)
            )

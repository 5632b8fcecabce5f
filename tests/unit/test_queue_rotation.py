"""
Unit tests for QueueRotationEngine.
A recording starter stands in for the match lifecycle.
"""
import pytest
from types import SimpleNamespace
from tableturn.models import db
from tableturn.queue_manager import QueueManager
from tableturn.queue_rotation import QueueRotationEngine, RotationResult
from tableturn.validation import sanitize_match


class RecordingStarter:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def start_match(self, table_id, teams, race_to=1):
        if self.fail:
            raise RuntimeError("cannot start")
        self.calls.append({'table_id': table_id, 'teams': teams, 'race_to': race_to})
        return SimpleNamespace(id=f'new-match-{len(self.calls)}')


@pytest.fixture
def manager(app, db_session):
    return QueueManager()


@pytest.fixture
def starter():
    return RecordingStarter()


@pytest.fixture
def engine(manager, starter):
    return QueueRotationEngine(manager, match_starter=starter)


def queue_players(manager, table_id):
    return [(e.player_id, e.position) for e in manager.get_queue(table_id)]


class TestRotationResult:

    def test_safe_default(self):
        result = RotationResult.safe_default()
        assert result.table_available is True
        assert result.next_player is None
        assert result.queue_updated is False
        assert result.winner_stays is False
        assert result.new_match_created is False


class TestNormalRotation:

    def test_next_player_challenges_winner(self, engine, manager, starter, sample_match, sample_players):
        carol = sample_players[2]
        manager.add_to_queue(sample_match.table_id, carol.id)
        snapshot = sanitize_match(sample_match)

        result = engine.process_queue_after_match(sample_match.table_id, snapshot, 0)

        assert result.winner_stays is True
        assert result.table_available is False
        assert result.queue_updated is True
        assert result.new_match_created is True
        assert result.new_match_id == 'new-match-1'
        assert result.next_player['player_id'] == carol.id
        assert result.next_player['notified'] is True

        teams = starter.calls[0]['teams']
        assert teams[0] == {'name': "Alice's Team", 'players': ['player-1'], 'type': 'undecided'}
        assert teams[1] == {'name': "Carol's Team", 'players': [carol.id], 'type': 'undecided'}
        assert starter.calls[0]['race_to'] == 3

        # Carol is seated; Bob waits alone
        assert queue_players(manager, sample_match.table_id) == [('player-2', 1)]

    def test_loser_goes_to_back(self, engine, manager, starter, sample_match, sample_players):
        table_id = sample_match.table_id
        manager.add_to_queue(table_id, sample_players[2].id)
        manager.add_to_queue(table_id, sample_players[3].id)

        engine.process_queue_after_match(table_id, sanitize_match(sample_match), 1)

        # Bob won; Alice joins behind Dave, Carol was seated
        assert queue_players(manager, table_id) == [('player-4', 1), ('player-1', 2)]
        assert starter.calls[0]['teams'][0]['players'] == ['player-2']

    def test_order_preserved_after_seating(self, engine, manager, sample_match, sample_players):
        table_id = sample_match.table_id
        manager.add_to_queue(table_id, sample_players[2].id)
        manager.add_to_queue(table_id, sample_players[3].id)

        engine.process_queue_after_match(table_id, sanitize_match(sample_match), 0)

        # Carol seated; Dave keeps their place ahead of the re-queued loser
        assert queue_players(manager, table_id) == [('player-4', 1), ('player-2', 2)]

    def test_loser_already_queued_not_duplicated(self, engine, manager, sample_match, sample_players):
        table_id = sample_match.table_id
        manager.add_to_queue(table_id, sample_players[2].id)
        manager.add_to_queue(table_id, sample_players[1].id)

        engine.process_queue_after_match(table_id, sanitize_match(sample_match), 0)

        assert queue_players(manager, table_id) == [('player-2', 1)]

    def test_start_failure_keeps_player_queued(self, manager, sample_match, sample_players):
        engine = QueueRotationEngine(manager, match_starter=RecordingStarter(fail=True))
        table_id = sample_match.table_id
        manager.add_to_queue(table_id, sample_players[2].id)

        result = engine.process_queue_after_match(table_id, sanitize_match(sample_match), 0)

        assert result.new_match_created is False
        assert result.next_player['player_id'] == sample_players[2].id
        assert queue_players(manager, table_id) == [('player-3', 1), ('player-2', 2)]


class TestTwoPlayerRotation:

    def test_rematch_with_sides_swapped(self, engine, manager, starter, sample_match):
        table_id = sample_match.table_id

        result = engine.process_queue_after_match(table_id, sanitize_match(sample_match), 0)

        assert result.new_match_created is True
        assert result.table_available is False
        assert result.winner_stays is True
        teams = starter.calls[0]['teams']
        assert teams[0]['name'] == "Bob's Team"
        assert teams[0]['players'] == ['player-2']
        assert teams[1]['name'] == "Alice's Team"
        assert teams[1]['players'] == ['player-1']
        assert manager.get_queue(table_id) == []

    def test_loser_already_alone_in_queue(self, engine, manager, starter, sample_match, sample_players):
        table_id = sample_match.table_id
        manager.add_to_queue(table_id, sample_players[1].id)

        result = engine.process_queue_after_match(table_id, sanitize_match(sample_match), 0)

        assert result.new_match_created is True
        assert len(starter.calls) == 1
        assert manager.get_queue(table_id) == []


class TestWinnerStaysWithoutOpponent:

    def test_no_loser_and_empty_queue(self, engine, starter, sample_match):
        sample_match.teams = [
            {'name': "Alice's Team", 'players': ['player-1']},
            {'name': 'Team 2', 'players': []},
        ]
        db.session.commit()

        result = engine.process_queue_after_match(sample_match.table_id, sanitize_match(sample_match), 0)

        assert result.winner_stays is True
        assert result.table_available is False
        assert result.new_match_created is False
        assert result.next_player is None
        assert starter.calls == []


class TestFailureModes:

    def test_no_winner_frees_table(self, engine, starter, sample_match):
        sample_match.teams = [{'name': 'A', 'players': []}, {'name': 'B', 'players': []}]
        db.session.commit()

        result = engine.process_queue_after_match(sample_match.table_id, sanitize_match(sample_match), 0)

        assert result.winner_stays is False
        assert result.table_available is True
        assert starter.calls == []

    def test_doubles_returns_safe_default(self, engine, manager, starter, sample_match):
        sample_match.teams = [
            {'name': 'A', 'players': ['player-1', 'player-3']},
            {'name': 'B', 'players': ['player-2', 'player-4']},
        ]
        db.session.commit()

        result = engine.process_queue_after_match(sample_match.table_id, sanitize_match(sample_match), 0)

        assert result == RotationResult.safe_default()
        assert manager.get_queue(sample_match.table_id) == []
        assert starter.calls == []

    def test_invalid_winner_index(self, engine, sample_match):
        result = engine.process_queue_after_match(sample_match.table_id, sanitize_match(sample_match), 2)
        assert result == RotationResult.safe_default()

    def test_store_error_returns_safe_default(self, engine, manager, sample_match, mocker):
        mocker.patch.object(manager, 'get_queue', side_effect=RuntimeError('db down'))
        result = engine.process_queue_after_match(sample_match.table_id, sanitize_match(sample_match), 0)
        assert result == RotationResult.safe_default()

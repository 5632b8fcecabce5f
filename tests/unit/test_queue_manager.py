"""
Unit tests for QueueManager.
Positions stay 1..N after every mutation.
"""
import pytest
from shared.pubsub import table_channel
from tableturn.exceptions import (
    PlayerAlreadyQueued,
    PlayerNotFound,
    QueueEntryNotFound,
    TableNotFound,
)
from tableturn.queue_manager import QueueManager


@pytest.fixture
def manager(app, db_session, mock_pubsub):
    return QueueManager(pubsub=mock_pubsub)


def positions(manager, table_id):
    return [(e.player_id, e.position) for e in manager.get_queue(table_id)]


class TestAddToQueue:

    def test_appends_in_order(self, manager, sample_table, sample_players):
        for player in sample_players[:3]:
            manager.add_to_queue(sample_table.id, player.id)

        assert positions(manager, sample_table.id) == [
            ('player-1', 1), ('player-2', 2), ('player-3', 3)
        ]

    def test_new_entry_flags(self, manager, sample_table, sample_players):
        entry = manager.add_to_queue(sample_table.id, sample_players[0].id)
        assert entry.skipped is False
        assert entry.notified is False

    def test_duplicate_rejected(self, manager, sample_table, sample_players):
        manager.add_to_queue(sample_table.id, sample_players[0].id)
        with pytest.raises(PlayerAlreadyQueued):
            manager.add_to_queue(sample_table.id, sample_players[0].id)

    def test_unknown_table(self, manager, sample_players):
        with pytest.raises(TableNotFound):
            manager.add_to_queue('no-table', sample_players[0].id)

    def test_unknown_player(self, manager, sample_table):
        with pytest.raises(PlayerNotFound):
            manager.add_to_queue(sample_table.id, 'ghost')

    def test_publishes_insert(self, manager, sample_table, sample_players, mock_pubsub):
        manager.add_to_queue(sample_table.id, sample_players[0].id)

        table_id, collection, event = mock_pubsub.publish_change.call_args[0]
        assert table_id == sample_table.id
        assert collection == 'queue_entries'
        assert event.data['eventType'] == 'INSERT'
        assert event.data['new']['player_id'] == sample_players[0].id


class TestRemoval:

    @pytest.fixture
    def queued(self, manager, sample_table, sample_players):
        return [manager.add_to_queue(sample_table.id, p.id) for p in sample_players[:3]]

    def test_remove_head_renumbers(self, manager, sample_table, queued):
        manager.remove_from_queue(queued[0].id)
        assert positions(manager, sample_table.id) == [('player-2', 1), ('player-3', 2)]

    def test_remove_middle_renumbers(self, manager, sample_table, queued):
        manager.remove_from_queue(queued[1].id)
        assert positions(manager, sample_table.id) == [('player-1', 1), ('player-3', 2)]

    def test_remove_unknown_entry(self, manager, queued):
        with pytest.raises(QueueEntryNotFound):
            manager.remove_from_queue('nope')

    def test_remove_player(self, manager, sample_table, queued):
        assert manager.remove_player_from_queue(sample_table.id, 'player-2') is True
        assert positions(manager, sample_table.id) == [('player-1', 1), ('player-3', 2)]

    def test_remove_absent_player(self, manager, sample_table, queued):
        assert manager.remove_player_from_queue(sample_table.id, 'player-4') is False
        assert len(manager.get_queue(sample_table.id)) == 3


class TestReorder:

    def test_only_changed_entries_written(self, manager, sample_table, sample_players):
        entries = [manager.add_to_queue(sample_table.id, p.id) for p in sample_players[:3]]
        entries[1].position = 5
        entries[2].position = 9

        assert manager.reorder_positions(sample_table.id) == 2
        assert positions(manager, sample_table.id) == [
            ('player-1', 1), ('player-2', 2), ('player-3', 3)
        ]

    def test_dense_queue_untouched(self, manager, sample_table, sample_players):
        manager.add_to_queue(sample_table.id, sample_players[0].id)
        assert manager.reorder_positions(sample_table.id) == 0


class TestFlags:

    def test_toggle_skip(self, manager, sample_table, sample_players):
        entry = manager.add_to_queue(sample_table.id, sample_players[0].id)
        assert manager.toggle_skip(entry.id).skipped is True
        assert manager.toggle_skip(entry.id).skipped is False

    def test_mark_notified(self, manager, sample_table, sample_players):
        entry = manager.add_to_queue(sample_table.id, sample_players[0].id)
        assert manager.mark_notified(entry.id).notified is True


class TestChangeFeedLocalMode:

    def test_local_subscriber_receives_changes(self, app, db_session, sample_table, sample_players):
        received = []
        channel = table_channel(sample_table.id, 'queue_entries')
        app.pubsub.subscribe(channel, received.append)
        try:
            app.queue_manager.add_to_queue(sample_table.id, sample_players[0].id)
        finally:
            app.pubsub.unsubscribe(channel)

        assert len(received) == 1
        assert received[0].data['eventType'] == 'INSERT'

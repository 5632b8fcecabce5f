"""
Pytest configuration and fixtures for table service tests.
"""
import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from tableturn.app import create_app
from tableturn.match_lifecycle import MatchLifecycle
from tableturn.models import db, Table, Player, Match, MATCH_STATUS_ACTIVE, utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing."""
    with app.app_context():
        # Clear all tables before each test
        db.session.remove()

        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture
def lifecycle(app, db_session):
    """A fresh lifecycle sharing the app's services, with an empty read cache."""
    return MatchLifecycle(
        app.queue_manager,
        app.ratings,
        notifier=app.notifier,
        pubsub=app.pubsub,
        default_race_to=app.config['DEFAULT_RACE_TO']
    )


@pytest.fixture
def queue_manager(app, db_session):
    return app.queue_manager


@pytest.fixture
def sample_table(app, db_session):
    """Create a sample table for testing."""
    table = Table(
        id='table-1',
        venue_id='venue-1',
        name='Table 1',
        type='8-ball',
        is_available=True
    )
    db.session.add(table)
    db.session.commit()
    return table


@pytest.fixture
def sample_players(app, db_session):
    """Create four sample players: Alice, Bob, Carol, Dave."""
    players = []
    for i, name in enumerate(['Alice', 'Bob', 'Carol', 'Dave']):
        player = Player(
            id=f'player-{i + 1}',
            name=name,
            rating=1500
        )
        db.session.add(player)
        players.append(player)

    db.session.commit()
    return players


@pytest.fixture
def sample_match(app, db_session, sample_table, sample_players):
    """An active Alice vs Bob match on the sample table."""
    alice, bob = sample_players[0], sample_players[1]
    match = Match(
        id='match-1',
        table_id=sample_table.id,
        teams=[
            {'name': "Alice's Team", 'players': [alice.id], 'type': 'undecided'},
            {'name': "Bob's Team", 'players': [bob.id], 'type': 'undecided'},
        ],
        score={'current_score': [0, 0], 'games_to_win': 3},
        match_metadata={'name': "Alice's Team vs Bob's Team", 'type': '8-ball'},
        status=MATCH_STATUS_ACTIVE,
        start_time=utcnow()
    )
    sample_table.is_available = False
    db.session.add(match)
    db.session.commit()
    return match


@pytest.fixture
def mock_pubsub(mocker):
    """A stand-in PubSubClient that records calls."""
    mock = mocker.MagicMock()
    mock.publish.return_value = True
    mock.publish_table_event.return_value = True
    mock.publish_change.return_value = True
    mock.publish_user_notification.return_value = True
    return mock

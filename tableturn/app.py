import os
import logging
from flask import Flask, jsonify

from shared.pubsub import PubSubClient
from .config import config
from .locks import TableLocks
from .match_lifecycle import MatchLifecycle
from .models import db
from .notification_dispatcher import NotificationDispatcher
from .queue_manager import QueueManager
from .rating_engine import RatingEngine
from .subscription_registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """Application factory for the table service."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # Initialize extensions
    db.init_app(app)

    # Initialize services
    pubsub = PubSubClient(
        redis_url=app.config['REDIS_URL'],
        enabled=app.config['PUBLISH_EVENTS']
    )
    locks = TableLocks()
    queue_manager = QueueManager(locks=locks, pubsub=pubsub)
    notifier = NotificationDispatcher(pubsub=pubsub)
    ratings = RatingEngine.from_config(app.config)
    lifecycle = MatchLifecycle(
        queue_manager,
        ratings,
        notifier=notifier,
        pubsub=pubsub,
        default_race_to=app.config['DEFAULT_RACE_TO'],
        active_matches_timeout=app.config['ACTIVE_MATCHES_TIMEOUT']
    )

    # Create tables
    with app.app_context():
        db.create_all()

    # Store services on app for access in routes
    app.pubsub = pubsub
    app.queue_manager = queue_manager
    app.notifier = notifier
    app.ratings = ratings
    app.lifecycle = lifecycle
    app.subscriptions = SubscriptionRegistry(pubsub)

    from .routes import api
    app.register_blueprint(api.bp)

    register_health_route(app)

    logger.info(f"TableTurn app created ({config_name}, publish_events={pubsub.enabled})")
    return app


def register_health_route(app: Flask):

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception:
            db_ok = False

        redis_ok = None
        if app.pubsub.enabled:
            try:
                app.pubsub.redis.ping()
                redis_ok = True
            except Exception:
                redis_ok = False

        healthy = db_ok and redis_ok is not False
        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'database': 'connected' if db_ok else 'disconnected',
            'redis': 'disabled' if redis_ok is None else ('connected' if redis_ok else 'disconnected')
        }), 200 if healthy else 503

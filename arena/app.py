import os
import logging

import redis
from flask import Flask, jsonify, request
from flask_migrate import Migrate

from .auth import login_manager
from .config import config
from .exceptions import register_error_handlers
from .leaderboard_service import LeaderboardService
from .logging_config import setup_logging
from .models import db
from .notification_manager import NotificationManager
from .organizer_service import OrganizerService
from .profile_service import ProfileService
from .team_registry import TeamRegistry
from .tournament_registry import TournamentRegistry
from .tower_registry import TowerRegistry

logger = logging.getLogger(__name__)

migrate = Migrate()


def create_app(config_name: str = None) -> Flask:
    """Application factory for the platform API."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    setup_logging(app.config['LOG_LEVEL'])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Redis is optional; without it notifications are stored but not pushed live
    app.redis = None
    if app.config.get('REDIS_URL'):
        app.redis = redis.from_url(app.config['REDIS_URL'], decode_responses=True)

    # Store services on app for access in routes
    app.notifications = NotificationManager(app.redis)
    app.registry = TournamentRegistry()
    app.towers = TowerRegistry()
    app.teams = TeamRegistry(app.towers)
    app.leaderboards = LeaderboardService()
    app.profiles = ProfileService()
    app.organizers = OrganizerService()

    # Create tables
    with app.app_context():
        db.create_all()

    register_error_handlers(app)
    register_cors(app)
    register_health(app)
    register_blueprints(app)

    logger.info(f"Application created with '{config_name}' config")
    return app


def register_cors(app: Flask):
    origins = [o.strip() for o in app.config.get('CORS_ORIGINS', '*').split(',') if o.strip()]

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get('Origin')
        if '*' in origins:
            response.headers['Access-Control-Allow-Origin'] = '*'
        elif origin in origins:
            response.headers['Access-Control-Allow-Origin'] = origin
            response.headers['Vary'] = 'Origin'
        response.headers['Access-Control-Allow-Headers'] = 'Authorization, Content-Type'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, DELETE, OPTIONS'
        return response


def register_health(app: Flask):
    @app.route('/api/v1/health')
    def health_check():
        """Health check endpoint."""
        redis_status = 'disabled'
        redis_ok = True
        if app.redis is not None:
            try:
                app.redis.ping()
                redis_status = 'connected'
            except redis.RedisError:
                redis_ok = False
                redis_status = 'disconnected'

        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            db_ok = False

        status = 'healthy' if (redis_ok and db_ok) else 'unhealthy'
        code = 200 if status == 'healthy' else 503

        return jsonify({
            'status': status,
            'redis': redis_status,
            'database': 'connected' if db_ok else 'disconnected'
        }), code


def register_blueprints(app: Flask):
    from .routes import auth, users, profile, towers, teams, tournaments, notifications, organizer, leaderboard, upload

    for module in (auth, users, profile, towers, teams, tournaments, notifications, organizer, leaderboard, upload):
        app.register_blueprint(module.bp, url_prefix='/api/v1')

"""
Participation engine service.

Responsibilities:
- Team formation (captain + two invited players)
- Tournament registration with moderator confirmation
- Per-map score submissions and the moderation queue
- Leaderboards computed from approved submissions
"""
import os
import logging

from flask import Flask, jsonify
from flask_login import LoginManager

from shared.errors import WorkflowError
from .config import config
from .models import db, Player
from .team_formation import TeamFormation
from .registration import RegistrationDesk
from .submissions import SubmissionLifecycle
from .leaderboard import LeaderboardAggregator
from .moderation import Moderation
from .profiles import ProfileDirectory

PLAYER_HEADER = 'X-Player-Id'

login_manager = LoginManager()


@login_manager.request_loader
def load_player_from_request(request):
    """The auth layer in front of us has already verified this id."""
    player_id = request.headers.get(PLAYER_HEADER)
    if not player_id:
        return None
    return db.session.get(Player, player_id)


@login_manager.unauthorized_handler
def unauthenticated():
    return jsonify({'error': 'Authentication required', 'code': 'UNAUTHENTICATED'}), 401


def create_app(config_name: str = None) -> Flask:
    """Application factory for the participation engine."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)

    # Initialize services
    registrations = RegistrationDesk()
    submissions = SubmissionLifecycle(registrations)
    app.teams = TeamFormation()
    app.registrations = registrations
    app.submissions = submissions
    app.leaderboard = LeaderboardAggregator()
    app.moderation = Moderation(registrations, submissions)
    app.profiles = ProfileDirectory(
        base_url=app.config.get('PROFILE_SERVICE_URL', ''),
        timeout=app.config.get('PROFILE_SERVICE_TIMEOUT', 3)
    )

    # Create tables
    with app.app_context():
        db.create_all()

    register_error_handlers(app)

    from .routes import player, admin
    app.register_blueprint(player.bp)
    app.register_blueprint(admin.bp)

    @app.route('/api/v1/health')
    def health_check():
        """Health check endpoint."""
        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception as e:
            app.logger.error(f"Health check database error: {e}")
            db_ok = False

        status = 'healthy' if db_ok else 'unhealthy'
        return jsonify({
            'status': status,
            'database': 'connected' if db_ok else 'disconnected'
        }), 200 if db_ok else 503

    return app


def register_error_handlers(app: Flask):

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(error: WorkflowError):
        return jsonify(error.to_dict()), error.http_status

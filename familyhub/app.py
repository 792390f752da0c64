"""familyhub Flask application - Main entry point."""

import os
import sys
import logging
from pathlib import Path
from flask import Flask, jsonify, request, g
from flask_migrate import Migrate
from sqlalchemy import text
from werkzeug.middleware.proxy_fix import ProxyFix

# Configure logging for the entire application
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)

from familyhub.models import db
from familyhub.auth import auth_required, get_current_member

# Initialize Flask-Migrate
migrate = Migrate()


def create_app(config_name=None):
    """Application factory pattern for Flask app creation."""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    from familyhub.config import config
    app.config.from_object(config[config_name])

    # Ensure data directory exists (skip for in-memory database)
    if app.config['SQLALCHEMY_DATABASE_URI'] != "sqlite:///:memory:":
        data_dir = Path(app.config['DATA_DIR'])
        data_dir.mkdir(parents=True, exist_ok=True)

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)

    # The authenticating proxy sits in front of us
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    register_middleware(app)
    register_routes(app)

    # Initialize background scheduler
    from familyhub.scheduler import init_scheduler
    init_scheduler(app)

    return app


def register_middleware(app):
    """Register middleware for authentication and request processing."""

    @app.before_request
    def extract_remote_user():
        """Read the member identity forwarded by the authenticating proxy.

        g.remote_user is None when the header is missing, so auth_required
        can tell "no identity" apart from "identity without a member".
        """
        remote_user = request.headers.get(app.config['AUTH_USER_HEADER'])
        g.remote_user = remote_user.strip() if remote_user and remote_user.strip() else None


def register_routes(app):
    """Register all application routes."""
    from familyhub.routes import (
        chores_bp, assignments_bp, members_bp, points_bp, notifications_bp
    )

    app.register_blueprint(chores_bp)
    app.register_blueprint(assignments_bp)
    app.register_blueprint(members_bp)
    app.register_blueprint(points_bp)
    app.register_blueprint(notifications_bp)

    @app.route('/health')
    def health():
        """Health check endpoint for monitoring."""
        try:
            # Check database connectivity
            db.session.execute(text('SELECT 1'))
            db_status = 'healthy'
        except Exception as e:
            db_status = f'unhealthy: {str(e)}'

        return jsonify({
            'status': 'healthy' if db_status == 'healthy' else 'degraded',
            'database': db_status,
            'remote_user': getattr(g, 'remote_user', None)
        })

    @app.route('/api/me')
    @auth_required
    def current_member():
        """Get current authenticated member information."""
        member = get_current_member()
        return jsonify({
            'data': member.to_dict(),
            'message': 'Authenticated'
        })

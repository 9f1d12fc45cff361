"""
Water Truck dispatch service.
"""

import logging
import os

import click
from flask import Flask, jsonify
from flask_cors import CORS

from .config import config
from .errors import DispatchError
from .extensions import db, limiter

logger = logging.getLogger(__name__)


def _init_sentry(app):
    dsn = app.config.get("SENTRY_DSN")
    if not dsn:
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
    )


def create_app(config_name=None, config_overrides=None):
    """Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.getenv("FLASK_ENV", "development")
    app.config.from_object(config.get(config_name, config["default"])())
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _init_sentry(app)

    # Initialize extensions
    db.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}}, supports_credentials=True)
    limiter.init_app(app)

    from .identity import init_identity
    init_identity(app)

    # Register blueprints
    from .routes import meta_bp, me_bp, trucks_bp, push_bp, jobs_bp, operator_bp, invites_bp
    app.register_blueprint(meta_bp)
    app.register_blueprint(me_bp)
    app.register_blueprint(trucks_bp)
    app.register_blueprint(push_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(operator_bp)
    app.register_blueprint(invites_bp)

    @app.errorhandler(DispatchError)
    def dispatch_error_handler(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(429)
    def ratelimit_handler(e):
        retry_after = dict(e.get_headers()).get("Retry-After") if hasattr(e, "get_headers") else None
        retry_after_seconds = int(retry_after) if retry_after else 60
        return jsonify({
            "success": False,
            "error": "Too many requests. Please try again later.",
            "error_type": "rate_limited",
            "retry_after": retry_after_seconds,
        }), 429

    @app.route("/health")
    @limiter.exempt
    def health():
        return {"status": "healthy", "service": "watertruck"}, 200

    @app.cli.command("init-db")
    def init_db_command():
        """Create all database tables."""
        db.create_all()
        click.echo("Database tables created.")

    with app.app_context():
        from . import models  # noqa: F401
        db.create_all()

    logger.debug("Application created with %s config", config_name)
    return app


__all__ = ["create_app", "db"]

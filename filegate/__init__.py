"""
Flask application factory for the file gateway.

This module wires configuration, logging, extensions, blueprints and error
handlers. Route modules live under ``filegate.api`` and register themselves on
the shared blueprints when imported.
"""
import os

from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_talisman import Talisman

from config.settings import (
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    is_development_secret,
)

# Module-level so route modules can decorate views with per-endpoint limits.
# RATELIMIT_ENABLED / RATELIMIT_DEFAULT / RATELIMIT_STORAGE_URI come from app.config.
limiter = Limiter(key_func=get_remote_address)


def create_app(config_class=None):
    """
    Create and configure Flask application.

    Args:
        config_class: Configuration class to use. If None, will be determined
                     from FLASK_ENV environment variable.

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # Determine configuration class if not provided
    if config_class is None:
        env = os.environ.get("FLASK_ENV", "development")
        if env == "production":
            config_class = ProductionConfig
        elif env == "testing":
            config_class = TestingConfig
        else:
            config_class = DevelopmentConfig

    app.config.from_object(config_class)

    # Configure structured logging early
    from filegate.structured_logging import configure_structlog

    configure_structlog(app)

    # Production must not sign links with the placeholder secret
    if not app.debug and not app.config.get("TESTING"):
        signing_key = app.config.get("FILE_SIGNING_KEY") or app.config.get("SECRET_KEY")
        if is_development_secret(signing_key):
            raise RuntimeError(
                "Refusing to start: set SECRET_KEY or FILE_SIGNING_KEY to a real secret."
            )

    # Enforce PostgreSQL outside tests: SQLite is reserved for tests only
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if (
        isinstance(db_uri, str)
        and not app.config.get("TESTING")
        and db_uri.startswith("sqlite:")
    ):
        raise RuntimeError(
            "SQLite is only supported in TESTING. Set DATABASE_URL to PostgreSQL."
        )

    # Initialize extensions
    init_extensions(app)

    # Ensure the storage root exists
    from filegate import storage

    with app.app_context():
        os.makedirs(storage.storage_root(), exist_ok=True)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Security headers outside development and tests
    if not app.config.get("TESTING") and (app.config.get("FORCE_HTTPS") or not app.debug):
        Talisman(
            app,
            force_https=app.config.get("FORCE_HTTPS", False),
            strict_transport_security=app.config.get("STRICT_TRANSPORT_SECURITY", True),
            content_security_policy=app.config.get("CONTENT_SECURITY_POLICY"),
        )

    return app


def init_extensions(app):
    """
    Initialize Flask extensions.

    Args:
        app: Flask application instance
    """
    from filegate.auth import init_auth
    from filegate.models import db
    from filegate.security.signed_urls import init_signed_urls

    db.init_app(app)

    # Database migrations available in all environments
    Migrate(app, db)

    # CORS for the JSON API; file routes answer CORS themselves
    CORS(
        app,
        resources={r"/api/*": {"origins": app.config.get("CORS_API_ORIGINS", [])}},
    )

    # Rate limiting (disabled when RATELIMIT_ENABLED is False)
    limiter.init_app(app)

    # Bearer-token authentication
    init_auth(app)

    # Process-wide signed URL service
    init_signed_urls(app)

    # On request errors, ensure the transaction is rolled back
    @app.teardown_request
    def _teardown_request(exc):
        if exc is not None:
            db.session.rollback()


def register_blueprints(flask_app):
    """
    Register Flask blueprints.

    Args:
        flask_app: Flask application instance
    """
    from filegate.api import api_bp, files_bp, uploads_bp

    # Import route modules to register their routes on the shared blueprints
    import filegate.api.auth  # noqa: F401
    import filegate.api.files  # noqa: F401
    import filegate.api.health  # noqa: F401
    import filegate.api.uploads  # noqa: F401

    flask_app.register_blueprint(api_bp, url_prefix="/api")
    flask_app.register_blueprint(files_bp, url_prefix="/files")
    flask_app.register_blueprint(uploads_bp, url_prefix="/uploads")


def _json_error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def register_error_handlers(app):
    """
    Register JSON error handlers for common HTTP errors.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        return _json_error("Bad request", 400)

    @app.errorhandler(401)
    def unauthorized(error):
        """Handle 401 Unauthorized errors."""
        return _json_error("Authentication required", 401)

    @app.errorhandler(403)
    def forbidden(error):
        """Handle 403 Forbidden errors."""
        return _json_error("Forbidden", 403)

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        return _json_error("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle 405 Method Not Allowed errors."""
        return _json_error("Method not allowed", 405)

    @app.errorhandler(413)
    def request_entity_too_large(error):
        """Handle 413 Request Entity Too Large errors."""
        limit_mb = int(app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return _json_error(f"File too large. Maximum size is {limit_mb}MB", 413)

    @app.errorhandler(429)
    def ratelimit_handler(error):
        """Handle 429 Too Many Requests errors."""
        return _json_error("Too many requests. Please slow down.", 429)

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error."""
        return _json_error("An internal error occurred. Please try again later.", 500)

# FILE: spotitnow-backend/main.py
# Run with: gunicorn 'main:create_app()'

import atexit
import os
import logging
from flask import Flask, jsonify
from dotenv import load_dotenv
from pydantic import ValidationError

from logging_config import setup_logging
from extensions import limiter
from dependencies import ServiceRegistry
from exceptions import InvalidLocation, ManifestGenerationFailed, UnknownChallengeKind
from api.error_utils import (
    create_error_response, handle_exception, invalid_location_error, manifest_generation_error, not_found_error,
    validation_error,
)

# --- SETUP & CONFIG ---
load_dotenv()


def create_app(registry=None, config=None):
    """
    Builds the Flask app. Pass a ready ServiceRegistry (tests) or let one be built from
    the environment; the registry is closed at interpreter exit.
    """
    setup_logging()
    app = Flask(__name__)
    app.config.setdefault('RATELIMIT_STORAGE_URI', os.environ.get('REDIS_URL', 'memory://'))
    if config:
        app.config.update(config)

    if registry is None:
        registry = ServiceRegistry.from_env()
        atexit.register(registry.close)
    app.extensions['service_registry'] = registry

    # --- Initialize Extensions ---
    limiter.init_app(app)

    # --- Register Blueprints ---
    from api.challenges import challenges_bp
    from api.admin import admin_bp

    app.register_blueprint(challenges_bp, url_prefix='/regional-challenges')
    app.register_blueprint(admin_bp, url_prefix='/regional-challenges')

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health():
        return jsonify({"status": "OK"}), 200

    register_error_handlers(app)
    logging.info("SpotItNow challenge API initialized.")
    return app


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return validation_error(details={"errors": e.errors(include_url=False, include_context=False)})

    @app.errorhandler(InvalidLocation)
    def handle_invalid_location(e):
        return invalid_location_error(str(e))

    @app.errorhandler(UnknownChallengeKind)
    def handle_unknown_kind(e):
        return validation_error(str(e))

    @app.errorhandler(ManifestGenerationFailed)
    def handle_manifest_generation_failed(e):
        logging.error(f"Manifest generation failed for {e.region_key}: {e}")
        return manifest_generation_error(e.region_key)

    @app.errorhandler(404)
    def resource_not_found(e):
        """Handles 404 Not Found errors for a clean API response."""
        return not_found_error("The requested resource was not found.")

    @app.errorhandler(429)
    def rate_limited(e):
        return create_error_response("INVALID_REQUEST", "Too many requests.", status_code=429)

    @app.errorhandler(500)
    def internal_server_error(e):
        """Handles unexpected 500 Internal Server Errors for a clean API response."""
        return handle_exception(getattr(e, 'original_exception', None) or e, "request handler")

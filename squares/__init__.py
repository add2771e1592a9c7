import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
cache = Cache()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


limiter = Limiter(key_func=get_real_ip)


def create_app(config_name=None):
    app = Flask(__name__)

    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)
    limiter.init_app(app)

    from squares.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    from squares.utils.performance import log_request_performance, track_request_performance

    app.before_request(track_request_performance)
    app.after_request(log_request_performance)

    from squares.utils.logging_config import setup_logging

    setup_logging(app)

    with app.app_context():
        db.create_all()

    from squares.services.contest_service import contest_service

    contest_service.init_app(app)

    # Background polling of watched contests and games
    if not app.config.get("TESTING", False) and app.config.get("SCHEDULER_ENABLED", True):
        from squares.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    logger.info(
        f"Squares settlement service starting with '{config_name}' configuration "
        f"on chain {app.config.get('CHAIN_ID')}"
    )
    return app


def register_error_handlers(app):
    """Register global error handlers"""
    from squares.utils.errors import OutOfRangeError, UnsupportedStrategyError, UpstreamError

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if not app.config.get("DEBUG"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    @app.errorhandler(UpstreamError)
    def upstream_error(error):
        app.logger.warning(f"Upstream failure on {request.path}: {error}")
        return jsonify({"error": "Upstream source unavailable", "detail": str(error)}), 503

    @app.errorhandler(OutOfRangeError)
    def out_of_range_error(error):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(UnsupportedStrategyError)
    def unsupported_strategy_error(error):
        return jsonify({"error": str(error), "status": "pending"}), 422

    @app.errorhandler(HTTPException)
    def http_error(error):
        if error.code == 500:
            db.session.rollback()
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


from squares import models  # noqa: F401, E402 - imported for model registration

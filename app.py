"""Application factory: clean entry point for the Flask application."""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from sqlalchemy import event
from werkzeug.exceptions import HTTPException

from cli import register_cli
from config import enable_sqlite_fks, load_config
from errors import CommerceError, InternalError
from extensions import csrf, db, limiter
from routes import register_blueprints
from services.auth import ensure_admin_user, load_session_actors

load_dotenv()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _error_response(code: str, message: str, status: int, details: Optional[dict] = None):
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return jsonify({"success": False, "error": error}), status


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(test_config: Optional[dict] = None):
    """Create and configure the Flask application.

    *test_config* entries override the loaded settings (used by the tests).
    """
    app_cfg, email_cfg, wa_cfg, commerce_cfg, locale_cfg, db_uri = load_config()

    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = db_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.secret_key = app_cfg.secret_key
    app.config["APP_CONFIG"] = app_cfg
    app.config["EMAIL_CONFIG"] = email_cfg
    app.config["WHATSAPP_CONFIG"] = wa_cfg
    app.config["COMMERCE_CONFIG"] = commerce_cfg
    app.config["LOCALE_CONFIG"] = locale_cfg
    app.config["ENSURE_ADMIN_USER"] = True

    # Session security
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = (
        os.environ.get("FLASK_ENV", "") != "development"
    )
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["WTF_CSRF_HEADERS"] = ["X-CSRFToken", "X-CSRF-Token"]

    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    csrf.init_app(app)
    limiter.init_app(app)
    db.init_app(app)

    # SQLite foreign key enforcement
    if "sqlite" in app.config["SQLALCHEMY_DATABASE_URI"]:
        with app.app_context():
            event.listen(db.engine, "connect", enable_sqlite_fks)

    with app.app_context():
        db.create_all()
        if app.config["ENSURE_ADMIN_USER"]:
            ensure_admin_user()

    register_blueprints(app)
    register_cli(app)

    # ------------------------------------------------------------------
    # Request hooks
    # ------------------------------------------------------------------

    @app.before_request
    def load_current_actors():
        """Set ``g.current_user`` and ``g.current_customer`` from the session."""
        load_session_actors()

    # ------------------------------------------------------------------
    # Security headers
    # ------------------------------------------------------------------

    @app.after_request
    def set_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )
        if os.environ.get("FLASK_ENV") == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # ------------------------------------------------------------------
    # Error handlers
    # ------------------------------------------------------------------

    @app.errorhandler(CommerceError)
    def commerce_error(error: CommerceError):
        if error.status_code >= 500:
            logger.error("%s: %s", error.code, error.message)
        return jsonify({"success": False, "error": error.to_dict()}), error.status_code

    @app.errorhandler(429)
    def ratelimit_handler(_error):
        return _error_response(
            "RATE_LIMITED", "Too many attempts. Try again later.", 429
        )

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        code = {
            400: "VALIDATION_ERROR",
            401: "UNAUTHORIZED",
            403: "FORBIDDEN",
            404: "NOT_FOUND",
            405: "METHOD_NOT_ALLOWED",
        }.get(error.code, "HTTP_ERROR")
        return _error_response(code, error.description or error.name, error.code)

    @app.errorhandler(Exception)
    def unexpected_error(error: Exception):
        db.session.rollback()
        logger.exception("Unhandled error: %s", error)
        internal = InternalError("Internal server error")
        return jsonify({"success": False, "error": internal.to_dict()}), 500

    return app


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "false").lower() in (
        "true",
        "1",
        "yes",
    )
    host = os.environ.get("FLASK_HOST", "127.0.0.1")
    port = int(os.environ.get("FLASK_PORT", 5000))
    logger.info("Starting application on %s:%s (debug=%s)", host, port, debug_mode)
    app.run(host=host, port=port, debug=debug_mode)

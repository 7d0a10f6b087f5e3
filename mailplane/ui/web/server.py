"""
Web server — Flask app factory for the dashboard backend.

The dashboard UI talks to the JSON endpoints under ``/api``. Every
provisioning error maps onto a status code and a ``{error, code}``
body; stack traces never leave the process.
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from mailplane.adapters.base import CommandRunner
from mailplane.core.config.loader import load_settings
from mailplane.core.config.settings import Settings
from mailplane.core.context import build_context
from mailplane.core.errors import ProvisioningError
from mailplane.ui.web.auth import Authorizer, bearer_authorizer

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 64 * 1024


def create_app(
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
    authorize: Authorizer | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        settings: Loaded settings (default: discovered mailplane.yml).
        runner: Command runner (default: real subprocesses).
        authorize: Request authorizer (default: bearer token from settings).
    """
    if settings is None:
        settings = load_settings()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_BODY_BYTES
    app.config["MAILPLANE_CONTEXT"] = build_context(settings, runner)
    app.config["MAILPLANE_AUTHORIZE"] = authorize or bearer_authorizer(settings.admin_token)

    from mailplane.ui.web.routes_provision import provision_bp

    app.register_blueprint(provision_bp, url_prefix="/api")

    @app.errorhandler(ProvisioningError)
    def _provisioning_error(e: ProvisioningError):  # type: ignore[no-untyped-def]
        if e.http_status >= 500:
            logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-untyped-def]
        return jsonify({"error": e.description, "code": (e.name or "error").lower().replace(" ", "_")}), e.code

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):  # type: ignore[no-untyped-def]
        logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500

    logger.info("Web app created (lock_dir=%s)", settings.lock_dir)
    return app


def run_server(
    app: Flask,
    host: str = "127.0.0.1",
    port: int = 8000,
    debug: bool = False,
) -> None:
    """Run the Flask development server."""
    logger.info("Starting web server on %s:%d", host, port)
    app.run(host=host, port=port, debug=debug, use_reloader=False)

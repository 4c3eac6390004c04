"""
Flask application factory for the health monitor web interface.
"""

import os
import secrets
from pathlib import Path

from flask import Flask, g

from healthcheck.health.daemon import MonitorDaemon


def create_app(daemon: MonitorDaemon) -> Flask:
    """
    Create and configure Flask application.

    Args:
        daemon: Monitor daemon whose state the app exposes

    Returns:
        Configured Flask application
    """
    app = Flask(
        __name__,
        template_folder=str(Path(__file__).parent / "templates"),
    )

    app.config["HEALTHCHECK_DAEMON"] = daemon
    # Session key for flashed messages of the config editor
    app.config["SECRET_KEY"] = os.environ.get("HEALTHCHECK_SECRET_KEY") or secrets.token_hex(16)

    # Register blueprints
    from healthcheck.web.api import api_bp
    from healthcheck.web.views import views_bp

    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(views_bp)

    @app.before_request
    def before_request():
        """Expose daemon and store for each request."""
        g.daemon = app.config["HEALTHCHECK_DAEMON"]
        g.store = g.daemon.store

    return app

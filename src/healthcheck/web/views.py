"""
Web views for the health monitor dashboard and configuration editor.
"""

import logging
from datetime import datetime
from typing import Optional

import yaml
from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from healthcheck import __version__
from healthcheck.core.config import Config, ConfigError, ConfigPersistError
from healthcheck.core.models import utcnow
from healthcheck.web.api import token_matches, token_required

logger = logging.getLogger(__name__)

views_bp = Blueprint("views", __name__)


@views_bp.app_template_filter("uptime")
def format_uptime(uptime_start: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Render the time since uptime_start as '2d 3h 4m', '3h 4m 5s', '4m 5s' or '5s'."""
    if uptime_start is None:
        return "-"

    seconds = int(((now or utcnow()) - uptime_start).total_seconds())
    if seconds < 0:
        return "-"

    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def _config_text() -> str:
    return yaml.safe_dump(g.store.read_config().to_dict(), default_flow_style=False, sort_keys=False)


def _render_editor(config_text: str, status: int = 200, error: Optional[str] = None, token: str = ""):
    return render_template(
        "config.html",
        config_text=config_text,
        error=error,
        token=token,
        locked=token_required() and not config_text,
        token_required=token_required(),
        version=__version__,
    ), status


@views_bp.route("/")
def index():
    """Dashboard home page."""
    records = g.store.snapshot_all()
    counts = {"success": 0, "failure": 0, "unknown": 0}
    for record in records:
        counts[record.outcome.kind.value] += 1

    return render_template(
        "dashboard.html",
        records=records,
        counts=counts,
        now=utcnow(),
        version=__version__,
    )


@views_bp.route("/config", methods=["GET"])
def config_editor():
    """Configuration editor.

    When an API bearer token is configured the current configuration is only
    shown after the token has been submitted.
    """
    if token_required():
        return _render_editor("")
    return _render_editor(_config_text())


@views_bp.route("/config", methods=["POST"])
def config_submit():
    """Load or save the configuration from the editor form."""
    token = request.form.get("token", "")
    text = request.form.get("config", "")

    if not token_matches(token):
        return _render_editor("", 401, "Invalid bearer token")

    if request.form.get("action") == "load":
        return _render_editor(_config_text(), token=token)

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        return _render_editor(text, 400, f"Cannot parse configuration: {e}", token)

    try:
        new_config = Config.from_dict(data)
        result = g.daemon.reload(new_config)
    except ConfigError as e:
        return _render_editor(text, 400, f"Invalid configuration: {e}", token)
    except ConfigPersistError as e:
        logger.error(f"Failed to update configuration: {e}")
        return _render_editor(text, 500, f"Failed to update configuration: {e}", token)

    logger.info("Configuration updated successfully via editor")
    flash(
        f"Configuration updated: {len(result.added)} added, "
        f"{len(result.removed)} removed, {len(result.kept)} kept",
        "success",
    )
    return redirect(url_for("views.index"))

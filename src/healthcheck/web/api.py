"""
REST API endpoints for the health monitor.
"""

import hmac
import logging
from functools import wraps
from typing import Optional

from flask import Blueprint, g, jsonify, request

from healthcheck.core.config import Config, ConfigError, ConfigPersistError

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


def token_required() -> bool:
    """True if the configuration sets an API bearer token."""
    return bool(g.store.read_config().api_bearer_token)


def token_matches(token: Optional[str]) -> bool:
    """Compare a supplied token with the configured one in constant time."""
    expected = g.store.read_config().api_bearer_token
    if not expected:
        return True
    if not token:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())


def require_token(view):
    """Reject the request unless it carries the configured bearer token.

    Without an ``api_bearer_token`` in the configuration the endpoint is open.
    """

    @wraps(view)
    def wrapper(*args, **kwargs):
        if token_required():
            header = request.headers.get("Authorization")
            if not header:
                return jsonify({"error": "Missing Authorization header"}), 401
            if not header.startswith("Bearer "):
                return jsonify({"error": "Invalid Authorization header format"}), 401
            if not token_matches(header[len("Bearer "):]):
                return jsonify({"error": "Invalid bearer token"}), 401
        return view(*args, **kwargs)

    return wrapper


# --- Service Endpoints ---

@api_bp.route("/services", methods=["GET"])
def list_services():
    """List the health records of all monitored services."""
    records = g.store.snapshot_all()
    return jsonify({
        "services": [record.to_dict() for record in records],
        "count": len(records),
    })


@api_bp.route("/services/<service_id>", methods=["GET"])
def get_service(service_id: str):
    """Get the health record of one service."""
    record = g.store.get_record(service_id)
    if not record:
        return jsonify({"error": f"Service '{service_id}' not found"}), 404
    return jsonify(record.to_dict())


# --- Configuration Endpoints ---

@api_bp.route("/config", methods=["GET"])
@require_token
def get_config():
    """Get the current configuration."""
    return jsonify(g.store.read_config().to_dict())


@api_bp.route("/config", methods=["PUT"])
@require_token
def update_config():
    """Replace the configuration and restart monitoring."""
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "A JSON configuration body is required"}), 400

    try:
        new_config = Config.from_dict(data)
    except ConfigError as e:
        return jsonify({"error": f"Invalid configuration: {e}"}), 400

    try:
        result = g.daemon.reload(new_config)
    except ConfigError as e:
        return jsonify({"error": f"Invalid configuration: {e}"}), 400
    except ConfigPersistError as e:
        logger.error(f"Failed to update configuration: {e}")
        return jsonify({"error": f"Failed to update configuration: {e}"}), 500

    logger.info("Configuration updated successfully via API")
    return jsonify({
        "message": "Configuration updated successfully",
        "added": sorted(result.added),
        "removed": sorted(result.removed),
        "kept": sorted(result.kept),
    })


# --- Status Endpoints ---

@api_bp.route("/health", methods=["GET"])
def health_check():
    """Liveness check."""
    return "OK", 200, {"Content-Type": "text/plain"}

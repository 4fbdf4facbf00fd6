"""Optional API key check in front of the unit endpoints."""

import hmac
import os

from flask import jsonify, request

# Probes, Prometheus scraping and API docs stay open
OPEN_PATHS = frozenset(["/health", "/ready", "/metrics", "/apidocs", "/apispec.json"])
OPEN_PREFIXES = ("/flasgger_static/",)

API_KEY_HEADER = "X-API-Key"


def is_open_path(path):
    return path in OPEN_PATHS or path.startswith(OPEN_PREFIXES)


def key_matches(provided, expected):
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def _resolve_api_key(config_override):
    # An explicit None in the override disables auth even if API_KEY is exported
    if config_override is not None and "API_KEY" in config_override:
        return config_override["API_KEY"]
    return os.getenv("API_KEY")


def init_auth(app, config_override=None):
    """Install the API key check.

    With API_KEY unset, every request passes. Otherwise requests outside
    OPEN_PATHS need a matching X-API-Key header and get a 401 JSON error
    without one. On a shared machine this keeps other local users from
    toggling load.

    Args:
        app: Flask application instance
        config_override: Optional config dict (for testing)
    """
    app.config["API_KEY"] = _resolve_api_key(config_override)
    app.logger.info(
        "API key authentication %s",
        "enabled" if app.config["API_KEY"] else "disabled (API_KEY not set)",
    )

    @app.before_request
    def check_api_key():
        expected = app.config.get("API_KEY")
        if not expected or is_open_path(request.path):
            return None
        if key_matches(request.headers.get(API_KEY_HEADER), expected):
            return None

        app.logger.warning(
            "Rejected %s %s from %s: missing or invalid API key",
            request.method, request.path, request.remote_addr,
        )
        return jsonify({
            "error": "Unauthorized",
            "message": f"Valid API key required in {API_KEY_HEADER} header",
        }), 401

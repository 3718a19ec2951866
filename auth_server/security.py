"""
security.py - Request Guards & Response Hardening

  - IP allow-list (ALLOWED_IPS, empty = allow all)
  - X-API-Key check on the /auth/nostr routes (API_KEYS, empty = disabled)
  - per-client rate limiting (Flask-Limiter)
  - security + CORS response headers
"""

import logging

from flask import request, jsonify
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from auth_server.api_keys import api_key_allowed
from auth_server.config import AuthConfig

logger = logging.getLogger(__name__)

PROTECTED_PREFIX = "/auth/nostr"

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-Frame-Options": "DENY",
}


def init_security(app, config: AuthConfig) -> Limiter:
    limiter = Limiter(
        get_remote_address,
        app=app,
        default_limits=[config.rate_limit],
        storage_uri="memory://",
        enabled=config.rate_limit_enabled,
    )

    @app.before_request
    def _ip_allow_list():
        if not config.allowed_ips:
            return None
        ip = request.remote_addr or ""
        if ip not in config.allowed_ips:
            logger.warning(f"[SECURITY] Blocked request from unauthorized IP {ip or 'unknown'}")
            return jsonify({"success": False, "error": "Access denied"}), 403
        return None

    @app.before_request
    def _api_key():
        if not config.api_keys or request.method == "OPTIONS":
            return None
        if not request.path.startswith(PROTECTED_PREFIX):
            return None
        if not api_key_allowed(request.headers.get("X-API-Key", ""), config.api_keys):
            logger.warning(f"[SECURITY] Invalid API key from {request.remote_addr}")
            return jsonify({"success": False, "error": "Invalid API key"}), 401
        return None

    @app.after_request
    def _headers(response):
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)

        origin = request.headers.get("Origin")
        if "*" in config.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin and origin in config.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization, X-API-Key"
        return response

    return limiter

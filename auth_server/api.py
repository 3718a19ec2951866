"""
api.py - Flask REST API Server

Routes:
  GET  /api/health
  GET  /api/logs                       (JWT)
  POST /auth/nostr/challenge/<pubkey>
  POST /auth/nostr/verify
  POST /auth/nostr/enroll
  POST /auth/nostr/enroll/verify
  GET  /auth/nostr/profile/<pubkey>
  GET  /auth/nostr/me                  (JWT)
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import logging

from flask import Flask, Blueprint, request, jsonify, g, current_app

from nostr_common.errors import AuthError
from nostr_common.models import VerificationResult
from nostr_common.utils import current_timestamp, mask_sensitive, short_key
from auth_server import database as db
from auth_server.challenges import ChallengeService, make_store
from auth_server.config import AuthConfig, check_token_lifetime, load_config
from auth_server.key_loader import load_server_keys
from auth_server.security import init_security
from auth_server.tokens import issue_token, parse_duration, require_jwt

logger = logging.getLogger("nostr_auth_api")

auth_bp = Blueprint("nostr_auth", __name__, url_prefix="/auth/nostr")
api_bp = Blueprint("api", __name__, url_prefix="/api")


# ─── HELPERS ──────────────────────────────────────────────────────────────────

def client_ip() -> str:
    return request.remote_addr or ""


def _service() -> ChallengeService:
    return current_app.extensions["nostr_auth"]


def _config() -> AuthConfig:
    return current_app.config["AUTH_CONFIG"]


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ─── API ROUTES ───────────────────────────────────────────────────────────────

@api_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "timestamp": current_timestamp()}), 200


@api_bp.route("/logs", methods=["GET"])
@require_jwt
def audit_logs():
    try:
        limit = min(int(request.args.get("limit", 50)), 500)
    except ValueError:
        return jsonify({"success": False, "error": "limit must be an integer"}), 400
    logs = db.get_auth_logs(pubkey=g.pubkey, limit=limit)
    return jsonify({"logs": logs, "count": len(logs)}), 200


# ─── NOSTR AUTH ROUTES ────────────────────────────────────────────────────────

@auth_bp.route("/challenge/<pubkey>", methods=["POST"])
def create_challenge(pubkey: str):
    challenge = _service().create_challenge(pubkey.strip().lower())
    db.log_event(challenge.pubkey, "challenge", challenge.created_at, client_ip=client_ip())
    logger.info(f"[CHALLENGE] Issued for {short_key(challenge.pubkey)} from {client_ip()}")
    return jsonify({
        "challenge": challenge.challenge,
        "challengeId": challenge.id,
        "expiresAt": challenge.expires_at,
        "event": challenge.event,
    }), 200


@auth_bp.route("/verify", methods=["POST"])
def verify():
    data = _json_body()
    event = data.get("event") or data.get("signedEvent")
    if not event:
        return jsonify({"success": False, "error": "Missing event"}), 400
    logger.debug(f"[VERIFY] Payload: {mask_sensitive(event) if isinstance(event, dict) else event!r}")

    claimed = event.get("pubkey") if isinstance(event, dict) else None
    try:
        pubkey = _service().verify_challenge(event)
    except AuthError as e:
        db.log_event(claimed if isinstance(claimed, str) else None, "auth_fail", current_timestamp(),
                     detail=e.code, client_ip=client_ip())
        logger.warning(f"[VERIFY] Rejected {short_key(claimed) if isinstance(claimed, str) else '?'}: {e.message}")
        raise

    cfg = _config()
    token = issue_token(pubkey, cfg.jwt_secret, cfg.jwt_expires_in, cfg.jwt_algorithm)
    db.log_event(pubkey, "auth_success", current_timestamp(), client_ip=client_ip())
    logger.info(f"[VERIFY] AUTH_SUCCESS for {short_key(pubkey)}")
    result = VerificationResult(success=True, pubkey=pubkey, token=token)
    return jsonify({**result.to_dict(), "expiresIn": parse_duration(cfg.jwt_expires_in)}), 200


@auth_bp.route("/enroll", methods=["POST"])
def enroll():
    pubkey = str(_json_body().get("pubkey", "")).strip().lower()
    if not pubkey:
        return jsonify({"success": False, "error": "Missing pubkey"}), 400
    enrollment = _service().start_enrollment(pubkey)
    logger.info(f"[ENROLL] Started for {short_key(pubkey)} from {client_ip()}")
    return jsonify({"enrollment": enrollment.to_dict()}), 200


@auth_bp.route("/enroll/verify", methods=["POST"])
def verify_enrollment():
    event = _json_body().get("signedEvent")
    if not event:
        return jsonify({"success": False, "error": "Missing signedEvent"}), 400
    enrollment = _service().verify_enrollment(event)
    db.log_event(enrollment.pubkey, "enroll", enrollment.updated_at, client_ip=client_ip())
    logger.info(f"[ENROLL] Completed for {short_key(enrollment.pubkey)}")
    return jsonify({"success": True, "enrollment": enrollment.to_dict()}), 200


@auth_bp.route("/profile/<pubkey>", methods=["GET"])
def get_profile(pubkey: str):
    profile = _service().get_profile(pubkey.strip().lower())
    if profile is None:
        return jsonify({"success": False, "error": "Profile not found"}), 404
    return jsonify(profile.to_dict()), 200


@auth_bp.route("/me", methods=["GET"])
@require_jwt
def me():
    return jsonify({"pubkey": g.pubkey, "exp": g.token_claims["exp"]}), 200


# ─── ERROR HANDLERS ───────────────────────────────────────────────────────────

def _register_error_handlers(app: Flask):

    @app.errorhandler(AuthError)
    def auth_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        logger.warning(f"[SECURITY] Rate limit exceeded for {client_ip()}")
        return jsonify({"success": False, "error": "Too many requests, please try again later"}), 429

    @app.errorhandler(500)
    def internal(e):
        logger.exception("Internal server error")
        return jsonify({"success": False, "error": "Internal server error"}), 500


# ─── APP FACTORY ──────────────────────────────────────────────────────────────

def create_app(config: AuthConfig = None, service: ChallengeService = None) -> Flask:
    config = config or load_config()
    check_token_lifetime(config.jwt_expires_in)

    db.set_db_path(config.db_path)
    db.init_db()
    if not config.server_public_key:
        load_server_keys(config)

    if service is None:
        service = ChallengeService(
            make_store(config.challenge_store),
            ttl=config.challenge_ttl,
            max_skew=config.max_event_skew,
            server_private_key=config.server_private_key,
        )

    app = Flask(__name__)
    app.config["AUTH_CONFIG"] = config
    app.extensions["nostr_auth"] = service

    init_security(app, config)
    app.register_blueprint(api_bp)
    app.register_blueprint(auth_bp)
    _register_error_handlers(app)

    logger.info(f"Server pubkey: {config.server_public_key}")
    return app


# ─── STARTUP ──────────────────────────────────────────────────────────────────

def main():
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    app = create_app(config)

    ssl_context = None
    if config.use_https and os.path.exists(config.cert_file) and os.path.exists(config.key_file):
        ssl_context = (config.cert_file, config.key_file)
        protocol = "https"
        logger.info(f"TLS enabled - using {config.cert_file}")
    else:
        protocol = "http"
        logger.info("Running in HTTP mode")

    logger.info(f"Nostr auth: {protocol}://{config.host}:{config.port}/auth/nostr")
    logger.info(f"API health check: {protocol}://{config.host}:{config.port}/api/health")
    app.run(host=config.host, port=config.port, ssl_context=ssl_context, debug=config.debug)


if __name__ == "__main__":
    main()

"""
config.py - Server Configuration

Values come from the process environment; a .env file in the working
directory (or the path given to load_config) is read first.
"""

import os
import secrets
import logging
from dataclasses import dataclass, field

from dotenv import load_dotenv

from auth_server.tokens import parse_duration

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────
DEFAULT_HOST            = "127.0.0.1"
DEFAULT_PORT            = 3002
DEFAULT_JWT_ALGORITHM   = "HS256"
DEFAULT_JWT_EXPIRES_IN  = "1h"
DEFAULT_EVENT_TIMEOUT_MS = 300_000     # challenge lifetime: 5 minutes
DEFAULT_MAX_EVENT_SKEW  = 300          # seconds either side of now
DEFAULT_RATE_LIMIT      = "100 per 15 minutes"

BASE_DIR  = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR  = os.path.join(BASE_DIR, "data")
CERT_DIR  = os.path.join(BASE_DIR, "certs")

KEY_MODES = ("development", "production")
STORE_BACKENDS = ("memory", "sqlite")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list:
    raw = os.environ.get(name, "")
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass
class AuthConfig:
    # server
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    debug: bool = False
    use_https: bool = False
    cert_file: str = os.path.join(CERT_DIR, "server.crt")
    key_file: str = os.path.join(CERT_DIR, "server.key")
    log_level: str = "INFO"

    # tokens
    jwt_secret: str = ""
    jwt_algorithm: str = DEFAULT_JWT_ALGORITHM
    jwt_expires_in: str = DEFAULT_JWT_EXPIRES_IN

    # challenges
    event_timeout_ms: int = DEFAULT_EVENT_TIMEOUT_MS
    max_event_skew: int = DEFAULT_MAX_EVENT_SKEW
    challenge_store: str = "memory"
    db_path: str = os.path.join(DATA_DIR, "nostr_auth.db")

    # server identity
    key_management_mode: str = "development"
    server_private_key: str = ""
    server_public_key: str = ""
    server_key_file: str = os.path.join(DATA_DIR, "server_key")

    # security layer
    api_keys: list = field(default_factory=list)
    allowed_ips: list = field(default_factory=list)
    cors_origins: list = field(default_factory=lambda: ["*"])
    rate_limit: str = DEFAULT_RATE_LIMIT
    rate_limit_enabled: bool = True

    @property
    def challenge_ttl(self) -> int:
        """Challenge lifetime in whole seconds."""
        return max(1, self.event_timeout_ms // 1000)

    @property
    def is_production(self) -> bool:
        return self.key_management_mode == "production"


def check_token_lifetime(value):
    """Raise ValueError unless *value* is a usable JWT_EXPIRES_IN duration."""
    try:
        parse_duration(value)
    except ValueError as e:
        raise ValueError(f"JWT_EXPIRES_IN is invalid: {e}") from None


def load_config(env_path: str = None) -> AuthConfig:
    """Build an AuthConfig from the environment (after reading .env)."""
    if env_path:
        load_dotenv(env_path, override=True)
    else:
        load_dotenv()

    mode = os.environ.get("KEY_MANAGEMENT_MODE", "development").strip().lower()
    if mode not in KEY_MODES:
        raise ValueError(f"KEY_MANAGEMENT_MODE must be one of {KEY_MODES}, got {mode!r}")

    store = os.environ.get("CHALLENGE_STORE", "memory").strip().lower()
    if store not in STORE_BACKENDS:
        raise ValueError(f"CHALLENGE_STORE must be one of {STORE_BACKENDS}, got {store!r}")

    jwt_expires_in = os.environ.get("JWT_EXPIRES_IN", DEFAULT_JWT_EXPIRES_IN)
    check_token_lifetime(jwt_expires_in)

    jwt_secret = os.environ.get("JWT_SECRET", "")
    if not jwt_secret:
        if mode == "production":
            raise ValueError("JWT_SECRET is required in production mode")
        # dev only: tokens stop validating after a restart
        jwt_secret = secrets.token_hex(32)
        logger.warning("JWT_SECRET not set - using a random secret for this process")

    cfg = AuthConfig(
        host=os.environ.get("HOST", DEFAULT_HOST),
        port=_env_int("PORT", DEFAULT_PORT),
        debug=_env_bool("DEBUG"),
        use_https=_env_bool("USE_HTTPS"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        jwt_secret=jwt_secret,
        jwt_algorithm=os.environ.get("JWT_ALGORITHM", DEFAULT_JWT_ALGORITHM),
        jwt_expires_in=jwt_expires_in,
        event_timeout_ms=_env_int("EVENT_TIMEOUT_MS", DEFAULT_EVENT_TIMEOUT_MS),
        max_event_skew=_env_int("MAX_EVENT_SKEW_SEC", DEFAULT_MAX_EVENT_SKEW),
        challenge_store=store,
        db_path=os.environ.get("NOSTR_AUTH_DB_PATH", os.path.join(DATA_DIR, "nostr_auth.db")),
        key_management_mode=mode,
        server_private_key=os.environ.get("SERVER_PRIVATE_KEY", "").strip().lower(),
        server_key_file=os.environ.get("SERVER_KEY_FILE", os.path.join(DATA_DIR, "server_key")),
        api_keys=_env_list("API_KEYS"),
        allowed_ips=_env_list("ALLOWED_IPS"),
        cors_origins=_env_list("CORS_ORIGINS") or ["*"],
        rate_limit=os.environ.get("RATE_LIMIT", DEFAULT_RATE_LIMIT),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
    )
    logger.info(
        f"Config loaded: mode={cfg.key_management_mode} store={cfg.challenge_store} "
        f"challenge_ttl={cfg.challenge_ttl}s jwt_expires_in={cfg.jwt_expires_in}"
    )
    return cfg

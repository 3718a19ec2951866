"""
tokens.py - Session Token Utility

Thin wrapper over PyJWT. A session token carries only:
  pubkey - the authenticated Nostr pubkey
  iat    - issued-at (unix seconds)
  exp    - expiry (unix seconds)
"""

import re
import time
import logging
from functools import wraps

import jwt as pyjwt
from flask import request, g, current_app

from nostr_common.errors import TokenExpired, TokenInvalid
from nostr_common.utils import short_key

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value) -> int:
    """Seconds for an int or a duration string such as '30s', '15m', '1h', '7d'."""
    if isinstance(value, int) and not isinstance(value, bool):
        seconds = value
    else:
        match = _DURATION_RE.match(str(value).lower())
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


def issue_token(pubkey: str, secret: str, expires_in="1h",
                algorithm: str = "HS256", now: int = None) -> str:
    iat = int(time.time()) if now is None else now
    payload = {
        "pubkey": pubkey,
        "iat": iat,
        "exp": iat + parse_duration(expires_in),
    }
    return pyjwt.encode(payload, secret, algorithm=algorithm)


def verify_token(token: str, secret: str, algorithm: str = "HS256") -> dict:
    try:
        payload = pyjwt.decode(
            token, secret, algorithms=[algorithm],
            options={"require": ["exp", "iat"]},
        )
    except pyjwt.ExpiredSignatureError:
        raise TokenExpired()
    except pyjwt.InvalidTokenError as e:
        raise TokenInvalid(f"Token invalid: {e}")
    if not isinstance(payload.get("pubkey"), str):
        raise TokenInvalid("Token invalid: missing pubkey claim")
    return payload


def require_jwt(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            raise TokenInvalid("Missing or malformed Authorization header")
        cfg = current_app.config["AUTH_CONFIG"]
        payload = verify_token(auth_header[7:], cfg.jwt_secret, cfg.jwt_algorithm)
        g.pubkey = payload["pubkey"]
        g.token_claims = payload
        logger.debug(f"[JWT] Accepted token for {short_key(g.pubkey)}")
        return f(*args, **kwargs)
    return decorated

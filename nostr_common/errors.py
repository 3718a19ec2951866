"""
errors.py - Authentication Error Types
Common: Shared by the validator, challenge service, token utility and API.

Every failure the handshake can produce is an AuthError subclass carrying
the HTTP status the API answers with and a stable machine-readable code.
"""


class AuthError(Exception):
    status_code = 400
    code = "auth_error"
    default_message = "Authentication error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


# ─────────────────────────────────────────────
# EVENT ERRORS
# ─────────────────────────────────────────────
class InvalidEvent(AuthError):
    status_code = 400
    code = "invalid_event"
    default_message = "Invalid event"


class InvalidSignature(AuthError):
    status_code = 401
    code = "invalid_signature"
    default_message = "Invalid signature"


# ─────────────────────────────────────────────
# CHALLENGE ERRORS
# ─────────────────────────────────────────────
class ChallengeNotFound(AuthError):
    status_code = 401
    code = "challenge_not_found"
    default_message = "Challenge not found"


class ChallengeExpired(AuthError):
    status_code = 401
    code = "challenge_expired"
    default_message = "Challenge expired"


class ChallengeMismatch(AuthError):
    status_code = 401
    code = "challenge_mismatch"
    default_message = "Challenge was issued for a different pubkey"


# ─────────────────────────────────────────────
# TOKEN ERRORS
# ─────────────────────────────────────────────
class TokenExpired(AuthError):
    status_code = 401
    code = "token_expired"
    default_message = "Token expired"


class TokenInvalid(AuthError):
    status_code = 401
    code = "token_invalid"
    default_message = "Token invalid"


# ─────────────────────────────────────────────
# ENROLLMENT ERRORS
# ─────────────────────────────────────────────
class EnrollmentNotFound(AuthError):
    status_code = 404
    code = "enrollment_not_found"
    default_message = "No pending enrollment for pubkey"

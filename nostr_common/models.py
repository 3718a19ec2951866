"""
models.py - Shared Data Models
Common: Shared utilities and models
"""

from dataclasses import dataclass, field, asdict
from typing import Optional
import time


@dataclass
class Challenge:
    id: str
    challenge: str           # 32 random bytes, hex
    pubkey: str
    created_at: int
    expires_at: int
    event: Optional[dict] = None   # server-signed kind 22242 event, if a server key is set

    def is_expired(self, now: int = None) -> bool:
        now = int(time.time()) if now is None else now
        return now > self.expires_at

    def to_dict(self):
        return asdict(self)

    @staticmethod
    def from_dict(d: dict) -> "Challenge":
        return Challenge(
            id=d["id"],
            challenge=d["challenge"],
            pubkey=d["pubkey"],
            created_at=d["created_at"],
            expires_at=d["expires_at"],
            event=d.get("event"),
        )


@dataclass
class VerificationResult:
    success: bool
    pubkey: Optional[str] = None
    error: Optional[str] = None
    token: Optional[str] = None

    def to_dict(self):
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class NostrProfile:
    pubkey: str
    name: Optional[str] = None
    about: Optional[str] = None
    picture: Optional[str] = None
    nip05: Optional[str] = None
    created_at: int = field(default_factory=lambda: int(time.time()))
    updated_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self):
        return asdict(self)

    @staticmethod
    def from_dict(d: dict) -> "NostrProfile":
        now = int(time.time())
        return NostrProfile(
            pubkey=d["pubkey"],
            name=d.get("name"),
            about=d.get("about"),
            picture=d.get("picture"),
            nip05=d.get("nip05"),
            created_at=d.get("created_at", now),
            updated_at=d.get("updated_at", now),
        )


@dataclass
class Enrollment:
    """A pending or settled enrollment of a pubkey."""
    id: str
    pubkey: str
    status: str              # 'pending' | 'completed' | 'failed'
    challenge: str
    expires_at: int
    created_at: int = field(default_factory=lambda: int(time.time()))
    updated_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self):
        return asdict(self)

    @staticmethod
    def from_dict(d: dict) -> "Enrollment":
        return Enrollment(**d)

"""
database.py - SQLite Database Layer

Tables:
  challenges   - outstanding login challenges (row-backed challenge store)
  enrollments  - pending / settled enrollments
  profiles     - Nostr profiles of enrolled pubkeys
  server_keys  - the server's own keypair (production key management)
  auth_logs    - authentication event log
"""

import sqlite3
import json
import logging
import os

from nostr_common.utils import ensure_dir

logger = logging.getLogger(__name__)

DB_PATH = os.environ.get(
    "NOSTR_AUTH_DB_PATH",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data", "nostr_auth.db"),
)


def set_db_path(path: str):
    global DB_PATH
    DB_PATH = path


def get_connection() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL;")
    return conn


def init_db():
    """Create tables if they don't already exist."""
    ensure_dir(os.path.dirname(DB_PATH))
    with get_connection() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS challenges (
                challenge   TEXT PRIMARY KEY,
                id          TEXT NOT NULL,
                pubkey      TEXT NOT NULL,
                created_at  INTEGER NOT NULL,
                expires_at  INTEGER NOT NULL,
                event       TEXT              -- JSON, server-signed challenge event
            );

            CREATE TABLE IF NOT EXISTS enrollments (
                id          TEXT PRIMARY KEY,
                pubkey      TEXT NOT NULL,
                status      TEXT NOT NULL,    -- 'pending' | 'completed' | 'failed'
                challenge   TEXT NOT NULL,
                expires_at  INTEGER NOT NULL,
                created_at  INTEGER NOT NULL,
                updated_at  INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS profiles (
                pubkey      TEXT PRIMARY KEY,
                name        TEXT,
                about       TEXT,
                picture     TEXT,
                nip05       TEXT,
                created_at  INTEGER NOT NULL,
                updated_at  INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS server_keys (
                id          INTEGER PRIMARY KEY CHECK (id = 1),
                private_key TEXT NOT NULL,
                public_key  TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS auth_logs (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                pubkey      TEXT,
                event_type  TEXT,         -- 'challenge' | 'auth_success' | 'auth_fail' | 'enroll'
                detail      TEXT,
                timestamp   INTEGER,
                client_ip   TEXT
            );
        """)
    logger.info(f"Database initialised at {DB_PATH}")


# ─────────────────────────────────────────────
# CHALLENGE OPERATIONS
# ─────────────────────────────────────────────
def insert_challenge(challenge: dict):
    with get_connection() as conn:
        conn.execute(
            """INSERT INTO challenges(challenge, id, pubkey, created_at, expires_at, event)
               VALUES(?,?,?,?,?,?)""",
            (
                challenge["challenge"], challenge["id"], challenge["pubkey"],
                challenge["created_at"], challenge["expires_at"],
                json.dumps(challenge["event"]) if challenge.get("event") else None,
            ),
        )


def get_challenge(value: str) -> dict | None:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM challenges WHERE challenge=?", (value,)).fetchone()
    if row is None:
        return None
    d = dict(row)
    d["event"] = json.loads(d["event"]) if d["event"] else None
    return d


def delete_challenge(value: str) -> bool:
    """Delete one challenge. True only for the caller whose DELETE removed the row."""
    with get_connection() as conn:
        cur = conn.execute("DELETE FROM challenges WHERE challenge=?", (value,))
    return cur.rowcount == 1


def purge_expired_challenges(now: int) -> int:
    with get_connection() as conn:
        cur = conn.execute("DELETE FROM challenges WHERE expires_at < ?", (now,))
    return cur.rowcount


# ─────────────────────────────────────────────
# ENROLLMENT OPERATIONS
# ─────────────────────────────────────────────
def insert_enrollment(enrollment: dict):
    with get_connection() as conn:
        conn.execute(
            """INSERT INTO enrollments(id, pubkey, status, challenge, expires_at, created_at, updated_at)
               VALUES(:id, :pubkey, :status, :challenge, :expires_at, :created_at, :updated_at)""",
            enrollment,
        )


def get_pending_enrollment(pubkey: str) -> dict | None:
    with get_connection() as conn:
        row = conn.execute(
            """SELECT * FROM enrollments WHERE pubkey=? AND status='pending'
               ORDER BY created_at DESC LIMIT 1""",
            (pubkey,),
        ).fetchone()
    return dict(row) if row else None


def update_enrollment_status(enrollment_id: str, status: str, timestamp: int) -> bool:
    """Move a pending enrollment to *status*. False if it was no longer pending."""
    with get_connection() as conn:
        cur = conn.execute(
            "UPDATE enrollments SET status=?, updated_at=? WHERE id=? AND status='pending'",
            (status, timestamp, enrollment_id),
        )
    return cur.rowcount == 1


# ─────────────────────────────────────────────
# PROFILE OPERATIONS
# ─────────────────────────────────────────────
def upsert_profile(profile: dict):
    with get_connection() as conn:
        conn.execute(
            """INSERT INTO profiles(pubkey, name, about, picture, nip05, created_at, updated_at)
               VALUES(:pubkey, :name, :about, :picture, :nip05, :created_at, :updated_at)
               ON CONFLICT(pubkey) DO UPDATE SET name=COALESCE(excluded.name, profiles.name),
                                                 about=COALESCE(excluded.about, profiles.about),
                                                 picture=COALESCE(excluded.picture, profiles.picture),
                                                 nip05=COALESCE(excluded.nip05, profiles.nip05),
                                                 updated_at=excluded.updated_at""",
            profile,
        )
    logger.info(f"Profile stored for '{profile['pubkey'][:16]}…'")


def get_profile(pubkey: str) -> dict | None:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM profiles WHERE pubkey=?", (pubkey,)).fetchone()
    return dict(row) if row else None


# ─────────────────────────────────────────────
# SERVER KEYS
# ─────────────────────────────────────────────
def load_server_keys() -> dict | None:
    with get_connection() as conn:
        row = conn.execute("SELECT private_key, public_key FROM server_keys WHERE id=1").fetchone()
    return dict(row) if row else None


def store_server_keys(private_key: str, public_key: str):
    with get_connection() as conn:
        conn.execute(
            """INSERT INTO server_keys(id, private_key, public_key) VALUES(1,?,?)
               ON CONFLICT(id) DO UPDATE SET private_key=excluded.private_key,
                                             public_key=excluded.public_key""",
            (private_key, public_key),
        )


# ─────────────────────────────────────────────
# AUDIT LOG
# ─────────────────────────────────────────────
def log_event(pubkey: str, event_type: str, timestamp: int,
              detail: str = None, client_ip: str = ""):
    with get_connection() as conn:
        conn.execute(
            """INSERT INTO auth_logs(pubkey, event_type, detail, timestamp, client_ip)
               VALUES(?,?,?,?,?)""",
            (pubkey, event_type, detail, timestamp, client_ip),
        )


def get_auth_logs(pubkey: str = None, limit: int = 50) -> list:
    query = "SELECT * FROM auth_logs"
    params: tuple = ()
    if pubkey:
        query += " WHERE pubkey=?"
        params = (pubkey,)
    query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
    params += (limit,)
    with get_connection() as conn:
        rows = conn.execute(query, params).fetchall()
    return [dict(r) for r in rows]

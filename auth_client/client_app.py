"""
client_app.py - Client Application Interface
Drives the challenge-response login against a running auth server.

Usage:
  python client_app.py keygen
  python client_app.py login  --key <private key hex>
  python client_app.py enroll --key <private key hex> [--name alice]
  python client_app.py whoami
"""

import sys
import os
import json
import argparse
import logging
import requests
import urllib3

# Allow self-signed cert
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from nostr_common.event import sign_event, AUTH_EVENT_KIND, ENROLL_EVENT_KIND
from nostr_common.keys import generate_keypair, public_key_from_private
from nostr_common.utils import pretty_json, short_key

logger = logging.getLogger(__name__)

SERVER_URL   = os.environ.get("NOSTR_AUTH_URL", "http://127.0.0.1:3002")
API_KEY      = os.environ.get("NOSTR_AUTH_API_KEY", "")
CLIENT_STORE = os.path.join(os.path.dirname(__file__), "client_store.json")


class ClientError(Exception):
    pass


# ──────────────────────────────────────────────
# LOCAL CLIENT STORAGE (session tokens)
# ──────────────────────────────────────────────
def load_client_store(path: str = None) -> dict:
    path = path or CLIENT_STORE
    if os.path.exists(path):
        with open(path) as f:
            return json.load(f)
    return {}


def save_client_store(store: dict, path: str = None):
    with open(path or CLIENT_STORE, "w") as f:
        json.dump(store, f, indent=2)


# ──────────────────────────────────────────────
# HTTP HELPERS
# ──────────────────────────────────────────────
def _headers(token: str = None) -> dict:
    headers = {}
    if API_KEY:
        headers["X-API-Key"] = API_KEY
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _post(session, path: str, payload: dict = None, token: str = None) -> dict:
    try:
        resp = session.post(
            f"{SERVER_URL}{path}", json=payload or {},
            headers=_headers(token), verify=False, timeout=10,
        )
    except requests.exceptions.ConnectionError:
        raise ClientError(f"Cannot connect to server at {SERVER_URL}")
    body = resp.json() if resp.content else {}
    if resp.status_code != 200:
        raise ClientError(f"{path} failed ({resp.status_code}): {body.get('error', resp.text)}")
    return body


# ──────────────────────────────────────────────
# LOGIN
# ──────────────────────────────────────────────
def login(private_key: str, session=None) -> dict:
    """Request a challenge, sign it, exchange it for a session token."""
    session = session or requests.Session()
    pubkey = public_key_from_private(private_key)
    logger.info(f"Logging in as {short_key(pubkey)}")

    challenge = _post(session, f"/auth/nostr/challenge/{pubkey}")
    logger.info(f"✔ Challenge received (expires at {challenge['expiresAt']})")

    event = sign_event(
        private_key,
        kind=AUTH_EVENT_KIND,
        content="",
        tags=[["challenge", challenge["challenge"]]],
    )
    logger.info(f"✔ Challenge signed (event {event.id[:16]}…)")

    result = _post(session, "/auth/nostr/verify", {"event": event.to_dict()})
    logger.info("✔ Signature verified, session token issued")

    store = load_client_store()
    store["token"] = result["token"]
    store["pubkey"] = result["pubkey"]
    save_client_store(store)
    return result


# ──────────────────────────────────────────────
# ENROLLMENT
# ──────────────────────────────────────────────
def enroll(private_key: str, name: str = None, session=None) -> dict:
    session = session or requests.Session()
    pubkey = public_key_from_private(private_key)

    pending = _post(session, "/auth/nostr/enroll", {"pubkey": pubkey})["enrollment"]
    logger.info(f"✔ Enrollment {pending['id']} pending")

    content = json.dumps({"name": name}) if name else ""
    event = sign_event(
        private_key,
        kind=ENROLL_EVENT_KIND,
        content=content,
        tags=[["action", "enroll"], ["challenge", pending["challenge"]]],
    )
    result = _post(session, "/auth/nostr/enroll/verify", {"signedEvent": event.to_dict()})
    logger.info(f"✔ Enrollment {result['enrollment']['status']}")
    return result


# ──────────────────────────────────────────────
# WHOAMI
# ──────────────────────────────────────────────
def whoami() -> dict:
    store = load_client_store()
    if "token" not in store:
        raise ClientError("Not logged in. Run 'login' first.")
    try:
        resp = requests.get(
            f"{SERVER_URL}/auth/nostr/me",
            headers=_headers(store["token"]), verify=False, timeout=5,
        )
    except requests.exceptions.ConnectionError:
        raise ClientError(f"Cannot connect to server at {SERVER_URL}")
    if resp.status_code != 200:
        raise ClientError(f"Token rejected ({resp.status_code}): {resp.json().get('error')}")
    return resp.json()


# ──────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────
def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    parser = argparse.ArgumentParser(description="Nostr Auth Client")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("keygen", help="Generate a new keypair")

    p_login = sub.add_parser("login", help="Log in with a private key")
    p_login.add_argument("--key", required=True, help="private key (hex)")

    p_enroll = sub.add_parser("enroll", help="Enroll a pubkey and create its profile")
    p_enroll.add_argument("--key", required=True, help="private key (hex)")
    p_enroll.add_argument("--name")

    sub.add_parser("whoami", help="Show the pubkey of the stored session token")

    args = parser.parse_args(argv)

    try:
        if args.cmd == "keygen":
            private_key, public_key = generate_keypair()
            print(pretty_json({"private_key": private_key, "public_key": public_key}))
        elif args.cmd == "login":
            result = login(args.key)
            print(pretty_json({"pubkey": result["pubkey"], "expiresIn": result.get("expiresIn")}))
        elif args.cmd == "enroll":
            print(pretty_json(enroll(args.key, name=args.name)))
        elif args.cmd == "whoami":
            print(pretty_json(whoami()))
        else:
            parser.print_help()
            return 1
    except (ClientError, ValueError) as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
bootstrap.py - Server Bootstrap
Generates the server's Nostr keypair, a matching API key and a
self-signed TLS certificate.

Usage:
  python scripts/bootstrap.py            # key + API key + certificate
  python scripts/bootstrap.py --no-cert  # skip the certificate
"""

import sys
import os
import argparse
import logging

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from auth_server.api_keys import generate_api_key
from auth_server.config import CERT_DIR, DATA_DIR
from nostr_common.keys import generate_keypair, public_key_from_private

logging.basicConfig(level=logging.INFO, format="[BOOTSTRAP] %(message)s")
logger = logging.getLogger(__name__)

KEY_FILE = os.environ.get("SERVER_KEY_FILE", os.path.join(DATA_DIR, "server_key"))


def generate_server_key(key_file: str = KEY_FILE) -> str:
    """Create the server key file unless one exists. Returns the private key hex."""
    if os.path.exists(key_file):
        with open(key_file) as f:
            private_key = f.read().strip()
        logger.info(f"Server key already exists at {key_file} – skipping generation.")
        return private_key

    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    private_key, public_key = generate_keypair()
    with open(key_file, "w") as f:
        f.write(private_key)
    os.chmod(key_file, 0o600)
    logger.info(f"Server key written to {key_file}")
    logger.info(f"Server pubkey: {public_key}")
    return private_key


def generate_tls_cert(cert_dir: str = CERT_DIR):
    """Generate self-signed certificate using the cryptography library."""
    os.makedirs(cert_dir, exist_ok=True)
    cert_file = os.path.join(cert_dir, "server.crt")
    key_file = os.path.join(cert_dir, "server.key")

    if os.path.exists(cert_file) and os.path.exists(key_file):
        logger.info("TLS certificate already exists – skipping generation.")
        return

    logger.info("Generating self-signed TLS certificate …")

    from cryptography import x509
    from cryptography.x509.oid import NameOID
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    import datetime
    import ipaddress

    key = ec.generate_private_key(ec.SECP256R1())

    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Nostr Auth"),
        x509.NameAttribute(NameOID.COMMON_NAME, "127.0.0.1"),
    ])

    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=365))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.IPv4Address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    with open(key_file, "wb") as f:
        f.write(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
    os.chmod(key_file, 0o600)

    with open(cert_file, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))

    logger.info(f"Certificate written to {cert_file}")
    logger.info(f"Private key written to {key_file}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Bootstrap the Nostr auth server")
    parser.add_argument("--key-file", default=KEY_FILE)
    parser.add_argument("--no-cert", action="store_true", help="skip TLS certificate generation")
    args = parser.parse_args(argv)

    private_key = generate_server_key(args.key_file)
    if not args.no_cert:
        generate_tls_cert()

    logger.info("")
    logger.info("=" * 55)
    logger.info("  Bootstrap complete!")
    logger.info(f"  Server pubkey: {public_key_from_private(private_key)}")
    logger.info(f"  API key:       {generate_api_key(private_key)}")
    logger.info("  Start server:  python auth_server/api.py")
    logger.info("  Log in:        python auth_client/client_app.py login --key <hex>")
    logger.info("  Run tests:     python -m pytest tests/ -v")
    logger.info("=" * 55)


if __name__ == "__main__":
    main()

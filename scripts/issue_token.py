"""Generate a development Ed25519 keypair and mint bearer tokens for local testing."""

import argparse
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from live_bidding.config import get_server_config
from live_bidding.transport.tokens import issue_token


def generate_keypair(directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    private_key = Ed25519PrivateKey.generate()
    private_path = directory / "bidding_ed25519.pem"
    public_path = directory / "bidding_ed25519.pub.pem"
    private_path.write_bytes(
        private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    public_path.write_bytes(
        private_key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return private_path


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("user_id")
    parser.add_argument("--name", default="")
    parser.add_argument("--key", type=Path, help="PEM private key; generated when omitted")
    parser.add_argument("--ttl", type=int, help="token lifetime in seconds; defaults to auth.token_ttl_seconds")
    args = parser.parse_args()

    ttl = args.ttl or get_server_config().auth.token_ttl_seconds
    key_path = args.key or generate_keypair(Path.cwd() / "keys")
    print(issue_token(args.user_id, args.name, key_path.read_text(), ttl_seconds=ttl))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Credential Service key generation CLI.

Creates the RSA key pair used for token encryption and prints a fresh
32-byte signing secret.

Usage:
    credential-service-keygen --out-dir ./keys
    credential-service-keygen --out-dir ./keys --bits 3072 --force

Exit Codes:
    0 - Success
    2 - Output error (existing files without --force, unwritable directory)
    3 - Invalid arguments
"""

import argparse
import os
import secrets
import sys
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from credential_service.core.key_provider import MIN_RSA_KEY_SIZE

PRIVATE_KEY_FILE = "jwt_private.pem"
PUBLIC_KEY_FILE = "jwt_public.pem"


def generate_key_pair(bits: int = 4096) -> tuple[bytes, bytes]:
    """Generate an RSA key pair.

    Returns:
        Tuple of (private_key_pem PKCS8, public_key_pem SPKI)
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


def generate_secret() -> str:
    """A 32-character URL-safe secret (32 bytes once UTF-8 encoded)."""
    return secrets.token_urlsafe(24)


def write_key_pair(out_dir: Path, bits: int, force: bool = False) -> tuple[Path, Path]:
    """Write a fresh key pair into ``out_dir``.

    Raises:
        FileExistsError: If a key file exists and ``force`` is False
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    private_path = out_dir / PRIVATE_KEY_FILE
    public_path = out_dir / PUBLIC_KEY_FILE

    if not force:
        for path in (private_path, public_path):
            if path.exists():
                raise FileExistsError(f"{path} already exists (use --force to overwrite)")

    private_pem, public_pem = generate_key_pair(bits)
    fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    os.fchmod(fd, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(private_pem)
    public_path.write_bytes(public_pem)

    return private_path, public_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credential-service-keygen",
        description="Generate token encryption keys and a signing secret",
    )
    parser.add_argument("--out-dir", default="./keys", help="Directory for the PEM files (default: ./keys)")
    parser.add_argument("--bits", type=int, default=4096, help="RSA modulus size (default: 4096)")
    parser.add_argument("--force", action="store_true", help="Overwrite existing key files")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.bits < MIN_RSA_KEY_SIZE:
        print(f"error: --bits must be at least {MIN_RSA_KEY_SIZE}", file=sys.stderr)
        return 3

    try:
        private_path, public_path = write_key_pair(Path(args.out_dir), args.bits, args.force)
    except (FileExistsError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(f"JWT_RSA_PRIVATE_KEY_PATH={private_path}")
    print(f"JWT_RSA_PUBLIC_KEY_PATH={public_path}")
    print(f"JWT_SECRET={generate_secret()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

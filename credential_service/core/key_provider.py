"""Key material for the token protocol.

The token service needs two things:
- a 32-byte symmetric secret for HS512 signing (JWS)
- an RSA key pair for RSA-OAEP-512 key wrapping (JWE)

``KeyMaterialProvider`` is constructed explicitly (usually once, at
application startup) and passed by reference to ``TokenService``. Loading is
single-flight: concurrent first callers block on a lock, exactly one of them
reads the key files, and everyone observes the same result or the same
failure.
"""

import threading
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from credential_service.config import JWT_SECRET_LENGTH, Settings
from credential_service.core.errors import FatalConfigurationFailure
from credential_service.core.logging import get_logger

logger = get_logger(__name__)

# RSA-OAEP-512 needs room for 2 * 64 + 2 bytes of padding around a 32-byte CEK
MIN_RSA_KEY_SIZE = 2048


@dataclass(frozen=True)
class KeyMaterial:
    """Immutable process-wide key material."""
    secret: bytes
    public_key: rsa.RSAPublicKey
    private_key: rsa.RSAPrivateKey

    @property
    def key_size(self) -> int:
        return self.private_key.key_size


def _read_pem(path: Path, label: str) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise FatalConfigurationFailure(f"Cannot read {label} key file {path}: {e.strerror}") from e


def load_public_key(pem: bytes) -> rsa.RSAPublicKey:
    """Load an SPKI PEM public key, requiring RSA."""
    try:
        key = serialization.load_pem_public_key(pem)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise FatalConfigurationFailure(f"Malformed public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise FatalConfigurationFailure(
            f"Public key must be RSA for RSA-OAEP-512, got {type(key).__name__}"
        )
    return key


def load_private_key(pem: bytes) -> rsa.RSAPrivateKey:
    """Load an unencrypted PEM private key, requiring RSA."""
    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise FatalConfigurationFailure(f"Malformed private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise FatalConfigurationFailure(
            f"Private key must be RSA for RSA-OAEP-512, got {type(key).__name__}"
        )
    return key


def build_key_material(secret: bytes, public_pem: bytes, private_pem: bytes) -> KeyMaterial:
    """Validate and assemble key material.

    Raises:
        FatalConfigurationFailure: On a bad secret length, malformed or non-RSA
            keys, undersized keys, or a public key that does not belong to the
            private key.
    """
    if len(secret) != JWT_SECRET_LENGTH:
        raise FatalConfigurationFailure(
            f"The JWS secret key must be {JWT_SECRET_LENGTH} bytes long."
        )

    public_key = load_public_key(public_pem)
    private_key = load_private_key(private_pem)

    if private_key.key_size < MIN_RSA_KEY_SIZE:
        raise FatalConfigurationFailure(
            f"RSA key must be at least {MIN_RSA_KEY_SIZE} bits, got {private_key.key_size}"
        )
    if public_key.public_numbers() != private_key.public_key().public_numbers():
        raise FatalConfigurationFailure("Public key does not match private key")

    return KeyMaterial(secret=secret, public_key=public_key, private_key=private_key)


class KeyMaterialProvider:
    """Loads key material once and caches it for the process lifetime."""

    def __init__(self, secret: str | bytes, public_key_path: str | Path, private_key_path: str | Path):
        """Initialize with a signing secret and PEM file locations.

        Args:
            secret: HS512 secret, exactly 32 bytes (str is UTF-8 encoded)
            public_key_path: SPKI PEM file holding the RSA public key
            private_key_path: PKCS8 or traditional PEM file holding the RSA private key
        """
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else secret
        self.public_key_path = Path(public_key_path)
        self.private_key_path = Path(private_key_path)

        self._lock = threading.Lock()
        self._material: KeyMaterial | None = None
        self._failure: FatalConfigurationFailure | None = None
        self.load_count = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeyMaterialProvider":
        return cls(
            secret=settings.jwt_secret,
            public_key_path=settings.jwt_rsa_public_key_path,
            private_key_path=settings.jwt_rsa_private_key_path,
        )

    @property
    def is_loaded(self) -> bool:
        return self._material is not None

    def load(self) -> KeyMaterial:
        """Return the key material, loading it on first use.

        Raises:
            FatalConfigurationFailure: If loading failed (now or on an earlier call)
        """
        material = self._material
        if material is not None:
            return material

        with self._lock:
            if self._material is None and self._failure is None:
                self.load_count += 1
                try:
                    self._material = build_key_material(
                        self._secret,
                        _read_pem(self.public_key_path, "public"),
                        _read_pem(self.private_key_path, "private"),
                    )
                except FatalConfigurationFailure as e:
                    self._failure = e
                    logger.critical(
                        "Key material failed to load",
                        public_pem=str(self.public_key_path),
                        private_pem=str(self.private_key_path),
                        error=e.message,
                    )
                else:
                    logger.info(
                        "Key material loaded",
                        public_pem=str(self.public_key_path),
                        rsa_bits=self._material.key_size,
                    )

            if self._failure is not None:
                raise self._failure
            return self._material

    def get_keys(self) -> tuple[rsa.RSAPublicKey, rsa.RSAPrivateKey]:
        """Return ``(public_key, private_key)``."""
        material = self.load()
        return material.public_key, material.private_key

    @property
    def secret(self) -> bytes:
        return self.load().secret

"""JOSE engine: compact JWE (RFC 7516).

Implements the one JWE profile the token protocol uses:
- Key management: RSA-OAEP-512 (RSAES-OAEP, SHA-512, MGF1-SHA-512)
- Content encryption: A256GCM (AES-256-GCM, 96-bit IV, 128-bit tag)

Compact serialization:
    BASE64URL(header).BASE64URL(encrypted_key).BASE64URL(iv)
        .BASE64URL(ciphertext).BASE64URL(tag)

The ASCII bytes of the encoded protected header are the GCM additional
authenticated data, so the header cannot be altered without breaking the tag.

Decryption is strict: the caller names the algorithms it accepts and a token
declaring anything else is rejected before any key is touched.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass
from enum import Enum

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


class JWEAlgorithm(str, Enum):
    """JWE key management algorithms."""
    RSA_OAEP_512 = "RSA-OAEP-512"


class JWEEncryption(str, Enum):
    """JWE content encryption algorithms."""
    A256GCM = "A256GCM"


# CEK, IV and tag sizes for A256GCM
CEK_SIZE = 32
IV_SIZE = 12
TAG_SIZE = 16


class JOSEError(Exception):
    """Base JOSE error."""
    pass


class InvalidJWEError(JOSEError):
    """JWE is malformed or failed to decrypt."""
    pass


class UnsupportedAlgorithmError(JOSEError):
    """Token declares an algorithm outside the allow-list."""
    pass


@dataclass
class JWEResult:
    """Result of JWE creation."""
    compact: str
    header: dict


def base64url_encode(data: bytes) -> str:
    """Unpadded base64url."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(segment: str) -> bytes:
    """Decode unpadded base64url, rejecting non-canonical input.

    Any alphabet violation, padding, or alternative encoding of the same bytes
    is an error, so a single altered character never decodes silently.
    """
    try:
        data = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError) as e:
        raise InvalidJWEError(f"Invalid base64url segment: {e}") from e
    if base64url_encode(data) != segment:
        raise InvalidJWEError("Non-canonical base64url segment")
    return data


def _oaep_sha512() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA512()),
        algorithm=hashes.SHA512(),
        label=None,
    )


class JOSEEngine:
    """Builds and opens compact JWE artifacts."""

    def encrypt_compact(
        self,
        plaintext: bytes,
        public_key: rsa.RSAPublicKey,
        algorithm: JWEAlgorithm = JWEAlgorithm.RSA_OAEP_512,
        encryption: JWEEncryption = JWEEncryption.A256GCM,
        content_type: str | None = None,
    ) -> JWEResult:
        """Encrypt plaintext to a compact JWE.

        Args:
            plaintext: Bytes to protect
            public_key: Recipient RSA public key
            algorithm: Key management algorithm
            encryption: Content encryption algorithm
            content_type: Optional "cty" header (e.g. "JWT" for nested tokens)

        Returns:
            JWEResult with the compact serialization and header
        """
        if algorithm != JWEAlgorithm.RSA_OAEP_512:
            raise UnsupportedAlgorithmError(f"Unsupported JWE algorithm: {algorithm}")
        if encryption != JWEEncryption.A256GCM:
            raise UnsupportedAlgorithmError(f"Unsupported JWE encryption: {encryption}")

        header = {"alg": algorithm.value, "enc": encryption.value}
        if content_type:
            header["cty"] = content_type
        header_b64 = base64url_encode(
            json.dumps(header, separators=(",", ":")).encode("utf-8")
        )

        cek = os.urandom(CEK_SIZE)
        iv = os.urandom(IV_SIZE)
        encrypted_key = public_key.encrypt(cek, _oaep_sha512())

        # AESGCM appends the tag to the ciphertext
        sealed = AESGCM(cek).encrypt(iv, plaintext, header_b64.encode("ascii"))
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

        compact = ".".join([
            header_b64,
            base64url_encode(encrypted_key),
            base64url_encode(iv),
            base64url_encode(ciphertext),
            base64url_encode(tag),
        ])
        return JWEResult(compact=compact, header=header)

    def decrypt_compact(
        self,
        jwe: str,
        private_key: rsa.RSAPrivateKey,
        algorithms: list[JWEAlgorithm] | None = None,
        encryptions: list[JWEEncryption] | None = None,
    ) -> tuple[bytes, dict]:
        """Decrypt a compact JWE.

        Args:
            jwe: Compact serialization
            private_key: Recipient RSA private key
            algorithms: Accepted key management algorithms
            encryptions: Accepted content encryption algorithms

        Returns:
            Tuple of (plaintext, header)

        Raises:
            InvalidJWEError: Malformed token or failed decryption
            UnsupportedAlgorithmError: Declared algorithm not accepted
        """
        if algorithms is None:
            algorithms = [JWEAlgorithm.RSA_OAEP_512]
        if encryptions is None:
            encryptions = [JWEEncryption.A256GCM]

        if not isinstance(jwe, str):
            raise InvalidJWEError("JWE must be a string")
        parts = jwe.split(".")
        if len(parts) != 5:
            raise InvalidJWEError("Invalid JWE format: expected 5 parts")

        header_b64, encrypted_key_b64, iv_b64, ciphertext_b64, tag_b64 = parts
        header = self._decode_header(header_b64)

        alg = header.get("alg")
        enc = header.get("enc")
        if not isinstance(alg, str) or not isinstance(enc, str):
            raise UnsupportedAlgorithmError("JWE alg and enc must be strings")
        if alg not in {a.value for a in algorithms}:
            raise UnsupportedAlgorithmError(f"JWE algorithm not allowed: {alg}")
        if enc not in {e.value for e in encryptions}:
            raise UnsupportedAlgorithmError(f"JWE encryption not allowed: {enc}")
        if "zip" in header:
            raise UnsupportedAlgorithmError("Compressed JWE is not supported")
        if "crit" in header:
            raise UnsupportedAlgorithmError("Critical JWE header extensions are not supported")

        encrypted_key = base64url_decode(encrypted_key_b64)
        iv = base64url_decode(iv_b64)
        ciphertext = base64url_decode(ciphertext_b64)
        tag = base64url_decode(tag_b64)

        if len(iv) != IV_SIZE:
            raise InvalidJWEError("Invalid IV length")
        if len(tag) != TAG_SIZE:
            raise InvalidJWEError("Invalid authentication tag length")

        try:
            cek = private_key.decrypt(encrypted_key, _oaep_sha512())
        except ValueError as e:
            raise InvalidJWEError("Key unwrap failed") from e
        if len(cek) != CEK_SIZE:
            raise InvalidJWEError("Invalid content encryption key length")

        try:
            plaintext = AESGCM(cek).decrypt(iv, ciphertext + tag, header_b64.encode("ascii"))
        except InvalidTag as e:
            raise InvalidJWEError("Decryption failed: authentication tag mismatch") from e

        return plaintext, header

    def _decode_header(self, header_b64: str) -> dict:
        raw = base64url_decode(header_b64)
        try:
            header = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidJWEError(f"Invalid JWE header: {e}") from e
        if not isinstance(header, dict):
            raise InvalidJWEError("JWE header must be a JSON object")
        return header


# Singleton instance
jose_engine = JOSEEngine()

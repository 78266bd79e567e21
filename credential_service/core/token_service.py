"""Nested sign-then-encrypt bearer tokens.

Forging:
    claims -> JWS (HS512, 32-byte secret) -> JWE (RSA-OAEP-512 + A256GCM, public key)

Verifying reverses the layers. The ciphertext covers the signature, so
nobody without the private key can read the claims or even start checking
the signature.

Every verification failure (bad encoding, wrong algorithm, failed
decryption, bad signature, wrong issuer, expired) surfaces as the same
``AuthenticationFailure``; the reason is only logged at debug level.
"""

import re
import time
import warnings
from typing import Any, Callable, Mapping

import jwt
from jwt.warnings import InsecureKeyLengthWarning

from credential_service.config import Settings
from credential_service.core.errors import AuthenticationFailure
from credential_service.core.jose_engine import (
    JOSEEngine,
    JOSEError,
    JWEAlgorithm,
    JWEEncryption,
    jose_engine,
)
from credential_service.core.key_provider import KeyMaterialProvider
from credential_service.core.logging import get_logger

logger = get_logger(__name__)

# HS512 is keyed with the 32-byte secret the token format mandates
warnings.filterwarnings("ignore", category=InsecureKeyLengthWarning)

JWS_ALG = "HS512"
JWE_ALG = JWEAlgorithm.RSA_OAEP_512
JWE_ENC = JWEEncryption.A256GCM

REQUIRED_CLAIMS = ["sub", "iss", "iat", "exp"]

_BEARER_RE = re.compile(r"Bearer (\S+)")


def parse_bearer(authorization: str | None) -> str:
    """Extract the token from an ``Authorization`` header value.

    Only ``Bearer <token>`` with exactly one token segment is accepted.
    """
    if not authorization:
        raise AuthenticationFailure()
    match = _BEARER_RE.fullmatch(authorization)
    if match is None:
        raise AuthenticationFailure()
    return match.group(1)


class TokenService:
    """Forges and verifies JWE-wrapped JWS bearer tokens."""

    def __init__(
        self,
        keys: KeyMaterialProvider,
        issuer: str,
        expires_in: int,
        engine: JOSEEngine = jose_engine,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the token service.

        Args:
            keys: Loaded (or loadable) key material, shared by reference
            issuer: Value of the "iss" claim; verified on the way back in
            expires_in: Token lifetime in seconds
            engine: JOSE engine for the encryption layer
            clock: Seconds since the epoch; injectable for tests
        """
        self._keys = keys
        self.issuer = issuer
        self.expires_in = expires_in
        self._engine = engine
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, keys: KeyMaterialProvider) -> "TokenService":
        return cls(keys=keys, issuer=settings.jwt_issuer, expires_in=settings.jwt_expires_in)

    def forge(self, claims: Mapping[str, Any]) -> str:
        """Sign then encrypt a claim set.

        Args:
            claims: Must carry "sub". "iss", "iat" and "exp" are always set here.

        Returns:
            Compact JWE (five dot-separated segments)
        """
        if not claims.get("sub"):
            raise ValueError("Claims must include a subject ('sub')")

        now = int(self._clock())
        payload = dict(claims)
        payload["sub"] = str(payload["sub"])
        payload["iss"] = self.issuer
        payload["iat"] = now
        payload["exp"] = now + self.expires_in

        material = self._keys.load()
        jws = jwt.encode(payload, material.secret, algorithm=JWS_ALG, headers={"typ": "JWT"})

        result = self._engine.encrypt_compact(
            jws.encode("utf-8"),
            material.public_key,
            algorithm=JWE_ALG,
            encryption=JWE_ENC,
            content_type="JWT",
        )
        return result.compact

    def verify(self, token: str) -> dict[str, Any]:
        """Decrypt then verify a token.

        Returns:
            The claim set (sub, iss, iat, exp and any extra claims)

        Raises:
            AuthenticationFailure: For any reason the token is not acceptable
        """
        material = self._keys.load()

        try:
            plaintext, _ = self._engine.decrypt_compact(
                token,
                material.private_key,
                algorithms=[JWE_ALG],
                encryptions=[JWE_ENC],
            )
            claims = jwt.decode(
                plaintext.decode("utf-8"),
                material.secret,
                algorithms=[JWS_ALG],
                issuer=self.issuer,
                options={"require": REQUIRED_CLAIMS},
            )
        except (JOSEError, jwt.InvalidTokenError, UnicodeDecodeError) as e:
            logger.debug("Token rejected", reason=type(e).__name__)
            raise AuthenticationFailure() from None

        issued_at = claims["iat"]
        if not isinstance(issued_at, (int, float)) or self._clock() > issued_at + self.expires_in:
            logger.debug("Token rejected", reason="MaxAgeExceeded")
            raise AuthenticationFailure()

        return claims

    def authenticate(self, authorization: str | None) -> dict[str, Any]:
        """Verify the token carried by an ``Authorization`` header."""
        return self.verify(parse_bearer(authorization))

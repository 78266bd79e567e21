"""Password Hashing Engine.

Argon2id with fixed cost parameters (OWASP configuration #3:
m=12 MiB, t=3, p=1). Every hash call draws a fresh random salt, so hashing
the same password twice yields two different PHC strings; verification
recomputes with the parameters embedded in the digest.

Hashing is deliberately expensive. Async callers should use ``hash_async``
and ``verify_async`` which run the work on a worker thread.
"""

import asyncio
from dataclasses import dataclass

import argon2
from argon2 import PasswordHasher as Argon2Hasher, Type

from credential_service.core.errors import ValidationFailure

MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class Argon2Params:
    """Argon2id parameters. Configuration constants, never caller-supplied."""
    time_cost: int = 3  # Iterations
    memory_cost: int = 12288  # 12 MiB in KiB
    parallelism: int = 1
    hash_len: int = 64
    salt_len: int = 32


class PasswordHashError(Exception):
    """Password hashing failed."""
    pass


def validate_password_length(password: str | None) -> None:
    """Reject passwords shorter than ``MIN_PASSWORD_LENGTH``."""
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailure(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
        )


def is_password_long_enough(password: str | None) -> bool:
    return password is not None and len(password) >= MIN_PASSWORD_LENGTH


class PasswordHasher:
    """Hashes and verifies passwords with Argon2id.

    Safe to share between threads: the underlying argon2 hasher is
    configured once and holds no per-call state.
    """

    PARAMS = Argon2Params()

    def __init__(self, params: Argon2Params | None = None):
        self.params = params or self.PARAMS
        self._hasher = Argon2Hasher(
            time_cost=self.params.time_cost,
            memory_cost=self.params.memory_cost,
            parallelism=self.params.parallelism,
            hash_len=self.params.hash_len,
            salt_len=self.params.salt_len,
            type=Type.ID,
        )

    def hash(self, password: str) -> str:
        """Hash a password.

        Args:
            password: The plaintext password (must be non-empty)

        Returns:
            Argon2id digest in PHC string format

        Raises:
            PasswordHashError: If the password is empty or hashing fails
        """
        if not password:
            raise PasswordHashError("Cannot hash an empty password")
        try:
            return self._hasher.hash(password)
        except argon2.exceptions.HashingError as e:
            raise PasswordHashError(f"Argon2 hashing failed: {e}") from e

    def verify(self, digest: str, password: str) -> bool:
        """Verify a password against a digest.

        Returns False for a mismatch and for a malformed digest.
        """
        if not digest or not password:
            return False
        try:
            return self._hasher.verify(digest, password)
        except argon2.exceptions.VerifyMismatchError:
            return False
        except argon2.exceptions.VerificationError:
            return False
        except argon2.exceptions.InvalidHashError:
            return False

    def needs_rehash(self, digest: str) -> bool:
        """True if the digest was produced with different cost parameters."""
        try:
            return self._hasher.check_needs_rehash(digest)
        except argon2.exceptions.InvalidHashError:
            return True

    async def hash_async(self, password: str) -> str:
        """Hash on a worker thread so the event loop keeps serving requests."""
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, digest: str, password: str) -> bool:
        return await asyncio.to_thread(self.verify, digest, password)


# Singleton instance
password_hasher = PasswordHasher()

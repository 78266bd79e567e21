"""Error taxonomy for the credential and account core.

Every failure leaving the core is an ``AccountServiceError`` tagged with an
``ErrorKind``. The HTTP layer maps kinds to status codes; other callers can
branch on ``error.kind`` or on the concrete class.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of failures surfaced by the core."""
    VALIDATION = "validation"  # Malformed or policy-violating input
    AUTHENTICATION = "authentication"  # Bad credentials or unverifiable token
    CONFLICT = "conflict"  # Uniqueness violation or illegal transition
    NOT_FOUND = "not_found"  # Account absent or not visible
    FATAL_CONFIGURATION = "fatal_configuration"  # Unusable key material or secret


INVALID_CREDENTIALS = "Invalid credentials."
USER_NOT_FOUND = "User not found."


class AccountServiceError(Exception):
    """Base class for all core failures."""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class ValidationFailure(AccountServiceError):
    """Input rejected before any expensive or store-mutating work."""
    kind = ErrorKind.VALIDATION


class AuthenticationFailure(AccountServiceError):
    """Wrong credentials or bad token. The message never says which."""
    kind = ErrorKind.AUTHENTICATION

    def __init__(self, message: str = INVALID_CREDENTIALS):
        super().__init__(message)


class ConflictFailure(AccountServiceError):
    """Uniqueness violation or illegal state transition."""
    kind = ErrorKind.CONFLICT


class NotFoundFailure(AccountServiceError):
    """Targeted account does not exist or is soft-deleted."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = USER_NOT_FOUND):
        super().__init__(message)


class FatalConfigurationFailure(AccountServiceError):
    """Key material or secret is unusable; startup must abort."""
    kind = ErrorKind.FATAL_CONFIGURATION

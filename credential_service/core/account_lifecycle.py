"""Account lifecycle: registration, login, profile update, deletion, restoration.

Ordering rules:
- Input validation runs before any hashing or store call.
- Uniqueness is left to the store; a reported ``UniqueViolation`` becomes a
  ``ConflictFailure`` instead of being pre-checked (no check-then-act race).
- Authentication failures are indistinguishable: unknown email, deleted
  account, short password and wrong password all raise the same
  ``AuthenticationFailure``.
- Store errors other than ``UniqueViolation``/``RecordNotFound`` propagate
  unchanged.
"""

from typing import Any

from credential_service.core.errors import (
    AuthenticationFailure,
    ConflictFailure,
    NotFoundFailure,
    ValidationFailure,
)
from credential_service.core.logging import get_logger, log_operation
from credential_service.core.password_engine import (
    PasswordHasher,
    is_password_long_enough,
    password_hasher,
    validate_password_length,
)
from credential_service.core.token_service import TokenService
from credential_service.core.user_store import RecordNotFound, UniqueViolation, UserStore

logger = get_logger(__name__)


def _taken(violation: UniqueViolation) -> ConflictFailure:
    field = violation.field or "email"
    return ConflictFailure(f"{field[0].upper()}{field[1:].lower()} is already taken.")


class AccountLifecycle:
    """Orchestrates account operations over a store, a hasher and a token service."""

    def __init__(
        self,
        store: UserStore,
        tokens: TokenService,
        hasher: PasswordHasher = password_hasher,
    ):
        self._store = store
        self._tokens = tokens
        self._hasher = hasher

    @log_operation("register")
    async def register(
        self,
        email: str,
        password: str,
        firstname: str,
        lastname: str,
        has_accepted_terms_and_conditions: bool = True,
    ) -> str:
        """Create an account and return its id (never the digest).

        Raises:
            ValidationFailure: Password shorter than 8 characters
            ConflictFailure: Terms not accepted, or email already taken
        """
        validate_password_length(password)
        if not has_accepted_terms_and_conditions:
            raise ConflictFailure("User must accept terms and conditions.")

        hashed_password = await self._hasher.hash_async(password)

        try:
            account_id = await self._store.create(
                email=email,
                hashed_password=hashed_password,
                firstname=firstname,
                lastname=lastname,
            )
        except UniqueViolation as e:
            raise _taken(e) from None

        logger.info("Account registered", account_id=account_id)
        return account_id

    async def login(self, email: str, password: str) -> str:
        """Check credentials of an active account and return its id.

        Raises:
            AuthenticationFailure: For every kind of credential mismatch
        """
        if not is_password_long_enough(password):
            raise AuthenticationFailure()

        found = await self._store.find_for_authentication(email)
        if found is None:
            logger.info("Login failed")
            raise AuthenticationFailure()

        account_id, hashed_password = found
        if not await self._hasher.verify_async(hashed_password, password):
            logger.info("Login failed", account_id=account_id)
            raise AuthenticationFailure()

        try:
            await self._store.touch_last_connection(account_id)
        except RecordNotFound:
            # Deleted between lookup and now
            raise AuthenticationFailure() from None

        logger.info("Login succeeded", account_id=account_id)
        return account_id

    def issue_token(self, account_id: str) -> str:
        """Mint a bearer token whose subject is the account."""
        return self._tokens.forge({"sub": account_id})

    async def authenticate(self, authorization: str | None) -> str:
        """Resolve the caller of an ``Authorization: Bearer`` header.

        The token must verify and its subject must still be an active account.
        """
        claims = self._tokens.authenticate(authorization)
        account_id = claims["sub"]
        if await self._store.find_unique(account_id) is None:
            raise AuthenticationFailure()
        return account_id

    @log_operation("update")
    async def update(
        self,
        account_id: str,
        current_password: str,
        email: str | None = None,
        new_password: str | None = None,
        firstname: str | None = None,
        lastname: str | None = None,
    ) -> dict[str, Any]:
        """Update profile fields after re-checking the current password.

        Returns:
            ``{email, firstname, lastname, updated_at}`` after the update

        Raises:
            ValidationFailure: New password too short or unchanged
            NotFoundFailure: Account missing or soft-deleted
            AuthenticationFailure: Current password does not match
            ConflictFailure: New email already taken
        """
        if new_password is not None:
            validate_password_length(new_password)
            if new_password == current_password:
                raise ValidationFailure("The new password must be different.")

        user = await self._store.find_for_update(account_id)
        if user is None:
            raise NotFoundFailure()

        if not is_password_long_enough(current_password) or not await self._hasher.verify_async(
            user["hashed_password"], current_password
        ):
            raise AuthenticationFailure()

        values = {
            "email": email if email is not None else user["email"],
            "firstname": firstname if firstname is not None else user["firstname"],
            "lastname": lastname if lastname is not None else user["lastname"],
        }
        if new_password is not None:
            values["hashed_password"] = await self._hasher.hash_async(new_password)

        try:
            return await self._store.update(account_id, values)
        except UniqueViolation as e:
            raise _taken(e) from None
        except RecordNotFound:
            raise NotFoundFailure() from None

    @log_operation("delete")
    async def delete(self, account_id: str, hard_delete: bool = False) -> None:
        """Soft-delete (default) or physically remove an account.

        Raises:
            NotFoundFailure: Soft delete of a missing or already deleted
                account, or hard delete of a missing row
        """
        try:
            if hard_delete:
                await self._store.hard_delete(account_id)
            else:
                await self._store.soft_delete(account_id)
        except RecordNotFound:
            raise NotFoundFailure() from None

        logger.info("Account deleted", account_id=account_id, hard_delete=hard_delete)

    @log_operation("restore")
    async def restore(self, account_id: str) -> None:
        """Make a soft-deleted account visible again. Idempotent for active accounts.

        Raises:
            NotFoundFailure: If the row does not exist (e.g. hard-deleted)
        """
        try:
            await self._store.restore(account_id)
        except RecordNotFound:
            raise NotFoundFailure() from None

        logger.info("Account restored", account_id=account_id)

    async def get_profile(self, account_id: str, gdpr_compliance: bool = True) -> dict[str, Any]:
        """Public (GDPR-reduced) or full profile of an active account."""
        profile = await self._store.find_unique(account_id, gdpr_compliance=gdpr_compliance)
        if profile is None:
            raise NotFoundFailure()
        return profile

    async def me(self, account_id: str) -> dict[str, Any]:
        """Full profile of the caller's own account."""
        return await self.get_profile(account_id, gdpr_compliance=False)

    async def list_accounts(self) -> list[dict[str, Any]]:
        return await self._store.find_many()

    async def is_admin(self, account_id: str) -> bool:
        return await self._store.is_admin(account_id)

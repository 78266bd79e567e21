"""User persistence.

``UserStore`` is the repository contract the account lifecycle consumes.
``SQLAlchemyUserStore`` implements it on an async SQLAlchemy session and
translates ORM/driver errors into store-level errors (``UniqueViolation``,
``RecordNotFound``) so the lifecycle never sees a database-specific error.

Every lookup excludes soft-deleted rows except ``restore`` and
``hard_delete``, which target a row whatever its deletion state.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credential_service.models import User

# Columns callers may change through ``update``
UPDATABLE_FIELDS = {"email", "firstname", "lastname", "hashed_password"}


class StoreError(Exception):
    """Base class for store failures."""
    pass


class UniqueViolation(StoreError):
    """A uniqueness constraint rejected the write."""

    def __init__(self, field: str = "email"):
        super().__init__(f"Unique constraint violated on {field}")
        self.field = field


class RecordNotFound(StoreError):
    """The targeted row does not exist (or is not visible)."""
    pass


class UserStore(ABC):
    """Repository contract for user accounts."""

    @abstractmethod
    async def create(self, email: str, hashed_password: str, firstname: str, lastname: str) -> str:
        """Insert an account and return its id.

        Raises:
            UniqueViolation: If the email is already used (by any row)
        """
        pass

    @abstractmethod
    async def find_many(self) -> list[dict[str, Any]]:
        """List active accounts as ``{id, firstname, lastname}``."""
        pass

    @abstractmethod
    async def find_unique(self, user_id: str, gdpr_compliance: bool = True) -> dict[str, Any] | None:
        """Profile of an active account.

        With ``gdpr_compliance`` only ``firstname``, ``lastname`` and
        ``created_at`` are returned; otherwise ``email`` and
        ``last_connection`` are added.
        """
        pass

    @abstractmethod
    async def find_for_authentication(self, email: str) -> tuple[str, str] | None:
        """``(id, hashed_password)`` of the active account with this email."""
        pass

    @abstractmethod
    async def find_for_update(self, user_id: str) -> dict[str, Any] | None:
        """``{email, firstname, lastname, hashed_password}`` of an active account."""
        pass

    @abstractmethod
    async def update(self, user_id: str, values: dict[str, Any]) -> dict[str, Any]:
        """Update an active account; return ``{email, firstname, lastname, updated_at}``.

        Raises:
            RecordNotFound: If no active account has this id
            UniqueViolation: If the new email is taken
        """
        pass

    @abstractmethod
    async def touch_last_connection(self, user_id: str) -> None:
        pass

    @abstractmethod
    async def soft_delete(self, user_id: str) -> None:
        """Raises RecordNotFound if missing or already soft-deleted."""
        pass

    @abstractmethod
    async def hard_delete(self, user_id: str) -> None:
        """Raises RecordNotFound if no row has this id."""
        pass

    @abstractmethod
    async def restore(self, user_id: str) -> None:
        """Raises RecordNotFound if no row has this id."""
        pass

    @abstractmethod
    async def is_admin(self, user_id: str) -> bool:
        pass


def _violated_field(error: IntegrityError) -> str:
    """Best-effort column name from a driver's unique-violation message."""
    message = str(error.orig)
    # SQLite: "UNIQUE constraint failed: users.email"
    match = re.search(r"users\.(\w+)", message)
    if match:
        return match.group(1)
    # PostgreSQL: "Key (email)=(a@x.com) already exists."
    match = re.search(r"Key \((\w+)\)", message)
    if match:
        return match.group(1)
    return "email"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLAlchemyUserStore(UserStore):
    """``UserStore`` on an async SQLAlchemy session.

    Each mutation is its own transaction: committed on success, rolled back
    on failure.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _mutate(self, statement) -> None:
        """Execute a single-row mutation; RecordNotFound when nothing matched."""
        try:
            result = await self._session.execute(
                statement.execution_options(synchronize_session=False)
            )
        except IntegrityError as e:
            await self._session.rollback()
            raise UniqueViolation(_violated_field(e)) from e

        if result.rowcount == 0:
            await self._session.rollback()
            raise RecordNotFound()
        await self._session.commit()

    async def create(self, email: str, hashed_password: str, firstname: str, lastname: str) -> str:
        user_id = str(uuid4())
        self._session.add(User(
            id=user_id,
            email=email,
            hashed_password=hashed_password,
            firstname=firstname,
            lastname=lastname,
        ))
        try:
            await self._session.commit()
        except IntegrityError as e:
            await self._session.rollback()
            raise UniqueViolation(_violated_field(e)) from e
        return user_id

    async def find_many(self) -> list[dict[str, Any]]:
        result = await self._session.execute(
            select(User.id, User.firstname, User.lastname)
            .where(User.deleted_at.is_(None))
            .order_by(User.created_at)
        )
        return [dict(row._mapping) for row in result]

    async def find_unique(self, user_id: str, gdpr_compliance: bool = True) -> dict[str, Any] | None:
        columns = [User.firstname, User.lastname, User.created_at]
        if not gdpr_compliance:
            columns += [User.email, User.last_connection]

        result = await self._session.execute(
            select(*columns)
            .where(User.id == user_id)
            .where(User.deleted_at.is_(None))
        )
        row = result.one_or_none()
        return dict(row._mapping) if row is not None else None

    async def find_for_authentication(self, email: str) -> tuple[str, str] | None:
        result = await self._session.execute(
            select(User.id, User.hashed_password)
            .where(User.email == email)
            .where(User.deleted_at.is_(None))
        )
        row = result.one_or_none()
        return (row.id, row.hashed_password) if row is not None else None

    async def find_for_update(self, user_id: str) -> dict[str, Any] | None:
        result = await self._session.execute(
            select(User.email, User.firstname, User.lastname, User.hashed_password)
            .where(User.id == user_id)
            .where(User.deleted_at.is_(None))
        )
        row = result.one_or_none()
        return dict(row._mapping) if row is not None else None

    async def update(self, user_id: str, values: dict[str, Any]) -> dict[str, Any]:
        unknown = set(values) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        await self._mutate(
            update(User)
            .where(User.id == user_id)
            .where(User.deleted_at.is_(None))
            .values(**values, updated_at=_utcnow())
        )

        result = await self._session.execute(
            select(User.email, User.firstname, User.lastname, User.updated_at)
            .where(User.id == user_id)
        )
        return dict(result.one()._mapping)

    async def touch_last_connection(self, user_id: str) -> None:
        # updated_at tracks profile changes, not logins
        await self._mutate(
            update(User)
            .where(User.id == user_id)
            .where(User.deleted_at.is_(None))
            .values(last_connection=_utcnow(), updated_at=User.updated_at)
        )

    async def soft_delete(self, user_id: str) -> None:
        await self._mutate(
            update(User)
            .where(User.id == user_id)
            .where(User.deleted_at.is_(None))
            .values(deleted_at=_utcnow())
        )

    async def hard_delete(self, user_id: str) -> None:
        await self._mutate(delete(User).where(User.id == user_id))

    async def restore(self, user_id: str) -> None:
        await self._mutate(
            update(User)
            .where(User.id == user_id)
            .values(deleted_at=None)
        )

    async def is_admin(self, user_id: str) -> bool:
        result = await self._session.execute(
            select(User.is_admin)
            .where(User.id == user_id)
            .where(User.deleted_at.is_(None))
        )
        return bool(result.scalar_one_or_none())

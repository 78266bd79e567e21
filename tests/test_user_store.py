"""Tests for the SQLAlchemy user store."""

import pytest
from sqlalchemy import select

from credential_service.core.user_store import RecordNotFound, UniqueViolation
from credential_service.models import User


async def _create(store, email="a@x.com", firstname="A", lastname="B") -> str:
    return await store.create(
        email=email, hashed_password="$argon2id$digest", firstname=firstname, lastname=lastname
    )


class TestCreate:
    async def test_create_returns_id(self, store, db_session):
        user_id = await _create(store)

        row = await db_session.get(User, user_id)
        assert row is not None
        assert row.email == "a@x.com"
        assert row.is_admin is False
        assert row.deleted_at is None
        assert row.created_at is not None

    async def test_duplicate_email(self, store):
        await _create(store)

        with pytest.raises(UniqueViolation) as exc:
            await _create(store, firstname="Other")
        assert exc.value.field == "email"

    async def test_duplicate_of_soft_deleted_email(self, store):
        user_id = await _create(store)
        await store.soft_delete(user_id)

        with pytest.raises(UniqueViolation):
            await _create(store)

    async def test_session_usable_after_violation(self, store):
        await _create(store)
        with pytest.raises(UniqueViolation):
            await _create(store)

        assert await _create(store, email="b@x.com")


class TestLookups:
    async def test_find_many_lists_active_accounts(self, store):
        first = await _create(store, email="a@x.com", firstname="Ada")
        second = await _create(store, email="b@x.com", firstname="Bob")
        await store.soft_delete(second)

        accounts = await store.find_many()

        assert accounts == [{"id": first, "firstname": "Ada", "lastname": "B"}]

    async def test_find_unique_gdpr_view(self, store):
        user_id = await _create(store)

        profile = await store.find_unique(user_id)

        assert set(profile) == {"firstname", "lastname", "created_at"}

    async def test_find_unique_full_view(self, store):
        user_id = await _create(store)

        profile = await store.find_unique(user_id, gdpr_compliance=False)

        assert set(profile) == {"firstname", "lastname", "created_at", "email", "last_connection"}
        assert profile["email"] == "a@x.com"
        assert profile["last_connection"] is None

    async def test_find_unique_unknown(self, store):
        assert await store.find_unique("no-such-id") is None

    async def test_find_for_authentication(self, store):
        user_id = await _create(store)

        assert await store.find_for_authentication("a@x.com") == (user_id, "$argon2id$digest")
        assert await store.find_for_authentication("nobody@x.com") is None

    async def test_find_for_update(self, store):
        user_id = await _create(store)

        assert await store.find_for_update(user_id) == {
            "email": "a@x.com",
            "firstname": "A",
            "lastname": "B",
            "hashed_password": "$argon2id$digest",
        }


class TestUpdate:
    async def test_update_returns_new_values(self, store):
        user_id = await _create(store)

        result = await store.update(user_id, {"firstname": "Ada", "email": "ada@x.com"})

        assert result["firstname"] == "Ada"
        assert result["email"] == "ada@x.com"
        assert result["lastname"] == "B"
        assert result["updated_at"] is not None

    async def test_update_to_taken_email(self, store):
        await _create(store, email="a@x.com")
        other = await _create(store, email="b@x.com")

        with pytest.raises(UniqueViolation):
            await store.update(other, {"email": "a@x.com"})

        assert (await store.find_for_update(other))["email"] == "b@x.com"

    async def test_update_unknown_account(self, store):
        with pytest.raises(RecordNotFound):
            await store.update("no-such-id", {"firstname": "X"})

    async def test_update_soft_deleted_account(self, store):
        user_id = await _create(store)
        await store.soft_delete(user_id)

        with pytest.raises(RecordNotFound):
            await store.update(user_id, {"firstname": "X"})

    async def test_update_rejects_unknown_fields(self, store):
        user_id = await _create(store)
        with pytest.raises(ValueError):
            await store.update(user_id, {"is_admin": True})

    async def test_touch_last_connection(self, store):
        user_id = await _create(store)

        await store.touch_last_connection(user_id)

        profile = await store.find_unique(user_id, gdpr_compliance=False)
        assert profile["last_connection"] is not None


class TestDeletion:
    async def test_soft_delete_hides_account(self, store):
        user_id = await _create(store)

        await store.soft_delete(user_id)

        assert await store.find_unique(user_id) is None
        assert await store.find_for_authentication("a@x.com") is None
        assert await store.find_for_update(user_id) is None

    async def test_soft_delete_keeps_row(self, store, db_session):
        user_id = await _create(store)
        await store.soft_delete(user_id)

        result = await db_session.execute(select(User.deleted_at).where(User.id == user_id))
        assert result.scalar_one() is not None

    async def test_soft_delete_twice(self, store):
        user_id = await _create(store)
        await store.soft_delete(user_id)

        with pytest.raises(RecordNotFound):
            await store.soft_delete(user_id)

    async def test_soft_delete_unknown(self, store):
        with pytest.raises(RecordNotFound):
            await store.soft_delete("no-such-id")

    async def test_restore(self, store):
        user_id = await _create(store)
        await store.soft_delete(user_id)

        await store.restore(user_id)

        assert await store.find_unique(user_id) is not None

    async def test_restore_active_account(self, store):
        user_id = await _create(store)
        await store.restore(user_id)
        assert await store.find_unique(user_id) is not None

    async def test_restore_unknown(self, store):
        with pytest.raises(RecordNotFound):
            await store.restore("no-such-id")

    async def test_hard_delete_removes_row(self, store, db_session):
        user_id = await _create(store)

        await store.hard_delete(user_id)

        result = await db_session.execute(select(User.id).where(User.id == user_id))
        assert result.scalar_one_or_none() is None

    async def test_hard_delete_of_soft_deleted_row(self, store):
        user_id = await _create(store)
        await store.soft_delete(user_id)

        await store.hard_delete(user_id)

        with pytest.raises(RecordNotFound):
            await store.restore(user_id)

    async def test_hard_delete_unknown(self, store):
        with pytest.raises(RecordNotFound):
            await store.hard_delete("no-such-id")

    async def test_email_reusable_after_hard_delete(self, store):
        user_id = await _create(store)
        await store.hard_delete(user_id)

        assert await _create(store)


class TestAdmin:
    async def test_is_admin(self, store, db_session):
        user_id = await _create(store)
        assert await store.is_admin(user_id) is False

        row = await db_session.get(User, user_id)
        row.is_admin = True
        await db_session.commit()

        assert await store.is_admin(user_id) is True

    async def test_unknown_is_not_admin(self, store):
        assert await store.is_admin("no-such-id") is False

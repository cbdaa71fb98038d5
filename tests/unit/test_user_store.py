"""Unit tests for the dual-key UserStore."""

import asyncio
import uuid

import pytest
import pytest_asyncio

from sqlalchemy.ext.asyncio import async_sessionmaker

from fortas.database import Database, create_engine_for_url
from fortas.kernel.identity.errors import (
    DuplicateIdentityError,
    StorageFailureError,
    UserNotFoundError,
)
from fortas.kernel.identity.user_store import (
    UserStore,
    normalize_email,
    normalize_key,
    normalize_mobile,
)
from fortas.kernel.models.user import User


def make_user(email: str = "a@x.com", mobile: str = "9990001111", name: str = "Asha") -> User:
    return User(
        id=uuid.uuid4(),
        full_name=name,
        email=email,
        mobile=mobile,
        password_hash="digest",
    )


@pytest_asyncio.fixture
async def database(test_settings):
    db = Database(test_settings.database_url)
    await db.init()
    yield db
    await db.close()


@pytest.fixture
def store(database) -> UserStore:
    return UserStore(database.session_maker)


class TestKeyNormalization:

    def test_email_is_lowercased_and_stripped(self):
        assert normalize_email("  A@X.Com ") == "a@x.com"

    def test_mobile_loses_formatting(self):
        assert normalize_mobile(" +91 (999) 000-1111 ") == "+919990001111"

    def test_key_dispatches_on_at_sign(self):
        assert normalize_key("A@X.com") == "a@x.com"
        assert normalize_key("999-000 1111") == "9990001111"


class TestInsert:

    @pytest.mark.asyncio
    async def test_both_keys_resolve_to_same_id(self, store):
        user = await store.insert(make_user())

        by_email = await store.find_by_key("a@x.com")
        by_mobile = await store.find_by_key("9990001111")

        assert by_email is not None and by_mobile is not None
        assert by_email.id == by_mobile.id == user.id

    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, store):
        await store.insert(make_user(email="Asha@X.com"))

        assert (await store.find_by_key("asha@x.COM")) is not None

    @pytest.mark.asyncio
    async def test_find_by_id(self, store):
        user = await store.insert(make_user())

        found = await store.find_by_id(user.id)
        assert found is not None
        assert found.email == "a@x.com"
        assert await store.find_by_id(str(user.id)) is not None
        assert await store.find_by_id(uuid.uuid4()) is None
        assert await store.find_by_id("not-a-uuid") is None

    @pytest.mark.asyncio
    async def test_unknown_key_returns_none(self, store):
        assert await store.find_by_key("nobody@x.com") is None
        assert await store.find_by_key("") is None

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected_and_size_unchanged(self, store):
        await store.insert(make_user())

        with pytest.raises(DuplicateIdentityError):
            await store.insert(make_user(mobile="1112223333"))

        assert await store.count() == 1
        assert await store.find_by_key("1112223333") is None

    @pytest.mark.asyncio
    async def test_duplicate_mobile_rejected_without_partial_index(self, store):
        await store.insert(make_user())

        with pytest.raises(DuplicateIdentityError):
            await store.insert(make_user(email="b@x.com"))

        # Neither key of the failed insert may have been written
        assert await store.find_by_key("b@x.com") is None
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_concurrent_registrations_one_wins(self, store):
        results = await asyncio.gather(
            store.insert(make_user(mobile="1000000001")),
            store.insert(make_user(mobile="1000000002")),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], DuplicateIdentityError)
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_survives_reopen(self, test_settings, store, database):
        user = await store.insert(make_user())
        await database.close()

        reopened = Database(test_settings.database_url)
        await reopened.init()
        try:
            found = await UserStore(reopened.session_maker).find_by_key("9990001111")
            assert found is not None
            assert found.id == user.id
        finally:
            await reopened.close()


class TestUpdate:

    @pytest.mark.asyncio
    async def test_email_change_moves_the_key(self, store):
        user = await store.insert(make_user())

        def change_email(record: User) -> None:
            record.email = "new@x.com"

        await store.update(user.id, change_email)

        assert await store.find_by_key("a@x.com") is None
        moved = await store.find_by_key("new@x.com")
        still = await store.find_by_key("9990001111")
        assert moved is not None and still is not None
        assert moved.id == still.id == user.id
        assert still.email == "new@x.com"

    @pytest.mark.asyncio
    async def test_both_keys_change_together(self, store):
        user = await store.insert(make_user())

        def change_both(record: User) -> None:
            record.email = "b@x.com"
            record.mobile = "2223334444"

        await store.update(user.id, change_both)

        assert await store.find_by_key("a@x.com") is None
        assert await store.find_by_key("9990001111") is None
        assert (await store.find_by_key("b@x.com")).id == user.id
        assert (await store.find_by_key("2223334444")).id == user.id

    @pytest.mark.asyncio
    async def test_plain_field_change_keeps_keys(self, store):
        user = await store.insert(make_user())

        def rename(record: User) -> None:
            record.full_name = "Asha K"

        await store.update(user.id, rename)

        by_email = await store.find_by_key("a@x.com")
        by_mobile = await store.find_by_key("9990001111")
        assert by_email.full_name == by_mobile.full_name == "Asha K"

    @pytest.mark.asyncio
    async def test_update_unknown_id_raises_not_found(self, store):
        with pytest.raises(UserNotFoundError):
            await store.update(uuid.uuid4(), lambda record: None)

    @pytest.mark.asyncio
    async def test_key_collision_rolls_back(self, store):
        first = await store.insert(make_user())
        second = await store.insert(make_user(email="b@x.com", mobile="2223334444", name="Bo"))

        def steal_email(record: User) -> None:
            record.full_name = "Changed"
            record.email = "a@x.com"

        with pytest.raises(DuplicateIdentityError):
            await store.update(second.id, steal_email)

        assert (await store.find_by_key("a@x.com")).id == first.id
        unchanged = await store.find_by_key("b@x.com")
        assert unchanged.id == second.id
        assert unchanged.full_name == "Bo"

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_serialized(self, store):
        user = await store.insert(make_user())

        def bump(record: User) -> None:
            record.total_chats = (record.total_chats or 0) + 1

        await asyncio.gather(*(store.update(user.id, bump) for _ in range(5)))

        assert (await store.find_by_id(user.id)).total_chats == 5

    @pytest.mark.asyncio
    async def test_update_locks_are_released(self, store):
        user = await store.insert(make_user())
        other = await store.insert(make_user(email="b@x.com", mobile="2223334444", name="Bo"))

        def bump(record: User) -> None:
            record.total_chats = (record.total_chats or 0) + 1

        def steal_email(record: User) -> None:
            record.email = "a@x.com"

        await asyncio.gather(*(store.update(user.id, bump) for _ in range(5)))
        with pytest.raises(DuplicateIdentityError):
            await store.update(other.id, steal_email)
        with pytest.raises(UserNotFoundError):
            await store.update(uuid.uuid4(), bump)

        assert store._locks == {}


class TestStorageFailure:

    @pytest.mark.asyncio
    async def test_unreachable_database_raises_storage_failure(self, tmp_path):
        engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'users.db'}")
        broken = UserStore(async_sessionmaker(engine, expire_on_commit=False))
        try:
            with pytest.raises(StorageFailureError):
                await broken.find_by_key("a@x.com")
            with pytest.raises(StorageFailureError):
                await broken.insert(make_user())
        finally:
            await engine.dispose()

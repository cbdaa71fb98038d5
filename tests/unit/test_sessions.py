"""Unit tests for the session registry and current-session pointer."""

import uuid
from datetime import timedelta

import pytest
import pytest_asyncio

from fortas.database import Database
from fortas.kernel.identity.sessions import SessionPointerStore, SessionRegistry


@pytest.fixture
def registry(clock) -> SessionRegistry:
    return SessionRegistry(
        ttl=timedelta(hours=24),
        remember_me_ttl=timedelta(days=30),
        clock=clock,
    )


class TestSessionRegistry:

    def test_tokens_are_unique_and_opaque(self, registry):
        user_id = uuid.uuid4()
        tokens = {registry.create(user_id) for _ in range(50)}

        assert len(tokens) == 50
        assert all(len(t) >= 40 for t in tokens)
        assert all(str(user_id) not in t for t in tokens)

    def test_valid_immediately(self, registry):
        user_id = uuid.uuid4()
        token = registry.create(user_id)

        assert registry.validate(token) == user_id

    def test_default_ttl_is_24_hours(self, registry, clock):
        token = registry.create(uuid.uuid4(), remember_me=False)

        clock.advance(hours=23, minutes=59)
        assert registry.validate(token) is not None

        clock.advance(minutes=2)
        assert registry.validate(token) is None

    def test_remember_me_ttl_is_30_days(self, registry, clock):
        token = registry.create(uuid.uuid4(), remember_me=True)

        clock.advance(hours=25)
        assert registry.validate(token) is not None

        clock.advance(days=29)
        assert registry.validate(token) is None

    def test_expired_token_is_evicted_on_read(self, registry, clock):
        token = registry.create(uuid.uuid4())
        clock.advance(days=2)

        assert registry.validate(token) is None
        assert len(registry) == 0

    def test_expired_never_comes_back(self, registry, clock):
        token = registry.create(uuid.uuid4())
        clock.advance(days=2)
        registry.validate(token)
        clock.now -= timedelta(days=2)

        assert registry.validate(token) is None

    def test_unknown_and_empty_tokens(self, registry):
        assert registry.validate("nope") is None
        assert registry.validate("") is None
        assert registry.validate(None) is None

    def test_revoke_is_idempotent(self, registry):
        token = registry.create(uuid.uuid4())

        registry.revoke(token)
        registry.revoke(token)
        registry.revoke(None)

        assert registry.validate(token) is None

    def test_revoke_user_only_touches_that_user(self, registry):
        alice, bob = uuid.uuid4(), uuid.uuid4()
        a1, a2 = registry.create(alice), registry.create(alice, remember_me=True)
        b1 = registry.create(bob)

        assert registry.revoke_user(alice) == 2
        assert registry.validate(a1) is None
        assert registry.validate(a2) is None
        assert registry.validate(b1) == bob


@pytest_asyncio.fixture
async def pointers(test_settings):
    db = Database(test_settings.database_url)
    await db.init()
    yield SessionPointerStore(db.session_maker)
    await db.close()


class TestSessionPointerStore:

    @pytest.mark.asyncio
    async def test_remember_and_read(self, pointers):
        assert await pointers.current("web") is None

        await pointers.remember("web", "token-1")
        assert await pointers.current("web") == "token-1"

    @pytest.mark.asyncio
    async def test_one_pointer_per_client(self, pointers):
        await pointers.remember("web", "token-1")
        await pointers.remember("web", "token-2")
        await pointers.remember("mobile", "token-3")

        assert await pointers.current("web") == "token-2"
        assert await pointers.current("mobile") == "token-3"

    @pytest.mark.asyncio
    async def test_forget(self, pointers):
        await pointers.remember("web", "token-1")
        await pointers.forget("web")
        await pointers.forget("web")

        assert await pointers.current("web") is None

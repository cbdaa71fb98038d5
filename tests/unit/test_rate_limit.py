"""Unit tests for the fixed-window rate limit store and bucket selection."""

import pytest
from starlette.requests import Request

from fortas.api.middleware.rate_limit import InMemoryRateLimitStore, RateLimitMiddleware


class Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def ticker() -> Ticker:
    return Ticker()


@pytest.fixture
def store(ticker) -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore(clock=ticker)


class TestInMemoryRateLimitStore:

    def test_allows_up_to_limit(self, store):
        results = [store.check_and_incr("auth", "1.2.3.4", 3, 60) for _ in range(4)]

        assert results == [True, True, True, False]

    def test_window_resets(self, store, ticker):
        for _ in range(3):
            store.check_and_incr("auth", "1.2.3.4", 3, 60)
        assert store.check_and_incr("auth", "1.2.3.4", 3, 60) is False

        ticker.now = 60.0

        assert store.check_and_incr("auth", "1.2.3.4", 3, 60) is True

    def test_scopes_and_identifiers_are_separate(self, store):
        store.check_and_incr("auth", "1.2.3.4", 1, 60)

        assert store.check_and_incr("auth", "5.6.7.8", 1, 60) is True
        assert store.check_and_incr("api", "1.2.3.4", 1, 60) is True
        assert store.check_and_incr("auth", "1.2.3.4", 1, 60) is False

    def test_cleanup_old(self, store, ticker):
        store.check_and_incr("auth", "old", 1, 60)
        ticker.now = 5000.0
        store.check_and_incr("auth", "new", 1, 60)

        store.cleanup_old(max_age_seconds=3600)

        assert len(store) == 1


def _request(token: str) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/api/v1/auth/me",
        "headers": [(b"authorization", f"Bearer {token}".encode())],
        "client": ("1.2.3.4", 5000),
    })


class TestApiBucket:

    def test_live_token_gets_own_bucket(self, test_settings):
        middleware = RateLimitMiddleware(app=None, settings=test_settings, token_validator=lambda t: t == "live")

        assert middleware._api_identifier(_request("live")) == "token:live"

    def test_unknown_tokens_fall_back_to_ip(self, test_settings):
        middleware = RateLimitMiddleware(app=None, settings=test_settings, token_validator=lambda t: t == "live")

        assert middleware._api_identifier(_request("junk-1")) == "1.2.3.4"
        assert middleware._api_identifier(_request("junk-2")) == "1.2.3.4"

    def test_without_validator_tokens_are_ignored(self, test_settings):
        middleware = RateLimitMiddleware(app=None, settings=test_settings)

        assert middleware._api_identifier(_request("live")) == "1.2.3.4"

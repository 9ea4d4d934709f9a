"""
Keystone — Rate Limiter Tests
===============================

What:  Fixed window counting and the 429 response of RateLimitMiddleware.
How:   FixedWindowCounter runs on a fake clock; middleware tests go through
       the real application with an HTTPX client.

Test Strategy:
    ✅ 5 requests pass, the 6th is rejected inside the 10 s window
    ✅ First request after the window expires passes again
    ✅ Clients are counted independently (X-Forwarded-For via proxy headers)
    ✅ Each route has its own window; unmatched paths are not counted
    ✅ Localized rejection message and Retry-After header
    ✅ Documentation paths are exempt
"""

import pytest

from keystone.middleware.rate_limit import (
    FixedWindowCounter,
    THROTTLE_MESSAGES,
    throttle_message,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestFixedWindowCounter:
    """Tests for the fixed window algorithm."""

    def setup_method(self):
        self.clock = FakeClock()
        self.counter = FixedWindowCounter(limit=5, window=10, clock=self.clock)

    def test_allows_up_to_limit(self):
        states = [self.counter.hit("10.0.0.1") for _ in range(5)]
        assert all(state.allowed for state in states)
        assert [state.remaining for state in states] == [4, 3, 2, 1, 0]

    def test_sixth_request_rejected(self):
        for _ in range(5):
            self.counter.hit("10.0.0.1")
        state = self.counter.hit("10.0.0.1")
        assert state.allowed is False
        assert state.remaining == 0

    def test_rejection_does_not_extend_window(self):
        for _ in range(5):
            self.counter.hit("10.0.0.1")
        self.clock.advance(4)
        assert self.counter.hit("10.0.0.1").retry_after == 6
        self.clock.advance(6)
        assert self.counter.hit("10.0.0.1").allowed is True

    def test_first_request_after_window_succeeds(self):
        for _ in range(6):
            self.counter.hit("10.0.0.1")
        self.clock.advance(10)
        state = self.counter.hit("10.0.0.1")
        assert state.allowed is True
        assert state.remaining == 4

    def test_window_starts_at_first_request(self):
        self.counter.hit("10.0.0.1")
        self.clock.advance(9.5)
        for _ in range(4):
            assert self.counter.hit("10.0.0.1").allowed
        assert self.counter.hit("10.0.0.1").allowed is False
        self.clock.advance(0.5)
        assert self.counter.hit("10.0.0.1").allowed is True

    def test_clients_are_independent(self):
        for _ in range(5):
            self.counter.hit("10.0.0.1")
        assert self.counter.hit("10.0.0.1").allowed is False
        assert self.counter.hit("10.0.0.2").allowed is True

    def test_purge_expired(self):
        self.counter.hit("10.0.0.1")
        self.clock.advance(5)
        self.counter.hit("10.0.0.2")
        self.clock.advance(5)
        assert self.counter.purge_expired() == 1
        assert len(self.counter) == 1

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            FixedWindowCounter(limit=0)
        with pytest.raises(ValueError):
            FixedWindowCounter(window=0)


class TestThrottleMessage:
    """Tests for message localization."""

    def test_default_locale_is_chinese(self):
        assert throttle_message("zh-CN") == "当前操作过于频繁，请稍后再试！"

    def test_language_match(self):
        assert throttle_message("zh-TW") == THROTTLE_MESSAGES["zh-CN"]
        assert throttle_message("en-GB") == THROTTLE_MESSAGES["en-US"]

    def test_unknown_locale_falls_back_to_english(self):
        assert throttle_message("fr-FR") == THROTTLE_MESSAGES["en-US"]


class TestRateLimitMiddleware:
    """Tests through the application middleware chain."""

    @pytest.mark.asyncio
    async def test_sixth_request_gets_429(self, make_client):
        async with make_client() as client:
            for _ in range(5):
                response = await client.get("/api/health")
                assert response.status_code == 200

            response = await client.get("/api/health")

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "rate_limit_exceeded"
        assert body["message"] == "当前操作过于频繁，请稍后再试！"
        assert 1 <= int(response.headers["Retry-After"]) <= 10
        assert response.headers["X-RateLimit-Remaining"] == "0"

    @pytest.mark.asyncio
    async def test_message_follows_locale(self, make_client):
        async with make_client(APP_LOCALE="en-US") as client:
            for _ in range(5):
                await client.get("/api/health")
            response = await client.get("/api/health")

        assert response.status_code == 429
        assert response.json()["message"] == THROTTLE_MESSAGES["en-US"]

    @pytest.mark.asyncio
    async def test_remaining_header(self, make_client):
        async with make_client() as client:
            response = await client.get("/api/health")
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    @pytest.mark.asyncio
    async def test_forwarded_clients_counted_separately(self, make_client):
        async with make_client() as client:
            for _ in range(5):
                await client.get("/api/health", headers={"X-Forwarded-For": "203.0.113.7"})
            blocked = await client.get("/api/health", headers={"X-Forwarded-For": "203.0.113.7"})
            other = await client.get("/api/health", headers={"X-Forwarded-For": "203.0.113.8"})

        assert blocked.status_code == 429
        assert other.status_code == 200

    @pytest.mark.asyncio
    async def test_docs_exempt(self, make_client):
        async with make_client(SWAGGER_ENABLE="true") as client:
            responses = [await client.get("/api-docs-json") for _ in range(7)]
        assert all(response.status_code == 200 for response in responses)

    @pytest.mark.asyncio
    async def test_routes_counted_separately(self, make_client):
        async with make_client() as client:
            for _ in range(5):
                await client.get("/api/health")
            blocked = await client.get("/api/health")
            other_route = await client.get("/api/")

        assert blocked.status_code == 429
        assert other_route.status_code == 200
        assert other_route.headers["X-RateLimit-Remaining"] == "4"

    @pytest.mark.asyncio
    async def test_unmatched_paths_not_counted(self, make_client):
        async with make_client() as client:
            missing = [await client.get("/api/nope") for _ in range(7)]
            health = await client.get("/api/health")

        assert all(response.status_code == 404 for response in missing)
        assert "X-RateLimit-Limit" not in missing[0].headers
        assert health.status_code == 200
        assert health.headers["X-RateLimit-Remaining"] == "4"

    @pytest.mark.asyncio
    async def test_path_parameters_share_one_route_window(self, make_client):
        async with make_client() as client:
            @client.app.get("/api/items/{item_id}")
            async def read_item(item_id: int):
                return {"id": item_id}

            statuses = [(await client.get(f"/api/items/{i}")).status_code for i in range(6)]

        assert statuses == [200] * 5 + [429]

"""Tests for token-bucket limiting and the API rate-limit middleware."""

from __future__ import annotations

import threading

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from secrelay.rate_limit import GLOBAL_KEY, RateLimiter, TokenBucket
from secrelay.web.rate_limit import RateLimitMiddleware, _is_limited

# ---------------------------------------------------------------------------
# Token bucket
# ---------------------------------------------------------------------------


class TestTokenBucket:
    def test_back_to_back_calls_allow_exactly_one(self, clock):
        bucket = TokenBucket(interval=1.0, burst=1, clock=clock)
        results = [bucket.allow(), bucket.allow()]
        assert results.count(True) == 1

    def test_back_to_back_with_real_clock(self):
        bucket = TokenBucket(interval=1.0, burst=1)
        assert [bucket.allow(), bucket.allow()] == [True, False]

    def test_refills_after_interval(self, clock):
        bucket = TokenBucket(interval=1.0, burst=1, clock=clock)
        assert bucket.allow() is True
        clock.advance(0.5)
        assert bucket.allow() is False
        clock.advance(0.5)
        assert bucket.allow() is True

    def test_burst_is_capped(self, clock):
        bucket = TokenBucket(interval=1.0, burst=3, clock=clock)
        clock.advance(100)
        assert [bucket.allow() for _ in range(4)] == [True, True, True, False]

    def test_retry_after(self, clock):
        bucket = TokenBucket(interval=2.0, burst=1, clock=clock)
        assert bucket.retry_after() == 0.0
        bucket.allow()
        clock.advance(0.5)
        assert bucket.retry_after() == pytest.approx(1.5)

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            TokenBucket(interval=0)
        with pytest.raises(ValueError):
            TokenBucket(burst=0)


class TestRateLimiter:
    def test_default_key_is_process_wide(self, clock):
        limiter = RateLimiter(clock=clock)
        assert limiter.allow() is True
        assert limiter.allow(GLOBAL_KEY) is False

    def test_different_keys_are_independent(self, clock):
        limiter = RateLimiter(clock=clock)
        assert limiter.allow("chat-1") is True
        assert limiter.allow("chat-1") is False
        assert limiter.allow("chat-2") is True

    def test_cleanup_drops_refilled_buckets(self, clock):
        limiter = RateLimiter(interval=1.0, burst=1, clock=clock, cleanup_interval=10)
        limiter.allow("a")
        assert "a" in limiter.buckets
        clock.advance(11)
        limiter.allow("b")
        assert "a" not in limiter.buckets
        assert "b" in limiter.buckets

    def test_cleanup_keeps_drained_buckets(self, clock):
        limiter = RateLimiter(interval=100.0, burst=1, clock=clock, cleanup_interval=10)
        limiter.allow("a")
        clock.advance(11)
        limiter.allow("b")
        assert "a" in limiter.buckets
        assert limiter.allow("a") is False

    def test_cleanup_cannot_hand_out_a_second_token(self, clock):
        # cleanup_interval=0 prunes on every call; the frozen clock means the
        # bucket never refills, so across all racing callers one token exists.
        for _ in range(20):
            limiter = RateLimiter(interval=1.0, burst=1, clock=clock, cleanup_interval=0)
            barrier = threading.Barrier(16)
            results: list[bool] = []

            def trigger():
                barrier.wait()
                results.append(limiter.allow())

            threads = [threading.Thread(target=trigger) for _ in range(16)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
            assert results.count(True) == 1


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _make_app(*, enabled: bool = True, limiter: RateLimiter | None = None, rpm: int = 60) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, enabled=enabled, requests_per_minute=rpm, limiter=limiter)

    @app.get("/api/articles")
    async def articles():
        return []

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


class TestPathMatching:
    def test_api_paths_limited(self):
        assert _is_limited("/api/articles", ("/api/",)) is True

    def test_other_paths_not_limited(self):
        assert _is_limited("/health", ("/api/",)) is False
        assert _is_limited("/index.html", ("/api/",)) is False


class TestRateLimitMiddleware:
    def test_api_limited_with_retry_after(self, clock):
        limiter = RateLimiter(interval=30.0, burst=2, clock=clock)
        client = TestClient(_make_app(limiter=limiter))

        assert client.get("/api/articles").status_code == 200
        assert client.get("/api/articles").status_code == 200
        resp = client.get("/api/articles")

        assert resp.status_code == 429
        assert int(resp.headers["Retry-After"]) >= 1
        assert "rate limit" in resp.json()["detail"].lower()

    def test_health_not_limited(self, clock):
        limiter = RateLimiter(interval=30.0, burst=1, clock=clock)
        client = TestClient(_make_app(limiter=limiter))
        client.get("/api/articles")
        assert client.get("/api/articles").status_code == 429
        for _ in range(5):
            assert client.get("/health").status_code == 200

    def test_disabled_mode_passes_through(self, clock):
        limiter = RateLimiter(interval=30.0, burst=1, clock=clock)
        client = TestClient(_make_app(enabled=False, limiter=limiter))
        for _ in range(5):
            assert client.get("/api/articles").status_code == 200

    def test_recovers_after_refill(self, clock):
        limiter = RateLimiter(interval=30.0, burst=1, clock=clock)
        client = TestClient(_make_app(limiter=limiter))
        client.get("/api/articles")
        assert client.get("/api/articles").status_code == 429
        clock.advance(30)
        assert client.get("/api/articles").status_code == 200

    def test_rpm_builds_limiter(self):
        mw = RateLimitMiddleware(FastAPI(), requests_per_minute=120)
        assert mw.limiter.burst == 120
        assert mw.limiter.interval == pytest.approx(0.5)

"""Tests for the web API."""

from __future__ import annotations

from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from secrelay.cache import SentArticleCache
from secrelay.integrations.rss import FeedFetchError
from secrelay.pipeline import ArticlePipeline
from secrelay.web.app import create_app


def _create_test_app(settings, entries=None, fetcher=None):
    """Create the app over a fixed list of feed entries."""
    if fetcher is None:
        fetcher = MagicMock(return_value=list(entries or []))
    pipeline = ArticlePipeline(settings.feed_url, SentArticleCache(), fetcher=fetcher)
    return create_app(settings, pipeline=pipeline)


class TestArticlesAPI:
    def test_returns_public_fields(self, test_settings, make_entry):
        app = _create_test_app(test_settings, [make_entry(1, description="<p>Hi</p>")])
        client = TestClient(app)

        resp = client.get("/api/articles")

        assert resp.status_code == 200
        assert resp.json() == [
            {
                "title": "Article 1",
                "link": "https://habr.com/ru/articles/1/?utm_campaign=1",
                "summary": "Hi",
            }
        ]

    def test_second_request_gets_nothing_new(self, test_settings, make_entry):
        app = _create_test_app(test_settings, [make_entry(i) for i in range(3)])
        client = TestClient(app)

        assert len(client.get("/api/articles").json()) == 3
        assert client.get("/api/articles").json() == []

    def test_caps_at_ten(self, test_settings, make_entry):
        app = _create_test_app(test_settings, [make_entry(i) for i in range(25)])
        assert len(TestClient(app).get("/api/articles").json()) == 10

    def test_fetch_error_returns_500(self, test_settings):
        app = _create_test_app(test_settings, fetcher=MagicMock(side_effect=FeedFetchError("down")))
        resp = TestClient(app).get("/api/articles")
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Error fetching articles"}

    def test_post_not_allowed(self, test_settings):
        resp = TestClient(_create_test_app(test_settings)).post("/api/articles")
        assert resp.status_code == 405

    def test_cors_headers(self, test_settings):
        client = TestClient(_create_test_app(test_settings))
        resp = client.get("/api/articles", headers={"Origin": "https://example.org"})
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_cors_preflight(self, test_settings):
        client = TestClient(_create_test_app(test_settings))
        resp = client.options(
            "/api/articles",
            headers={"Origin": "https://example.org", "Access-Control-Request-Method": "GET"},
        )
        assert resp.status_code == 200

    def test_api_rate_limited(self, test_settings):
        test_settings.api_rate_limit_per_minute = 2
        client = TestClient(_create_test_app(test_settings))
        assert client.get("/api/articles").status_code == 200
        assert client.get("/api/articles").status_code == 200
        assert client.get("/api/articles").status_code == 429


class TestHealth:
    def test_health_reports_cache_size(self, test_settings, make_entry):
        client = TestClient(_create_test_app(test_settings, [make_entry(1), make_entry(2)]))
        assert client.get("/health").json()["cached_articles"] == 0
        client.get("/api/articles")
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["cached_articles"] == 2
        assert body["feed_url"] == test_settings.feed_url


class TestStaticFiles:
    def test_serves_static_dir(self, test_settings, tmp_path):
        static = tmp_path / "docs"
        static.mkdir()
        (static / "index.html").write_text("<html><body>InfoSec chat</body></html>", encoding="utf-8")
        test_settings.static_dir = static
        client = TestClient(_create_test_app(test_settings))

        resp = client.get("/")
        assert resp.status_code == 200
        assert "InfoSec chat" in resp.text
        # API routes still win over the static mount
        assert client.get("/api/articles").status_code == 200

    def test_missing_static_dir_is_not_fatal(self, test_settings):
        client = TestClient(_create_test_app(test_settings))
        assert client.get("/").status_code == 404

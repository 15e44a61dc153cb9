"""FastAPI web application factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from secrelay.config import Settings, load_settings
from secrelay.integrations.rss import FeedFetchError
from secrelay.models import ArticleOut
from secrelay.pipeline import ArticlePipeline, create_pipeline
from secrelay.web.rate_limit import RateLimitMiddleware

logger = logging.getLogger("secrelay.web")


def get_pipeline(request: Request) -> ArticlePipeline:
    """Get the shared pipeline from app state."""
    return request.app.state.pipeline


def create_app(settings: Settings | None = None, pipeline: ArticlePipeline | None = None) -> FastAPI:
    """Build the API app.

    Pass the same *pipeline* the chat bot uses so both share one dedup cache.
    """
    app = FastAPI(title="secrelay", description="Habr infosec articles relay")

    settings = settings or load_settings()
    app.state.settings = settings
    app.state.pipeline = pipeline or create_pipeline(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.add_middleware(
        RateLimitMiddleware,
        enabled=settings.api_rate_limit_enabled,
        requests_per_minute=settings.api_rate_limit_per_minute,
    )

    @app.get("/health")
    def health(request: Request):
        pipe = get_pipeline(request)
        return {"status": "healthy", "feed_url": pipe.feed_url, "cached_articles": len(pipe.cache)}

    @app.get("/api/articles", response_model=list[ArticleOut])
    def list_articles(request: Request):
        """Run one pipeline cycle and return the articles not yet sent to anyone."""
        try:
            articles = get_pipeline(request).fetch_new_articles()
        except FeedFetchError as e:
            logger.error(f"Error getting articles for API: {e}")
            return JSONResponse({"detail": "Error fetching articles"}, status_code=500)
        return [article.to_public() for article in articles]

    # Mounted last: a mount at "/" would otherwise shadow the API routes.
    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(settings.static_dir), html=True), name="static")
    else:
        logger.info(f"Static directory {settings.static_dir} not found, serving API only")

    return app

"""Pydantic data models shared by the pipeline, the bot and the web API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class Article(BaseModel):
    """One feed entry that has not been dispatched before, ready to send."""

    id: str
    title: str
    link: str
    summary: str = ""
    published_at: datetime

    def to_public(self) -> ArticleOut:
        return ArticleOut(title=self.title, link=self.link, summary=self.summary)


class ArticleOut(BaseModel):
    """Public shape of an article in the JSON API."""

    title: str
    link: str
    summary: str

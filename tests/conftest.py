"""Shared fixtures: in-memory database, settings and mocked HTTP."""

from typing import Callable, Dict

import httpx
import pytest

from veille.db.models import Base, Source
from veille.db.session import build_engine, make_session_factory
from veille.settings import Settings

TEST_SECRET = "s3cret-token"

FEED_URL = "https://feeds.example.org/marches.xml"
API_URL = "https://data.example.org/api/explore/v2.1/catalog/datasets/boamp/records"


def rss_document(items: str, encoding: str = "utf-8") -> bytes:
    """Wrap <item> elements in a minimal RSS 2.0 document."""
    return (
        f'<?xml version="1.0" encoding="{encoding}"?>'
        '<rss version="2.0"><channel>'
        "<title>Marchés publics</title>"
        "<link>https://feeds.example.org/</link>"
        "<description>Avis</description>"
        f"{items}"
        "</channel></rss>"
    ).encode(encoding)


def rss_item(
    title: str,
    link: str = "",
    description: str = "",
    pub_date: str = "Mon, 06 Jan 2025 10:00:00 +0100",
) -> str:
    parts = [f"<title>{title}</title>"]
    if link:
        parts.append(f"<link>{link}</link>")
    if description:
        parts.append(f"<description>{description}</description>")
    if pub_date:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    return "<item>" + "".join(parts) + "</item>"


def mock_client(routes: Dict[str, Callable[[httpx.Request], httpx.Response]]) -> httpx.AsyncClient:
    """AsyncClient answering by URL prefix; unknown URLs get a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        for prefix, respond in routes.items():
            if url.startswith(prefix):
                return respond(request)
        return httpx.Response(404, text="not found")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def make_config():
    """Factory of isolated settings (no .env, sqlite, known secret)."""

    def _make(**overrides) -> Settings:
        values = {
            "database_url": "sqlite://",
            "cron_secret": TEST_SECRET,
            "run_timeout_seconds": 30.0,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def config(make_config) -> Settings:
    return make_config()


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    factory = make_session_factory(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def add_source(session_factory):
    """Register a source and return its id."""

    def _add(name: str, type: str, url: str, is_active: bool = True) -> int:
        with session_factory() as session:
            source = Source(name=name, type=type, url=url, is_active=is_active)
            session.add(source)
            session.commit()
            return source.id

    return _add

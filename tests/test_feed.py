"""Tests for the syndication feed fetcher."""

import asyncio

import httpx
import pytest

from tests.conftest import FEED_URL, mock_client, rss_document, rss_item
from veille.core.constants import SOURCE_TYPE_FEED
from veille.core.exceptions import FetchError, ParsingError
from veille.sourcing.base import SourceConfig
from veille.sourcing.feed import FeedFetcher

SOURCE = SourceConfig(id=1, name="Flux marchés", type=SOURCE_TYPE_FEED, url=FEED_URL)


def _fetch(config, body: bytes, status: int = 200):
    client = mock_client({FEED_URL: lambda request: httpx.Response(status, content=body)})
    fetcher = FeedFetcher(client, config)

    async def _go():
        async with client:
            return await fetcher.fetch(SOURCE)

    return asyncio.run(_go())


class TestFeedFetcher:
    """Tests for feed retrieval and entry reduction."""

    def test_entries_reduced_to_candidates(self, config):
        items = rss_item(
            "Appel d'offres télésurveillance Ville de Lyon",
            "https://marches.example.org/avis/1?utm_source=rss",
            "Surveillance à distance des bâtiments",
        ) + rss_item("Vidéoprotection du parking", "https://marches.example.org/avis/2")
        batch = _fetch(config, rss_document(items))

        assert batch.scanned == 2
        assert [c.title for c in batch.candidates] == [
            "Appel d'offres télésurveillance Ville de Lyon",
            "Vidéoprotection du parking",
        ]
        first = batch.candidates[0]
        assert first.link == "https://marches.example.org/avis/1"
        assert first.body == "Surveillance à distance des bâtiments"
        assert first.published_at is not None
        assert first.source_type == SOURCE_TYPE_FEED
        assert first.raw["title"] == first.title

    def test_entries_without_title_or_link_dropped(self, config):
        items = (
            rss_item("Sans lien")
            + rss_item("", "https://marches.example.org/avis/3")
            + rss_item("Complet", "https://marches.example.org/avis/4")
        )
        batch = _fetch(config, rss_document(items))
        assert batch.scanned == 3
        assert [c.title for c in batch.candidates] == ["Complet"]
        assert batch.discarded == 2

    def test_cdata_and_plain_bodies_equivalent(self, config):
        cdata = rss_item(
            "Alarme",
            "https://marches.example.org/avis/5",
            "<![CDATA[<p>Maintenance des alarmes</p>]]>",
        )
        escaped = rss_item(
            "Alarme",
            "https://marches.example.org/avis/5",
            "&lt;p&gt;Maintenance des alarmes&lt;/p&gt;",
        )
        plain = rss_item("Alarme", "https://marches.example.org/avis/5", "Maintenance des alarmes")

        bodies = {
            _fetch(config, rss_document(item)).candidates[0].body
            for item in (cdata, escaped, plain)
        }
        assert bodies == {"Maintenance des alarmes"}

    def test_entry_cap(self, make_config):
        config = make_config(feed_max_entries=3)
        items = "".join(
            rss_item(f"Avis {i}", f"https://marches.example.org/avis/{i}") for i in range(10)
        )
        batch = _fetch(config, rss_document(items))
        assert batch.scanned == 3
        assert len(batch.candidates) == 3
        assert batch.candidates[0].title == "Avis 0"

    def test_missing_date_not_a_discard(self, config):
        items = rss_item("Sans date", "https://marches.example.org/avis/6", pub_date="")
        batch = _fetch(config, rss_document(items))
        assert batch.candidates[0].published_at is None

    def test_http_error_captures_body(self, config):
        with pytest.raises(FetchError) as exc_info:
            _fetch(config, b"Service Unavailable: maintenance", status=503)
        error = exc_info.value
        assert error.status_code == 503
        assert "maintenance" in error.body
        assert "503" in str(error)

    def test_not_a_feed(self, config):
        with pytest.raises(ParsingError):
            _fetch(config, b"this is definitely not a feed")

    def test_network_error(self, config):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = mock_client({FEED_URL: refuse})
        fetcher = FeedFetcher(client, config)

        async def _go():
            async with client:
                return await fetcher.fetch(SOURCE)

        with pytest.raises(FetchError):
            asyncio.run(_go())

    def test_min_score_from_settings(self, make_config):
        fetcher = FeedFetcher(httpx.AsyncClient(), make_config(feed_min_score=42))
        assert fetcher.min_score == 42

"""Tests for the secret-gated trigger."""

import json

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from tests.conftest import FEED_URL, TEST_SECRET, mock_client, rss_document, rss_item
from veille.core.exceptions import AuthorizationError
from veille.db.models import IngestRun
from veille.db.repository import SourceRegistry
from veille.trigger import TriggerResponse, check_secret, trigger_ingest

FEED_BODY = rss_document(
    rss_item("Appel d'offres télésurveillance Ville de Lyon", "https://marches.example.org/avis/1")
)


def _client():
    return mock_client({FEED_URL: lambda r: httpx.Response(200, content=FEED_BODY)})


class TestCheckSecret:
    """Tests for credential checking."""

    def test_matching_secret(self):
        check_secret("abc", "abc")

    @pytest.mark.parametrize(
        "provided,expected",
        [("wrong", "abc"), ("", "abc"), (None, "abc"), ("abc", ""), ("abc", None)],
    )
    def test_rejected(self, provided, expected):
        with pytest.raises(AuthorizationError):
            check_secret(provided, expected)


class TestTriggerIngest:
    """Tests for the trigger entry point."""

    def test_unauthorized_creates_no_run(self, session_factory, config, add_source):
        add_source("Flux marchés", "FEED", FEED_URL)

        response = trigger_ingest(
            "not-the-secret", config=config, session_factory=session_factory, http_client=_client()
        )

        assert response.status_code == 401
        assert response.ok is False
        assert response.run_id is None
        with session_factory() as session:
            assert session.query(IngestRun).count() == 0

    def test_unconfigured_secret_rejects_everything(self, session_factory, make_config):
        config = make_config(cron_secret="")
        response = trigger_ingest("", config=config, session_factory=session_factory)
        assert response.status_code == 401

    def test_authorized_run(self, session_factory, config, add_source):
        add_source("Flux marchés", "FEED", FEED_URL)

        response = trigger_ingest(
            TEST_SECRET, config=config, session_factory=session_factory, http_client=_client()
        )

        assert response.status_code == 200
        assert response.ok is True
        assert response.created == 1
        assert response.sources[0]["source"] == "Flux marchés"
        assert response.run_id is not None

    def test_partial_failure_still_ok(self, session_factory, config, add_source):
        add_source("Source HS", "FEED", "https://down.example.org/rss")
        add_source("Flux marchés", "FEED", FEED_URL)

        response = trigger_ingest(
            TEST_SECRET, config=config, session_factory=session_factory, http_client=_client()
        )

        assert response.status_code == 200
        assert response.ok is True
        assert "error" in response.sources[0]
        assert response.created == 1

    def test_run_level_failure_is_500(self, session_factory, config, monkeypatch):
        def unavailable(self, types=None):
            raise OperationalError("SELECT sources", {}, Exception("database is down"))

        monkeypatch.setattr(SourceRegistry, "active_sources", unavailable)

        response = trigger_ingest(TEST_SECRET, config=config, session_factory=session_factory)

        assert response.status_code == 500
        assert response.ok is False
        assert response.error

    def test_response_serializes(self):
        response = TriggerResponse(ok=True, status_code=200, run_id=3, created=2, scanned=9)
        data = json.loads(response.model_dump_json())
        assert data["created"] == 2
        assert data["sources"] == []

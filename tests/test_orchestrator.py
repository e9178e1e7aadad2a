"""Tests for the run orchestrator (fetch -> classify -> persist -> track)."""

import asyncio
import time

import httpx
from sqlalchemy.exc import OperationalError

from tests.conftest import API_URL, FEED_URL, mock_client, rss_document, rss_item
from veille.core.constants import SOURCE_TYPE_FEED, SOURCE_TYPE_STRUCTURED_API
from veille.db.models import IngestRun, Opportunity
from veille.db.repository import SourceRegistry
from veille.ingest_orchestrator import TIMEOUT_ABORT_MESSAGE, IngestOrchestrator
from veille.sourcing.base import BaseFetcher, CandidateRecord, FetchBatch
from veille.sourcing.persist import OpportunityPersister

OTHER_FEED_URL = "https://down.example.org/rss"

FEED_ITEMS = (
    rss_item(
        "Appel d'offres télésurveillance Ville de Lyon",
        "https://marches.example.org/avis/1",
    )
    + rss_item("Fourniture de papeterie", "https://marches.example.org/avis/2")
    + rss_item(
        "Appel d'offres télésurveillance et nettoyage des locaux",
        "https://marches.example.org/avis/3",
    )
)


def _feed_ok(request):
    return httpx.Response(200, content=rss_document(FEED_ITEMS))


def _down(request):
    raise httpx.ConnectError("connection refused", request=request)


def _run(session_factory, config, routes, **kwargs):
    orchestrator = IngestOrchestrator(
        session_factory=session_factory,
        config=config,
        http_client=mock_client(routes),
        **kwargs,
    )
    return orchestrator.run()


class TestIngestOrchestrator:
    """Tests for a full ingest run."""

    def test_feed_run_admits_relevant_items(self, session_factory, config, add_source):
        add_source("Flux marchés", "FEED", FEED_URL)

        summary = _run(session_factory, config, {FEED_URL: _feed_ok})

        assert summary.ok is True
        assert summary.created == 1
        assert summary.scanned == 3
        assert summary.details == [
            {
                "source": "Flux marchés",
                "type": SOURCE_TYPE_FEED,
                "created": 1,
                "scanned": 3,
                "admitted": 1,
            }
        ]
        with session_factory() as session:
            opp = session.query(Opportunity).one()
            assert opp.url == "https://marches.example.org/avis/1"
            assert opp.status == "NEW"
            assert opp.score >= config.feed_min_score

    def test_ingestion_is_idempotent(self, session_factory, config, add_source):
        add_source("Flux marchés", "FEED", FEED_URL)

        first = _run(session_factory, config, {FEED_URL: _feed_ok})
        second = _run(session_factory, config, {FEED_URL: _feed_ok})

        assert first.created == 1
        assert second.created == 0
        assert second.outcomes[0].existing == 1
        with session_factory() as session:
            assert session.query(Opportunity).count() == 1
            assert session.query(IngestRun).count() == 2

    def test_failing_source_isolated(self, session_factory, config, add_source):
        add_source("Source HS", "RSS", OTHER_FEED_URL)
        add_source("Flux marchés", "FEED", FEED_URL)

        summary = _run(session_factory, config, {FEED_URL: _feed_ok, OTHER_FEED_URL: _down})

        assert summary.ok is True
        assert summary.created == 1
        failing, working = summary.details
        assert "error" in failing and failing["error"]
        assert working["created"] == 1
        assert "error" not in working
        assert summary.failed_sources == ["Source HS"]

        with session_factory() as session:
            run = session.get(IngestRun, summary.run_id)
            assert run.status == "ok"
            assert run.created_count == 1
            assert run.finished_at is not None
            assert run.details[0]["error"]

    def test_http_error_recorded_with_status(self, session_factory, config, add_source):
        add_source("Flux marchés", "FEED", FEED_URL)

        summary = _run(
            session_factory,
            config,
            {FEED_URL: lambda r: httpx.Response(502, text="Bad gateway from upstream")},
        )

        assert summary.ok is True
        assert "HTTP 502" in summary.details[0]["error"]
        assert "Bad gateway" in summary.details[0]["error"]

    def test_structured_source_by_codes(self, session_factory, config, add_source):
        add_source("BOAMP", "STRUCTURED_API", API_URL)
        payload = {
            "results": [
                {"idweb": "25-1", "objet": "Prestations", "cpv": ["79711000", "45210000"]},
                {"idweb": "25-2", "objet": "Travaux", "cpv": ["45210000"]},
            ]
        }

        summary = _run(
            session_factory, config, {API_URL: lambda r: httpx.Response(200, json=payload)}
        )

        assert summary.created == 1
        with session_factory() as session:
            opp = session.query(Opportunity).one()
            assert "FAM_TELE" in opp.tags
            assert opp.ruleset == "cpv"
            assert opp.source_type == SOURCE_TYPE_STRUCTURED_API
            assert opp.url.endswith("ref=25-1")

    def test_synthetic_links_prevent_duplicates(self, session_factory, config, add_source):
        add_source("BOAMP", "STRUCTURED_API", API_URL)
        payload = {"results": [{"idweb": "25-1", "objet": "Télésurveillance", "cpv": "79711000"}]}
        routes = {API_URL: lambda r: httpx.Response(200, json=payload)}

        assert _run(session_factory, config, routes).created == 1
        assert _run(session_factory, config, routes).created == 0

    def test_same_link_across_sources(self, session_factory, config, add_source):
        add_source("Flux A", "FEED", FEED_URL)
        add_source("Flux B", "FEED", OTHER_FEED_URL)

        summary = _run(session_factory, config, {FEED_URL: _feed_ok, OTHER_FEED_URL: _feed_ok})

        assert summary.created == 1
        with session_factory() as session:
            assert session.query(Opportunity).count() == 1

    def test_parallel_sources(self, session_factory, make_config, add_source):
        config = make_config(max_parallel_sources=2)
        add_source("Flux A", "FEED", FEED_URL)
        add_source("Flux B", "FEED", OTHER_FEED_URL)

        summary = _run(session_factory, config, {FEED_URL: _feed_ok, OTHER_FEED_URL: _down})

        assert summary.ok is True
        assert summary.created == 1
        assert [d["source"] for d in summary.details] == ["Flux A", "Flux B"]

    def test_inactive_and_unknown_sources(self, session_factory, config, add_source):
        add_source("Éteint", "FEED", FEED_URL, is_active=False)
        add_source("Scraper", "SCRAPER", "https://example.org/")

        summary = _run(session_factory, config, {FEED_URL: _feed_ok})

        assert summary.ok is True
        assert summary.created == 0
        assert summary.details == [
            {"source": "Scraper", "type": "SCRAPER", "skipped": "unsupported source type 'SCRAPER'"}
        ]

    def test_source_type_filter(self, session_factory, config, add_source):
        add_source("Flux marchés", "FEED", FEED_URL)
        add_source("BOAMP", "STRUCTURED_API", API_URL)

        summary = _run(
            session_factory, config, {FEED_URL: _feed_ok}, source_types=[SOURCE_TYPE_FEED]
        )

        assert [d["source"] for d in summary.details] == ["Flux marchés"]

    def test_registry_failure_finalizes_run(self, session_factory, config, monkeypatch):
        def unavailable(self, types=None):
            raise OperationalError("SELECT sources", {}, Exception("database is down"))

        monkeypatch.setattr(SourceRegistry, "active_sources", unavailable)

        summary = _run(session_factory, config, {})

        assert summary.ok is False
        assert "registry" in summary.error
        assert summary.outcomes == []
        with session_factory() as session:
            run = session.get(IngestRun, summary.run_id)
            assert run.status == "error"
            assert run.finished_at is not None
            assert run.error

    def test_run_timeout_aborts_pending_sources(self, session_factory, make_config, add_source):
        class HangingFetcher(BaseFetcher):
            source_type = SOURCE_TYPE_FEED

            @property
            def min_score(self):
                return 30

            async def fetch(self, source):
                await asyncio.sleep(30)
                return FetchBatch(source=source, candidates=[], scanned=0)

        config = make_config(run_timeout_seconds=1.0)
        add_source("Lent", "FEED", FEED_URL)
        client = mock_client({})

        summary = IngestOrchestrator(
            session_factory=session_factory,
            config=config,
            http_client=client,
            fetchers={SOURCE_TYPE_FEED: HangingFetcher(client, config)},
        ).run()

        assert summary.ok is False
        assert "timeout" in summary.error.lower()
        assert summary.details[0]["error"] == TIMEOUT_ABORT_MESSAGE
        with session_factory() as session:
            run = session.get(IngestRun, summary.run_id)
            assert run.status == "error"
            assert run.details[0]["error"] == TIMEOUT_ABORT_MESSAGE

    def test_run_timeout_interrupts_persist_phase(
        self, session_factory, make_config, add_source, monkeypatch
    ):
        class BulkFetcher(BaseFetcher):
            source_type = SOURCE_TYPE_FEED

            @property
            def min_score(self):
                return 30

            async def fetch(self, source):
                candidates = [
                    CandidateRecord(
                        source_name=source.name,
                        source_type=source.type,
                        title=f"Appel d'offres télésurveillance lot {i}",
                        link=f"https://marches.example.org/avis/{i}",
                    )
                    for i in range(100)
                ]
                return FetchBatch(source=source, candidates=candidates, scanned=100)

        persist = OpportunityPersister.persist

        def slow_persist(self, candidate, result, source):
            time.sleep(0.05)
            return persist(self, candidate, result, source)

        monkeypatch.setattr(OpportunityPersister, "persist", slow_persist)

        config = make_config(run_timeout_seconds=1.0)
        add_source("Volumineux", "FEED", FEED_URL)
        client = mock_client({})

        summary = IngestOrchestrator(
            session_factory=session_factory,
            config=config,
            http_client=client,
            fetchers={SOURCE_TYPE_FEED: BulkFetcher(client, config)},
        ).run()

        assert summary.ok is False
        assert summary.details[0]["error"] == TIMEOUT_ABORT_MESSAGE
        with session_factory() as session:
            assert 0 < session.query(Opportunity).count() < 100

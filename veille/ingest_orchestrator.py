"""Ingest Orchestrator - one run across all active sources.

Flow:
1. Run record created
2. Active sources loaded from the registry
3. Per source: fetch -> normalize -> classify -> admit -> dedupe/persist
4. Per-source outcomes combined, run record finalized

A failing source is recorded in the run details and never stops its
siblings; partial success is a normal "ok" run. Only a registry failure or
the run timeout marks the run itself as failed.
"""

import asyncio
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from veille.core.constants import (
    SEPARATOR_LINE,
    SEPARATOR_LINE_THIN,
    SOURCE_TYPE_FEED,
    SOURCE_TYPE_STRUCTURED_API,
)
from veille.core.logging import get_logger, setup_logging
from veille.db.repository import OpportunityStore, RunStore, SourceRegistry
from veille.db.session import get_session_factory
from veille.settings import Settings, settings as default_settings
from veille.sourcing.base import BaseFetcher, SourceConfig
from veille.sourcing.classifier import classify_candidate
from veille.sourcing.dataset import DatasetApiFetcher
from veille.sourcing.feed import FeedFetcher
from veille.sourcing.persist import OpportunityPersister, PersistOutcome
from veille.sourcing.tracking import RunTracker, SourceOutcome

logger = get_logger("ingest_orchestrator")

TIMEOUT_ABORT_MESSAGE = "aborted: run timeout"


def _run_async(coro):
    """Run async coroutine with proper event loop handling for Windows."""
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    else:
        return asyncio.run(coro)


@dataclass
class IngestSummary:
    """Result of one ingest run."""

    run_id: Optional[int] = None
    ok: bool = True
    created: int = 0
    scanned: int = 0
    outcomes: List[SourceOutcome] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def details(self) -> List[Dict[str, Any]]:
        return [o.to_detail() for o in self.outcomes]

    @property
    def failed_sources(self) -> List[str]:
        return [o.source for o in self.outcomes if o.failed]

    def log_summary(self) -> None:
        """Log summary statistics."""
        logger.info(SEPARATOR_LINE)
        logger.info("BILAN DE COLLECTE (run %s)", self.run_id)
        logger.info(SEPARATOR_LINE)
        logger.info("  Sources:          %d", len(self.outcomes))
        logger.info("  Analysés:         %d", self.scanned)
        logger.info("  Admis:            %d", sum(o.admitted for o in self.outcomes))
        logger.info("  Créés:            %d", self.created)
        logger.info("  Déjà connus:      %d", sum(o.existing for o in self.outcomes))
        logger.info("  Sources en échec: %d", len(self.failed_sources))
        if self.error:
            logger.info("  Erreur:           %s", self.error)
        logger.info("  Durée:            %.1fs", self.duration_seconds)
        logger.info(SEPARATOR_LINE)


class IngestOrchestrator:
    """Orchestrates one ingestion run over the source registry."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        fetchers: Optional[Dict[str, BaseFetcher]] = None,
        source_types: Optional[Iterable[str]] = None,
    ):
        """Initialize orchestrator.

        Args:
            session_factory: Session factory scoped to this run (defaults to
                the process-wide factory)
            config: Settings (defaults to the global instance)
            http_client: Shared client; created and closed per run when omitted
            fetchers: Fetcher per source type (defaults to feed + dataset API)
            source_types: Restrict the run to these source types
        """
        self._config = config or default_settings
        self._session_factory = session_factory or get_session_factory(self._config)
        self._http_client = http_client
        self._fetchers = fetchers
        self._source_types = list(source_types) if source_types else None

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.http_timeout_seconds),
            headers={"User-Agent": self._config.http_user_agent},
            follow_redirects=True,
        )

    def _default_fetchers(self, client: httpx.AsyncClient) -> Dict[str, BaseFetcher]:
        return {
            SOURCE_TYPE_FEED: FeedFetcher(client, self._config),
            SOURCE_TYPE_STRUCTURED_API: DatasetApiFetcher(client, self._config),
        }

    def run(self) -> IngestSummary:
        """Execute one ingest run (blocking).

        Returns:
            IngestSummary with run statistics
        """
        return _run_async(self.run_async())

    async def run_async(self) -> IngestSummary:
        """Execute one ingest run.

        Raises:
            PersistenceError: The run record itself could not be written
        """
        logger.info(SEPARATOR_LINE)
        logger.info("Veille Run - %s", datetime.now().strftime("%Y-%m-%d %H:%M"))
        logger.info(SEPARATOR_LINE)

        started = time.monotonic()
        summary = IngestSummary()

        with self._session_factory() as session:
            tracker = RunTracker(RunStore(session))
            summary.run_id = tracker.start().id

            try:
                try:
                    sources = SourceRegistry(session).active_sources(self._source_types)
                    # Snapshot taken; end the read transaction before the long fetch phase
                    session.commit()
                except SQLAlchemyError as e:
                    session.rollback()
                    logger.error("Source registry unavailable: %s", e)
                    summary.error = f"Source registry unavailable: {e}"
                    sources = None

                if sources is not None:
                    logger.info("Phase 1: Collecte (%d source(s) active(s))", len(sources))
                    logger.info(SEPARATOR_LINE_THIN)
                    summary.outcomes, summary.error = await self._process_sources(sources)

            except Exception as e:
                logger.exception("Run %s failed", summary.run_id)
                tracker.finalize(summary.outcomes, error=f"{type(e).__name__}: {e}")
                raise

            run = tracker.finalize(summary.outcomes, error=summary.error)

        summary.created = run.created_count or 0
        summary.scanned = run.scanned_count or 0
        summary.ok = summary.error is None
        summary.duration_seconds = time.monotonic() - started
        summary.log_summary()
        return summary

    async def _process_sources(
        self,
        sources: List[SourceConfig],
    ) -> Tuple[List[SourceOutcome], Optional[str]]:
        """Process all sources with bounded concurrency and a run deadline.

        Returns:
            Tuple (per-source outcomes in registry order, run-level error)
        """
        own_client = self._http_client is None
        client = self._http_client or self._build_client()
        fetchers = self._fetchers or self._default_fetchers(client)

        outcomes: List[SourceOutcome] = []
        tasks: Dict[asyncio.Task, SourceOutcome] = {}
        semaphore = asyncio.Semaphore(self._config.max_parallel_sources)

        try:
            for source in sources:
                outcome = SourceOutcome(source=source.name, type=source.type)
                outcomes.append(outcome)

                fetcher = fetchers.get(source.type)
                if fetcher is None:
                    outcome.skipped = f"unsupported source type {source.type!r}"
                    logger.info("[%s] Type %s non supporté - ignoré", source.name, source.type)
                    continue

                task = asyncio.create_task(
                    self._guarded(semaphore, fetcher, source, outcome),
                    name=f"source-{source.id}",
                )
                tasks[task] = outcome

            if not tasks:
                return outcomes, None

            timeout = self._config.run_timeout_seconds
            _, pending = await asyncio.wait(tasks.keys(), timeout=timeout)
            if not pending:
                return outcomes, None

            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in pending:
                tasks[task].error = TIMEOUT_ABORT_MESSAGE

            logger.error("Run timeout after %.0fs, %d source(s) aborted", timeout, len(pending))
            return outcomes, f"Run timeout after {timeout:.0f}s ({len(pending)} source(s) aborted)"

        finally:
            if own_client:
                await client.aclose()

    async def _guarded(
        self,
        semaphore: asyncio.Semaphore,
        fetcher: BaseFetcher,
        source: SourceConfig,
        outcome: SourceOutcome,
    ) -> None:
        """Process one source; every failure ends up in its outcome."""
        async with semaphore:
            logger.info("[%s]", source.name)
            try:
                await self._process_source(fetcher, source, outcome)
            except Exception as e:
                outcome.error = str(e) or type(e).__name__
                logger.warning("  Échec: %s", outcome.error)
                return

            logger.info(
                "  Analysés: %d, admis: %d, créés: %d",
                outcome.scanned,
                outcome.admitted,
                outcome.created,
            )

    async def _process_source(
        self,
        fetcher: BaseFetcher,
        source: SourceConfig,
        outcome: SourceOutcome,
    ) -> None:
        """Fetch one source and persist its admitted candidates in fetch order.

        Raises:
            FetchError: Source unreachable or non-2xx
            ParsingError: Payload unusable
            PersistenceError: Storage failure (aborts the remaining records)
        """
        batch = await fetcher.fetch(source)
        outcome.scanned = batch.scanned

        with self._session_factory() as session:
            persister = OpportunityPersister(OpportunityStore(session), self._config)
            for candidate in batch.candidates:
                result = classify_candidate(candidate)
                if not result.admitted(fetcher.min_score):
                    continue
                outcome.admitted += 1

                persisted = persister.persist(candidate, result, source)
                if persisted is PersistOutcome.CREATED:
                    outcome.created += 1
                else:
                    outcome.existing += 1
                # Storage calls block; let siblings and the run deadline through
                await asyncio.sleep(0)

        logger.debug(
            "%s: %d candidates, %d discarded by normalization",
            source.name,
            len(batch.candidates),
            batch.discarded,
        )


def run_ingest(source_types: Optional[Iterable[str]] = None) -> IngestSummary:
    """Execute one ingest run with the global settings.

    Returns:
        IngestSummary with run statistics
    """
    setup_logging(default_settings)

    orchestrator = IngestOrchestrator(source_types=source_types)
    return orchestrator.run()


if __name__ == "__main__":
    run_ingest()

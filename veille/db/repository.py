"""Narrow storage contracts consumed by the ingestion core.

- SourceRegistry: read-only access to active sources
- OpportunityStore: find-by-identity and insert (plus the optional refresh)
- RunStore: create and finalize ingest runs
"""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from veille.core.constants import LEGACY_SOURCE_TYPES, RUN_STATUS_RUNNING, TRIAGE_OWNED_FIELDS
from veille.core.exceptions import PersistenceError, RunStateError
from veille.core.logging import get_logger
from veille.db.models import IngestRun, Opportunity, Source, utcnow
from veille.sourcing.base import SourceConfig

logger = get_logger("db.repository")


def normalize_source_type(value: Optional[str]) -> str:
    """Map registry type values (including legacy RSS/API) to FEED/STRUCTURED_API."""
    raw = (value or "").strip().upper()
    return LEGACY_SOURCE_TYPES.get(raw, raw)


class SourceRegistry:
    """Read access to the source registry."""

    def __init__(self, session: Session):
        self._session = session

    def active_sources(self, types: Optional[Iterable[str]] = None) -> List[SourceConfig]:
        """Snapshot of active sources for the duration of one run.

        Args:
            types: Optional source types to keep (FEED, STRUCTURED_API)

        Returns:
            Detached SourceConfig objects, ordered by id
        """
        rows = (
            self._session.query(Source)
            .filter(Source.is_active.is_(True))
            .order_by(Source.id)
            .all()
        )
        wanted = {normalize_source_type(t) for t in types} if types else None

        sources = []
        for row in rows:
            source_type = normalize_source_type(row.type)
            if wanted is not None and source_type not in wanted:
                continue
            sources.append(
                SourceConfig(
                    id=row.id,
                    name=row.name,
                    type=source_type,
                    url=(row.url or "").strip(),
                    is_active=bool(row.is_active),
                )
            )
        return sources


class OpportunityStore:
    """Identity lookup and insert for opportunities."""

    def __init__(self, session: Session):
        self._session = session

    def find_by_url(self, url: str) -> Optional[Opportunity]:
        return self._session.query(Opportunity).filter(Opportunity.url == url).one_or_none()

    def insert(self, opportunity: Opportunity) -> Opportunity:
        """Insert and commit a new opportunity.

        Raises:
            IntegrityError: The unique identity key (or another constraint) was violated
            PersistenceError: Any other storage failure
        """
        try:
            self._session.add(opportunity)
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            raise
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError(
                f"Insert failed: {e}", operation="insert", table="opportunities"
            ) from e
        return opportunity

    def refresh(self, opportunity: Opportunity, values: dict) -> Opportunity:
        """Overwrite ingestion-owned fields of an existing opportunity."""
        owned = sorted(set(values) & set(TRIAGE_OWNED_FIELDS))
        if owned:
            raise PersistenceError(
                f"Refusing to overwrite triage fields: {', '.join(owned)}",
                operation="update",
                table="opportunities",
            )
        try:
            for key, value in values.items():
                setattr(opportunity, key, value)
            opportunity.updated_at = utcnow()
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError(
                f"Refresh failed: {e}", operation="update", table="opportunities"
            ) from e
        return opportunity


class RunStore:
    """Persistence of ingest run records."""

    def __init__(self, session: Session):
        self._session = session

    def create(self) -> IngestRun:
        run = IngestRun(started_at=utcnow(), status=RUN_STATUS_RUNNING)
        try:
            self._session.add(run)
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError(
                f"Could not create ingest run: {e}", operation="insert", table="ingest_runs"
            ) from e
        return run

    def get(self, run_id: int) -> Optional[IngestRun]:
        return self._session.get(IngestRun, run_id)

    def finalize(
        self,
        run_id: int,
        finished_at: datetime,
        status: str,
        created_count: int,
        scanned_count: int,
        details: list,
        error: Optional[str] = None,
    ) -> IngestRun:
        run = self.get(run_id)
        if run is None:
            raise RunStateError(f"Unknown ingest run {run_id}")
        if run.finished_at is not None:
            raise RunStateError(f"Ingest run {run_id} already finalized")

        try:
            run.finished_at = finished_at
            run.status = status
            run.created_count = created_count
            run.scanned_count = scanned_count
            run.details = details
            run.error = error
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError(
                f"Could not finalize ingest run {run_id}: {e}",
                operation="update",
                table="ingest_runs",
            ) from e
        return run

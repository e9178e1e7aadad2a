"""Ingest run tracking.

One RunTracker per invocation: the run record is created before any source
is processed and finalized exactly once, on the success and failure paths.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from veille.core.constants import RUN_STATUS_ERROR, RUN_STATUS_OK
from veille.core.exceptions import RunStateError
from veille.core.logging import get_logger
from veille.db.models import IngestRun, utcnow
from veille.db.repository import RunStore

logger = get_logger("sourcing.tracking")


@dataclass
class SourceOutcome:
    """Result of processing one source within a run."""

    source: str
    type: str
    created: int = 0
    scanned: int = 0
    admitted: int = 0
    existing: int = 0
    error: Optional[str] = None
    skipped: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_detail(self) -> Dict[str, Any]:
        """Per-source entry of the run detail list."""
        detail: Dict[str, Any] = {"source": self.source, "type": self.type}
        if self.skipped is not None:
            detail["skipped"] = self.skipped
            return detail
        detail.update(created=self.created, scanned=self.scanned, admitted=self.admitted)
        if self.error is not None:
            detail["error"] = self.error
        return detail


class RunTracker:
    """Lifecycle of one IngestRun record."""

    def __init__(self, store: RunStore):
        self._store = store
        self._run_id: Optional[int] = None
        self._finalized = False

    @property
    def run_id(self) -> Optional[int]:
        return self._run_id

    @property
    def finalized(self) -> bool:
        return self._finalized

    def start(self) -> IngestRun:
        if self._run_id is not None:
            raise RunStateError(f"Ingest run {self._run_id} already started")
        run = self._store.create()
        self._run_id = run.id
        logger.debug("Started ingest run %s", run.id)
        return run

    def finalize(
        self,
        outcomes: Iterable[SourceOutcome],
        error: Optional[str] = None,
    ) -> IngestRun:
        """Record totals and per-source details; allowed exactly once.

        Args:
            outcomes: Per-source outcomes, in registry order
            error: Run-level error (registry failure, timeout), if any

        Raises:
            RunStateError: Run not started or already finalized
        """
        if self._run_id is None:
            raise RunStateError("Ingest run was never started")
        if self._finalized:
            raise RunStateError(f"Ingest run {self._run_id} already finalized")

        outcomes = list(outcomes)
        details: List[Dict[str, Any]] = [o.to_detail() for o in outcomes]
        run = self._store.finalize(
            self._run_id,
            finished_at=utcnow(),
            status=RUN_STATUS_ERROR if error else RUN_STATUS_OK,
            created_count=sum(o.created for o in outcomes),
            scanned_count=sum(o.scanned for o in outcomes),
            details=details,
            error=error,
        )
        self._finalized = True
        return run

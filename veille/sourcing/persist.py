"""Deduplication and persistence of admitted candidates.

The canonical link is the identity key. The existence check and the insert
are two steps; the unique constraint on ``opportunities.url`` catches what
slips between them (overlapping runs, two sources publishing one notice).
"""

from enum import Enum
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError

from veille.core.constants import OPPORTUNITY_STATUS_NEW
from veille.core.exceptions import PersistenceError
from veille.core.logging import get_logger
from veille.db.models import Opportunity
from veille.db.repository import OpportunityStore
from veille.settings import Settings
from veille.sourcing.base import CandidateRecord, SourceConfig
from veille.sourcing.classifier import ClassificationResult
from veille.sourcing.normalize import canonicalize_link, truncate
from veille.sourcing.rules import RULESET_VERSION

logger = get_logger("sourcing.persist")


class PersistOutcome(str, Enum):
    CREATED = "created"
    EXISTING = "existing"
    REFRESHED = "refreshed"


class OpportunityPersister:
    """Create opportunities from admitted candidates, at most once per link."""

    def __init__(self, store: OpportunityStore, config: Settings):
        self._store = store
        self._config = config

    def _classification_fields(
        self,
        candidate: CandidateRecord,
        result: ClassificationResult,
    ) -> Dict[str, Any]:
        """Fields derived from fetch + classification (never triage-owned)."""
        return {
            "score": result.score,
            "tags": list(result.tags),
            "summary": truncate(candidate.body, self._config.summary_max_chars),
            "raw": candidate.raw,
            "family": result.family,
            "ruleset": result.ruleset,
            "ruleset_version": RULESET_VERSION,
        }

    def persist(
        self,
        candidate: CandidateRecord,
        result: ClassificationResult,
        source: SourceConfig,
    ) -> PersistOutcome:
        """Persist one admitted candidate.

        Args:
            candidate: Normalized candidate
            result: Its classification (already admitted)
            source: Owning source

        Returns:
            CREATED for a new opportunity, EXISTING when the link is known,
            REFRESHED when it is known and ``refresh_existing`` is enabled

        Raises:
            PersistenceError: Storage failure other than an identity conflict
        """
        link = canonicalize_link(candidate.link)
        if not link:
            raise PersistenceError(
                f"Candidate without identity key: {candidate.title[:60]}",
                operation="insert",
                table="opportunities",
            )

        existing = self._store.find_by_url(link)
        if existing is not None:
            if not self._config.refresh_existing:
                return PersistOutcome.EXISTING
            self._store.refresh(existing, self._classification_fields(candidate, result))
            logger.debug("Refreshed %s", link)
            return PersistOutcome.REFRESHED

        opportunity = Opportunity(
            url=link,
            title=candidate.title[:1000],
            published_at=candidate.published_at,
            status=OPPORTUNITY_STATUS_NEW,
            source_id=source.id,
            source_name=source.name,
            source_type=source.type,
            **self._classification_fields(candidate, result),
        )

        try:
            self._store.insert(opportunity)
        except IntegrityError as e:
            # Lost the race against another writer of the same link
            if self._store.find_by_url(link) is not None:
                logger.debug("Concurrent insert of %s resolved as existing", link)
                return PersistOutcome.EXISTING
            raise PersistenceError(
                f"Insert rejected: {e.orig}", operation="insert", table="opportunities"
            ) from e

        logger.debug("Created opportunity %s (score %d)", link, result.score)
        return PersistOutcome.CREATED

"""Base classes for source fetchers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import httpx

from veille.core.exceptions import FetchError
from veille.core.logging import get_logger
from veille.settings import Settings

logger = get_logger("sourcing.base")


@dataclass(frozen=True)
class SourceConfig:
    """Snapshot of one registry source, valid for the duration of a run."""
    id: Optional[int]
    name: str
    type: str
    url: str
    is_active: bool = True


@dataclass
class CandidateRecord:
    """Canonical candidate built from one fetched record (source-agnostic)."""
    source_name: str
    source_type: str
    title: str
    link: str
    body: str = ""
    published_at: Optional[datetime] = None
    # Payload as fetched (feed entry fields or dataset row), kept for audit
    raw: Union[Dict[str, Any], str, None] = None
    # Classification codes (structured sources only)
    codes: List[str] = field(default_factory=list)
    # True when the link was derived from source URL + record reference
    link_synthesized: bool = False

    @property
    def text(self) -> str:
        """Title and body as one string, the input of the text rules."""
        return f"{self.title} {self.body}".strip()


@dataclass
class FetchBatch:
    """Candidates of one source fetch plus how many raw records were enumerated."""
    source: SourceConfig
    candidates: List[CandidateRecord]
    scanned: int

    @property
    def discarded(self) -> int:
        return self.scanned - len(self.candidates)


class BaseFetcher(ABC):
    """Abstract base class for source fetchers.

    A fetcher retrieves one source's endpoint and turns its records into
    CandidateRecord objects. Network and HTTP failures surface as FetchError;
    malformed single records are dropped.
    """

    source_type: str = "unknown"

    def __init__(self, client: httpx.AsyncClient, config: Settings):
        self._client = client
        self._config = config

    @property
    @abstractmethod
    def min_score(self) -> int:
        """Admission threshold for candidates of this source type."""

    @abstractmethod
    async def fetch(self, source: SourceConfig) -> FetchBatch:
        """Fetch and normalize the records of one source.

        Args:
            source: Registry source to fetch

        Returns:
            FetchBatch with candidates in fetch order (already capped)

        Raises:
            FetchError: Source unreachable, timed out or non-2xx
            ParsingError: Payload unusable as a whole
        """

    async def _get(
        self,
        source: SourceConfig,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """GET with the run's client, mapping every failure to FetchError."""
        logger.debug("GET %s params=%s", url, params)
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Timeout fetching {source.name}", source=source.name, url=url
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                f"Network error fetching {source.name}: {e}", source=source.name, url=url
            ) from e

        if not response.is_success:
            raise FetchError(
                f"{self.source_type} fetch failed: {source.name}",
                source=source.name,
                url=str(response.request.url),
                status_code=response.status_code,
                body=response.text,
            )
        return response

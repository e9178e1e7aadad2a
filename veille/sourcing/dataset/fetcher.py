"""Fetcher for structured dataset APIs (BOAMP Opendatasoft Explore)."""

from typing import List

from veille.core.constants import QUERY_STRATEGY_LOCAL, SOURCE_TYPE_STRUCTURED_API
from veille.core.exceptions import ParsingError
from veille.core.logging import get_logger
from veille.sourcing.base import BaseFetcher, CandidateRecord, FetchBatch, SourceConfig
from veille.sourcing.dataset.parser import parse_dataset_row
from veille.sourcing.dataset.query import build_query, extract_rows, select_recent

logger = get_logger("sourcing.dataset")


class DatasetApiFetcher(BaseFetcher):
    """Query a dataset endpoint and reduce its rows to candidates.

    With the server_filter strategy the endpoint returns a bounded,
    recency-ordered page already filtered on code prefixes and keywords.
    With the local strategy an unfiltered page is sorted by best-available
    date and capped here; classification does the filtering.
    """

    source_type = SOURCE_TYPE_STRUCTURED_API

    @property
    def min_score(self) -> int:
        return self._config.api_min_score

    async def fetch(self, source: SourceConfig) -> FetchBatch:
        strategy = self._config.api_query_strategy
        base_url, params = build_query(source.url, self._config, strategy)
        logger.debug("Querying dataset %s (%s)", source.name, strategy)

        response = await self._get(source, base_url, params=params)

        try:
            payload = response.json()
        except ValueError as e:
            raise ParsingError(
                f"Invalid JSON from {source.name}: {e}",
                source=source.name,
                raw_output=response.text,
            ) from e

        rows = extract_rows(payload)
        if strategy == QUERY_STRATEGY_LOCAL:
            rows = select_recent(rows, self._config.api_local_cap)
        else:
            rows = rows[: self._config.api_page_limit]

        candidates: List[CandidateRecord] = []
        for row in rows:
            candidate = parse_dataset_row(row, source)
            if candidate is not None:
                candidates.append(candidate)

        logger.debug(
            "Parsed %d candidates from %d rows (%s)", len(candidates), len(rows), source.name
        )
        return FetchBatch(source=source, candidates=candidates, scanned=len(rows))

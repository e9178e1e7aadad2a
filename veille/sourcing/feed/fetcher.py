"""Fetcher for syndication feeds (RSS 2.0, Atom)."""

from typing import List

import feedparser

from veille.core.constants import SOURCE_TYPE_FEED
from veille.core.exceptions import ParsingError
from veille.core.logging import get_logger
from veille.sourcing.base import BaseFetcher, CandidateRecord, FetchBatch, SourceConfig
from veille.sourcing.feed.parser import parse_feed_entry

logger = get_logger("sourcing.feed")


class FeedFetcher(BaseFetcher):
    """Fetch a feed document and reduce its entries to candidates.

    At most ``feed_max_entries`` entries are processed per fetch so that a
    single misbehaving feed cannot blow up the cost of a run. CDATA-wrapped
    and plain field bodies are equivalent once parsed.
    """

    source_type = SOURCE_TYPE_FEED

    @property
    def min_score(self) -> int:
        return self._config.feed_min_score

    async def fetch(self, source: SourceConfig) -> FetchBatch:
        logger.debug("Fetching feed %s from %s", source.name, source.url)
        response = await self._get(source, source.url)

        feed = feedparser.parse(response.content)

        if feed.bozo and not feed.entries and not feed.get("version"):
            raise ParsingError(
                f"Not a feed document: {source.name} ({feed.get('bozo_exception')})",
                source=source.name,
                raw_output=response.text,
            )
        if feed.bozo:
            logger.debug("Feed parsing issue on %s: %s", source.name, feed.get("bozo_exception"))

        entries = feed.entries[: self._config.feed_max_entries]
        if len(feed.entries) > len(entries):
            logger.info(
                "[%s] %d entries, capped to %d",
                source.name,
                len(feed.entries),
                len(entries),
            )

        candidates: List[CandidateRecord] = []
        for entry in entries:
            candidate = parse_feed_entry(entry, source)
            if candidate is None:
                continue
            candidates.append(candidate)

        logger.debug(
            "Parsed %d candidates from %d entries (%s)",
            len(candidates),
            len(entries),
            source.name,
        )
        return FetchBatch(source=source, candidates=candidates, scanned=len(entries))

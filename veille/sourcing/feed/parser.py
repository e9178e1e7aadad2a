"""Parser for syndication feed entries."""

from typing import Any, Dict, Optional

import feedparser

from veille.core.constants import SOURCE_TYPE_FEED
from veille.sourcing.base import CandidateRecord, SourceConfig
from veille.sourcing.normalize import build_candidate, clean_text, is_http_url, join_text


def _entry_link(entry: feedparser.FeedParserDict) -> str:
    """Entry link, falling back to alternate links and permalink guids."""
    link = clean_text(entry.get("link"))
    if link:
        return link
    for candidate in entry.get("links", []) or []:
        href = clean_text(candidate.get("href"))
        if href and candidate.get("rel", "alternate") == "alternate":
            return href
    guid = clean_text(entry.get("id"))
    return guid if is_http_url(guid) else ""


def _entry_description(entry: feedparser.FeedParserDict) -> str:
    """Plain-text body from summary/description and content blocks."""
    content_values = [block.get("value") for block in entry.get("content", []) or []]
    return join_text(entry.get("summary") or entry.get("description"), *content_values)


def _entry_published(entry: feedparser.FeedParserDict) -> Any:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return parsed
    return entry.get("published") or entry.get("updated")


def parse_feed_entry(
    entry: feedparser.FeedParserDict,
    source: SourceConfig,
) -> Optional[CandidateRecord]:
    """Parse a single feed entry into a CandidateRecord.

    Args:
        entry: feedparser entry object
        source: Owning source

    Returns:
        CandidateRecord or None when title or link is missing
    """
    title = entry.get("title", "")
    link = _entry_link(entry)
    description = _entry_description(entry)

    raw: Dict[str, Any] = {
        "title": clean_text(title),
        "link": link,
        "published": clean_text(entry.get("published") or entry.get("updated")),
        "description": description,
    }

    return build_candidate(
        source_name=source.name,
        source_type=SOURCE_TYPE_FEED,
        title=title,
        link=link,
        body=description,
        published=_entry_published(entry),
        raw=raw,
    )

"""Syndication feed (RSS/Atom) fetcher."""

from veille.sourcing.feed.fetcher import FeedFetcher
from veille.sourcing.feed.parser import parse_feed_entry

__all__ = ["FeedFetcher", "parse_feed_entry"]

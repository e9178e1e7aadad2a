"""Structured dataset API fetcher."""

from veille.sourcing.dataset.fetcher import DatasetApiFetcher
from veille.sourcing.dataset.parser import DatasetRow, parse_dataset_row
from veille.sourcing.dataset.query import build_query, build_where

__all__ = [
    "DatasetApiFetcher",
    "DatasetRow",
    "parse_dataset_row",
    "build_query",
    "build_where",
]

"""Sourcing module - Fetchers, normalization and classification."""

from veille.sourcing.base import BaseFetcher, CandidateRecord, FetchBatch, SourceConfig
from veille.sourcing.classifier import ClassificationResult, classify_candidate
from veille.sourcing.normalize import build_candidate, canonicalize_link

__all__ = [
    "BaseFetcher",
    "CandidateRecord",
    "FetchBatch",
    "SourceConfig",
    "ClassificationResult",
    "classify_candidate",
    "build_candidate",
    "canonicalize_link",
]

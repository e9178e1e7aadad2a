"""Veille opportunités - ingestion, classification and deduplication of tenders."""

__version__ = "0.3.0"

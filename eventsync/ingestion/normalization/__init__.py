"""
Normalization helpers used by source adapters.

Usage:
    from eventsync.ingestion.normalization import normalize_datetime

    normalize_datetime("Sat, Feb 15 • 7:00 PM", default_tz="Australia/Sydney")
"""

from .dates import normalize_datetime, parse_datetime

__all__ = ["normalize_datetime", "parse_datetime"]

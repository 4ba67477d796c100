"""Collectors for the Parliament website and open-data API."""

from .base import BaseCollector
from .meps import HISTORIC_TERMS, MepDirectoryClient, MepRecord
from .sittings import (
    FetchResult,
    FetchStatus,
    SittingFetcher,
    list_dates_in_range,
    sitting_url,
    term_for_date,
    toc_url,
)
from .speeches_api import SpeechMetadata, SpeechMetadataClient

__all__ = [
    "BaseCollector",
    "FetchResult",
    "FetchStatus",
    "HISTORIC_TERMS",
    "MepDirectoryClient",
    "MepRecord",
    "SittingFetcher",
    "SpeechMetadata",
    "SpeechMetadataClient",
    "list_dates_in_range",
    "sitting_url",
    "term_for_date",
    "toc_url",
]

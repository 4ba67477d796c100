"""Database models and persistence helpers."""

from .database import SittingRef, Storage, create_storage
from .models import (
    AnalyticsCacheEntry,
    Base,
    CacheStatus,
    IndividualSpeech,
    Mep,
    Sitting,
    epoch_ms,
)

__all__ = [
    "AnalyticsCacheEntry",
    "Base",
    "CacheStatus",
    "IndividualSpeech",
    "Mep",
    "Sitting",
    "SittingRef",
    "Storage",
    "create_storage",
    "epoch_ms",
]

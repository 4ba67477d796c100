"""Processors that enrich stored speeches."""

from .analytics import AnalyticsCache, TopicIndex, build_analytics
from .classifier import Classification, TopicClassifier, UsageTotals
from .cleaner import normalize_for_search, normalize_topic_label, strip_html
from .groups import (
    GroupAudit,
    GroupClassification,
    GroupKind,
    GroupNormalizer,
    MatchReason,
    normalize_group,
)
from .language import LanguageDecision, LanguageDetector
from .mep_linker import create_historic_meps, link_speeches_to_meps, upsert_api_meps
from .taxonomy import TAXONOMY, UNKNOWN, format_speech_input, format_topic_input

__all__ = [
    "AnalyticsCache",
    "Classification",
    "GroupAudit",
    "GroupClassification",
    "GroupKind",
    "GroupNormalizer",
    "LanguageDecision",
    "LanguageDetector",
    "MatchReason",
    "TAXONOMY",
    "TopicClassifier",
    "TopicIndex",
    "UNKNOWN",
    "UsageTotals",
    "build_analytics",
    "create_historic_meps",
    "format_speech_input",
    "format_topic_input",
    "link_speeches_to_meps",
    "normalize_for_search",
    "normalize_group",
    "normalize_topic_label",
    "strip_html",
    "upsert_api_meps",
]

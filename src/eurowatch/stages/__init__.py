"""Pipeline stages, in the order a full run executes them."""

from .analytics import AnalyticsStage
from .base import BaseStage, StageResult
from .classify import ClassifyStage
from .fetch import FetchStage
from .groups import GroupStage, render_audit
from .language import LanguageStage
from .meps import MepStage
from .parse import ParseStage
from .topics import TopicStage

STAGE_ORDER = ("meps", "fetch", "parse", "topics", "groups", "language", "classify", "analytics")

__all__ = [
    "AnalyticsStage",
    "BaseStage",
    "ClassifyStage",
    "FetchStage",
    "GroupStage",
    "LanguageStage",
    "MepStage",
    "ParseStage",
    "STAGE_ORDER",
    "StageResult",
    "TopicStage",
    "render_audit",
]

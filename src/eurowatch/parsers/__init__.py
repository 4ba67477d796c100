"""Parsers turning verbatim report HTML into speeches and agenda sections."""

from .agenda import AgendaTopic, Section, SectionMatch, best_section, parse_agenda, split_sections
from .html import extract_text, extract_toc_text, looks_like_sitting
from .speeches import (
    Continuation,
    HeaderMatch,
    NameWithGroup,
    NameWithGroupAndRole,
    NameWithRole,
    ParsedSpeech,
    TitleOnly,
    classify_line,
    split_speeches,
)

__all__ = [
    "AgendaTopic",
    "Continuation",
    "HeaderMatch",
    "NameWithGroup",
    "NameWithGroupAndRole",
    "NameWithRole",
    "ParsedSpeech",
    "Section",
    "SectionMatch",
    "TitleOnly",
    "best_section",
    "classify_line",
    "extract_text",
    "extract_toc_text",
    "looks_like_sitting",
    "parse_agenda",
    "split_sections",
    "split_speeches",
]

"""Agenda extraction and speech-to-topic alignment.

Agenda items in a verbatim report are ``td.doc_title`` cells carrying the
``arrow_title_doc.gif`` marker image. The document between two such
headers is that item's section; a speech is assigned to the section whose
text it appears in.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from lxml import etree, html

from ..config import TopicsConfig
from ..processors.cleaner import normalize_for_search, normalize_whitespace, strip_html

HEADER_XPATH = (
    "//td[contains(concat(' ', normalize-space(@class), ' '), ' doc_title ')]"
    "[.//img[contains(@src, 'arrow_title_doc.gif')]]"
)

ORDINAL_RE = re.compile(r"^(\d+(?:\.\d+)*)\s*\.")
TRAILING_CITATION_RE = re.compile(r"\s*\([^)]*\)\s*$")
DOC_ID_RE = re.compile(r"/doceo/document/([^/_]+(?:-[^/_]+)*)_EN\.html", re.IGNORECASE)


@dataclass(frozen=True)
class AgendaTopic:
    """One agenda header."""

    ordinal: Optional[str]
    title: str
    doc_identifier: Optional[str]
    raw: str


@dataclass
class Section:
    """The stretch of the document that belongs to one agenda header."""

    title: str
    doc_identifier: Optional[str]
    text: str
    normalized: str = ""
    tokens: frozenset = field(default_factory=frozenset, repr=False)

    def __post_init__(self):
        if not self.normalized:
            self.normalized = normalize_for_search(self.text)
        if not self.tokens:
            self.tokens = frozenset(self.normalized.split())


@dataclass(frozen=True)
class SectionMatch:
    section: Section
    score: float

    @property
    def title(self) -> str:
        return self.section.title


def _parse_document(source: str):
    try:
        return html.document_fromstring(source)
    except (etree.ParserError, ValueError):
        return None


def _header_fields(cell) -> AgendaTopic:
    raw = normalize_whitespace(cell.text_content())
    ordinal_match = ORDINAL_RE.match(raw)
    ordinal = ordinal_match.group(1) if ordinal_match else None

    title = raw[ordinal_match.end():].strip() if ordinal_match else raw
    title = TRAILING_CITATION_RE.sub("", title).strip()

    doc_identifier = None
    for link in cell.iter("a"):
        href = link.get("href") or ""
        if "/doceo/document/" not in href or not href.lower().endswith("_en.html"):
            continue
        id_match = DOC_ID_RE.search(href)
        if id_match:
            doc_identifier = id_match.group(1)
            break

    return AgendaTopic(ordinal=ordinal, title=title, doc_identifier=doc_identifier, raw=raw)


def parse_agenda(source: str) -> list[AgendaTopic]:
    """Extract the agenda headers of a sitting, deduplicated.

    Two headers with the same document identifier and the same normalized
    title are the same item; the first occurrence is kept.

    Args:
        source: Verbatim report HTML

    Returns:
        Agenda topics in document order
    """
    if not source:
        return []
    root = _parse_document(source)
    if root is None:
        return []

    topics = []
    seen = set()
    for cell in root.xpath(HEADER_XPATH):
        topic = _header_fields(cell)
        if not topic.title:
            continue
        key = f"{topic.doc_identifier or ''}::{normalize_for_search(topic.title)}"
        if key in seen:
            continue
        seen.add(key)
        topics.append(topic)
    return topics


def split_sections(source: str) -> list[Section]:
    """Cut the document into one section per agenda header.

    Each section runs from its header to the next header, or to the end of
    the document for the last one.
    """
    if not source:
        return []
    root = _parse_document(source)
    if root is None:
        return []
    cells = root.xpath(HEADER_XPATH)
    if not cells:
        return []

    serialized = etree.tostring(root, encoding="unicode", method="html")
    spans = []
    search_from = 0
    for cell in cells:
        cell_html = etree.tostring(cell, encoding="unicode", method="html", with_tail=False)
        start = serialized.find(cell_html, search_from)
        if start == -1:
            continue
        search_from = start + len(cell_html)
        topic = _header_fields(cell)
        spans.append((start, topic))

    sections = []
    for i, (start, topic) in enumerate(spans):
        end = spans[i + 1][0] if i + 1 < len(spans) else len(serialized)
        text = normalize_whitespace(strip_html(serialized[start:end]))
        sections.append(Section(title=topic.title, doc_identifier=topic.doc_identifier, text=text))
    return sections


def best_section(
    body: str,
    sections: Sequence[Section],
    settings: Optional[TopicsConfig] = None,
) -> Optional[SectionMatch]:
    """Find the section a speech belongs to.

    An exact snippet of the speech inside a section wins outright with score
    1.0. Otherwise the section covering the largest share of the speech's
    distinct long tokens wins, provided the share reaches the threshold.
    Sections are scanned in document order and the first best one is kept.

    Args:
        body: Speech text
        sections: Sections of the same sitting, in document order
        settings: Snippet offsets, lengths and threshold

    Returns:
        The matched section and its score, or None
    """
    settings = settings or TopicsConfig()
    speech = normalize_for_search(body)
    if len(speech) < settings.min_speech_length:
        return None

    snippets = []
    for offset in settings.snippet_offsets:
        snippet = speech[offset: offset + settings.snippet_length]
        if len(snippet) >= settings.min_snippet_length:
            snippets.append(snippet)

    for section in sections:
        if len(section.normalized) < settings.min_section_length:
            continue
        if any(snippet in section.normalized for snippet in snippets):
            return SectionMatch(section, 1.0)

    tokens = {tok for tok in speech.split() if len(tok) >= settings.min_token_length}
    if not tokens:
        return None

    best = None
    best_score = 0.0
    for section in sections:
        if not section.tokens:
            continue
        score = len(tokens & section.tokens) / len(tokens)
        if score > best_score:
            best, best_score = section, score

    if best is None or best_score < settings.threshold:
        return None
    return SectionMatch(best, best_score)

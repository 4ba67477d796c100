"""Plain-text extraction from verbatim report HTML."""

import re
from typing import Optional

from selectolax.parser import HTMLParser, Node

from ..processors.cleaner import normalize_whitespace

MAIN_CONTAINER_SELECTOR = ".doc-content, .ep_text, .content, #content, .main-content"
TOC_ITEM_SELECTOR = 'a[href*="ITM-"]'
TOC_PREFIX = "TOC Agenda Items:"

_SITTING_MARKERS = re.compile(r"<html|arrow_title_doc\.gif|<table|<td", re.IGNORECASE)


def _node_lines(node: Optional[Node]) -> list[str]:
    """One line per paragraph, or per text line when the node has no paragraphs."""
    if node is None:
        return []
    paragraphs = node.css("p")
    if paragraphs:
        lines = [normalize_whitespace(p.text()) for p in paragraphs]
    else:
        lines = [normalize_whitespace(line) for line in node.text().splitlines()]
    return [line for line in lines if line]


def _joined_length(lines: list[str]) -> int:
    return sum(len(line) for line in lines)


def extract_text(html: str, min_length: int = 100) -> str:
    """Extract line-oriented text from a sitting document.

    Tries the main content container, then every ``<p>`` in the document,
    then the whole body, returning the first candidate holding at least
    ``min_length`` characters.

    Args:
        html: Raw HTML (or plain text, which passes through line by line)
        min_length: Minimum characters for a candidate to be accepted

    Returns:
        Newline-joined text, empty when no candidate is long enough
    """
    if not html:
        return ""
    tree = HTMLParser(html)

    candidates = [
        lambda: _node_lines(tree.css_first(MAIN_CONTAINER_SELECTOR)),
        lambda: [line for line in (normalize_whitespace(p.text()) for p in tree.css("p")) if line],
        lambda: _node_lines(tree.body),
    ]
    for candidate in candidates:
        lines = candidate()
        if _joined_length(lines) >= min_length:
            return "\n".join(lines)
    return ""


def extract_toc_text(html: str) -> str:
    """Render the agenda item links of a table-of-contents page as text."""
    tree = HTMLParser(html)
    items = [normalize_whitespace(a.text()) for a in tree.css(TOC_ITEM_SELECTOR)]
    items = [item for item in items if item]
    if not items:
        return ""
    return "\n".join([TOC_PREFIX, *items])


def looks_like_sitting(html: str, min_length: int = 500) -> bool:
    """Cheap check that a response is a real verbatim report page."""
    return bool(html) and len(html) >= min_length and bool(_SITTING_MARKERS.search(html))

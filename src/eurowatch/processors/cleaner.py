"""Text normalization shared by the parsers and enrichment stages."""

import html as html_entities
import re
import unicodedata

from lxml import etree, html

DASH_CHARS = "\u2010\u2011\u2012\u2013\u2014\u2015\u2212\ufe58\ufe63\uff0d"
INVISIBLE_CHARS = "\u00a0\u200b\u200c\u200d\ufeff"

_DASH_RE = re.compile(f"[{DASH_CHARS}]")
_INVISIBLE_RE = re.compile(f"[{INVISIBLE_CHARS}]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_TAG_RE = re.compile(r"<[^>]+>")


def fold_dashes(text: str) -> str:
    """Replace every dash variant with an ASCII hyphen."""
    return _DASH_RE.sub("-", text)


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim."""
    return " ".join(text.split())


def strip_html(text: str) -> str:
    """Remove HTML tags from text.

    Args:
        text: Text possibly containing HTML

    Returns:
        Plain text
    """
    if "<" not in text:
        return text

    try:
        return html.fromstring(text).text_content()
    except (etree.ParserError, ValueError):
        return _TAG_RE.sub(" ", text)


def normalize_for_search(text: str) -> str:
    """Normalize text for substring and token matching.

    Invisible spaces become spaces, dashes fold to ``-``, accents are
    stripped (NFKD), the result is lowercased, anything outside ``[a-z0-9]``
    becomes a space and whitespace is collapsed.
    """
    if not text:
        return ""
    text = _INVISIBLE_RE.sub(" ", text)
    text = fold_dashes(text)
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_ALNUM_RE.sub(" ", text.lower())
    return normalize_whitespace(text)


def normalize_topic_label(label: str) -> str:
    """Unescape HTML entities, fold dashes and trim a topic label."""
    return fold_dashes(html_entities.unescape(label or "")).strip()


def topic_collapse_key(label: str) -> str:
    """Key under which hyphenation variants of a topic label coincide."""
    key = normalize_topic_label(label).lower()
    return normalize_whitespace(re.sub(r"\s*-\s*", " ", key))

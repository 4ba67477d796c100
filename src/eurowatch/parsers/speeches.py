"""Splitting a sitting's text into individual speeches.

A speech starts on a line carrying a speaker header followed by the
separator ``". –"`` (period, space, en dash); every other line continues
the current speech. Headers come in four shapes::

    Name, Role. – Body
    Name (Affiliation). – Body
    Name (Affiliation), Role. – Body
    Title. – Body
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from ..processors.groups import GroupNormalizer, get_normalizer

SEPARATOR = ". –"
SEPARATOR_RE = re.compile(r"\.\s*–")

NAME_ROLE_RE = re.compile(r"^([^,–()]+),\s*(.+?)\.\s*–\s*(.+)$")
NAME_GROUP_RE = re.compile(r"^([^(–]+)\s*\(([^)]+)\)\.\s*–\s*(.+)$")
NAME_GROUP_ROLE_RE = re.compile(r"^([^(–]+)\s*\(([^)]+)\),\s*(.+?)\.\s*–\s*(.+)$")
TITLE_ONLY_RE = re.compile(r"^([^.,–]+)\.\s*–\s*(.+)$")

GROUP_INDICATORS = (
    "on behalf of",
    "au nom de",
    "a nome del",
    "en nombre del",
    "im namen der",
    "fraktion",
    "gruppo",
    "grupo",
    "group",
    "groupe",
    "εξ ονόματος",
    "namens",
    "w imieniu",
    "în numele",
    "thar ceann",
    "u ime",
    "za skupinu",
    "em nome",
)


@dataclass(frozen=True)
class NameWithRole:
    name: str
    role: str
    body: str
    header: str


@dataclass(frozen=True)
class NameWithGroup:
    name: str
    affiliation: str
    body: str
    header: str


@dataclass(frozen=True)
class NameWithGroupAndRole:
    name: str
    affiliation: str
    role: str
    body: str
    header: str


@dataclass(frozen=True)
class TitleOnly:
    title: str
    body: str
    header: str


@dataclass(frozen=True)
class Continuation:
    text: str


HeaderMatch = Union[NameWithRole, NameWithGroup, NameWithGroupAndRole, TitleOnly, Continuation]


@dataclass
class ParsedSpeech:
    """A speech as cut from the sitting text, before enrichment."""

    speech_order: int
    speaker_name: Optional[str]
    political_group: Optional[str]
    title: Optional[str]
    body: str
    header: str = ""
    group_in_parentheses: bool = False

    def render(self) -> str:
        """Header and body as one line, the form the speech had in the source."""
        return f"{self.header} {self.body}".strip()


def _header_of(line: str, body: str) -> str:
    return line[: len(line) - len(body)].rstrip()


def classify_line(line: str, max_title_length: int = 80) -> HeaderMatch:
    """Match one line against the header shapes, most specific first.

    Args:
        line: A single stripped line of sitting text
        max_title_length: Longest header accepted as a bare title

    Returns:
        The header variant, or ``Continuation`` when the line is body text
    """
    if not SEPARATOR_RE.search(line):
        return Continuation(line)

    match = NAME_ROLE_RE.match(line)
    if match:
        name, role, body = (g.strip() for g in match.groups())
        return NameWithRole(name, role, body, _header_of(line, body))

    match = NAME_GROUP_RE.match(line)
    if match:
        name, affiliation, body = (g.strip() for g in match.groups())
        header = _header_of(line, body)
        # "Name (PPE, rapporteur)" carries the role inside the parentheses
        group, _, role = affiliation.partition(",")
        if role.strip():
            return NameWithGroupAndRole(name, group.strip(), role.strip(), body, header)
        return NameWithGroup(name, affiliation, body, header)

    match = NAME_GROUP_ROLE_RE.match(line)
    if match:
        name, affiliation, role, body = (g.strip() for g in match.groups())
        return NameWithGroupAndRole(name, affiliation, role, body, _header_of(line, body))

    match = TITLE_ONLY_RE.match(line)
    if match:
        title, body = (g.strip() for g in match.groups())
        if len(title) <= max_title_length:
            return TitleOnly(title, body, _header_of(line, body))

    return Continuation(line)


def is_group_affiliation(text: str, normalizer: Optional[GroupNormalizer] = None) -> bool:
    """Whether a role string reads as a political group rather than a function."""
    normalizer = normalizer or get_normalizer()
    if normalizer.resolve_code(text):
        return True
    lowered = text.lower()
    return any(indicator in lowered for indicator in GROUP_INDICATORS)


def _start_speech(
    match: HeaderMatch, order: int, normalizer: GroupNormalizer
) -> ParsedSpeech:
    if isinstance(match, NameWithRole):
        title = None if is_group_affiliation(match.role, normalizer) else match.role
        return ParsedSpeech(order, match.name, match.role, title, match.body, match.header)
    if isinstance(match, NameWithGroup):
        return ParsedSpeech(
            order, match.name, match.affiliation, None, match.body, match.header, group_in_parentheses=True
        )
    if isinstance(match, NameWithGroupAndRole):
        return ParsedSpeech(
            order, match.name, match.affiliation, match.role, match.body, match.header, group_in_parentheses=True
        )
    if isinstance(match, TitleOnly):
        return ParsedSpeech(order, None, None, match.title, match.body, match.header)
    raise TypeError(f"Not a header: {match!r}")


def split_speeches(
    text: Union[str, Iterable[str]],
    max_title_length: int = 80,
    normalizer: Optional[GroupNormalizer] = None,
) -> list[ParsedSpeech]:
    """Split sitting text into speeches in document order.

    Lines before the first header are ignored. ``speech_order`` starts at 1
    and increases by one per header.

    Args:
        text: Sitting text, or an iterable of its lines
        max_title_length: Longest header accepted as a bare title
        normalizer: Group normalizer used to recognise affiliations

    Returns:
        Parsed speeches
    """
    normalizer = normalizer or get_normalizer()
    lines = text.split("\n") if isinstance(text, str) else text

    speeches: list[ParsedSpeech] = []
    current: Optional[ParsedSpeech] = None
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        match = classify_line(line, max_title_length)
        if isinstance(match, Continuation):
            if current is not None:
                current.body = f"{current.body} {match.text}"
            continue
        if current is not None:
            speeches.append(current)
        current = _start_speech(match, len(speeches) + 1, normalizer)

    if current is not None:
        speeches.append(current)
    return speeches

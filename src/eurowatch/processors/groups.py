"""Political group normalization.

Reduces the free-text affiliation printed next to a speaker's name to a
canonical group code and a kind: a political group, an institutional role
(Commission, Council, HR/VP), a parliamentary role (rapporteur, committee
chair) or unknown. Each result records the rule that produced it.
"""

import json
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from ..exceptions import ConfigError
from ..utils.logging import get_logger
from .cleaner import fold_dashes, normalize_whitespace

CANONICAL_GROUPS = (
    "PPE",
    "S&D",
    "ECR",
    "ID",
    "Verts/ALE",
    "Renew",
    "The Left",
    "NI",
    "PfE",
    "EFDD",
    "ESN",
)

GROUP_SYNONYMS = {
    "EPP": "PPE",
    "PSE": "S&D",
    "ALDE": "Renew",
    "RENEW EUROPE": "Renew",
    "GREENS/EFA": "Verts/ALE",
    "GREENS": "Verts/ALE",
    "EFA": "Verts/ALE",
    "GUE/NGL": "The Left",
    "GUE": "The Left",
    "NGL": "The Left",
    "EUL/NGL": "The Left",
    "ENF": "ID",
    "PATRIOTS FOR EUROPE": "PfE",
    "PATRIOTS": "PfE",
    "PPE-DE": "PPE",
    "EFD": "EFDD",
    # historic groups without a successor
    "UEN": "NI",
    "IND/DEM": "NI",
    "EDD": "NI",
    "ITS": "NI",
    # "the group" with no name
    "GROUP": "NI",
    "GRUPO": "NI",
    "S-D": "S&D",
    "BRITISH CONSERVATIVE DELEGATION": "ECR",
}

GENERIC_GROUP_PHRASES = (
    "on behalf of the group",
    "in the name of the group",
    "for the group",
    "em nome do grupo",
    'au nom du groupe, question "carton bleu"',
    "εξ ονόματος της ομάδας",
    "on behalf of more than 38 members",
    "on behalf of jean lambert",
    "on behalf of a number of members reaching at least the low threshold",
    "on behalf of a number of members sufficient to reach the low threshold",
)

INSTITUTIONAL_MARKERS = (
    # en
    "member of the commission",
    "president of the commission",
    "vice-president of the commission",
    "vice president of the commission",
    "high representative",
    "high representative of the union for foreign affairs",
    "high representative for the common foreign and security policy",
    "high representative for the cfsp",
    "high representative for cfsp",
    "european union high representative",
    "union for foreign affairs and security policy",
    "union for foreign affairs",
    "president-in-office of the council",
    "president-inoffice of the council",
    "president of the eurogroup",
    "executive vice-president",
    "vp/hr",
    "vpc/hr",
    "vpt/hr",
    "vice-president of the council",
    "un high representative",
    # de
    "mitglied der kommission",
    "vizepräsident",
    "vizepräsidentin",
    "hohen vertreterin",
    "hoher vertreter",
    # fr
    "vice-président de la commission",
    "vice-présidente de la commission",
    "haut représentant",
    "haute représentante",
    "haute représentant",
    "président en exercice du conseil",
    # es
    "vicepresidente de la comisión",
    "alto representante",
    # sv
    "vice ordförande för kommissionen",
    # da
    "formand for rådet",
)

PARLIAMENTARY_MARKERS = (
    # en
    "rapporteur",
    "chair of the delegation",
    "vice-chair of the delegation",
    "chairman of the delegation",
    "chairman of the european parliament's delegation",
    "committee on",
    "special committee",
    "blue-card question",
    "blue card question",
    "deputising for",
    "deputizing for",
    "winner of the",
    "sakharov prize",
    "author of the motion",
    "draftsman of the opinion",
    "draftsman for the committee",
    "draftsperson of the opinion",
    "draftsperson for the opinion",
    "on behalf of the draftsman",
    "on behalf of the questioner",
    "on behalf of the envi committee",
    "on behalf of the committee",
    "delegation for relations with",
    "delegation for observation",
    "european parliament's delegation",
    "spokesman for the opinion of the committee",
    "candidate for president of the commission",
    "asked for an opinion",
    # sv
    "föredragande",
    "utskottet för",
    # da
    "ordfører for udtalelse",
    "udvalget",
    # fr
    "rapporteur suppléant",
    "commission",
    "au nom de la commission",
    # pt
    "comissão das",
    "em nome da comissão",
    # pl
    "komisji",
    "w imieniu komisji",
    # hr
    "odbora za",
    "u ime odbora",
    # ro
    "autorului",
    "în numele autorului",
    # nl
    "voorzitter van de commissie",
)

LONG_TEXT_INSTITUTION_PHRASES = (
    "union for foreign affairs and security policy",
    "member of the commission, on behalf of",
    "vice-president of the commission",
    "vice president of the commission",
    "high representative of the union",
    "president-in-office of the council",
    "on behalf of the vice-president of the commission",
    "on behalf of the vice president of the commission",
)

LONG_TEXT_ROLE_PHRASES = (
    "rapporteur for the opinion of the committee",
    "deputising for the",
    "deputizing for the",
    "on behalf of the committee on",
)

WRITING_MODE_SUFFIXES = (
    ", in writing",
    ", skriftlig",
    ", por escrito",
    ", írásban",
    ", în scris",
    ", kirjalikult",
    ", písemně",
    ", per iscritto",
    ", schriftlich",
)

ON_BEHALF_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"on behalf of (?:the )?(?P<group>.+?)(?:\s+group)?$",
        r"au nom du groupe (?P<group>.+)$",
        r"au nom de (?:la )?(?P<group>.+)$",
        r"a nome del gruppo (?P<group>.+)$",
        r"a nome della (?P<group>.+)$",
        r"en nombre del grupo (?P<group>.+)$",
        r"em nome do grupo (?P<group>.+)$",
        r"im namen der fraktion (?P<group>.+)$",
        r"im namen der (?P<group>.+?)(?:-fraktion)?$",
        r"namens de fractie (?P<group>.+)$",
        r"namens de groep (?P<group>.+)$",
        r"namens de (?P<group>.+?)(?:-fractie)?$",
        r"för (?P<group>.+?)-gruppen$",
        r"for (?P<group>.+?)-gruppen$",
        r"w imieniu grupy (?P<group>.+)$",
        r"za skupinu (?P<group>.+)$",
        r"în numele grupului (?P<group>.+)$",
        r"εξ ονόματος της ομάδας (?P<group>.+)$",
        r"thar ceann an ghrúpa (?P<group>.+)$",
        r"u ime kluba (?:zastupnika )?(?P<group>.+?)(?:-a)?$",
        r"f'isem il-grupp (?P<group>.+)$",
    )
)

PARENTHESES_RE = re.compile(r"\(([^)]+)\)|\s+([A-Z&/]+)\)$")

_DOUBLE_QUOTES_RE = re.compile("[\u201c\u201d\u201e\u00ab\u00bb]")
_SINGLE_QUOTES_RE = re.compile("[\u2018\u2019\u201a]")
_INVISIBLE_RE = re.compile("[\u00a0\u200b\u200c\u200d\ufeff]")


class GroupKind(str, Enum):
    """What an affiliation string denotes."""

    GROUP = "group"
    INSTITUTION = "institution"
    ROLE = "role"
    UNKNOWN = "unknown"


class MatchReason(str, Enum):
    """The normalization rule that produced a classification."""

    EMPTY_INPUT = "empty_input"
    DIRECT_CANONICAL = "direct_canonical"
    GENERIC_GROUP_PHRASE = "generic_group_phrase"
    INSTITUTIONAL_MARKERS = "institutional_markers"
    PARLIAMENTARY_MARKERS = "parliamentary_markers"
    PARENTHESES_EXTRACTION = "parentheses_extraction"
    ON_BEHALF_PATTERN = "on_behalf_pattern"
    LOOKS_LIKE_SENTENCE = "looks_like_sentence"
    DIRECT_TOKEN = "direct_token"
    BARE_CODE = "bare_code"
    NO_MATCH = "no_match"


@dataclass(frozen=True)
class GroupClassification:
    """Normalized affiliation: canonical code, kind and the rule that fired."""

    std: str
    kind: GroupKind
    reason: MatchReason

    @property
    def group(self) -> Optional[str]:
        """The canonical group code, only when the affiliation is a political group."""
        return self.std if self.kind is GroupKind.GROUP else None

    def as_columns(self) -> dict[str, str]:
        return {
            "political_group_std": self.std,
            "political_group_kind": self.kind.value,
            "political_group_reason": self.reason.value,
        }


def normalize_affiliation_text(text: str) -> str:
    """NFKC, invisible spaces, dashes and quotes unified, whitespace collapsed."""
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text)
    text = _INVISIBLE_RE.sub(" ", text)
    text = fold_dashes(text)
    text = _DOUBLE_QUOTES_RE.sub('"', text)
    text = _SINGLE_QUOTES_RE.sub("'", text)
    return normalize_whitespace(text)


def strip_writing_suffixes(text: str) -> str:
    for suffix in WRITING_MODE_SUFFIXES:
        if text.lower().endswith(suffix):
            text = text[: -len(suffix)].strip()
    return text


def load_synonyms(path: Path) -> dict[str, str]:
    """Load extra ``CODE -> canonical`` synonyms from a JSON object file.

    Entries whose target is not a canonical code are ignored.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    synonyms = {}
    for code, canonical in data.items():
        if canonical in CANONICAL_GROUPS:
            synonyms[str(code).upper().strip()] = canonical
        else:
            get_logger().warning(f"Ignoring synonym {code!r}: {canonical!r} is not a canonical group")
    return synonyms


class GroupNormalizer:
    """Applies the ordered normalization rules to affiliation strings."""

    def __init__(self, extra_synonyms: Optional[dict[str, str]] = None, sentence_word_limit: int = 8):
        self.synonyms = {**GROUP_SYNONYMS, **(extra_synonyms or {})}
        self.sentence_word_limit = sentence_word_limit
        self._canonical_by_upper = {code.upper(): code for code in CANONICAL_GROUPS}
        self._token_patterns = [
            (re.compile(rf"\b{re.escape(code.lower())}\b"), code) for code in CANONICAL_GROUPS
        ] + [
            (re.compile(rf"\b{re.escape(code.lower())}\b"), canonical)
            for code, canonical in self.synonyms.items()
        ]

    def resolve_code(self, code: str) -> Optional[str]:
        """Map a code or synonym (any case) to its canonical group."""
        if not code:
            return None
        key = normalize_whitespace(code).upper()
        if key in self._canonical_by_upper:
            return self._canonical_by_upper[key]
        return self.synonyms.get(key)

    def find_token(self, text: str) -> Optional[str]:
        """First canonical code or synonym occurring as a whole word."""
        lowered = text.lower()
        for pattern, canonical in self._token_patterns:
            if pattern.search(lowered):
                return canonical
        return None

    def _resolve_fragment(self, fragment: str) -> Optional[str]:
        fragment = fragment.strip().strip(".,;:")
        return self.resolve_code(fragment) or self.find_token(fragment)

    def _parentheses_code(self, text: str) -> Optional[str]:
        match = PARENTHESES_RE.search(text)
        if match is None:
            return None
        return self._resolve_fragment(match.group(1) or match.group(2))

    def _on_behalf_code(self, text: str) -> Optional[str]:
        for pattern in ON_BEHALF_PATTERNS:
            match = pattern.search(text)
            if match:
                code = self._resolve_fragment(match.group("group"))
                if code:
                    return code
        return None

    def normalize(self, raw: Optional[str], parenthesized: bool = False) -> GroupClassification:
        """Classify one raw affiliation string.

        Args:
            raw: Affiliation as printed in the verbatim report
            parenthesized: The splitter lifted ``raw`` out of parentheses
                after the speaker's name

        Returns:
            The classification of the first rule that matches
        """
        if not raw or not raw.strip():
            return GroupClassification("NI", GroupKind.UNKNOWN, MatchReason.EMPTY_INPUT)

        text = strip_writing_suffixes(normalize_affiliation_text(raw))
        lower = text.lower()

        canonical = self._canonical_by_upper.get(text.upper())
        if canonical:
            reason = MatchReason.PARENTHESES_EXTRACTION if parenthesized else MatchReason.DIRECT_CANONICAL
            return GroupClassification(canonical, GroupKind.GROUP, reason)

        # Only the bare phrase; "on behalf of the group X" names its group
        if lower.rstrip(" .,;:!?") in GENERIC_GROUP_PHRASES:
            return GroupClassification("NI", GroupKind.GROUP, MatchReason.GENERIC_GROUP_PHRASE)

        if any(marker in lower for marker in INSTITUTIONAL_MARKERS):
            return GroupClassification("NI", GroupKind.INSTITUTION, MatchReason.INSTITUTIONAL_MARKERS)

        if any(marker in lower for marker in PARLIAMENTARY_MARKERS):
            return GroupClassification("NI", GroupKind.ROLE, MatchReason.PARLIAMENTARY_MARKERS)

        code = self._parentheses_code(text)
        if code is None and parenthesized:
            code = self.resolve_code(text.strip(".,;: "))
        if code:
            return GroupClassification(code, GroupKind.GROUP, MatchReason.PARENTHESES_EXTRACTION)

        code = self._on_behalf_code(text)
        if code:
            return GroupClassification(code, GroupKind.GROUP, MatchReason.ON_BEHALF_PATTERN)

        if len(text.split()) > self.sentence_word_limit:
            if any(phrase in lower for phrase in LONG_TEXT_INSTITUTION_PHRASES):
                return GroupClassification("NI", GroupKind.INSTITUTION, MatchReason.INSTITUTIONAL_MARKERS)
            if any(phrase in lower for phrase in LONG_TEXT_ROLE_PHRASES):
                return GroupClassification("NI", GroupKind.ROLE, MatchReason.PARLIAMENTARY_MARKERS)
            return GroupClassification("NI", GroupKind.UNKNOWN, MatchReason.LOOKS_LIKE_SENTENCE)

        code = self.find_token(text)
        if code:
            return GroupClassification(code, GroupKind.GROUP, MatchReason.DIRECT_TOKEN)

        code = self.resolve_code(text)
        if code:
            return GroupClassification(code, GroupKind.GROUP, MatchReason.BARE_CODE)

        return GroupClassification("NI", GroupKind.UNKNOWN, MatchReason.NO_MATCH)


_default_normalizer: Optional[GroupNormalizer] = None


def get_normalizer() -> GroupNormalizer:
    global _default_normalizer
    if _default_normalizer is None:
        _default_normalizer = GroupNormalizer()
    return _default_normalizer


def normalize_group(raw: Optional[str]) -> GroupClassification:
    """Classify a raw affiliation with the built-in synonym table."""
    return get_normalizer().normalize(raw)


def _suggest(raw: str) -> str:
    text = raw.lower()
    if "commission" in text or "council" in text or "representative" in text:
        return "Institution"
    if "committee" in text or "rapporteur" in text or "delegation" in text:
        return "Parliamentary Role"
    if "group" in text or "grupo" in text or "groupe" in text:
        return "Likely Political Group - check for party code"
    return "Unknown"


@dataclass
class GroupAudit:
    """Distribution of classifications over distinct raw affiliations."""

    total_distinct: int = 0
    mapped: int = 0
    by_kind: Counter = field(default_factory=Counter)
    by_std: Counter = field(default_factory=Counter)
    reasons: Counter = field(default_factory=Counter)
    unknowns: list[dict] = field(default_factory=list)

    def add(self, raw: str, count: int, result: GroupClassification) -> None:
        self.total_distinct += 1
        if result.kind is GroupKind.GROUP:
            self.mapped += 1
        elif result.kind is GroupKind.UNKNOWN:
            self.unknowns.append({"raw": raw, "count": count, "reason": result.reason.value})
        self.by_kind[result.kind.value] += 1
        self.by_std[result.std] += count
        self.reasons[result.reason.value] += 1

    @property
    def coverage_percent(self) -> float:
        if not self.total_distinct:
            return 0.0
        return round(self.mapped / self.total_distinct * 100, 1)

    def sorted_unknowns(self) -> list[dict]:
        return sorted(self.unknowns, key=lambda u: u["count"], reverse=True)

    def to_dict(self, top_unknowns: int = 20) -> dict:
        unknowns = self.sorted_unknowns()
        return {
            "summary": {
                "totalDistinctInputs": self.total_distinct,
                "mappedCount": self.mapped,
                "institutionCount": self.by_kind.get(GroupKind.INSTITUTION.value, 0),
                "roleCount": self.by_kind.get(GroupKind.ROLE.value, 0),
                "unmappedCount": len(unknowns),
                "coveragePercent": self.coverage_percent,
            },
            "distributionByKind": dict(self.by_kind),
            "distributionByStandard": dict(self.by_std.most_common()),
            "topUnknowns": unknowns[:top_unknowns],
            "reasonsUsed": dict(self.reasons),
            "suggestedRules": [
                {"raw": u["raw"], "count": u["count"], "suggestion": _suggest(u["raw"])}
                for u in unknowns[:10]
            ],
        }

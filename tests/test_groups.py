import json

import pytest

from eurowatch.exceptions import ConfigError
from eurowatch.processors.groups import (
    CANONICAL_GROUPS,
    GroupAudit,
    GroupKind,
    GroupNormalizer,
    MatchReason,
    load_synonyms,
    normalize_affiliation_text,
    normalize_group,
)


def test_empty_input():
    result = normalize_group("   ")

    assert (result.std, result.kind, result.reason) == ("NI", GroupKind.UNKNOWN, MatchReason.EMPTY_INPUT)
    assert normalize_group(None).reason is MatchReason.EMPTY_INPUT


def test_institution_role():
    result = normalize_group("President of the Commission")

    assert result.std == "NI"
    assert result.kind is GroupKind.INSTITUTION
    assert result.reason is MatchReason.INSTITUTIONAL_MARKERS
    assert result.group is None


def test_on_behalf_of_group():
    result = normalize_group("on behalf of the PPE Group")

    assert result.std == "PPE"
    assert result.kind is GroupKind.GROUP
    assert result.reason is MatchReason.ON_BEHALF_PATTERN


def test_long_sentence_is_not_a_group():
    raw = (
        "we in this house must all agree that the PPE position on the matter "
        "before us today is simply wrong"
    )
    assert len(raw.split()) == 20

    result = normalize_group(raw)

    assert result.std == "NI"
    assert result.kind is GroupKind.UNKNOWN
    assert result.reason is MatchReason.LOOKS_LIKE_SENTENCE


@pytest.mark.parametrize(
    "raw, std, reason",
    [
        ("S&D", "S&D", MatchReason.DIRECT_CANONICAL),
        ("verts/ale", "Verts/ALE", MatchReason.DIRECT_CANONICAL),
        ("Greens/EFA", "Verts/ALE", MatchReason.DIRECT_TOKEN),
        ("EPP", "PPE", MatchReason.DIRECT_TOKEN),
        ("Renew Europe", "Renew", MatchReason.DIRECT_TOKEN),
        ("(ECR)", "ECR", MatchReason.PARENTHESES_EXTRACTION),
        ("Silva Maria (S&D)", "S&D", MatchReason.PARENTHESES_EXTRACTION),
        ("Some text ECR)", "ECR", MatchReason.PARENTHESES_EXTRACTION),
        ("au nom du groupe S&D", "S&D", MatchReason.ON_BEHALF_PATTERN),
        ("im Namen der ID-Fraktion", "ID", MatchReason.ON_BEHALF_PATTERN),
        ("för Verts/ALE-gruppen", "Verts/ALE", MatchReason.ON_BEHALF_PATTERN),
        ("em nome do Grupo PPE", "PPE", MatchReason.ON_BEHALF_PATTERN),
        ("εξ ονόματος της Ομάδας PPE", "PPE", MatchReason.ON_BEHALF_PATTERN),
        ("on behalf of the Group", "NI", MatchReason.GENERIC_GROUP_PHRASE),
        ("em nome do grupo.", "NI", MatchReason.GENERIC_GROUP_PHRASE),
        ("Εξ ονόματος της Ομάδας", "NI", MatchReason.GENERIC_GROUP_PHRASE),
    ],
)
def test_group_variants(raw, std, reason):
    result = normalize_group(raw)

    assert result.std == std
    assert result.reason is reason


def test_parliamentary_role():
    result = normalize_group("rapporteur")

    assert result.kind is GroupKind.ROLE
    assert result.reason is MatchReason.PARLIAMENTARY_MARKERS


def test_writing_suffix_is_stripped():
    result = normalize_group("PPE, in writing")

    assert result.std == "PPE"
    assert result.reason is MatchReason.DIRECT_CANONICAL


def test_affiliation_text_normalization():
    assert normalize_affiliation_text(" S–D”x“ ") == 'S-D"x"'


@pytest.mark.parametrize(
    "raw",
    ["S&D", "on behalf of the PPE Group", "President of the Commission", "Greens/EFA", "", "gibberish"],
)
def test_normalizing_the_result_is_stable(raw):
    first = normalize_group(raw)

    again = normalize_group(first.std)

    assert again.std == first.std
    assert again.std in CANONICAL_GROUPS
    assert (again.kind, again.reason) == (GroupKind.GROUP, MatchReason.DIRECT_CANONICAL)
    assert normalize_group(raw) == first


def test_parenthesized_group_from_the_splitter():
    normalizer = GroupNormalizer()

    lifted = normalizer.normalize("S&D", parenthesized=True)
    synonym = normalizer.normalize("PSE", parenthesized=True)

    assert (lifted.std, lifted.kind, lifted.reason) == ("S&D", GroupKind.GROUP, MatchReason.PARENTHESES_EXTRACTION)
    assert (synonym.std, synonym.reason) == ("S&D", MatchReason.PARENTHESES_EXTRACTION)
    assert normalizer.normalize("rapporteur", parenthesized=True).reason is MatchReason.PARLIAMENTARY_MARKERS


def test_every_result_is_a_canonical_code():
    for raw in ("PfE", "Patriots for Europe", "GUE/NGL", "UEN", "Unknown text", "Commissioner"):
        assert normalize_group(raw).std in CANONICAL_GROUPS


def test_extra_synonyms(tmp_path):
    path = tmp_path / "synonyms.json"
    path.write_text(json.dumps({"ECOLO": "Verts/ALE", "BOGUS": "Not a group"}), encoding="utf-8")

    synonyms = load_synonyms(path)
    normalizer = GroupNormalizer(synonyms)

    assert synonyms == {"ECOLO": "Verts/ALE"}
    assert normalizer.normalize("ecolo").std == "Verts/ALE"


def test_synonyms_file_must_hold_an_object(tmp_path):
    path = tmp_path / "synonyms.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_synonyms(path)


def test_audit_report():
    audit = GroupAudit()
    for raw, count in (("S&D", 5), ("President of the Commission", 2), ("gibberish", 3)):
        audit.add(raw, count, normalize_group(raw))

    report = audit.to_dict()

    assert report["summary"]["totalDistinctInputs"] == 3
    assert report["summary"]["mappedCount"] == 1
    assert report["summary"]["institutionCount"] == 1
    assert report["summary"]["unmappedCount"] == 1
    assert report["summary"]["coveragePercent"] == 33.3
    assert report["distributionByStandard"] == {"NI": 5, "S&D": 5}
    assert report["topUnknowns"] == [{"raw": "gibberish", "count": 3, "reason": "no_match"}]

from eurowatch.config import TopicsConfig
from eurowatch.parsers.agenda import Section, best_section, parse_agenda, split_sections

from conftest import FISHERIES_SPEECH, SITTING_HTML, VENEZUELA_REPLY, VENEZUELA_SPEECH, sitting_html


def test_parse_agenda_headers():
    topics = parse_agenda(SITTING_HTML)

    assert [(t.ordinal, t.title) for t in topics] == [
        ("11.2", "Situation in Venezuela"),
        ("12", "Fishing opportunities in the Baltic Sea"),
    ]


def test_parse_agenda_reads_document_identifier_and_dedupes():
    header = (
        '<table><tr><td class="doc_title"><img src="arrow_title_doc.gif">'
        '<a href="https://www.europarl.europa.eu/doceo/document/B-10-0045-2024_EN.html">'
        "3. Rule of law in Hungary</a></td></tr></table>"
    )
    source = f"<html><body>{header}<p>first</p>{header}<p>again</p></body></html>"

    topics = parse_agenda(source)

    assert len(topics) == 1
    assert topics[0].doc_identifier == "B-10-0045-2024"
    assert topics[0].title == "Rule of law in Hungary"


def test_cells_without_marker_image_are_ignored():
    source = '<html><body><table><tr><td class="doc_title">Not an item</td></tr></table></body></html>'

    assert parse_agenda(source) == []
    assert split_sections(source) == []


def test_sections_cover_speeches_between_headers():
    sections = split_sections(SITTING_HTML)

    assert [s.title for s in sections] == ["Situation in Venezuela", "Fishing opportunities in the Baltic Sea"]
    assert "humanitarian situation in venezuela" in sections[0].normalized
    assert "baltic cod stock" not in sections[0].normalized
    assert "baltic cod stock" in sections[1].normalized


def test_speech_maps_to_its_section():
    sections = split_sections(SITTING_HTML)

    match = best_section(VENEZUELA_SPEECH, sections)

    assert match.title == "Situation in Venezuela"
    assert match.score == 1.0
    assert best_section(VENEZUELA_REPLY, sections).title == "Situation in Venezuela"
    assert best_section(FISHERIES_SPEECH, sections).title == "Fishing opportunities in the Baltic Sea"


def test_token_overlap_fallback():
    sections = [
        Section(title="Baltic fisheries", doc_identifier=None, text=FISHERIES_SPEECH),
        Section(title="Venezuela", doc_identifier=None, text=VENEZUELA_SPEECH),
    ]
    body = "Colleagues, the quotas for Baltic cod ignore every piece of scientific advice we received."

    match = best_section(body, sections)

    assert match.title == "Baltic fisheries"
    assert 0.08 <= match.score < 1.0


def test_no_match_below_threshold():
    sections = [Section(title="Baltic fisheries", doc_identifier=None, text=FISHERIES_SPEECH)]
    body = (
        "Colleagues, railway electrification across mountainous regions demands unprecedented "
        "investment, coordinated planning, skilled engineers, reliable suppliers, stable budgets, "
        "transparent procurement, cooperative municipalities and patient taxpayers advice."
    )

    assert best_section(body, sections, TopicsConfig(threshold=0.08)) is None


def test_short_speech_is_not_mapped():
    sections = split_sections(sitting_html([("1. Opening of the sitting", [f"President. – {VENEZUELA_SPEECH}"])]))

    assert best_section("Thank you.", sections) is None

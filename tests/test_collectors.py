import asyncio
from datetime import date

import httpx
import pytest

from eurowatch.collectors.meps import MepDirectoryClient, MepRecord
from eurowatch.collectors.sittings import (
    FetchStatus,
    SittingFetcher,
    list_dates_in_range,
    sitting_url,
    term_for_date,
    toc_url,
)
from eurowatch.collectors.speeches_api import SpeechMetadata, SpeechMetadataClient
from eurowatch.parsers.html import TOC_PREFIX
from eurowatch.utils.http import RateLimitedClient

from conftest import SITTING_HTML

TOC_HTML = "<html><body>" + "".join(
    f'<a href="CRE-9-2024-01-17-ITM-00{i}_EN.html">{i}. Agenda item number {i} on a long subject</a>'
    for i in range(1, 6)
) + "</body></html>"


def mock_client(config, handler):
    return RateLimitedClient(config.http, transport=httpx.MockTransport(handler))


def pages(routes, requested=None):
    """Handler answering by URL path; unknown paths get a 404."""

    def handler(request):
        if requested is not None:
            requested.append(request.url.path)
        for suffix, (status, body) in routes.items():
            if request.url.path.endswith(suffix):
                return httpx.Response(status, text=body)
        return httpx.Response(404, text="Not found")

    return handler


def fetch(config, handler, activity_date):
    async def _run():
        client = mock_client(config, handler)
        try:
            return await SittingFetcher(config, client).fetch(activity_date)
        finally:
            await client.close()

    return asyncio.run(_run())


@pytest.mark.parametrize(
    "activity_date, term",
    [
        ("2024-07-16", 10),
        ("2024-07-15", 9),
        ("2019-07-02", 9),
        ("1999-07-20", 5),
        ("1999-07-19", 4),
        ("1970-01-01", 1),
    ],
)
def test_term_for_date(activity_date, term):
    assert term_for_date(activity_date) == term


def test_sitting_urls():
    assert sitting_url("2024-01-17") == (
        "https://www.europarl.europa.eu/doceo/document/CRE-9-2024-01-17_EN.html"
    )
    assert toc_url("2024-09-16", "http://example.test").endswith("/CRE-10-2024-09-16-TOC_EN.html")


def test_list_dates_in_range_is_inclusive():
    assert list_dates_in_range("2024-02-27", "2024-03-01") == [
        "2024-02-27",
        "2024-02-28",
        "2024-02-29",
        "2024-03-01",
    ]
    assert list_dates_in_range("2024-03-02", "2024-03-01") == []


def test_fetch_stores_report_html(config):
    result = fetch(config, pages({"2024-01-17_EN.html": (200, SITTING_HTML)}), "2024-01-17")

    assert result.status is FetchStatus.STORED
    assert result.source == "html"
    assert result.content == SITTING_HTML
    assert result.status.terminal


def test_fetch_without_sitting_is_missing(config):
    result = fetch(config, pages({}), "2024-01-20")

    assert result.status is FetchStatus.MISSING
    assert result.content is None


def test_fetch_server_error_is_failed(config):
    result = fetch(config, pages({"2024-01-17_EN.html": (503, "unavailable")}), "2024-01-17")

    assert result.status is FetchStatus.FAILED
    assert "503" in result.error
    assert not result.status.terminal


def test_fetch_falls_back_to_toc(config):
    routes = {
        "2024-01-17_EN.html": (200, "<html><body><p>Provisional edition</p></body></html>"),
        "2024-01-17-TOC_EN.html": (200, TOC_HTML),
    }

    result = fetch(config, pages(routes), "2024-01-17")

    assert result.status is FetchStatus.STORED
    assert result.source == "toc"
    assert result.content.startswith(TOC_PREFIX)
    assert "1. Agenda item number 1 on a long subject" in result.content


def test_fetch_many_keeps_input_order(config):
    seen = []
    dates = ["2024-01-15", "2024-01-16", "2024-01-17"]

    async def _run():
        client = mock_client(config, pages({"2024-01-16_EN.html": (200, SITTING_HTML)}))
        fetcher = SittingFetcher(config, client)
        try:
            return await fetcher.fetch_many(dates, seen.append), fetcher
        finally:
            await client.close()

    results, fetcher = asyncio.run(_run())

    assert [r.date for r in results] == dates
    assert [r.status for r in results] == [FetchStatus.MISSING, FetchStatus.STORED, FetchStatus.MISSING]
    assert sorted(r.date for r in seen) == dates
    assert fetcher.get_stats() == {"source": "sittings", "missing": 2, "stored": 1}


def test_discover_recent_sitting_walks_backwards(config):
    requested = []
    handler = pages({"2024-01-18_EN.html": (200, SITTING_HTML * 3)}, requested)

    async def _run():
        async with mock_client(config, handler) as client:
            return await SittingFetcher(config, client).discover_recent_sitting(
                known_dates={"2024-01-19"}, today=date(2024, 1, 20), max_days_back=10
            )

    found = asyncio.run(_run())

    assert found == "2024-01-18"
    assert [path.rsplit("/", 1)[-1] for path in requested] == [
        "CRE-9-2024-01-20_EN.html",
        "CRE-9-2024-01-18_EN.html",
    ]


def test_discover_recent_sitting_gives_up(config):
    async def _run():
        async with mock_client(config, pages({})) as client:
            return await SittingFetcher(config, client).discover_recent_sitting(
                today=date(2024, 1, 20), max_days_back=3
            )

    assert asyncio.run(_run()) is None


def speech_record(number, activity_date):
    return {
        "id": f"eli/dl/event/MTG-PL-{activity_date}-{number}",
        "activity_date": f"{activity_date}T09:00:00+01:00",
        "had_activity_type": "def/ep-activities/PLENARY_DEBATE_SPEECH",
        "activity_label": {"en": "Situation in Venezuela", "fr": "Situation au Venezuela"},
        "person": {"identifier": "124831"},
        "recorded_in_a_realization_of": [
            {"identifier": f"CRE-9-{activity_date}-ITM-002", "notation_speechId": f"1-{number:03d}-0000"}
        ],
    }


def test_speech_metadata_from_api():
    metadata = SpeechMetadata.from_api(speech_record(45, "2024-01-17"))

    assert metadata.activity_date == "2024-01-17"
    assert metadata.label == "Situation in Venezuela"
    assert metadata.person_id == 124831
    assert metadata.doc_identifier == "CRE-9-2024-01-17-ITM-002"
    assert metadata.notation_id == "1-045-0000"
    assert SpeechMetadata.from_api({"id": "x"}) is None


def test_discover_dates_pages_until_short_page(config, storage):
    config.fetch.api_page_size = 2
    offsets = []
    data = [
        speech_record(1, "2024-01-17"),
        speech_record(2, "2024-01-15"),
        speech_record(3, "2024-01-17"),
    ]

    def handler(request):
        offset = int(request.url.params["offset"])
        limit = int(request.url.params["limit"])
        offsets.append(offset)
        assert request.url.path.endswith("/speeches")
        assert request.url.params["activity-date-from"] == "2024-01-01"
        return httpx.Response(200, json={"data": data[offset: offset + limit], "meta": {"total": 3}})

    async def _run():
        client = mock_client(config, handler)
        try:
            return await SpeechMetadataClient(config, client, storage).discover_dates("2024-01-01")
        finally:
            await client.close()

    dates = asyncio.run(_run())

    assert dates == ["2024-01-15", "2024-01-17"]
    assert offsets == [0, 2]
    status = storage.cache_status()
    assert status.total_speeches == 3
    assert status.speeches_last_updated is not None


def mep(identifier, label, country="PT", group="S&D"):
    return {
        "identifier": str(identifier),
        "label": label,
        "givenName": label.split()[0],
        "familyName": label.split()[-1],
        "sortLabel": label.upper(),
        "api:country-of-representation": country,
        "api:political-group": group,
    }


def test_mep_record_from_api():
    record = MepRecord.from_api(mep(124831, "Maria Silva"))

    assert record.id == 124831
    assert record.country_code == "PT"
    assert record.is_current
    assert MepRecord.from_api({"identifier": "person/abc"}) is None


def test_fetch_terms_merges_listings(config):
    def handler(request):
        if request.url.path.endswith("/meps/show-current"):
            return httpx.Response(200, json={"data": [mep(1, "Maria Silva")]})
        term = request.url.params.get("parliamentary-term")
        if term == "9":
            return httpx.Response(
                200, json={"data": [mep(1, "Maria Silva", group="PPE"), mep(2, "Jan Kowalski", "PL", "PPE")]}
            )
        return httpx.Response(500, text="boom")

    async def _run():
        client = mock_client(config, handler)
        try:
            return await MepDirectoryClient(config, client).fetch_terms((9, 8))
        finally:
            await client.close()

    records = {record.id: record for record in asyncio.run(_run())}

    assert set(records) == {1, 2}
    assert records[1].is_current
    assert records[1].political_group == "S&D"
    assert not records[2].is_current
    assert records[2].country_code == "PL"

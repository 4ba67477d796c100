import pytest

from eurowatch.collectors.meps import MepRecord
from eurowatch.processors.analytics import AnalyticsCache, TopicIndex, build_analytics
from eurowatch.processors.mep_linker import upsert_api_meps
from eurowatch.utils.hashing import compute_hash

AGRICULTURE = "Agriculture & fisheries"
CLIMATE = "Climate change"


def speech(order, macro_topic, group, language=None, mep_id=None):
    return {
        "speech_order": order,
        "speech_content": "Mr President, a speech long enough to be stored in the table.",
        "macro_topic": macro_topic,
        "political_group_std": group,
        "language": language,
        "mep_id": mep_id,
    }


@pytest.fixture
def seeded(storage):
    upsert_api_meps(
        storage,
        [MepRecord(1, "Maria Silva", country_code="PT"), MepRecord(2, "Jan Kowalski", country_code="Unknown")],
    )
    for activity_date, rows in (
        (
            "2024-01-15",
            [
                speech(1, "Agriculture &amp; fisheries", "PPE", "EN", 1),
                speech(2, AGRICULTURE, "S&D", "DE", 2),
                speech(3, CLIMATE, "PPE", "EN", 1),
            ],
        ),
        (
            "2024-02-20",
            [
                speech(1, "Climate-change", "PPE"),
                speech(2, None, "S&D", "EN"),
            ],
        ),
    ):
        content = f"<html>{activity_date}" + "x" * 200 + "</html>"
        storage.upsert_sitting(activity_date, content, compute_hash(content))
        storage.replace_speeches(storage.sitting_for_date(activity_date).id, rows)
    return storage


def build(storage):
    with storage.session() as session:
        return build_analytics(session)


def test_topic_index_collapses_variants():
    index = TopicIndex(["Agriculture & fisheries", "Agriculture &amp; fisheries", "Climate change", "Climate-change"])

    assert index.labels == [AGRICULTURE, CLIMATE]
    assert index.label_for("Climate – change") == CLIMATE
    assert index.label_for("Budget") is None
    assert index.select(["Agriculture &amp; fisheries", "Budget"]) == [AGRICULTURE]
    assert index.select(None) == [AGRICULTURE, CLIMATE]


def test_topics_and_variants(seeded):
    data = build(seeded)

    assert data["allTopics"] == [AGRICULTURE, CLIMATE]
    assert sorted(data["topicVariants"][AGRICULTURE]) == [AGRICULTURE, "Agriculture &amp; fisheries"]
    assert sorted(data["topicVariants"][CLIMATE]) == [CLIMATE, "Climate-change"]


def test_timeseries_per_interval(seeded):
    data = build(seeded)

    month = data["timeseries_month"]
    assert month["labels"] == ["2024-01", "2024-02"]
    assert {d["label"]: d["data"] for d in month["datasets"]} == {AGRICULTURE: [2, 0], CLIMATE: [1, 1]}
    assert data["timeseries_quarter"]["labels"] == ["2024-Q1"]
    assert data["timeseries_year"]["labels"] == ["2024"]


def test_every_view_sums_to_the_classified_speeches(seeded):
    data = build(seeded)
    classified = data["overview"]["coverage"]["with_macro"]

    for interval in ("month", "quarter", "year"):
        datasets = data[f"timeseries_{interval}"]["datasets"]
        assert sum(sum(d["data"]) for d in datasets) == classified
    assert sum(row["cnt"] for row in data["byGroup"]["rows"]) == classified
    assert sum(row["cnt"] for row in data["byLanguage"]["rows"]) == classified


def test_cross_tables(seeded):
    data = build(seeded)

    assert data["byGroup"]["groups"] == ["PPE", "S&D"]
    assert data["byGroup"]["rows"] == [
        {"topic": AGRICULTURE, "group": "PPE", "cnt": 1},
        {"topic": AGRICULTURE, "group": "S&D", "cnt": 1},
        {"topic": CLIMATE, "group": "PPE", "cnt": 2},
    ]
    assert data["byCountry"]["countries"] == ["PT"]
    assert data["byCountry"]["rows"] == [
        {"topic": AGRICULTURE, "country": "PT", "cnt": 1},
        {"topic": CLIMATE, "country": "PT", "cnt": 1},
    ]
    assert data["byLanguage"]["languages"] == ["EN", "DE", "UNK"]


def test_overview_and_language_counts(seeded):
    data = build(seeded)

    assert data["overview"]["coverage"] == {"total": 5, "with_macro": 4, "pct_with_macro": 80.0}
    assert data["languages"]["rows"] == [
        {"language": "EN", "cnt": 3},
        {"language": "DE", "cnt": 1},
        {"language": "UNK", "cnt": 1},
    ]


def test_empty_database(storage):
    data = build(storage)

    assert data["allTopics"] == []
    assert data["timeseries_month"] == {"labels": [], "datasets": [], "topics": []}
    assert data["overview"]["coverage"]["pct_with_macro"] == 0


def test_cache_persists_and_loads(seeded):
    cache = AnalyticsCache(seeded)
    assert cache.status()["ready"] is False

    assert cache.warm()
    assert cache.status()["progress"]["percent"] == 100

    restored = AnalyticsCache(seeded)
    assert restored.load()
    assert restored.data == cache.data
    assert restored.last_updated == cache.last_updated


def test_warm_is_single_flight(seeded):
    cache = AnalyticsCache(seeded)
    cache._lock.acquire()
    try:
        assert cache.warm() is False
    finally:
        cache._lock.release()
    assert not cache.ready


def test_filtered_readers_match_database_queries(seeded):
    cold = AnalyticsCache(seeded)
    warm = AnalyticsCache(seeded)
    warm.warm()
    topics = ["Climate-change"]

    for cache in (cold, warm):
        series = cache.timeseries("month", topics)
        assert series["topics"] == [CLIMATE]
        assert [d["data"] for d in series["datasets"]] == [[1, 1]]
        assert cache.by_group(topics)["rows"] == [{"topic": CLIMATE, "group": "PPE", "cnt": 2}]
        assert cache.languages(topics) == [{"language": "EN", "cnt": 1}, {"language": "UNK", "cnt": 1}]

    assert cold.languages() == warm.languages()
    assert cold.by_country() == warm.by_country()


def test_unknown_interval(seeded):
    with pytest.raises(ValueError):
        AnalyticsCache(seeded).timeseries("week")

"""Precomputed dashboard aggregates.

Every matrix is built from one aggregate query whose rows are indexed in a
dict keyed ``(topic, column)``; assembling a dataset is then a lookup per
cell. Raw macro-topic values that differ only by HTML entities, dash
variants or hyphenation collapse into one display label.
"""

import json
import threading
from collections import defaultdict
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import bindparam, select, text
from sqlalchemy.orm import Session

from ..config import AnalyticsConfig
from ..storage import AnalyticsCacheEntry, Storage, epoch_ms
from ..utils.logging import get_logger
from .cleaner import normalize_topic_label, topic_collapse_key

CACHE_KEY = "dashboard"
INTERVALS = ("month", "quarter", "year")

PERIOD_SQL = {
    "month": "substr(s.activity_date, 1, 7)",
    "quarter": (
        "substr(s.activity_date, 1, 4) || '-Q' || "
        "((CAST(substr(s.activity_date, 6, 2) AS INTEGER) + 2) / 3)"
    ),
    "year": "substr(s.activity_date, 1, 4)",
}

HAS_MACRO = "i.macro_topic IS NOT NULL AND TRIM(i.macro_topic) <> ''"
GROUP_SQL = "COALESCE(i.political_group_std, i.political_group)"
LANGUAGE_SQL = "UPPER(COALESCE(i.language, 'UNK'))"

DISTINCT_TOPICS_SQL = f"""
    SELECT DISTINCT i.macro_topic AS topic
    FROM individual_speeches i
    JOIN sittings s ON s.id = i.sitting_id
    WHERE {HAS_MACRO} AND s.activity_date IS NOT NULL
    ORDER BY i.macro_topic
"""

TOP_GROUPS_SQL = f"""
    SELECT {GROUP_SQL} AS col, COUNT(*) AS cnt
    FROM individual_speeches i
    WHERE {GROUP_SQL} IS NOT NULL AND TRIM({GROUP_SQL}) <> ''
    GROUP BY col
    ORDER BY cnt DESC, col ASC
    LIMIT :limit
"""

TOP_COUNTRIES_SQL = """
    SELECT m.country_code AS col, COUNT(*) AS cnt
    FROM individual_speeches i
    JOIN meps m ON m.id = i.mep_id
    WHERE m.country_code IS NOT NULL AND TRIM(m.country_code) <> ''
      AND m.country_code <> 'Unknown'
    GROUP BY m.country_code
    ORDER BY cnt DESC, col ASC
    LIMIT :limit
"""

TOP_LANGUAGES_SQL = f"""
    SELECT {LANGUAGE_SQL} AS col, COUNT(*) AS cnt
    FROM individual_speeches i
    GROUP BY col
    ORDER BY cnt DESC, col ASC
    LIMIT :limit
"""

LANGUAGE_COUNTS_SQL = f"""
    SELECT {LANGUAGE_SQL} AS language, COUNT(*) AS cnt
    FROM individual_speeches i
    GROUP BY language
    ORDER BY cnt DESC, language ASC
"""

COVERAGE_SQL = f"""
    SELECT COUNT(*) AS total,
           COALESCE(SUM(CASE WHEN {HAS_MACRO} THEN 1 ELSE 0 END), 0) AS with_macro
    FROM individual_speeches i
"""

MACRO_DISTRIBUTION_SQL = f"""
    SELECT i.macro_topic AS topic, COUNT(*) AS cnt
    FROM individual_speeches i
    WHERE {HAS_MACRO}
    GROUP BY i.macro_topic
    ORDER BY cnt DESC, topic ASC
    LIMIT :limit
"""

SPECIFIC_FOCUS_SQL = f"""
    SELECT i.macro_topic AS topic, i.macro_specific_focus AS focus, COUNT(*) AS cnt
    FROM individual_speeches i
    WHERE {HAS_MACRO}
      AND i.macro_specific_focus IS NOT NULL AND TRIM(i.macro_specific_focus) <> ''
    GROUP BY i.macro_topic, i.macro_specific_focus
    ORDER BY cnt DESC, topic ASC
    LIMIT :limit
"""


def _period_labels_sql(interval: str) -> str:
    return f"""
        SELECT DISTINCT {PERIOD_SQL[interval]} AS period
        FROM sittings s
        WHERE s.activity_date IS NOT NULL
          AND EXISTS (SELECT 1 FROM individual_speeches i WHERE i.sitting_id = s.id)
        ORDER BY period ASC
    """


def _period_counts_sql(interval: str) -> str:
    return f"""
        SELECT {PERIOD_SQL[interval]} AS period, i.macro_topic AS topic, COUNT(*) AS cnt
        FROM individual_speeches i
        JOIN sittings s ON s.id = i.sitting_id
        WHERE {HAS_MACRO} AND s.activity_date IS NOT NULL
        GROUP BY period, i.macro_topic
    """


_CROSS_SQL = {
    "group": f"""
        SELECT i.macro_topic AS topic, {GROUP_SQL} AS col, COUNT(*) AS cnt
        FROM individual_speeches i
        WHERE {HAS_MACRO} AND {GROUP_SQL} IN :columns
        GROUP BY i.macro_topic, col
    """,
    "country": f"""
        SELECT i.macro_topic AS topic, m.country_code AS col, COUNT(*) AS cnt
        FROM individual_speeches i
        JOIN meps m ON m.id = i.mep_id
        WHERE {HAS_MACRO} AND m.country_code IN :columns
        GROUP BY i.macro_topic, col
    """,
    "language": f"""
        SELECT i.macro_topic AS topic, {LANGUAGE_SQL} AS col, COUNT(*) AS cnt
        FROM individual_speeches i
        WHERE {HAS_MACRO} AND {LANGUAGE_SQL} IN :columns
        GROUP BY i.macro_topic, col
    """,
}

_CROSS_KEYS = {"group": "groups", "country": "countries", "language": "languages"}


class TopicIndex:
    """Maps raw macro-topic values to display labels and back."""

    def __init__(self, raw_topics: Iterable[str]):
        self.variants: dict[str, list[str]] = {}
        self._label_by_key: dict[str, str] = {}
        for raw in raw_topics:
            key = topic_collapse_key(raw)
            if not key:
                continue
            label = self._label_by_key.setdefault(key, normalize_topic_label(raw))
            self.variants.setdefault(label, []).append(raw)

    @classmethod
    def from_variants(cls, variants: dict[str, list[str]]) -> "TopicIndex":
        index = cls([])
        for label, raws in variants.items():
            index._label_by_key[topic_collapse_key(label)] = label
            index.variants[label] = list(raws)
        return index

    @property
    def labels(self) -> list[str]:
        return list(self.variants)

    def label_for(self, topic: Optional[str]) -> Optional[str]:
        """Display label of a raw value or of any of its variants."""
        if not topic:
            return None
        return self._label_by_key.get(topic_collapse_key(topic))

    def select(self, topics: Optional[Iterable[str]]) -> list[str]:
        """Display labels for a filter, all labels when no filter is given."""
        if topics is None:
            return self.labels
        selected = []
        for topic in topics:
            label = self.label_for(topic)
            if label is not None and label not in selected:
                selected.append(label)
        return selected


def _rows(session: Session, sql: str, **params: Any) -> list:
    return list(session.execute(text(sql), params))


def _indexed_counts(rows: Iterable, index: TopicIndex, column: str) -> dict[tuple[str, str], int]:
    counts: dict[tuple[str, str], int] = defaultdict(int)
    for row in rows:
        label = index.label_for(row.topic)
        if label is not None:
            counts[(label, getattr(row, column))] += row.cnt
    return counts


def build_timeseries(
    session: Session, interval: str, index: TopicIndex, topics: Optional[Iterable[str]] = None
) -> dict:
    """``topic x period`` counts as chart datasets.

    Args:
        session: Open database session
        interval: ``month``, ``quarter`` or ``year``
        index: Topic labels and their raw variants
        topics: Optional filter of display labels

    Returns:
        ``{"labels", "datasets", "topics"}`` where each dataset's ``data``
        is aligned with ``labels``
    """
    if interval not in PERIOD_SQL:
        raise ValueError(f"Unknown interval: {interval}")
    labels = [row.period for row in _rows(session, _period_labels_sql(interval))]
    counts = _indexed_counts(_rows(session, _period_counts_sql(interval)), index, "period")
    selected = index.select(topics)
    datasets = [
        {"label": topic, "data": [counts.get((topic, period), 0) for period in labels]}
        for topic in selected
    ]
    return {"labels": labels, "datasets": datasets, "topics": selected}


def build_cross(
    session: Session,
    dimension: str,
    index: TopicIndex,
    limit: int,
    topics: Optional[Iterable[str]] = None,
) -> dict:
    """``topic x group``, ``topic x country`` or ``topic x language`` counts.

    Columns are the ``limit`` largest values of the dimension by total
    speech count.
    """
    top_sql = {"group": TOP_GROUPS_SQL, "country": TOP_COUNTRIES_SQL, "language": TOP_LANGUAGES_SQL}
    columns = [row.col for row in _rows(session, top_sql[dimension], limit=limit) if row.col]
    counts: dict[tuple[str, str], int] = {}
    if columns:
        stmt = text(_CROSS_SQL[dimension]).bindparams(bindparam("columns", expanding=True))
        counts = _indexed_counts(session.execute(stmt, {"columns": columns}), index, "col")

    selected = index.select(topics)
    wanted = set(selected)
    rows = [
        {"topic": topic, dimension: column, "cnt": cnt}
        for (topic, column), cnt in sorted(counts.items())
        if topic in wanted
    ]
    return {"topics": selected, _CROSS_KEYS[dimension]: columns, "rows": rows}


def language_counts(session: Session) -> list[dict]:
    return [
        {"language": row.language, "cnt": row.cnt}
        for row in _rows(session, LANGUAGE_COUNTS_SQL)
    ]


def build_overview(session: Session, settings: AnalyticsConfig) -> dict:
    coverage = session.execute(text(COVERAGE_SQL)).one()
    total = coverage.total or 0
    with_macro = coverage.with_macro or 0
    pct = round(with_macro / total * 100, 1) if total else 0
    return {
        "coverage": {"total": total, "with_macro": with_macro, "pct_with_macro": pct},
        "macroTopicDistribution": [
            {"topic": row.topic, "count": row.cnt}
            for row in _rows(session, MACRO_DISTRIBUTION_SQL, limit=settings.top_topics)
        ],
        "topSpecificFocus": [
            {"topic": row.topic, "focus": row.focus, "count": row.cnt}
            for row in _rows(session, SPECIFIC_FOCUS_SQL, limit=settings.top_focuses)
        ],
    }


def load_topic_index(session: Session) -> TopicIndex:
    return TopicIndex(row.topic for row in _rows(session, DISTINCT_TOPICS_SQL))


ProgressCallback = Callable[[str, int, str], None]


def build_analytics(
    session: Session,
    settings: Optional[AnalyticsConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> dict:
    """Compute every dashboard aggregate.

    Args:
        session: Open database session
        settings: Top-N sizes
        on_progress: Called with ``(stage, percent, message)`` between steps

    Returns:
        JSON-serializable payload keyed ``allTopics``, ``topicVariants``,
        ``timeseries_month``, ``timeseries_quarter``, ``timeseries_year``,
        ``byGroup``, ``byCountry``, ``byLanguage``, ``languages``, ``overview``
    """
    settings = settings or AnalyticsConfig()
    report = on_progress or (lambda stage, percent, message: None)

    report("topics", 10, "Loading topics")
    index = load_topic_index(session)
    data: dict[str, Any] = {"allTopics": index.labels, "topicVariants": index.variants}

    report("timeseries", 25, "Computing time series")
    for interval in INTERVALS:
        data[f"timeseries_{interval}"] = build_timeseries(session, interval, index)

    report("groups", 50, "Computing political groups")
    data["byGroup"] = build_cross(session, "group", index, settings.top_groups)

    report("countries", 60, "Computing countries")
    data["byCountry"] = build_cross(session, "country", index, settings.top_countries)

    report("languages", 70, "Computing macro topics by language")
    data["byLanguage"] = build_cross(session, "language", index, settings.top_languages)
    data["languages"] = {"rows": language_counts(session)}

    report("overview", 90, "Computing overview")
    data["overview"] = build_overview(session, settings)
    return data


class AnalyticsCache:
    """In-process analytics cache with a readiness flag and warming progress.

    Only one warm runs at a time; a second call while warming returns
    immediately. Readers are served from the cache when it is ready and
    otherwise run the same queries against the database.
    """

    def __init__(self, storage: Storage, settings: Optional[AnalyticsConfig] = None):
        self.storage = storage
        self.settings = settings or AnalyticsConfig()
        self.logger = get_logger()
        self.data: Optional[dict] = None
        self.last_updated: Optional[int] = None
        self.is_warming = False
        self.progress = {"stage": "", "percent": 0, "message": ""}
        self._lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self.data is not None

    def _set_progress(self, stage: str, percent: int, message: str) -> None:
        self.progress = {"stage": stage, "percent": percent, "message": message}
        self.logger.debug(f"[analytics] {stage} {percent}%: {message}")

    def status(self) -> dict:
        """Readiness probe."""
        return {
            "ready": self.ready,
            "last_updated": self.last_updated,
            "is_warming": self.is_warming,
            "progress": dict(self.progress),
        }

    def warm(self) -> bool:
        """Recompute the cache.

        Returns:
            False when another warm was already running
        """
        if not self._lock.acquire(blocking=False):
            self.logger.info("Analytics cache warming already in progress")
            return False
        self.is_warming = True
        try:
            self._set_progress("starting", 0, "Computing analytics")
            with self.storage.session() as session:
                data = build_analytics(session, self.settings, self._set_progress)
            self.data = data
            self.last_updated = epoch_ms()
            if self.settings.persist:
                self.persist()
            self._set_progress("complete", 100, "Cache ready")
            self.logger.info(
                f"Analytics cache ready: {len(data['allTopics'])} topics, "
                f"{len(data['timeseries_month']['labels'])} months"
            )
            return True
        except Exception as e:
            self._set_progress("error", 0, f"Cache warming failed: {e}")
            raise
        finally:
            self.is_warming = False
            self._lock.release()

    def start_warming(self) -> threading.Thread:
        """Warm in a background thread."""
        thread = threading.Thread(target=self.warm, name="analytics-warm", daemon=True)
        thread.start()
        return thread

    def persist(self) -> None:
        """Store the current payload in the ``analytics_cache`` table."""
        if self.data is None:
            return
        with self.storage.session() as session:
            entry = session.get(AnalyticsCacheEntry, CACHE_KEY)
            if entry is None:
                entry = AnalyticsCacheEntry(key=CACHE_KEY)
                session.add(entry)
            entry.payload = json.dumps(self.data, ensure_ascii=False)
            entry.updated_at = self.last_updated or epoch_ms()

    def load(self) -> bool:
        """Restore a persisted payload without recomputing.

        Returns:
            True when a payload was found
        """
        with self.storage.session() as session:
            entry = session.scalars(
                select(AnalyticsCacheEntry).where(AnalyticsCacheEntry.key == CACHE_KEY)
            ).first()
            if entry is None:
                return False
            self.data = json.loads(entry.payload)
            self.last_updated = entry.updated_at
        self._set_progress("complete", 100, "Cache loaded")
        return True

    def _index(self) -> TopicIndex:
        return TopicIndex.from_variants(self.data["topicVariants"])

    def timeseries(self, interval: str = "month", topics: Optional[Iterable[str]] = None) -> dict:
        if interval not in PERIOD_SQL:
            raise ValueError(f"Unknown interval: {interval}")
        if not self.ready:
            with self.storage.session() as session:
                return build_timeseries(session, interval, load_topic_index(session), topics)

        cached = self.data[f"timeseries_{interval}"]
        if topics is None:
            return cached
        selected = set(self._index().select(topics))
        datasets = [d for d in cached["datasets"] if d["label"] in selected]
        return {
            "labels": cached["labels"],
            "datasets": datasets,
            "topics": [d["label"] for d in datasets],
        }

    def _cross(self, dimension: str, cache_key: str, limit: int, topics: Optional[Iterable[str]]) -> dict:
        if not self.ready:
            with self.storage.session() as session:
                return build_cross(session, dimension, load_topic_index(session), limit, topics)

        cached = self.data[cache_key]
        if topics is None:
            return cached
        selected = self._index().select(topics)
        wanted = set(selected)
        return {
            "topics": selected,
            _CROSS_KEYS[dimension]: cached[_CROSS_KEYS[dimension]],
            "rows": [row for row in cached["rows"] if row["topic"] in wanted],
        }

    def by_group(self, topics: Optional[Iterable[str]] = None) -> dict:
        return self._cross("group", "byGroup", self.settings.top_groups, topics)

    def by_country(self, topics: Optional[Iterable[str]] = None) -> dict:
        return self._cross("country", "byCountry", self.settings.top_countries, topics)

    def by_language(self, topics: Optional[Iterable[str]] = None) -> dict:
        return self._cross("language", "byLanguage", self.settings.top_languages, topics)

    def languages(self, topics: Optional[Iterable[str]] = None) -> list[dict]:
        """Speech counts per language, optionally restricted to some topics."""
        if topics is None:
            if self.ready:
                return self.data["languages"]["rows"]
            with self.storage.session() as session:
                return language_counts(session)

        totals: dict[str, int] = defaultdict(int)
        for row in self.by_language(topics)["rows"]:
            totals[row["language"]] += row["cnt"]
        return [
            {"language": language, "cnt": cnt}
            for language, cnt in sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        ]

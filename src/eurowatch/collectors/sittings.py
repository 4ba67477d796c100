"""Collector for plenary verbatim reports (CRE documents)."""

import asyncio
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Collection, Optional, Sequence

from ..config import Config
from ..exceptions import FetchError, SittingNotFound
from ..parsers.html import extract_text, extract_toc_text, looks_like_sitting
from ..utils.http import RateLimitedClient
from .base import BaseCollector

DEFAULT_BASE_URL = "https://www.europarl.europa.eu/doceo/document"

# Parliamentary terms by first day, newest first
TERM_STARTS = (
    (10, "2024-07-16"),
    (9, "2019-07-02"),
    (8, "2014-07-01"),
    (7, "2009-07-14"),
    (6, "2004-07-20"),
    (5, "1999-07-20"),
    (4, "1994-07-19"),
    (3, "1989-07-25"),
    (2, "1984-07-24"),
    (1, "1979-07-17"),
)


def term_for_date(activity_date: str) -> int:
    """Parliamentary term in force on a date; term starts are inclusive."""
    for term, start in TERM_STARTS:
        if activity_date >= start:
            return term
    return 1


def sitting_url(activity_date: str, base_url: str = DEFAULT_BASE_URL) -> str:
    return f"{base_url}/CRE-{term_for_date(activity_date)}-{activity_date}_EN.html"


def toc_url(activity_date: str, base_url: str = DEFAULT_BASE_URL) -> str:
    return f"{base_url}/CRE-{term_for_date(activity_date)}-{activity_date}-TOC_EN.html"


def list_dates_in_range(start: str, end: str) -> list[str]:
    """Every date from ``start`` to ``end`` inclusive, as ISO strings."""
    first, last = date.fromisoformat(start), date.fromisoformat(end)
    return [(first + timedelta(days=i)).isoformat() for i in range((last - first).days + 1)]


class FetchStatus(str, Enum):
    """Per-date fetch state. Only STORED and MISSING are terminal."""

    UNKNOWN = "unknown"
    ATTEMPTING = "attempting"
    STORED = "stored"
    MISSING = "missing"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (FetchStatus.STORED, FetchStatus.MISSING)


@dataclass
class FetchResult:
    """Outcome of fetching one sitting date."""

    date: str
    status: FetchStatus
    content: Optional[str] = None
    text_length: int = 0
    source: Optional[str] = None
    error: Optional[str] = None


class SittingFetcher(BaseCollector):
    """Downloads the verbatim report of a sitting date.

    The stored content is the report HTML when it yields enough text;
    otherwise the agenda item list of the table-of-contents page.
    """

    def __init__(self, config: Config, client: Optional[RateLimitedClient] = None):
        super().__init__(config, client)
        self.fetch_config = config.fetch
        self.states: dict[str, FetchStatus] = {}

    def get_source_name(self) -> str:
        return "sittings"

    def get_stats(self) -> dict:
        stats = super().get_stats()
        for state in self.states.values():
            stats[state.value] = stats.get(state.value, 0) + 1
        return stats

    def _finish(self, result: FetchResult) -> FetchResult:
        self.states[result.date] = result.status
        return result

    async def _toc_text(self, activity_date: str) -> str:
        try:
            toc_html = await self.client.get_text(toc_url(activity_date, self.fetch_config.base_url))
        except SittingNotFound:
            return ""
        return extract_toc_text(toc_html)

    async def fetch(self, activity_date: str) -> FetchResult:
        """Fetch one date.

        Args:
            activity_date: Sitting date (YYYY-MM-DD)

        Returns:
            STORED with the content, MISSING when there is no sitting, or
            FAILED when the download failed and may be retried later
        """
        self.states[activity_date] = FetchStatus.ATTEMPTING
        min_length = self.fetch_config.min_content_length
        url = sitting_url(activity_date, self.fetch_config.base_url)

        try:
            html = await self.client.get_text(url)
        except SittingNotFound:
            self.logger.debug(f"No sitting on {activity_date}")
            return self._finish(FetchResult(activity_date, FetchStatus.MISSING))
        except FetchError as e:
            self.logger.warning(f"Fetch failed for {activity_date}: {e}")
            return self._finish(FetchResult(activity_date, FetchStatus.FAILED, error=str(e)))

        text = extract_text(html, min_length)
        if len(text) >= min_length:
            return self._finish(
                FetchResult(activity_date, FetchStatus.STORED, html, len(text), source="html")
            )

        self.logger.info(f"Report for {activity_date} has too little text, trying TOC page")
        try:
            toc = await self._toc_text(activity_date)
        except FetchError as e:
            return self._finish(FetchResult(activity_date, FetchStatus.FAILED, error=str(e)))
        if len(toc) >= min_length:
            return self._finish(
                FetchResult(activity_date, FetchStatus.STORED, toc, len(toc), source="toc")
            )
        return self._finish(FetchResult(activity_date, FetchStatus.MISSING))

    async def fetch_many(
        self,
        dates: Sequence[str],
        on_result: Optional[Callable[[FetchResult], None]] = None,
    ) -> list[FetchResult]:
        """Fetch several dates with bounded concurrency, results in input order."""
        semaphore = asyncio.Semaphore(max(1, self.fetch_config.concurrency))

        async def _one(activity_date: str) -> FetchResult:
            async with semaphore:
                result = await self.fetch(activity_date)
            if on_result is not None:
                on_result(result)
            return result

        return list(await asyncio.gather(*(_one(d) for d in dates)))

    async def discover_recent_sitting(
        self,
        known_dates: Collection[str] = (),
        today: Optional[date] = None,
        max_days_back: Optional[int] = None,
    ) -> Optional[str]:
        """Walk back from today to the newest date that has a sitting page.

        Args:
            known_dates: Dates already stored, skipped without a request
            today: First date to probe
            max_days_back: Number of days to probe

        Returns:
            The date, or None when nothing was found in the window
        """
        day = today or date.today()
        window = max_days_back or self.fetch_config.max_days_back
        for _ in range(window):
            activity_date = day.isoformat()
            day -= timedelta(days=1)
            if activity_date in known_dates:
                continue
            try:
                html = await self.client.get_text(sitting_url(activity_date, self.fetch_config.base_url))
            except FetchError:
                continue
            if looks_like_sitting(html, self.fetch_config.min_html_length):
                self.logger.info(f"Found sitting at {activity_date} ({len(html)} chars)")
                return activity_date
        return None

"""Client for the MEP directory of the Parliament open-data API."""

import asyncio
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from ..exceptions import FetchError, SittingNotFound
from .base import BaseCollector

HISTORIC_TERMS = (5, 6, 7, 8, 9)


@dataclass(frozen=True)
class MepRecord:
    """One MEP as listed by the directory."""

    id: int
    label: str
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    sort_label: Optional[str] = None
    country_code: Optional[str] = None
    political_group: Optional[str] = None
    is_current: bool = True

    @classmethod
    def from_api(cls, record: dict, is_current: bool = True) -> Optional["MepRecord"]:
        identifier = str(record.get("identifier", "")).strip()
        if not identifier.isdigit():
            return None
        label = record.get("label") or ""
        return cls(
            id=int(identifier),
            label=label,
            given_name=record.get("givenName"),
            family_name=record.get("familyName"),
            sort_label=record.get("sortLabel") or label,
            country_code=record.get("api:country-of-representation"),
            political_group=record.get("api:political-group"),
            is_current=is_current,
        )


class MepDirectoryClient(BaseCollector):
    """Pages the MEP listings of the current and earlier terms."""

    def get_source_name(self) -> str:
        return "meps"

    async def _paginate(self, url: str, params: dict, is_current: bool) -> list[MepRecord]:
        limit = self.config.fetch.api_page_size
        offset = 0
        records = []
        while True:
            page_params = {
                **params,
                "language": self.config.fetch.api_language,
                "format": "application/ld+json",
                "limit": limit,
                "offset": offset,
            }
            try:
                payload = await self.client.get_json(url, params=page_params)
            except SittingNotFound:
                break
            page = payload.get("data") or []
            for item in page:
                record = MepRecord.from_api(item, is_current=is_current)
                if record is not None:
                    records.append(record)
            if len(page) < limit:
                break
            offset += limit
        return records

    async def fetch_current(self) -> list[MepRecord]:
        """MEPs of the sitting term."""
        records = await self._paginate(
            f"{self.config.fetch.api_url}/meps/show-current", {}, is_current=True
        )
        self.logger.info(f"Fetched {len(records)} current MEPs")
        return records

    async def fetch_term(self, term: int) -> list[MepRecord]:
        return await self._paginate(
            f"{self.config.fetch.api_url}/meps", {"parliamentary-term": term}, is_current=False
        )

    async def fetch_terms(self, terms: Sequence[int] = HISTORIC_TERMS) -> list[MepRecord]:
        """Current MEPs merged with the listings of earlier terms.

        Records merge by identifier; the current listing wins, so
        ``is_current`` is only set for MEPs of the sitting term. A term
        whose listing fails is logged and left out.

        Args:
            terms: Earlier parliamentary terms to include

        Returns:
            One record per MEP
        """
        current = await self.fetch_current()
        by_id = {record.id: record for record in current}

        results = await asyncio.gather(
            *(self.fetch_term(term) for term in terms), return_exceptions=True
        )
        for term, result in zip(terms, results):
            if isinstance(result, FetchError):
                self.logger.warning(f"Term {term} listing failed: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            added = 0
            for record in result:
                if record.id not in by_id:
                    by_id[record.id] = replace(record, is_current=False)
                    added += 1
            self.logger.info(f"Term {term}: {len(result)} MEPs ({added} not in a later listing)")

        self.logger.info(f"Total MEPs: {len(by_id)} ({len(current)} current)")
        return list(by_id.values())

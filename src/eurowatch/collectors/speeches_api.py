"""Client for the Parliament open-data speech metadata API."""

from dataclasses import dataclass
from typing import AsyncIterator, Optional

from ..config import Config
from ..exceptions import SittingNotFound
from ..storage import Storage, epoch_ms
from ..utils.http import RateLimitedClient
from .base import BaseCollector


def _localized(value, language: str = "en") -> Optional[str]:
    """Pick one language from a ``{lang: text}`` map, or pass a plain string through."""
    if value is None:
        return None
    if isinstance(value, dict):
        for key in (language, language.upper(), language.lower()):
            if value.get(key):
                return value[key]
        return next((v for v in value.values() if v), None)
    return str(value)


@dataclass(frozen=True)
class SpeechMetadata:
    """One speech record as listed by the API."""

    id: str
    activity_date: str
    type: Optional[str] = None
    label: Optional[str] = None
    person_id: Optional[int] = None
    doc_identifier: Optional[str] = None
    notation_id: Optional[str] = None

    @classmethod
    def from_api(cls, record: dict) -> Optional["SpeechMetadata"]:
        activity_date = record.get("activity_date") or record.get("activity_start_date")
        if not record.get("id") or not activity_date:
            return None

        person_id = None
        person = record.get("person")
        if isinstance(person, dict) and str(person.get("identifier", "")).isdigit():
            person_id = int(person["identifier"])

        realizations = record.get("recorded_in_a_realization_of") or []
        document = realizations[0] if realizations and isinstance(realizations[0], dict) else {}

        return cls(
            id=str(record["id"]),
            activity_date=str(activity_date)[:10],
            type=record.get("had_activity_type"),
            label=_localized(record.get("activity_label")),
            person_id=person_id,
            doc_identifier=document.get("identifier"),
            notation_id=document.get("notation_speechId"),
        )


class SpeechMetadataClient(BaseCollector):
    """Pages ``/speeches`` to learn which dates had plenary activity."""

    def __init__(
        self,
        config: Config,
        client: Optional[RateLimitedClient] = None,
        storage: Optional[Storage] = None,
    ):
        super().__init__(config, client)
        self.storage = storage
        self.total: Optional[int] = None

    def get_source_name(self) -> str:
        return "speeches_api"

    async def iter_records(self, since: str) -> AsyncIterator[SpeechMetadata]:
        """Yield every speech record dated ``since`` or later.

        Paging stops on a short page or when the API answers 404.
        """
        url = f"{self.config.fetch.api_url}/speeches"
        limit = self.config.fetch.api_page_size
        offset = 0
        while True:
            params = {
                "format": "application/ld+json",
                "limit": limit,
                "offset": offset,
                "search-language": self.config.fetch.api_language,
                "activity-date-from": since,
            }
            try:
                payload = await self.client.get_json(url, params=params)
            except SittingNotFound:
                self.logger.debug(f"Speech API returned 404 at offset {offset}")
                return

            if self.total is None:
                self.total = (payload.get("meta") or {}).get("total")
            page = payload.get("data") or []
            for record in page:
                metadata = SpeechMetadata.from_api(record)
                if metadata is not None:
                    yield metadata

            if len(page) < limit:
                return
            offset += limit

    async def discover_dates(self, since: str) -> list[str]:
        """Distinct activity dates with speeches since a date, oldest first."""
        dates = set()
        count = 0
        async for record in self.iter_records(since):
            dates.add(record.activity_date)
            count += 1
        self.logger.info(f"Speech API listed {count} records on {len(dates)} dates since {since}")

        if self.storage is not None:
            self.storage.update_cache_status(
                speeches_last_updated=epoch_ms(),
                total_speeches=self.total if self.total is not None else count,
            )
        return sorted(dates)

"""MEP stage: refresh the directory and link speeches to MEPs."""

import asyncio
from typing import Sequence

from ..collectors.meps import HISTORIC_TERMS, MepDirectoryClient, MepRecord
from ..context import PipelineContext
from ..processors.mep_linker import create_historic_meps, link_speeches_to_meps, upsert_api_meps
from .base import BaseStage, StageResult


class MepStage(BaseStage):
    """Imports directory MEPs, links speakers, then creates historic MEPs."""

    name = "meps"
    description = "Refreshing MEP directory"

    def __init__(
        self,
        terms: Sequence[int] = HISTORIC_TERMS,
        refresh: bool = True,
        historic: bool = True,
    ):
        super().__init__()
        self.terms = tuple(terms)
        self.refresh = refresh
        self.historic = historic

    async def _fetch(self, ctx: PipelineContext) -> list[MepRecord]:
        client = ctx.new_http_client()
        try:
            directory = MepDirectoryClient(ctx.config, client)
            return await directory.fetch_terms(self.terms)
        finally:
            await client.close()

    def run(self, ctx: PipelineContext) -> StageResult:
        result = self._result()
        if self.refresh:
            records = asyncio.run(self._fetch(ctx))
            result.details["directory"] = len(records)
            if ctx.dry_run:
                self.logger.info(f"Dry run: would upsert {len(records)} MEPs")
                return result
            result.succeeded += upsert_api_meps(ctx.storage, records)
        if ctx.dry_run:
            return result

        speakers, speeches = link_speeches_to_meps(ctx.storage)
        result.details.update({"linked_speakers": speakers, "linked_speeches": speeches})
        if self.historic:
            historic = create_historic_meps(ctx.storage)
            result.details.update(
                {
                    "historic_created": historic.created,
                    "historic_linked_speeches": historic.linked_speeches,
                }
            )
        return result

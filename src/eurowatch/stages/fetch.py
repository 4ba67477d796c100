"""Fetch stage: download verbatim reports into the sittings table."""

import asyncio
from typing import Sequence

from ..collectors.sittings import FetchResult, FetchStatus, SittingFetcher
from ..context import PipelineContext
from ..utils.hashing import compute_hash
from .base import BaseStage, StageResult


class FetchStage(BaseStage):
    """Stores the report of every requested date that has a sitting.

    Dates whose sitting already holds content are skipped unless
    ``refetch`` is set; a refetch with unchanged content is still a skip.
    """

    name = "fetch"
    description = "Fetching verbatim reports"

    def __init__(self, dates: Sequence[str], refetch: bool = False):
        super().__init__()
        self.dates = list(dates)
        self.refetch = refetch

    def run(self, ctx: PipelineContext) -> StageResult:
        result = self._result()
        min_length = ctx.config.fetch.min_content_length

        if self.refetch:
            todo = self.dates
        else:
            stored = ctx.storage.dates_with_content(min_length)
            todo = [d for d in self.dates if d not in stored]
            result.skipped = len(self.dates) - len(todo)
            if result.skipped:
                self.logger.info(f"Skipping {result.skipped} dates that already have content")

        if not todo:
            self.logger.info("Nothing to fetch")
            return result
        if ctx.dry_run:
            self.logger.info(f"Dry run: would fetch {len(todo)} dates ({todo[0]} to {todo[-1]})")
            result.details["would_fetch"] = len(todo)
            return result

        counts = {"stored": 0, "unchanged": 0, "missing": 0, "failed": 0}
        task_id = ctx.progress.add_task(self.description, total=len(todo))

        def on_result(fetched: FetchResult) -> None:
            if fetched.status is FetchStatus.STORED:
                outcome = ctx.storage.upsert_sitting(
                    fetched.date,
                    fetched.content,
                    compute_hash(fetched.content),
                    force=self.refetch,
                    min_length=min_length,
                )
                if outcome == "stored":
                    result.succeeded += 1
                    counts["stored"] += 1
                    self.logger.info(
                        f"Stored sitting {fetched.date} ({fetched.text_length} chars of text, {fetched.source})"
                    )
                else:
                    result.skipped += 1
                    counts["unchanged"] += 1
            elif fetched.status is FetchStatus.MISSING:
                result.skipped += 1
                counts["missing"] += 1
            else:
                result.failed += 1
                counts["failed"] += 1
            ctx.progress.update(task_id, advance=1, description=f"Fetched {fetched.date}")

        asyncio.run(self._fetch_all(ctx, todo, on_result))

        result.details.update(counts)
        self.logger.info(
            f"Fetch: {counts['stored']} stored, {counts['unchanged']} unchanged, "
            f"{counts['missing']} without sitting, {counts['failed']} failed"
        )
        return result

    async def _fetch_all(self, ctx: PipelineContext, dates: list[str], on_result) -> None:
        client = ctx.new_http_client()
        try:
            fetcher = SittingFetcher(ctx.config, client)
            await fetcher.fetch_many(dates, on_result)
        finally:
            await client.close()

"""Analytics stage: warm and persist the dashboard cache."""

from typing import Optional

from ..context import PipelineContext
from ..processors.analytics import AnalyticsCache
from .base import BaseStage, StageResult


class AnalyticsStage(BaseStage):
    name = "analytics"
    description = "Warming analytics cache"

    def __init__(self, cache: Optional[AnalyticsCache] = None):
        super().__init__()
        self.cache = cache

    def run(self, ctx: PipelineContext) -> StageResult:
        result = self._result()
        cache = self.cache or AnalyticsCache(ctx.storage, ctx.config.analytics)
        if ctx.dry_run:
            cache.settings = cache.settings.model_copy(update={"persist": False})

        task_id = ctx.progress.add_task(self.description, total=100)
        if not cache.warm():
            result.skipped = 1
            return result
        ctx.progress.update(task_id, completed=100)

        overview = cache.data["overview"]["coverage"]
        result.succeeded = 1
        result.details.update(
            {
                "topics": len(cache.data["allTopics"]),
                "speeches": overview["total"],
                "with_macro": overview["with_macro"],
                "last_updated": cache.last_updated,
            }
        )
        return result

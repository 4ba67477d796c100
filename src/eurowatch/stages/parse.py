"""Parse stage: split stored sittings into speeches and map agenda topics."""

from datetime import date, timedelta
from typing import Optional, Sequence

from ..context import PipelineContext
from ..parsers.agenda import best_section, split_sections
from ..parsers.html import TOC_PREFIX, extract_text
from ..parsers.speeches import ParsedSpeech, split_speeches
from ..processors.groups import GroupNormalizer
from ..storage import SittingRef
from .base import BaseStage, StageResult


def speech_rows(
    speeches: Sequence[ParsedSpeech],
    content: str,
    ctx: PipelineContext,
    normalizer: Optional[GroupNormalizer] = None,
) -> list[dict]:
    """Turn parsed speeches into ``individual_speeches`` rows.

    Bodies below the minimum length are dropped and ``speech_order`` is
    renumbered from 1. Every row gets a full set of group columns and,
    where the agenda allows it, a topic.
    """
    normalizer = normalizer or ctx.group_normalizer()
    min_length = ctx.config.parsing.min_speech_length
    sections = split_sections(content)

    rows = []
    for speech in speeches:
        if len(speech.body) < min_length:
            continue
        raw = speech.political_group or ""
        match = best_section(speech.body, sections, ctx.config.topics) if sections else None
        rows.append(
            {
                "speech_order": len(rows) + 1,
                "speaker_name": speech.speaker_name,
                "title": speech.title,
                "speech_content": speech.body,
                "political_group": speech.political_group,
                "political_group_raw": raw,
                **normalizer.normalize(raw, parenthesized=speech.group_in_parentheses).as_columns(),
                "topic": match.title if match else None,
            }
        )
    return rows


class ParseStage(BaseStage):
    """Splits every selected sitting into speech rows.

    A sitting that already has speeches is left alone unless ``reparse``
    is set, in which case all of its speeches are replaced at once.
    """

    name = "parse"
    description = "Parsing sittings"

    def __init__(
        self,
        dates: Optional[Sequence[str]] = None,
        since: Optional[str] = None,
        reparse: bool = False,
    ):
        super().__init__()
        self.dates = list(dates) if dates is not None else None
        self.since = since
        self.reparse = reparse

    @classmethod
    def recent(cls, days: int = 365, today: Optional[date] = None, reparse: bool = False) -> "ParseStage":
        since = ((today or date.today()) - timedelta(days=days)).isoformat()
        return cls(since=since, reparse=reparse)

    def run(self, ctx: PipelineContext) -> StageResult:
        result = self._result()
        refs = ctx.storage.sittings_for_parse(
            dates=self.dates,
            since=self.since,
            min_length=ctx.config.fetch.min_content_length,
        )
        todo = []
        for ref in refs:
            if ref.speech_count and not self.reparse:
                result.skipped += 1
            else:
                todo.append(ref)
        self.logger.info(
            f"Parsing {len(todo)} sittings ({result.skipped} already parsed)"
        )

        normalizer = ctx.group_normalizer()
        task_id = ctx.progress.add_task(self.description, total=len(todo))
        total_speeches = 0
        with_topic = 0
        for ref in todo:
            try:
                rows = self._parse_one(ctx, ref, normalizer)
            except Exception as e:
                self.logger.error(f"Parsing failed for {ref.activity_date}: {e}")
                result.failed += 1
                ctx.progress.update(task_id, advance=1)
                continue

            if not rows:
                self.logger.warning(f"No speeches found in sitting {ref.activity_date}")
                result.skipped += 1
            elif ctx.dry_run:
                result.succeeded += 1
            else:
                written = ctx.storage.replace_speeches(ref.id, rows)
                result.succeeded += 1
                self.logger.info(f"Parsed {written} speeches from {ref.activity_date}")
            total_speeches += len(rows)
            with_topic += sum(1 for row in rows if row["topic"])
            ctx.progress.update(task_id, advance=1)

        result.details.update({"speeches": total_speeches, "with_topic": with_topic})
        return result

    def _parse_one(self, ctx: PipelineContext, ref: SittingRef, normalizer: GroupNormalizer) -> list[dict]:
        content = ctx.storage.sitting_content(ref.id) or ""
        if content.startswith(TOC_PREFIX):
            return []
        text = extract_text(content, ctx.config.fetch.min_content_length)
        speeches = split_speeches(text, ctx.config.parsing.max_title_length, normalizer)
        return speech_rows(speeches, content, ctx, normalizer)

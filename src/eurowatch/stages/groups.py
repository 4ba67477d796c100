"""Group stage: normalize political group affiliations."""

import json
from collections import Counter
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table
from sqlalchemy import select, update

from ..context import PipelineContext
from ..processors.groups import GroupAudit, MatchReason
from ..storage import IndividualSpeech
from .base import BaseStage, StageResult

WRITE_BATCH = 500


def render_audit(console: Console, report: dict) -> None:
    """Print a normalization audit as rich tables."""
    summary = report["summary"]
    table = Table(title="Political group normalization")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Distinct inputs", str(summary["totalDistinctInputs"]))
    table.add_row("Mapped to a group", str(summary["mappedCount"]))
    table.add_row("Institutions", str(summary["institutionCount"]))
    table.add_row("Parliamentary roles", str(summary["roleCount"]))
    table.add_row("Unknown", str(summary["unmappedCount"]))
    table.add_row("Coverage", f"{summary['coveragePercent']}%")
    console.print(table)

    groups = Table(title="Speeches by group")
    groups.add_column("Group", style="cyan")
    groups.add_column("Speeches", justify="right")
    for std, count in report["distributionByStandard"].items():
        groups.add_row(std, str(count))
    console.print(groups)

    if report["topUnknowns"]:
        unknowns = Table(title="Top unknown affiliations")
        unknowns.add_column("Raw")
        unknowns.add_column("Count", justify="right")
        unknowns.add_column("Reason", style="yellow")
        for item in report["topUnknowns"][:20]:
            unknowns.add_row(item["raw"][:80], str(item["count"]), item["reason"])
        console.print(unknowns)


class GroupStage(BaseStage):
    """Fills the normalized group columns from ``political_group_raw``.

    The raw column is copied from the legacy ``political_group`` column
    where it is still NULL and is never overwritten afterwards. Each
    distinct raw value is normalized once; only rows whose columns change
    are written.
    """

    name = "groups"
    description = "Normalizing political groups"

    def __init__(
        self,
        from_id: Optional[int] = None,
        limit: Optional[int] = None,
        overwrite_legacy: bool = False,
        report_path: Optional[Path] = None,
    ):
        super().__init__()
        self.from_id = from_id
        self.limit = limit
        self.overwrite_legacy = overwrite_legacy
        self.report_path = report_path
        self.audit: Optional[GroupAudit] = None

    def _rows(self, ctx: PipelineContext) -> list:
        stmt = select(
            IndividualSpeech.id,
            IndividualSpeech.political_group,
            IndividualSpeech.political_group_raw,
            IndividualSpeech.political_group_std,
            IndividualSpeech.political_group_kind,
            IndividualSpeech.political_group_reason,
        ).order_by(IndividualSpeech.id)
        if self.from_id is not None:
            stmt = stmt.where(IndividualSpeech.id >= self.from_id)
        if self.limit is not None:
            stmt = stmt.limit(self.limit)
        with ctx.storage.session() as session:
            return session.execute(stmt).all()

    def run(self, ctx: PipelineContext) -> StageResult:
        result = self._result()
        rows = self._rows(ctx)
        normalizer = ctx.group_normalizer()

        raws = [
            row.political_group_raw if row.political_group_raw is not None else (row.political_group or "")
            for row in rows
        ]
        usage = Counter(raws)
        self.audit = GroupAudit()
        classifications = {}
        for raw, count in usage.most_common():
            classifications[raw] = normalizer.normalize(raw)
            self.audit.add(raw, count, classifications[raw])

        updates = []
        for row, raw in zip(rows, raws):
            classification = classifications[raw]
            # Groups the splitter lifted out of parentheses keep that reason
            if row.political_group_reason == MatchReason.PARENTHESES_EXTRACTION.value:
                classification = normalizer.normalize(raw, parenthesized=True)
            values = classification.as_columns()
            if row.political_group_raw is None:
                values["political_group_raw"] = raw
            if self.overwrite_legacy:
                values["political_group"] = values["political_group_std"]
            changed = {key: value for key, value in values.items() if getattr(row, key) != value}
            if changed:
                updates.append({"id": row.id, **changed})
            else:
                result.skipped += 1

        if not ctx.dry_run:
            task_id = ctx.progress.add_task(self.description, total=len(updates))
            for start in range(0, len(updates), WRITE_BATCH):
                batch = updates[start: start + WRITE_BATCH]
                with ctx.storage.session() as session:
                    session.execute(update(IndividualSpeech), batch)
                ctx.progress.update(task_id, advance=len(batch))
        result.succeeded = len(updates)

        report = self.audit.to_dict(ctx.config.groups.report_top_unknowns)
        result.details.update(
            {"distinct": self.audit.total_distinct, "coverage": self.audit.coverage_percent}
        )
        if self.report_path is not None:
            self.report_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.report_path, "w", encoding="utf-8") as f:
                json.dump(report, f, indent=2, ensure_ascii=False)
            self.logger.info(f"Wrote group audit to {self.report_path}")

        verb = "would update" if ctx.dry_run else "updated"
        self.logger.info(
            f"Groups: {len(rows)} speeches, {self.audit.total_distinct} distinct affiliations, "
            f"{verb} {len(updates)} rows ({self.audit.coverage_percent}% mapped)"
        )
        return result

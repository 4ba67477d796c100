"""Progress bar construction shared by all stages."""

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.text import Text

from .logging import get_console


class ThroughputColumn(ProgressColumn):
    """Renders completed items per second."""

    def render(self, task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("-- it/s", style="progress.data.speed")
        return Text(f"{speed:.1f} it/s", style="progress.data.speed")


def create_progress(console: Optional[Console] = None, disable: bool = False) -> Progress:
    """Create a rich Progress instance.

    Args:
        console: Console to render on; defaults to the shared stderr console
        disable: Suppress rendering entirely

    Returns:
        Progress with bar, percentage, count, throughput, elapsed time and ETA
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        MofNCompleteColumn(),
        ThroughputColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console or get_console(),
        disable=disable,
    )

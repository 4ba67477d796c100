"""Base stage interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..context import PipelineContext
from ..utils.logging import get_logger


@dataclass
class StageResult:
    """Counts reported by one stage run."""

    name: str
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    details: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BaseStage(ABC):
    """Abstract base class for pipeline stages.

    A stage reads what earlier stages stored, adds its own columns and
    reports what it did. Stages never delete rows they did not create.
    """

    name: str = "stage"
    description: str = ""

    def __init__(self):
        self.logger = get_logger(self.name)

    @abstractmethod
    def run(self, ctx: PipelineContext) -> StageResult:
        """Execute the stage.

        Args:
            ctx: Shared pipeline context

        Returns:
            StageResult with succeeded/skipped/failed counts
        """
        pass

    def _result(self) -> StageResult:
        return StageResult(name=self.name)

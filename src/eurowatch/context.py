"""Shared state handed to every pipeline stage."""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from rich.console import Console
from rich.progress import Progress

from .config import Config
from .processors.groups import GroupNormalizer, load_synonyms
from .processors.language import LanguageDetector
from .storage import Storage, create_storage
from .utils.http import RateLimitedClient
from .utils.logging import get_console
from .utils.progress import create_progress
from .utils.rate_limit import MinuteBudget


@dataclass
class PipelineContext:
    """Configuration, storage and collaborators for one run.

    Collaborators that are expensive or talk to the outside world are
    built lazily, so tests can inject fakes for exactly the ones they need.
    """

    config: Config
    storage: Storage
    console: Console = field(default_factory=get_console)
    http_client_factory: Optional[Callable[[], RateLimitedClient]] = None
    llm_client: Optional[Any] = None
    detector: Optional[LanguageDetector] = None
    budget: Optional[MinuteBudget] = None
    normalizer: Optional[GroupNormalizer] = None
    dry_run: bool = False
    progress: Optional[Progress] = None
    show_progress: bool = True

    def __post_init__(self):
        if self.progress is None:
            self.progress = create_progress(self.console, disable=not self.show_progress)

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "PipelineContext":
        """Open the configured database and build a context around it."""
        storage = create_storage(
            config.database.url,
            echo=config.database.echo,
            busy_timeout_ms=config.database.busy_timeout_ms,
        )
        return cls(config=config, storage=storage, **kwargs)

    def new_http_client(self) -> RateLimitedClient:
        """A fresh client; HTTP clients are bound to the event loop that uses them."""
        if self.http_client_factory is not None:
            return self.http_client_factory()
        return RateLimitedClient(self.config.http)

    def language_detector(self) -> LanguageDetector:
        if self.detector is None:
            self.detector = LanguageDetector(self.config.language)
        return self.detector

    def group_normalizer(self) -> GroupNormalizer:
        if self.normalizer is None:
            settings = self.config.groups
            extra = load_synonyms(settings.synonyms_file) if settings.synonyms_file else None
            self.normalizer = GroupNormalizer(extra, settings.sentence_word_limit)
        return self.normalizer

    def close(self) -> None:
        self.storage.dispose()

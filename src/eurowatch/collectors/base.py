"""Base collector interface."""

from abc import ABC, abstractmethod
from typing import Optional

from ..config import Config
from ..utils.http import RateLimitedClient
from ..utils.logging import get_logger


class BaseCollector(ABC):
    """Abstract base class for upstream Parliament collectors.

    Collectors own (or borrow) a rate-limited HTTP client and turn upstream
    documents into records the stages can store.
    """

    def __init__(self, config: Config, client: Optional[RateLimitedClient] = None):
        """Initialize the collector.

        Args:
            config: Pipeline configuration
            client: Shared HTTP client; a private one is created when omitted
        """
        self.config = config
        self.logger = get_logger()
        self._owns_client = client is None
        self.client = client or RateLimitedClient(config.http)

    @abstractmethod
    def get_source_name(self) -> str:
        """Return the name of this source.

        Returns:
            Source name (e.g., 'sittings', 'meps')
        """
        pass

    def get_stats(self) -> dict:
        """Get collection statistics.

        Returns:
            Dictionary with collection stats
        """
        return {"source": self.get_source_name()}

    async def close(self) -> None:
        if self._owns_client:
            await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

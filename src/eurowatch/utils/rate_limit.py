"""Per-minute request and token budgets."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from .logging import get_logger


class MinuteBudget:
    """Request and token counters that reset on wall-clock minute boundaries.

    ``acquire`` reserves one request and an estimated token count. When the
    reservation would push either counter above ``ratio`` of its limit, the
    caller sleeps until the next minute starts and the counters reset.
    """

    def __init__(
        self,
        max_rpm: int,
        max_tpm: int,
        ratio: float = 0.9,
        clock: Callable[[], float] = time.time,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.request_limit = max(1, int(max_rpm * ratio))
        self.token_limit = max(1, int(max_tpm * ratio))
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()
        self._window = self._current_window()
        self.requests = 0
        self.tokens = 0
        self.waits = 0
        self.logger = get_logger()

    def _current_window(self) -> int:
        return int(self._clock() // 60)

    def _roll(self) -> None:
        window = self._current_window()
        if window != self._window:
            self._window = window
            self.requests = 0
            self.tokens = 0

    async def acquire(self, estimated_tokens: int = 0) -> None:
        """Reserve budget for one request, sleeping to the next minute if needed."""
        async with self._lock:
            self._roll()
            over_requests = self.requests + 1 > self.request_limit
            over_tokens = self.requests > 0 and self.tokens + estimated_tokens > self.token_limit
            if over_requests or over_tokens:
                delay = 60 - (self._clock() % 60)
                self.waits += 1
                self.logger.info(
                    f"Minute budget reached ({self.requests} requests, {self.tokens} tokens); "
                    f"sleeping {delay:.1f}s"
                )
                await self._sleep(delay)
                self._window = self._current_window()
                self.requests = 0
                self.tokens = 0
            self.requests += 1
            self.tokens += estimated_tokens

    def record(self, actual_tokens: int, estimated_tokens: int = 0) -> None:
        """Correct the token counter once the real usage is known."""
        self._roll()
        self.tokens = max(0, self.tokens + actual_tokens - estimated_tokens)

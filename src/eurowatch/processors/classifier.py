"""LLM macro-topic classification with budgets, retries and cost accounting."""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Optional, Sequence, Union

from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)

from ..config import ClassifierConfig
from ..exceptions import ClassificationError
from ..utils.logging import get_logger
from ..utils.rate_limit import MinuteBudget
from .taxonomy import UNKNOWN, build_system_prompt, parse_label

FATAL_ERRORS = (AuthenticationError, PermissionDeniedError)
RETRYABLE_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, APIError)

# Mismatching answers tolerated before falling back to Unknown
MAX_MISMATCHES = 2


@dataclass
class Classification:
    """Outcome of classifying one item."""

    label: str
    model: str
    specific_focus: Optional[str] = None
    confidence: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    cost: float = 0.0
    attempts: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class UsageTotals:
    """Running token and cost totals across a run."""

    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    cost: float = 0.0

    def add(self, result: Classification) -> None:
        self.input_tokens += result.input_tokens
        self.output_tokens += result.output_tokens
        self.reasoning_tokens += result.reasoning_tokens
        self.cost += result.cost


def _usage_counts(usage: Any) -> tuple[int, int, int]:
    if usage is None:
        return 0, 0, 0
    prompt = getattr(usage, "prompt_tokens", 0) or 0
    completion = getattr(usage, "completion_tokens", 0) or 0
    details = getattr(usage, "completion_tokens_details", None)
    reasoning = (getattr(details, "reasoning_tokens", 0) or 0) if details is not None else 0
    return prompt, completion, reasoning


class TopicClassifier:
    """Classifies speeches or agenda topics into the fixed taxonomy.

    Each request first reserves room in the per-minute budget. An answer
    that is not a taxonomy label is retried; the second such answer yields
    ``Unknown``. API errors are retried with exponential backoff and, when
    every attempt fails, also yield ``Unknown`` with zero cost.
    """

    def __init__(
        self,
        settings: Optional[ClassifierConfig] = None,
        client: Optional[Any] = None,
        budget: Optional[MinuteBudget] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """Initialize the classifier.

        Args:
            settings: Model, retry, budget and pricing settings
            client: OpenAI-compatible async client; built lazily when omitted
            budget: Shared per-minute budget; one is created from settings when omitted
            sleep: Coroutine used for backoff waits
        """
        self.settings = settings or ClassifierConfig()
        self.logger = get_logger()
        self._client = client
        self._sleep = sleep or asyncio.sleep
        self.budget = budget or MinuteBudget(
            self.settings.max_rpm, self.settings.max_tpm, self.settings.budget_ratio
        )
        self.system_prompt = build_system_prompt()
        self.totals = UsageTotals()

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.api_key, base_url=self.settings.base_url
            )
        return self._client

    def cost_of(self, input_tokens: int, output_tokens: int) -> float:
        """USD cost of one request at the configured per-million prices."""
        return (
            input_tokens / 1_000_000 * self.settings.input_price_per_million
            + output_tokens / 1_000_000 * self.settings.output_price_per_million
        )

    def _estimate_tokens(self, message: str) -> int:
        return (len(self.system_prompt) + len(message)) // 4

    async def _request(self, message: str) -> tuple[Optional[str], int, int, int]:
        estimate = self._estimate_tokens(message)
        await self.budget.acquire(estimate)
        response = await self.client.chat.completions.create(
            model=self.settings.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": message},
            ],
        )
        prompt, completion, reasoning = _usage_counts(getattr(response, "usage", None))
        self.budget.record(prompt + completion, estimate)
        self.totals.requests += 1
        content = response.choices[0].message.content if response.choices else None
        return content, prompt, completion, reasoning

    def _validate(self, content: Optional[str]) -> tuple[str, Optional[str]]:
        label, focus = parse_label(content)
        if label is None:
            raise ClassificationError(f"Not a taxonomy label: {content!r}")
        return label, focus

    async def classify(self, message: str) -> Classification:
        """Classify one prepared user message.

        Args:
            message: Envelope built by ``format_speech_input`` or ``format_topic_input``

        Returns:
            The classification, ``Unknown`` when no valid label was obtained

        Raises:
            AuthenticationError: The API key was rejected; retrying cannot help
        """
        message = message[: self.settings.max_input_chars]
        result = Classification(label=UNKNOWN, model=self.settings.model)
        mismatches = 0

        for attempt in range(1, self.settings.max_retries + 1):
            result.attempts = attempt
            try:
                content, prompt, completion, reasoning = await self._request(message)
            except FATAL_ERRORS:
                raise
            except RETRYABLE_ERRORS as e:
                self.logger.warning(f"Classification attempt {attempt} failed: {e}")
                result.error = str(e)
                if attempt < self.settings.max_retries:
                    await self._sleep(self.settings.retry_backoff ** attempt)
                continue

            result.input_tokens += prompt
            result.output_tokens += completion
            result.reasoning_tokens += reasoning
            result.cost += self.cost_of(prompt, completion)

            try:
                result.label, result.specific_focus = self._validate(content)
            except ClassificationError as e:
                mismatches += 1
                self.logger.debug(f"{e} (attempt {attempt})")
                if mismatches >= MAX_MISMATCHES:
                    result.error = None
                    break
                result.error = str(e)
                continue

            result.confidence = round(1.0 / (mismatches + 1), 2)
            result.error = None
            break

        if result.failed:
            result.label = UNKNOWN
            result.specific_focus = None
            result.cost = 0.0
            result.input_tokens = result.output_tokens = result.reasoning_tokens = 0
        self.totals.add(result)
        return result

    async def classify_many(
        self,
        items: Sequence[tuple[Hashable, str]],
        on_result: Optional[Callable[[Hashable, Classification], Union[None, Awaitable[None]]]] = None,
    ) -> list[tuple[Hashable, Classification]]:
        """Classify many items with bounded concurrency.

        Args:
            items: ``(key, message)`` pairs
            on_result: Called with each result as soon as it is available;
                a coroutine function is awaited

        Returns:
            ``(key, classification)`` pairs in input order
        """
        semaphore = asyncio.Semaphore(max(1, self.settings.concurrency))

        async def _one(key: Hashable, message: str) -> tuple[Hashable, Classification]:
            async with semaphore:
                result = await self.classify(message)
            if on_result is not None:
                outcome = on_result(key, result)
                if inspect.isawaitable(outcome):
                    await outcome
            return key, result

        return list(await asyncio.gather(*(_one(key, message) for key, message in items)))

import asyncio

import httpx
import pytest
from openai import APIConnectionError, AuthenticationError

from eurowatch.config import ClassifierConfig
from eurowatch.processors.classifier import TopicClassifier
from eurowatch.processors.taxonomy import (
    TAXONOMY,
    UNKNOWN,
    build_system_prompt,
    format_speech_input,
    format_topic_input,
    parse_label,
)
from eurowatch.utils.rate_limit import MinuteBudget

from conftest import FakeLLM, no_sleep

AGRICULTURE = "Agriculture & fisheries"
REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def classifier(replies, **settings):
    client = FakeLLM(replies)
    config = ClassifierConfig(
        input_price_per_million=1.0, output_price_per_million=10.0, **settings
    )
    return TopicClassifier(config, client=client, sleep=no_sleep), client


def test_taxonomy_is_closed_and_unique():
    assert len(TAXONOMY) == len(set(TAXONOMY))
    assert UNKNOWN in TAXONOMY
    assert AGRICULTURE in TAXONOMY
    prompt = build_system_prompt()
    assert all(label in prompt for label in TAXONOMY)


def test_parse_label():
    assert parse_label(f"{AGRICULTURE}\nFocus: Common Agricultural Policy") == (
        AGRICULTURE,
        "Common Agricultural Policy",
    )
    assert parse_label(f"`{AGRICULTURE}`") == (AGRICULTURE, None)
    assert parse_label("Farming") == (None, None)
    assert parse_label("") == (None, None)


def test_input_envelopes():
    message = format_speech_input("Body text", "Silva Maria", None, "PT")

    assert "Speaker: Silva Maria" in message
    assert "Political Group: Unknown" in message
    assert "Language: PT" in message
    assert format_topic_input("  Situation in Venezuela ").endswith("Situation in Venezuela\n```")


def test_valid_answer_first_time():
    topic_classifier, client = classifier([f"{AGRICULTURE}\nFocus: CAP"])

    result = asyncio.run(topic_classifier.classify("message"))

    assert result.label == AGRICULTURE
    assert result.specific_focus == "CAP"
    assert result.confidence == 1.0
    assert result.attempts == 1
    assert result.cost == pytest.approx(1000 / 1e6 * 1.0 + 10 / 1e6 * 10.0)
    assert client.calls[0][0]["role"] == "system"


def test_mismatch_then_valid_halves_confidence():
    topic_classifier, client = classifier(["Farming policy", AGRICULTURE])

    result = asyncio.run(topic_classifier.classify("message"))

    assert result.label == AGRICULTURE
    assert result.confidence == 0.5
    assert result.attempts == 2
    assert result.input_tokens == 2000


def test_two_mismatches_yield_unknown_but_keep_cost():
    topic_classifier, client = classifier(["Farming", "Still farming", AGRICULTURE])

    result = asyncio.run(topic_classifier.classify("message"))

    assert result.label == UNKNOWN
    assert result.confidence == 0.0
    assert not result.failed
    assert result.cost > 0
    assert len(client.calls) == 2


def test_api_errors_are_retried():
    topic_classifier, client = classifier([APIConnectionError(request=REQUEST), AGRICULTURE])

    result = asyncio.run(topic_classifier.classify("message"))

    assert result.label == AGRICULTURE
    assert result.confidence == 1.0
    assert result.attempts == 2


def test_exhausted_retries_yield_unknown_at_zero_cost():
    topic_classifier, client = classifier([APIConnectionError(request=REQUEST)], max_retries=3)

    result = asyncio.run(topic_classifier.classify("message"))

    assert result.label == UNKNOWN
    assert result.failed
    assert result.cost == 0.0
    assert len(client.calls) == 3


def test_authentication_error_is_fatal():
    response = httpx.Response(401, request=REQUEST)
    error = AuthenticationError("Incorrect API key", response=response, body=None)
    topic_classifier, client = classifier([error])

    with pytest.raises(AuthenticationError):
        asyncio.run(topic_classifier.classify("message"))
    assert len(client.calls) == 1


def test_classify_many_preserves_order_and_totals():
    answers = {"first": AGRICULTURE, "second": UNKNOWN, "third": AGRICULTURE}
    topic_classifier, client = classifier([lambda message: answers[message]], concurrency=2)
    seen = {}

    results = asyncio.run(
        topic_classifier.classify_many(
            [(1, "first"), (2, "second"), (3, "third")],
            on_result=lambda key, result: seen.setdefault(key, result.label),
        )
    )

    assert [key for key, _ in results] == [1, 2, 3]
    assert [result.label for _, result in results] == [AGRICULTURE, UNKNOWN, AGRICULTURE]
    assert seen == {1: AGRICULTURE, 2: UNKNOWN, 3: AGRICULTURE}
    assert topic_classifier.totals.requests == 3
    assert topic_classifier.totals.input_tokens == 3000


def test_classify_many_awaits_coroutine_callbacks():
    topic_classifier, client = classifier([AGRICULTURE], concurrency=2)
    seen = []

    async def on_result(key, result):
        await asyncio.sleep(0)
        seen.append((key, result.label))

    asyncio.run(topic_classifier.classify_many([(1, "first"), (2, "second")], on_result=on_result))

    assert sorted(seen) == [(1, AGRICULTURE), (2, AGRICULTURE)]


def test_long_messages_are_truncated():
    topic_classifier, client = classifier([AGRICULTURE], max_input_chars=100)

    asyncio.run(topic_classifier.classify("x" * 500))

    assert client.calls[0][-1]["content"] == "x" * 100


def test_minute_budget_waits_for_next_window():
    now = [120.0]
    slept = []

    async def sleep(seconds):
        slept.append(seconds)
        now[0] += seconds

    budget = MinuteBudget(max_rpm=2, max_tpm=1_000_000, ratio=1.0, clock=lambda: now[0], sleep=sleep)

    async def _run():
        for _ in range(3):
            await budget.acquire(10)

    asyncio.run(_run())

    assert slept == [60.0]
    assert budget.waits == 1
    assert budget.requests == 1


def test_minute_budget_token_limit_and_correction():
    now = [0.0]
    budget = MinuteBudget(max_rpm=100, max_tpm=1000, ratio=0.5, clock=lambda: now[0], sleep=no_sleep)

    asyncio.run(budget.acquire(400))
    budget.record(actual_tokens=100, estimated_tokens=400)

    assert budget.request_limit == 50
    assert budget.token_limit == 500
    assert budget.tokens == 100

    now[0] = 61.0
    budget.record(0)
    assert budget.tokens == 0

import asyncio

import httpx
import pytest

from eurowatch.config import HttpConfig
from eurowatch.exceptions import FetchError, SittingNotFound
from eurowatch.utils.http import RateLimitedClient

URL = "https://www.europarl.europa.eu/doceo/document/CRE-10-2024-01-17_EN.html"


def client_for(*outcomes, max_retries=3):
    """A client whose transport answers with ``outcomes`` in order, repeating the last."""
    calls = []

    def handler(request):
        outcome = outcomes[min(len(calls), len(outcomes) - 1)]
        calls.append(str(request.url))
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, text=f"status {outcome}")

    config = HttpConfig(max_retries=max_retries, retry_backoff=0, rate_limit_delay=0)
    return RateLimitedClient(config, transport=httpx.MockTransport(handler)), calls


def get_text(client):
    async def run():
        async with client:
            return await client.get_text(URL)

    return asyncio.run(run())


def test_server_errors_are_retried_until_success():
    client, calls = client_for(503, 502, 200)

    assert get_text(client) == "status 200"
    assert len(calls) == 3


def test_connection_errors_are_retried():
    client, calls = client_for(httpx.ConnectError("connection refused"), 200)

    assert get_text(client) == "status 200"
    assert len(calls) == 2


def test_not_found_is_never_retried():
    client, calls = client_for(404, 200)

    with pytest.raises(SittingNotFound) as excinfo:
        get_text(client)

    assert excinfo.value.url == URL
    assert len(calls) == 1


def test_client_errors_fail_without_retry():
    client, calls = client_for(403)

    with pytest.raises(FetchError, match="HTTP 403"):
        get_text(client)

    assert len(calls) == 1


def test_retries_are_bounded():
    client, calls = client_for(500, max_retries=3)

    with pytest.raises(FetchError, match="HTTP 500"):
        get_text(client)

    assert len(calls) == 3

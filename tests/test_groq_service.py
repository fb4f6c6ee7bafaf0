from unittest.mock import AsyncMock

import httpx
import pytest
from tenacity import wait_none


class FakeRateLimiter:
    def __init__(self):
        self.buckets = []

    async def acquire(self, identifier="default"):
        self.buckets.append(identifier)
        return True


def install_fake_client(monkeypatch, responses, captured):
    """Replace httpx.AsyncClient with a client answering from ``responses`` in order"""
    import codepuzzles.services.groq_service as groq_service_module

    class FakeAsyncClient:
        def __init__(self, timeout):
            self.timeout = timeout

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def post(self, url, json, headers):
            captured.append({"url": url, "json": json, "headers": headers})
            status_code, body = responses.pop(0)
            return httpx.Response(status_code, json=body, request=httpx.Request("POST", url))

    monkeypatch.setattr(groq_service_module.httpx, "AsyncClient", FakeAsyncClient)


def test_groq_service_sends_model_messages_and_json_mode(monkeypatch):
    import asyncio

    from codepuzzles.services.groq_service import GROQ_API_URL, GroqService

    captured = []
    install_fake_client(
        monkeypatch,
        [(200, {"choices": [{"message": {"content": "ok"}}], "usage": {"total_tokens": 3}})],
        captured,
    )
    limiter = FakeRateLimiter()

    svc = GroqService(rate_limiter=limiter)
    out = asyncio.run(svc.complete("system", "hello", model="m1", api_key="key-1", json_mode=True))

    assert out == "ok"
    request = captured[0]
    assert request["url"] == GROQ_API_URL
    assert request["json"]["model"] == "m1"
    assert request["json"]["messages"][0] == {"role": "system", "content": "system"}
    assert request["json"]["messages"][1] == {"role": "user", "content": "hello"}
    assert request["json"]["response_format"] == {"type": "json_object"}
    assert request["headers"]["Authorization"] == "Bearer key-1"
    assert len(limiter.buckets) == 1


@pytest.mark.asyncio
async def test_groq_service_rate_limit_is_not_retried(monkeypatch):
    from codepuzzles.services.groq_service import GroqService
    from codepuzzles.utils.exceptions import LLMRateLimitError

    captured = []
    install_fake_client(monkeypatch, [(429, {"error": "slow down"})], captured)

    svc = GroqService(rate_limiter=FakeRateLimiter())
    with pytest.raises(LLMRateLimitError) as exc_info:
        await svc.complete("system", "hello", model="m1", api_key="key-1")

    assert exc_info.value.model == "m1"
    assert len(captured) == 1


@pytest.mark.asyncio
async def test_groq_service_client_error_is_upstream_unavailable(monkeypatch):
    from codepuzzles.services.groq_service import GroqService
    from codepuzzles.utils.exceptions import LLMRateLimitError, UpstreamUnavailableError

    install_fake_client(monkeypatch, [(400, {"error": "bad model"})], [])

    svc = GroqService(rate_limiter=FakeRateLimiter())
    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await svc.complete("system", "hello", api_key="key-1")

    assert not isinstance(exc_info.value, LLMRateLimitError)


@pytest.mark.asyncio
async def test_groq_service_retries_server_errors(monkeypatch):
    from codepuzzles.services.groq_service import GroqService

    monkeypatch.setattr(GroqService._complete_with_retry.retry, "wait", wait_none())
    captured = []
    install_fake_client(
        monkeypatch,
        [(503, {}), (200, {"choices": [{"message": {"content": "recovered"}}]})],
        captured,
    )

    svc = GroqService(rate_limiter=FakeRateLimiter())
    assert await svc.complete("system", "hello", api_key="key-1") == "recovered"
    assert len(captured) == 2


@pytest.mark.asyncio
async def test_groq_service_gives_up_after_three_server_errors(monkeypatch):
    from codepuzzles.services.groq_service import GroqService
    from codepuzzles.utils.exceptions import UpstreamUnavailableError

    monkeypatch.setattr(GroqService._complete_with_retry.retry, "wait", wait_none())
    captured = []
    install_fake_client(monkeypatch, [(500, {}), (500, {}), (500, {})], captured)

    svc = GroqService(rate_limiter=FakeRateLimiter())
    with pytest.raises(UpstreamUnavailableError):
        await svc.complete("system", "hello", api_key="key-1")
    assert len(captured) == 3


@pytest.mark.asyncio
async def test_groq_service_requires_api_key(monkeypatch):
    import codepuzzles.services.groq_service as groq_service_module
    from codepuzzles.services.groq_service import GroqService

    monkeypatch.setattr(groq_service_module.settings, "groq_api_key", None)
    limiter = FakeRateLimiter()
    limiter.acquire = AsyncMock()

    svc = GroqService(rate_limiter=limiter)
    with pytest.raises(ValueError):
        await svc.complete("system", "hello")
    limiter.acquire.assert_not_called()

"""Tests for discovery/gateway.py."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from config.config_loader import GatewayConfig
from discovery.gateway import ModelGateway
from discovery.models import ModelResponse
from discovery.providers.base import ProviderError
from tests.conftest import MockProvider, fast_gateway

_MESSAGES = [{"role": "user", "content": "hello"}]


def _ok(content: str = "fine") -> ModelResponse:
    return ModelResponse("mock", "mock-model", content, 0.1, 5)


async def test_success_on_first_attempt():
    provider = MockProvider(response_content="hi")
    response = await fast_gateway(provider).generate(_MESSAGES, temperature=0.5, max_tokens=10)
    assert response.content == "hi"
    assert provider.complete.await_count == 1


async def test_retries_then_succeeds():
    provider = MockProvider()
    provider.complete = AsyncMock(side_effect=[ProviderError("mock", "503", 503), _ok("second time")])
    response = await fast_gateway(provider).generate(_MESSAGES, temperature=0.5, max_tokens=10)
    assert response.content == "second time"
    assert provider.complete.await_count == 2


async def test_raises_last_error_after_max_attempts():
    provider = MockProvider()
    provider.complete = AsyncMock(side_effect=[
        ProviderError("mock", "first"),
        ProviderError("mock", "second"),
        ProviderError("mock", "third"),
    ])
    with pytest.raises(ProviderError, match="third"):
        await fast_gateway(provider).generate(_MESSAGES, temperature=0.5, max_tokens=10)
    assert provider.complete.await_count == 3


async def test_timeout_counts_as_failed_attempt():
    async def hang(*args, **kwargs):
        await asyncio.sleep(10)

    provider = MockProvider()
    provider.complete = AsyncMock(side_effect=hang)
    gateway = fast_gateway(provider, max_attempts=2, attempt_timeout_sec=0.01)
    with pytest.raises(ProviderError, match="timed out"):
        await gateway.generate(_MESSAGES, temperature=0.5, max_tokens=10)
    assert provider.complete.await_count == 2


async def test_unexpected_exception_is_wrapped():
    provider = MockProvider()
    provider.complete = AsyncMock(side_effect=RuntimeError("socket closed"))
    with pytest.raises(ProviderError, match="socket closed"):
        await fast_gateway(provider, max_attempts=1).generate(_MESSAGES, temperature=0.5, max_tokens=10)


async def test_passes_arguments_through():
    provider = MockProvider()
    await fast_gateway(provider).generate(_MESSAGES, temperature=0.3, max_tokens=77, model="other")
    provider.complete.assert_awaited_once_with(_MESSAGES, 0.3, 77, "other")


def test_from_config():
    gateway = ModelGateway.from_config(MockProvider("deepseek"), GatewayConfig(max_attempts=5, retry_delay_sec=0.2))
    assert gateway.max_attempts == 5
    assert gateway.retry_delay_sec == 0.2
    assert gateway.name() == "deepseek"


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        ModelGateway(MockProvider(), max_attempts=0)

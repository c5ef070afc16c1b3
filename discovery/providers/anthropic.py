"""Anthropic Claude backend using the anthropic SDK with native async."""

import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from discovery.models import ModelResponse
from discovery.providers.base import AIProvider, ChatMessage, ProviderError, split_system, status_code_of

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Anthropic Claude backend via anthropic SDK."""

    def __init__(self, config: ModelConfig, api_key: str | None = None) -> None:
        self._config = config
        api_key = (api_key or os.environ.get(config.api_key_env, "")).strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(
        self,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
        model: str | None = None,
    ) -> ModelResponse:
        model = model or self._config.model
        system, turns = split_system(messages)
        start = time.monotonic()
        try:
            response = await self._client.messages.create(
                model=model,
                system=system,
                messages=turns,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}", status_code_of(exc)) from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in response.content or [] if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.debug("Anthropic %s: %.2fs, %s tokens", model, latency, token_count)

        return ModelResponse(
            provider=self._config.name,
            model=model,
            content="\n".join(text_blocks),
            latency_sec=latency,
            token_count=token_count,
        )

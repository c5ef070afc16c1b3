"""OpenAI backend using the openai SDK with native async."""

import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from discovery.models import ModelResponse
from discovery.providers.base import AIProvider, ChatMessage, ProviderError, status_code_of

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI backend via openai SDK."""

    def __init__(self, config: ModelConfig, api_key: str | None = None) -> None:
        self._config = config
        api_key = (api_key or os.environ.get(config.api_key_env, "")).strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

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
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_completion_tokens=max_tokens,
            )
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}", status_code_of(exc)) from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.debug("OpenAI %s: %.2fs, %s tokens", model, latency, token_count)

        return ModelResponse(
            provider=self._config.name,
            model=model,
            content=choice.message.content,
            latency_sec=latency,
            token_count=token_count,
        )

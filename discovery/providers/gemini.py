"""Gemini backend using the google-genai SDK with native async."""

import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from discovery.models import ModelResponse
from discovery.providers.base import AIProvider, ChatMessage, ProviderError, split_system, status_code_of

logger = logging.getLogger(__name__)


def _to_contents(turns: list[ChatMessage]) -> list[genai_types.Content]:
    return [
        genai_types.Content(
            role="model" if m["role"] == "assistant" else "user",
            parts=[genai_types.Part(text=m["content"])],
        )
        for m in turns
    ]


class GeminiProvider(AIProvider):
    """Google Gemini backend via google-genai SDK."""

    def __init__(self, config: ModelConfig, api_key: str | None = None) -> None:
        self._config = config
        api_key = (api_key or os.environ.get(config.api_key_env, "")).strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

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
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=_to_contents(turns),
                config=genai_types.GenerateContentConfig(
                    system_instruction=system or None,
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}", status_code_of(exc)) from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.debug("Gemini %s: %.2fs, %s tokens", model, latency, token_count)

        return ModelResponse(
            provider=self._config.name,
            model=model,
            content=response.text,
            latency_sec=latency,
            token_count=token_count,
        )

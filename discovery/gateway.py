"""Retrying, time-bounded front door to a single text-generation backend."""

import asyncio
import logging

from config.config_loader import GatewayConfig
from discovery.models import ModelResponse
from discovery.providers.base import AIProvider, ChatMessage, ProviderError

logger = logging.getLogger(__name__)


class ModelGateway:
    """Executes one generate request with a per-attempt deadline and bounded retry.

    Stateless across calls; safe to share between agents on the same backend.
    """

    def __init__(
        self,
        provider: AIProvider,
        max_attempts: int = 3,
        retry_delay_sec: float = 1.5,
        attempt_timeout_sec: float = 90.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._provider = provider
        self.max_attempts = max_attempts
        self.retry_delay_sec = retry_delay_sec
        self.attempt_timeout_sec = attempt_timeout_sec

    @classmethod
    def from_config(cls, provider: AIProvider, config: GatewayConfig) -> "ModelGateway":
        return cls(
            provider,
            max_attempts=config.max_attempts,
            retry_delay_sec=config.retry_delay_sec,
            attempt_timeout_sec=config.attempt_timeout_sec,
        )

    @property
    def provider(self) -> AIProvider:
        return self._provider

    def name(self) -> str:
        return self._provider.name()

    async def _attempt(
        self,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
        model: str | None,
    ) -> ModelResponse:
        try:
            return await asyncio.wait_for(
                self._provider.complete(messages, temperature, max_tokens, model),
                timeout=self.attempt_timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._provider.name(), f"Request timed out after {self.attempt_timeout_sec}s"
            ) from exc
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self._provider.name(), f"Unexpected error: {exc}") from exc

    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
        model: str | None = None,
    ) -> ModelResponse:
        """Send messages to the backend, retrying on any failure.

        Raises:
            ProviderError: The last error once all attempts are exhausted.
        """
        last_error: ProviderError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._attempt(messages, temperature, max_tokens, model)
            except ProviderError as exc:
                last_error = exc
                if attempt < self.max_attempts:
                    logger.warning(
                        "Backend %s failed (attempt %d/%d), retrying in %.1fs: %s",
                        self._provider.name(), attempt, self.max_attempts, self.retry_delay_sec, exc,
                    )
                    await asyncio.sleep(self.retry_delay_sec)

        logger.warning(
            "Backend %s failed after %d attempts: %s",
            self._provider.name(), self.max_attempts, last_error,
        )
        assert last_error is not None
        raise last_error

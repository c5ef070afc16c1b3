"""Abstract base for all text-generation backends."""

from abc import ABC, abstractmethod

from discovery.models import ModelResponse

ChatMessage = dict[str, str]   # {"role": "system" | "user" | "assistant", "content": ...}


class ProviderError(Exception):
    """Raised when a backend call fails."""

    def __init__(self, provider_name: str, message: str, status_code: int | None = None) -> None:
        self.provider_name = provider_name
        self.status_code = status_code
        prefix = f"[{provider_name}]" if status_code is None else f"[{provider_name} {status_code}]"
        super().__init__(f"{prefix} {message}")


def status_code_of(exc: BaseException) -> int | None:
    """Best-effort HTTP status from an SDK exception."""
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def split_system(messages: list[ChatMessage]) -> tuple[str, list[ChatMessage]]:
    """Separate system text from the conversational turns."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    turns = [m for m in messages if m["role"] != "system"]
    return system, turns


class AIProvider(ABC):
    """One backend adapter. Normalizes the SDK's response shape into ModelResponse."""

    @abstractmethod
    def name(self) -> str:
        """Return the short backend name (e.g. 'deepseek', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the default model identifier string."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
        model: str | None = None,
    ) -> ModelResponse:
        """Generate one reply for a list of role-tagged messages.

        Args:
            messages: Ordered {role, content} messages.
            temperature: Sampling temperature.
            max_tokens: Maximum output length.
            model: Optional model override; defaults to model_string().

        Returns:
            ModelResponse with the reply text and metadata.

        Raises:
            ProviderError: On API failure or empty response.
        """
        ...

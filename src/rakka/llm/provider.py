"""LLM provider abstraction shared by all backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

DEFAULT_TOKEN_ESTIMATE_DIVISOR = 4


@dataclass(frozen=True, slots=True)
class RequestConfig:
    """Per-request generation settings.

    ``user_key_override`` replaces the service-wide key for this single call
    only; providers never store it.
    """

    temperature: float = 0.7
    max_tokens: int = 1024
    system_prompt: str = ""
    use_search: bool = False
    user_key_override: str = ""


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Unified response from any LLM backend."""

    text: str
    tokens: int
    estimated: bool = False  # True when tokens came from estimate_tokens()


def estimate_tokens(text: str, divisor: int = DEFAULT_TOKEN_ESTIMATE_DIVISOR) -> int:
    """Approximate a token count from character length.

    Only used when a vendor omits usage metadata. The result is a rough
    heuristic, not a conversion factor any vendor guarantees.
    """
    if divisor < 1:
        raise ValueError("divisor must be at least 1")
    return len(text) // divisor


class LLMProvider(ABC):
    """Abstract base class for LLM backends."""

    def __init__(self, api_key: str, model: str, token_estimate_divisor: int = DEFAULT_TOKEN_ESTIMATE_DIVISOR):
        self._api_key = api_key
        self._model = model
        self._token_estimate_divisor = token_estimate_divisor

    @property
    @abstractmethod
    def provider_id(self) -> str:
        ...

    @property
    def model_name(self) -> str:
        return self._model

    def _api_key_for(self, config: RequestConfig) -> str:
        return config.user_key_override or self._api_key

    def _estimate(self, text: str) -> int:
        return estimate_tokens(text, self._token_estimate_divisor)

    @abstractmethod
    async def generate_text(self, prompt: str, config: RequestConfig) -> GenerationResult:
        """Generate a reply to a text prompt.

        Raises SafetyBlockedError when the vendor refuses, and
        ProviderTransportError for network, status or parse failures.
        """
        ...

    @abstractmethod
    async def generate_vision(
        self, prompt: str, image: bytes, media_type: str, config: RequestConfig
    ) -> GenerationResult:
        """Generate a reply to a prompt about an image."""
        ...

    async def aclose(self) -> None:
        """Release network resources held by the backend."""

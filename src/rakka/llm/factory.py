"""Build the configured LLM backend."""

from __future__ import annotations

import httpx

from rakka.config import LLMConfig
from rakka.llm.provider import LLMProvider

_OPENAI_COMPAT_URLS = {
    "openai": "https://api.openai.com/v1",
    "deepseek": "https://api.deepseek.com/v1",
    "ollama": "http://localhost:11434/v1",
}


def create_provider(config: LLMConfig, http_client: httpx.AsyncClient | None = None) -> LLMProvider:
    """Create an LLM provider based on ``config.provider``."""
    common = {
        "api_key": config.api_key,
        "model": config.model,
        "timeout": config.request_timeout,
        "token_estimate_divisor": config.token_estimate_divisor,
    }
    match config.provider:
        case "gemini":
            from rakka.llm.gemini import GeminiProvider

            return GeminiProvider(base_url=config.base_url, http_client=http_client, **common)
        case "openai" | "deepseek" | "ollama":
            from rakka.llm.openai_compat import OpenAICompatProvider

            return OpenAICompatProvider(
                base_url=config.base_url or _OPENAI_COMPAT_URLS[config.provider],
                provider_id=config.provider,
                http_client=http_client,
                **common,
            )
        case "anthropic":
            from rakka.llm.claude import AnthropicProvider

            return AnthropicProvider(base_url=config.base_url, **common)
        case _:
            raise ValueError(f"Unknown LLM provider: {config.provider}")

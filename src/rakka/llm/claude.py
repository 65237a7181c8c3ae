"""Anthropic Messages API backend using the official SDK."""

from __future__ import annotations

import base64
from typing import Any

import anthropic

from rakka.errors import ProviderTransportError, SafetyBlockedError
from rakka.llm.provider import GenerationResult, LLMProvider, RequestConfig
from rakka.log import get_logger, redact_secrets

logger = get_logger(__name__)

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 3}


class AnthropicProvider(LLMProvider):
    """Anthropic backend; personal keys are applied through a per-call client copy."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 60.0,
        token_estimate_divisor: int = 4,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        super().__init__(api_key, model, token_estimate_divisor)
        # No SDK retries: retrying is left to the user.
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
            timeout=timeout,
        )

    @property
    def provider_id(self) -> str:
        return "anthropic"

    async def generate_text(self, prompt: str, config: RequestConfig) -> GenerationResult:
        return await self._create([{"type": "text", "text": prompt}], prompt, config)

    async def generate_vision(
        self, prompt: str, image: bytes, media_type: str, config: RequestConfig
    ) -> GenerationResult:
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": media_type or "image/jpeg",
                    "data": base64.b64encode(image).decode(),
                },
            },
            {"type": "text", "text": prompt},
        ]
        return await self._create(content, prompt, config)

    async def _create(self, content: list[dict[str, Any]], prompt: str, config: RequestConfig) -> GenerationResult:
        client = self._client
        if config.user_key_override:
            client = client.with_options(api_key=config.user_key_override)

        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": config.max_tokens,
            "messages": [{"role": "user", "content": content}],
            "temperature": config.temperature,
        }
        if config.system_prompt:
            kwargs["system"] = config.system_prompt
        if config.use_search:
            kwargs["tools"] = [WEB_SEARCH_TOOL]

        logger.debug("anthropic_request", model=self._model, search=config.use_search)
        try:
            response = await client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            raise ProviderTransportError(
                f"API error {e.status_code}: {redact_secrets(str(e))}", status_code=e.status_code
            ) from None
        except anthropic.APIError as e:
            raise ProviderTransportError(f"API connection failed: {redact_secrets(str(e))}") from None

        if response.stop_reason == "refusal":
            raise SafetyBlockedError("refusal")

        text = "".join(b.text for b in response.content if b.type == "text").strip()
        if not text:
            raise ProviderTransportError("empty response from model")

        usage = response.usage
        total = (usage.input_tokens or 0) + (usage.output_tokens or 0) if usage else 0
        logger.debug("anthropic_response", model=self._model, tokens=total, stop_reason=response.stop_reason)
        if total > 0:
            return GenerationResult(text=text, tokens=total)
        return GenerationResult(
            text=text, tokens=self._estimate(config.system_prompt + "\n\n" + prompt), estimated=True
        )

    async def aclose(self) -> None:
        await self._client.close()

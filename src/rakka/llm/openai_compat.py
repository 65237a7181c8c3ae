"""OpenAI-compatible chat completions backend (OpenAI, DeepSeek, Ollama)."""

from __future__ import annotations

import base64
from typing import Any

import httpx

from rakka.errors import ProviderTransportError, SafetyBlockedError
from rakka.llm.provider import GenerationResult, LLMProvider, RequestConfig
from rakka.log import get_logger, redact_secrets

logger = get_logger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenAICompatProvider(LLMProvider):
    """Chat completions over httpx with a bearer key (omitted when empty)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 60.0,
        token_estimate_divisor: int = 4,
        provider_id: str = "openai",
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(api_key, model, token_estimate_divisor)
        self._provider_id = provider_id
        # Accept both .../v1 and .../v1/chat/completions
        base = (base_url or OPENAI_BASE_URL).rstrip("/")
        self._chat_url = base if base.endswith("/chat/completions") else base + "/chat/completions"
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def provider_id(self) -> str:
        return self._provider_id

    async def generate_text(self, prompt: str, config: RequestConfig) -> GenerationResult:
        return await self._chat(prompt, prompt, config)

    async def generate_vision(
        self, prompt: str, image: bytes, media_type: str, config: RequestConfig
    ) -> GenerationResult:
        data_url = f"data:{media_type or 'image/jpeg'};base64,{base64.b64encode(image).decode()}"
        content = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": data_url}},
        ]
        return await self._chat(content, prompt, config)

    async def _chat(self, content: str | list[dict[str, Any]], prompt: str, config: RequestConfig) -> GenerationResult:
        messages: list[dict[str, Any]] = []
        if config.system_prompt:
            messages.append({"role": "system", "content": config.system_prompt})
        messages.append({"role": "user", "content": content})

        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        if config.use_search:
            payload["web_search_options"] = {}

        headers = {"Content-Type": "application/json"}
        api_key = self._api_key_for(config)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        logger.debug("openai_request", provider=self._provider_id, model=self._model, search=config.use_search)
        try:
            resp = await self._client.post(self._chat_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderTransportError(f"API connection failed: {redact_secrets(str(e))}") from None

        if resp.status_code != 200:
            raise ProviderTransportError(
                f"API error {resp.status_code}: {redact_secrets(resp.text[:500])}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderTransportError(f"failed to parse response: {e}") from None

        return self._parse_response(data, config.system_prompt + "\n\n" + prompt)

    def _parse_response(self, data: dict[str, Any], full_prompt: str) -> GenerationResult:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderTransportError("empty response from model")

        choice = choices[0]
        message = choice.get("message") or {}
        if choice.get("finish_reason") == "content_filter":
            raise SafetyBlockedError("content_filter")
        if message.get("refusal"):
            raise SafetyBlockedError("refusal")

        text = message.get("content") or ""
        if isinstance(text, list):
            text = "".join(p.get("text", "") for p in text if isinstance(p, dict))
        text = text.strip()
        if not text:
            raise ProviderTransportError("empty response from model")

        total = (data.get("usage") or {}).get("total_tokens") or 0
        if total > 0:
            return GenerationResult(text=text, tokens=total)
        return GenerationResult(text=text, tokens=self._estimate(full_prompt), estimated=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

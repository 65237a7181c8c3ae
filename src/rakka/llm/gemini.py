"""Google Gemini backend over the generateContent REST endpoint."""

from __future__ import annotations

import base64
from typing import Any

import httpx

from rakka.errors import ProviderTransportError, SafetyBlockedError
from rakka.llm.provider import GenerationResult, LLMProvider, RequestConfig
from rakka.log import get_logger, redact_secrets

logger = get_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_SAFETY_FINISH_REASONS = frozenset(
    {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII", "IMAGE_SAFETY"}
)


class GeminiProvider(LLMProvider):
    """Gemini via httpx. The API key travels in the ``key`` query parameter."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 60.0,
        token_estimate_divisor: int = 4,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(api_key, model, token_estimate_divisor)
        self._base_url = (base_url or GEMINI_BASE_URL).rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def provider_id(self) -> str:
        return "gemini"

    async def generate_text(self, prompt: str, config: RequestConfig) -> GenerationResult:
        return await self._generate(prompt, None, "", config)

    async def generate_vision(
        self, prompt: str, image: bytes, media_type: str, config: RequestConfig
    ) -> GenerationResult:
        return await self._generate(prompt, image, media_type, config)

    def _build_payload(
        self, full_prompt: str, image: bytes | None, media_type: str, config: RequestConfig
    ) -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        if image:
            parts.append(
                {
                    "inlineData": {
                        "mimeType": media_type or "image/jpeg",
                        "data": base64.b64encode(image).decode(),
                    }
                }
            )
        parts.append({"text": full_prompt})

        payload: dict[str, Any] = {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "temperature": config.temperature,
                "maxOutputTokens": config.max_tokens,
            },
        }
        if config.use_search:
            payload["tools"] = [{"googleSearch": {}}]
        return payload

    async def _generate(
        self, prompt: str, image: bytes | None, media_type: str, config: RequestConfig
    ) -> GenerationResult:
        full_prompt = f"{config.system_prompt}\n\n{prompt}" if config.system_prompt else prompt
        payload = self._build_payload(full_prompt, image, media_type, config)
        url = f"{self._base_url}/models/{self._model}:generateContent"

        logger.debug("gemini_request", model=self._model, search=config.use_search, vision=bool(image))
        try:
            resp = await self._client.post(url, params={"key": self._api_key_for(config)}, json=payload)
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

        return self._parse_response(data, full_prompt)

    def _parse_response(self, data: dict[str, Any], full_prompt: str) -> GenerationResult:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        candidates = data.get("candidates") or []
        if not candidates:
            if block_reason:
                raise SafetyBlockedError(block_reason)
            raise ProviderTransportError("no response candidates")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        texts = [p["text"] for p in parts if isinstance(p, dict) and p.get("text")]
        if not texts:
            finish_reason = candidate.get("finishReason") or ""
            if finish_reason in _SAFETY_FINISH_REASONS:
                raise SafetyBlockedError(finish_reason)
            raise ProviderTransportError(f"empty response from model ({finish_reason or 'no finish reason'})")

        total = (data.get("usageMetadata") or {}).get("totalTokenCount") or 0
        if total > 0:
            return GenerationResult(text="".join(texts), tokens=total)
        return GenerationResult(text="".join(texts), tokens=self._estimate(full_prompt), estimated=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

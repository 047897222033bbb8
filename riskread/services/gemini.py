from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Protocol

from google import genai  # type: ignore
from google.genai import errors as genai_errors  # type: ignore
from google.genai import types  # type: ignore

from ..config import Settings
from ..exceptions import GatewayError, GatewayErrorKind

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    text: str
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str = "STOP"


class TextGenerator(Protocol):
    """The provider contract the gateway depends on."""

    async def generate(
            self, prompt: str, temperature: float | None = None, max_output_tokens: int | None = None
    ) -> GenerationResult: ...

    def stream(
            self, prompt: str, temperature: float | None = None, max_output_tokens: int | None = None
    ) -> AsyncIterator[str]: ...


def classify_provider_error(exc: BaseException) -> GatewayError:
    """Map a provider failure onto the gateway's error kinds."""
    if isinstance(exc, GatewayError):
        return exc

    message = str(exc) or exc.__class__.__name__
    upper = message.upper()
    code = getattr(exc, "code", None)
    status = str(getattr(exc, "status", "") or "").upper()

    if code in (401, 403) or "API_KEY_INVALID" in upper or "PERMISSION_DENIED" in status:
        kind = GatewayErrorKind.INVALID_CREDENTIAL
    elif "QUOTA" in upper:
        kind = GatewayErrorKind.QUOTA_EXCEEDED
    elif code == 429 or "RESOURCE_EXHAUSTED" in status or "RATE_LIMIT" in upper:
        kind = GatewayErrorKind.RATE_LIMITED
    else:
        kind = GatewayErrorKind.UNKNOWN
    return GatewayError(kind, message)


class GeminiClient:
    def __init__(self, settings: Settings) -> None:
        api_key = settings.gemini_api_key
        if not api_key:
            raise GatewayError(GatewayErrorKind.INVALID_CREDENTIAL, "GEMINI_API_KEY is not configured")
        self.model = settings.gemini_model
        self.temperature = settings.gemini_temperature
        self.max_output_tokens = settings.gemini_max_output_tokens
        self.client = genai.Client(api_key=api_key)

    def _build_config(
            self, temperature: float | None, max_output_tokens: int | None
    ) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=self.temperature if temperature is None else temperature,
            max_output_tokens=max_output_tokens or self.max_output_tokens,
        )

    @staticmethod
    def _contents(prompt: str) -> list[types.Content]:
        return [types.Content(role="user", parts=[types.Part.from_text(text=prompt)])]

    async def generate(
            self, prompt: str, temperature: float | None = None, max_output_tokens: int | None = None
    ) -> GenerationResult:
        logger.info("Gemini request", extra={"model": self.model, "prompt_chars": len(prompt)})
        try:
            result = await self.client.aio.models.generate_content(
                model=self.model,
                config=self._build_config(temperature, max_output_tokens),
                contents=self._contents(prompt),
            )
        except genai_errors.APIError as exc:
            raise classify_provider_error(exc) from exc

        usage_meta = result.usage_metadata
        usage = {
            "prompt_tokens": getattr(usage_meta, "prompt_token_count", None) or 0,
            "completion_tokens": getattr(usage_meta, "candidates_token_count", None) or 0,
            "total_tokens": getattr(usage_meta, "total_token_count", None) or 0,
        }
        finish_reason = "STOP"
        if result.candidates and result.candidates[0].finish_reason is not None:
            finish_reason = str(result.candidates[0].finish_reason)
        text = result.text or ""
        logger.info(
            "Gemini response", extra={"response_chars": len(text), "finish_reason": finish_reason, **usage}
        )
        return GenerationResult(text=text, usage=usage, finish_reason=finish_reason)

    async def stream(
            self, prompt: str, temperature: float | None = None, max_output_tokens: int | None = None
    ) -> AsyncIterator[str]:
        try:
            chunks = await self.client.aio.models.generate_content_stream(
                model=self.model,
                config=self._build_config(temperature, max_output_tokens),
                contents=self._contents(prompt),
            )
            async for chunk in chunks:
                if chunk.text:
                    yield chunk.text
        except genai_errors.APIError as exc:
            raise classify_provider_error(exc) from exc

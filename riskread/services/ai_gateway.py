"""Gateway between the pipeline and the text-generation provider.

The provider is treated as unreliable and its output as untrusted: every
answer goes through :func:`extract_json_object` and then a pydantic decode
before anything downstream sees it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

from pydantic import BaseModel, ValidationError

from ..exceptions import GatewayError, GatewayErrorKind
from ..models.findings import (
    ClarificationQuestions,
    FieldExtraction,
    QuickInsights,
    StructuredAnalysis,
)
from .gemini import TextGenerator, classify_provider_error
from .prompt_builder import AnalysisMode, build_prompt

logger = logging.getLogger(__name__)

MODE_SCHEMAS: dict[AnalysisMode, type[BaseModel]] = {
    AnalysisMode.QUICK: QuickInsights,
    AnalysisMode.DETAILED: StructuredAnalysis,
    AnalysisMode.EXTRACTION: FieldExtraction,
    AnalysisMode.QUESTIONS: ClarificationQuestions,
}

# Collections whose items carry a result-scoped numeric id
_NUMBERED = ("insights", "recommendations")


def extract_json_object(raw: str) -> dict[str, Any]:
    """Parse the span from the first ``{`` to the last ``}`` of ``raw``.

    Prose the model wraps around the object is discarded.
    """
    start = raw.find("{") if raw else -1
    end = raw.rfind("}") if raw else -1
    if start == -1 or end == -1 or start >= end:
        raise GatewayError(GatewayErrorKind.PARSE_ERROR, "No valid JSON object found in response")
    try:
        payload = json.loads(raw[start:end + 1])
    except json.JSONDecodeError as exc:
        raise GatewayError(
            GatewayErrorKind.PARSE_ERROR, f"Failed to parse AI response: {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise GatewayError(GatewayErrorKind.PARSE_ERROR, "AI response is not a JSON object")
    return payload


def _number_items(payload: dict[str, Any]) -> dict[str, Any]:
    payload = dict(payload)
    for key in _NUMBERED:
        items = payload.get(key)
        if isinstance(items, list):
            payload[key] = [
                {**item, "id": index} if isinstance(item, dict) and item.get("id") is None else item
                for index, item in enumerate(items, 1)
            ]
    return payload


def decode_payload(payload: dict[str, Any], schema: type[BaseModel]) -> BaseModel:
    try:
        return schema.model_validate(_number_items(payload))
    except ValidationError as exc:
        raise GatewayError(
            GatewayErrorKind.SCHEMA_VIOLATION,
            f"AI response does not match the expected shape: {exc.error_count()} error(s); "
            f"first: {exc.errors()[0]['loc']} {exc.errors()[0]['msg']}",
        ) from exc


def decode_structured(payload: dict[str, Any]) -> StructuredAnalysis:
    return decode_payload(payload, StructuredAnalysis)  # type: ignore[return-value]


class AIGateway:
    def __init__(
            self,
            provider: TextGenerator | None,
            temperature: float = 0.1,
            max_output_tokens: int = 8192,
    ) -> None:
        self.provider = provider
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    @property
    def is_configured(self) -> bool:
        return self.provider is not None

    def _require_provider(self) -> TextGenerator:
        if self.provider is None:
            raise GatewayError(GatewayErrorKind.INVALID_CREDENTIAL, "Gemini AI is not configured")
        return self.provider

    async def generate_structured(self, prompt: str) -> dict[str, Any]:
        provider = self._require_provider()
        try:
            response = await provider.generate(
                prompt, temperature=self.temperature, max_output_tokens=self.max_output_tokens
            )
        except GatewayError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise classify_provider_error(exc) from exc
        return extract_json_object(response.text)

    async def assess(
            self, document_text: str, file_name: str | None = None
    ) -> tuple[StructuredAnalysis, dict[str, Any]]:
        """Run the full risk assessment; returns the decoded output and the raw payload."""
        prompt = build_prompt(AnalysisMode.DETAILED, document_text, file_name=file_name)
        payload = await self.generate_structured(prompt)
        structured = decode_structured(payload)
        logger.info(
            "AI assessment decoded",
            extra={
                "insights": len(structured.insights),
                "fields": len(structured.extracted_fields),
                "questions": len(structured.questions),
            },
        )
        return structured, payload

    async def analyze(
            self,
            mode: AnalysisMode | str,
            document_text: str,
            fields: list[str] | None = None,
    ) -> BaseModel:
        mode = AnalysisMode(mode)
        prompt = build_prompt(mode, document_text, fields=fields)
        payload = await self.generate_structured(prompt)
        return decode_payload(payload, MODE_SCHEMAS[mode])

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        provider = self._require_provider()
        try:
            async for chunk in provider.stream(
                    prompt, temperature=self.temperature, max_output_tokens=self.max_output_tokens
            ):
                yield chunk
        except GatewayError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise classify_provider_error(exc) from exc

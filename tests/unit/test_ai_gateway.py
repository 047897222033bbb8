"""Tests for the AI gateway: response parsing, decoding and error mapping."""

import pytest

from conftest import FakeGenerator, assessment_json, assessment_payload
from riskread.exceptions import GatewayError, GatewayErrorKind
from riskread.models.findings import FieldExtraction, QuickInsights
from riskread.services.ai_gateway import AIGateway, decode_structured, extract_json_object
from riskread.services.gemini import classify_provider_error
from riskread.services.prompt_builder import JSON_ONLY_INSTRUCTION, AnalysisMode, build_prompt


class ProviderError(Exception):
    def __init__(self, message: str, code: int | None = None, status: str | None = None):
        super().__init__(message)
        self.code = code
        self.status = status


class TestExtractJsonObject:
    def test_prose_around_object_is_discarded(self):
        raw = (
            "Sure! Here is the analysis you asked for:\n"
            + assessment_json()
            + "\nLet me know if you need anything else."
        )

        payload = extract_json_object(raw)

        assert payload == assessment_payload()

    def test_markdown_fence(self):
        raw = '```json\n{"insights": []}\n```'
        assert extract_json_object(raw) == {"insights": []}

    @pytest.mark.parametrize("raw", ["", "no json here", "} backwards {"])
    def test_missing_object(self, raw):
        with pytest.raises(GatewayError) as exc_info:
            extract_json_object(raw)
        assert exc_info.value.kind is GatewayErrorKind.PARSE_ERROR

    def test_invalid_json_span(self):
        with pytest.raises(GatewayError) as exc_info:
            extract_json_object('Result: {"insights": [,]}')
        assert exc_info.value.kind is GatewayErrorKind.PARSE_ERROR


class TestDecodeStructured:
    def test_percentage_confidences_are_normalized(self):
        payload = assessment_payload(
            insights=[
                {"id": 1, "text": "a", "category": "risk", "confidence": 85},
                {"id": 2, "text": "b", "category": "strength", "confidence": 0.4},
                {"id": 3, "text": "c", "category": "weakness", "confidence": 150},
                {"id": 4, "text": "d", "category": "opportunity", "confidence": -0.2},
            ],
            extracted_fields=[{"name": "rent", "value": 1200, "confidence": 90}],
        )

        decoded = decode_structured(payload)

        assert [i.confidence for i in decoded.insights] == [0.85, 0.4, 1.0, 0.0]
        assert decoded.extracted_fields[0].confidence == 0.9
        assert decoded.extracted_fields[0].value == "1200"

    def test_missing_and_null_collections_are_empty(self):
        decoded = decode_structured({"insights": None})

        assert decoded.insights == []
        assert decoded.recommendations == []
        assert decoded.questions == []

    def test_items_without_ids_are_numbered(self):
        decoded = decode_structured(
            {
                "insights": [
                    {"text": "first", "category": "risk"},
                    {"id": None, "text": "second", "category": "Risk", "severity": "HIGH"},
                ]
            }
        )

        assert [i.id for i in decoded.insights] == [1, 2]
        assert decoded.insights[1].category == "risk"
        assert decoded.insights[1].severity == "high"

    def test_unknown_category_is_a_schema_violation(self):
        payload = assessment_payload(insights=[{"id": 1, "text": "x", "category": "gossip"}])
        with pytest.raises(GatewayError) as exc_info:
            decode_structured(payload)
        assert exc_info.value.kind is GatewayErrorKind.SCHEMA_VIOLATION

    def test_wrong_collection_type_is_a_schema_violation(self):
        with pytest.raises(GatewayError) as exc_info:
            decode_structured({"questions": "none"})
        assert exc_info.value.kind is GatewayErrorKind.SCHEMA_VIOLATION


class TestClassifyProviderError:
    @pytest.mark.parametrize(
        "exc, kind",
        [
            (ProviderError("API key not valid. Reason: API_KEY_INVALID", code=400, status="INVALID_ARGUMENT"), GatewayErrorKind.INVALID_CREDENTIAL),
            (ProviderError("forbidden", code=403), GatewayErrorKind.INVALID_CREDENTIAL),
            (ProviderError("Quota exceeded for metric", code=429, status="RESOURCE_EXHAUSTED"), GatewayErrorKind.QUOTA_EXCEEDED),
            (ProviderError("Too many requests", code=429), GatewayErrorKind.RATE_LIMITED),
            (ProviderError("backend exploded", code=500), GatewayErrorKind.UNKNOWN),
            (RuntimeError("socket closed"), GatewayErrorKind.UNKNOWN),
        ],
    )
    def test_kinds(self, exc, kind):
        assert classify_provider_error(exc).kind is kind

    def test_gateway_errors_pass_through(self):
        original = GatewayError(GatewayErrorKind.PARSE_ERROR, "bad")
        assert classify_provider_error(original) is original


class TestPrompts:
    @pytest.mark.parametrize("mode", list(AnalysisMode))
    def test_every_mode_ends_with_json_only_instruction(self, mode):
        prompt = build_prompt(mode, "The lessee {shall} pay.")
        assert prompt.endswith(JSON_ONLY_INSTRUCTION)
        assert "The lessee {shall} pay." in prompt

    def test_extraction_names_requested_fields(self):
        prompt = build_prompt(AnalysisMode.EXTRACTION, "text", fields=["rent", "term"])
        assert "rent, term" in prompt


class TestAIGateway:
    @pytest.mark.asyncio
    async def test_assess_returns_decoded_and_raw(self):
        generator = FakeGenerator(responses=["Here you go: " + assessment_json() + " Thanks."])
        gateway = AIGateway(generator)

        structured, raw = await gateway.assess("Lease text", file_name="lease.pdf")

        assert structured.insights[0].severity == "high"
        assert raw == assessment_payload()
        assert "lease.pdf" in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_unconfigured_gateway(self):
        gateway = AIGateway(None)
        assert not gateway.is_configured
        with pytest.raises(GatewayError) as exc_info:
            await gateway.assess("text")
        assert exc_info.value.kind is GatewayErrorKind.INVALID_CREDENTIAL
        assert exc_info.value.message == "Gemini AI is not configured"

    @pytest.mark.asyncio
    async def test_provider_failure_is_classified(self):
        gateway = AIGateway(FakeGenerator(error=ProviderError("Too many requests", code=429)))
        with pytest.raises(GatewayError) as exc_info:
            await gateway.assess("text")
        assert exc_info.value.kind is GatewayErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_analyze_modes_use_their_own_shape(self):
        generator = FakeGenerator(
            responses=[
                '{"insights": [{"text": "short", "category": "strength", "confidence": 70}]}',
                '{"extracted_fields": [{"name": "rent", "value": "1200", "confidence": 0.8}]}',
            ]
        )
        gateway = AIGateway(generator)

        quick = await gateway.analyze("quick", "text")
        fields = await gateway.analyze(AnalysisMode.EXTRACTION, "text", fields=["rent"])

        assert isinstance(quick, QuickInsights)
        assert quick.insights[0].confidence == 0.7
        assert isinstance(fields, FieldExtraction)
        assert fields.extracted_fields[0].name == "rent"

    @pytest.mark.asyncio
    async def test_stream_yields_chunks(self):
        gateway = AIGateway(FakeGenerator(chunks=["Hel", "lo"]))
        chunks = [chunk async for chunk in gateway.stream("Say hello")]
        assert chunks == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_stream_error_is_classified(self):
        gateway = AIGateway(FakeGenerator(chunks=["partial"], error=ProviderError("quota exceeded", code=429)))
        received = []
        with pytest.raises(GatewayError) as exc_info:
            async for chunk in gateway.stream("prompt"):
                received.append(chunk)
        assert received == ["partial"]
        assert exc_info.value.kind is GatewayErrorKind.QUOTA_EXCEEDED

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from ...exceptions import GatewayError, GatewayErrorKind
from ...schemas.analysis import AIAnalyzeOut, AIAnalyzeRequest, StreamRequest
from ...services.prompt_builder import AnalysisMode
from ..deps import GatewayDep

router = APIRouter(prefix="/ai", tags=["ai"])

logger = logging.getLogger(__name__)

GATEWAY_STATUS: dict[GatewayErrorKind, int] = {
    GatewayErrorKind.INVALID_CREDENTIAL: 401,
    GatewayErrorKind.QUOTA_EXCEEDED: 429,
    GatewayErrorKind.RATE_LIMITED: 429,
}

GATEWAY_DETAIL: dict[GatewayErrorKind, str] = {
    GatewayErrorKind.INVALID_CREDENTIAL: "Invalid API key configuration",
    GatewayErrorKind.QUOTA_EXCEEDED: "API quota exceeded. Please try again later.",
    GatewayErrorKind.RATE_LIMITED: "Rate limit exceeded. Please try again later.",
}


def gateway_http_error(exc: GatewayError) -> HTTPException:
    return HTTPException(
        status_code=GATEWAY_STATUS.get(exc.kind, 502),
        detail=GATEWAY_DETAIL.get(exc.kind, f"AI analysis failed: {exc.message}"),
    )


@router.post("/analyze", response_model=AIAnalyzeOut)
async def analyze_text(body: AIAnalyzeRequest, gateway: GatewayDep) -> AIAnalyzeOut:
    fields = body.options.fields if body.analysis_type is AnalysisMode.EXTRACTION else None
    try:
        decoded = await gateway.analyze(body.analysis_type, body.document_text, fields=fields)
    except GatewayError as exc:
        logger.warning(f"AI analyze failed ({exc.kind.value}): {exc.message}")
        raise gateway_http_error(exc) from exc
    return AIAnalyzeOut(analysis_type=body.analysis_type, result=decoded.model_dump())


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@router.post("/stream")
async def stream_text(body: StreamRequest, gateway: GatewayDep) -> StreamingResponse:
    if not gateway.is_configured:
        raise gateway_http_error(
            GatewayError(GatewayErrorKind.INVALID_CREDENTIAL, "Gemini AI is not configured")
        )

    async def events() -> AsyncIterator[str]:
        try:
            async for chunk in gateway.stream(body.prompt):
                yield _sse({"type": "content", "content": chunk})
        except GatewayError as exc:
            # headers are already sent; report in-band
            logger.warning(f"AI stream failed ({exc.kind.value}): {exc.message}")
            yield _sse({"type": "error", "error": exc.kind.value, "message": exc.message})
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )

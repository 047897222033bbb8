from __future__ import annotations

from fastapi import APIRouter

from ...schemas.analysis import HealthOut
from ..deps import GatewayDep

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthOut)
async def health(gateway: GatewayDep) -> HealthOut:
    return HealthOut(status="ok", gemini_configured=gateway.is_configured)

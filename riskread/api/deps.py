from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from ..config import Settings
from ..services.ai_gateway import AIGateway
from ..services.analysis_service import AnalysisService
from ..services.storage import FileStorage


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_analysis_service(request: Request) -> AnalysisService:
    return request.app.state.analysis_service


def get_gateway(request: Request) -> AIGateway:
    return request.app.state.gateway


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
ServiceDep = Annotated[AnalysisService, Depends(get_analysis_service)]
GatewayDep = Annotated[AIGateway, Depends(get_gateway)]
StorageDep = Annotated[FileStorage, Depends(get_storage)]

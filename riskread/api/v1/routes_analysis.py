from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from ...exceptions import InvalidRequestError, NotFoundError
from ...models.analysis import Analysis, AnalysisResult
from ...schemas.analysis import (
    AnalysisCreated,
    AnalysisListOut,
    AnalysisStatusOut,
    AnalysisWithResult,
    CreateAnalysisRequest,
    DeletedOut,
    UpdateAnalysisRequest,
)
from ..deps import ServiceDep, SettingsDep

router = APIRouter(prefix="/analysis", tags=["analysis"])


logger = logging.getLogger(__name__)


def _not_found(exc: NotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


@router.post("", response_model=AnalysisCreated, status_code=status.HTTP_201_CREATED)
async def create_analysis(
    body: CreateAnalysisRequest, service: ServiceDep, settings: SettingsDep
) -> AnalysisCreated:
    if body.file_size > settings.max_upload_bytes:
        raise HTTPException(
            status_code=422,
            detail=f"File size must be less than {settings.max_upload_bytes // (1024 * 1024)}MB",
        )
    try:
        analysis = service.create_analysis(
            file_url=body.file_url,
            file_name=body.file_name,
            file_type=body.file_type,
            file_size=body.file_size,
        )
    except InvalidRequestError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return AnalysisCreated(analysis_id=analysis.id, analysis=analysis)


@router.get("", response_model=AnalysisListOut)
async def list_analyses(
    service: ServiceDep,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: str | None = Query(None, alias="status"),
) -> AnalysisListOut:
    items, total = service.list(status=status_filter, limit=limit, offset=offset)
    return AnalysisListOut(
        analyses=items,
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + limit < total,
    )


@router.get("/{analysis_id}", response_model=AnalysisWithResult)
async def get_analysis(analysis_id: str, service: ServiceDep) -> AnalysisWithResult:
    try:
        analysis, result = service.get(analysis_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return AnalysisWithResult(analysis=analysis, result=result)


@router.get("/{analysis_id}/status", response_model=AnalysisStatusOut)
async def get_analysis_status(analysis_id: str, service: ServiceDep) -> AnalysisStatusOut:
    try:
        view = service.status(analysis_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return AnalysisStatusOut(**vars(view))


@router.get("/{analysis_id}/results", response_model=AnalysisResult)
async def get_analysis_results(analysis_id: str, service: ServiceDep) -> AnalysisResult:
    try:
        return service.get_result(analysis_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Analysis results not found") from exc


@router.post("/{analysis_id}/reprocess", response_model=Analysis)
async def reprocess_analysis(analysis_id: str, service: ServiceDep) -> Analysis:
    try:
        return service.reprocess(analysis_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc


@router.put("/{analysis_id}", response_model=Analysis)
async def update_analysis(
    analysis_id: str, body: UpdateAnalysisRequest, service: ServiceDep
) -> Analysis:
    try:
        return service.reprocess(analysis_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc


@router.delete("/{analysis_id}", response_model=DeletedOut)
async def delete_analysis(analysis_id: str, service: ServiceDep) -> DeletedOut:
    try:
        service.delete(analysis_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    logger.info(f"Deleted analysis {analysis_id}")
    return DeletedOut(message="Analysis deleted successfully")

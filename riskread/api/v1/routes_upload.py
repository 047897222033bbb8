from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from ...exceptions import InvalidRequestError, StorageError
from ...schemas.analysis import DeletedOut, DeleteUploadRequest, UploadOut
from ...services.storage import validate_upload
from ..deps import SettingsDep, StorageDep

router = APIRouter(prefix="/upload", tags=["upload"])

logger = logging.getLogger(__name__)


@router.post("", response_model=UploadOut, status_code=status.HTTP_200_OK)
async def upload_file(
    file: Annotated[UploadFile, File(description="Document to analyze")],
    storage: StorageDep,
    settings: SettingsDep,
) -> UploadOut:
    content = await file.read()
    original_name = file.filename or ""
    try:
        validate_upload(
            original_name,
            len(content),
            settings.max_upload_bytes,
            settings.supported_file_types,
        )
        stored = storage.save(content, original_name)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        logger.error(f"Upload failed for {original_name}: {exc}")
        raise HTTPException(status_code=500, detail="Failed to upload file") from exc

    return UploadOut(
        file_url=stored.file_url,
        file_name=stored.file_name,
        original_name=original_name,
        file_size=stored.file_size,
        file_type=stored.file_type,
    )


@router.delete("", response_model=DeletedOut)
async def delete_upload(body: DeleteUploadRequest, storage: StorageDep) -> DeletedOut:
    location = f"{storage.public_prefix}/{body.file_name}"
    deleted = await storage.delete(location)
    return DeletedOut(
        success=deleted,
        message="File deleted successfully" if deleted else "File not found",
    )

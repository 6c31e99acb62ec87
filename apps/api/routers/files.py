"""Serve locally stored images (reference photos, frames, face crops)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse, RedirectResponse

from apps.api.services.storage import StorageError, StorageService, infer_mime

LOGGER = logging.getLogger(__name__)
router = APIRouter()
storage_service = StorageService()


@router.get("/files/{key:path}")
def get_file(key: str):
    try:
        if storage_service.backend != "local":
            return RedirectResponse(storage_service.url(key))
        path = storage_service.local_path(key)
    except StorageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"File {key} not found")
    return FileResponse(path, media_type=infer_mime(key))


__all__ = ["router"]

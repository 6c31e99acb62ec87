"""Footage analysis endpoints and dashboard counters."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from apps.api import config
from apps.api.services.analysis import AnalysisService
from apps.api.services.tables import new_id
from py_missingwatch.layout import get_path

LOGGER = logging.getLogger(__name__)
router = APIRouter()
analysis_service = AnalysisService()

_COPY_CHUNK = 1024 * 1024


class FaceBoxPayload(BaseModel):
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class DetectedFacePayload(BaseModel):
    face_image: str = Field(..., description="Base64 JPEG of the cropped face")
    box: FaceBoxPayload = Field(default_factory=FaceBoxPayload)
    confidence: float = 0.0


class CompareFacesRequest(BaseModel):
    video_frame_base64: str = Field(..., min_length=1)
    video_filename: Optional[str] = None
    location: Optional[str] = None
    detected_faces: Optional[List[DetectedFacePayload]] = None


def _save_upload(video: UploadFile) -> Path:
    """Stream the upload into the uploads dir, enforcing the size cap."""
    suffix = Path(video.filename or "").suffix.lower()
    if suffix not in config.ALLOWED_VIDEO_SUFFIXES:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported video type '{suffix or 'unknown'}'. Use one of {sorted(config.ALLOWED_VIDEO_SUFFIXES)}.",
        )
    max_bytes = config.VIDEO_MAX_MB * 1024 * 1024
    target = get_path("uploads") / f"{new_id()}{suffix}"
    target.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with target.open("wb") as handle:
        while True:
            chunk = video.file.read(_COPY_CHUNK)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                handle.close()
                target.unlink(missing_ok=True)
                raise HTTPException(status_code=413, detail=f"Video too large (max {config.VIDEO_MAX_MB}MB)")
            handle.write(chunk)
    if written == 0:
        target.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail="Video upload is empty")
    return target


@router.post("/analysis/video")
def analyze_video(
    video: UploadFile = File(..., description="CCTV footage"),
    location: Optional[str] = Form(None),
    frame_count: Optional[int] = Form(None, ge=1, le=60),
) -> dict:
    """Sample the video, detect faces and compare them to every active person."""
    path = _save_upload(video)
    LOGGER.info("Received %s (%d bytes) from %s", video.filename, path.stat().st_size, location or "unknown location")
    try:
        return analysis_service.analyze_video(
            path,
            video_filename=video.filename,
            location=location,
            frame_count=frame_count,
        )
    finally:
        path.unlink(missing_ok=True)


@router.post("/compare-faces")
def compare_faces(body: CompareFacesRequest) -> dict:
    """Compare one frame (or faces already cropped from it) to every active person."""
    detected = [face.model_dump() for face in body.detected_faces] if body.detected_faces else None
    try:
        return analysis_service.compare_frame(
            body.video_frame_base64,
            video_filename=body.video_filename,
            location=body.location,
            detected_faces=detected,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/dashboard/stats")
def dashboard_stats() -> dict:
    return analysis_service.stats()


__all__ = ["router"]

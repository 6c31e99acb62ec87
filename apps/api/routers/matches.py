"""Match review endpoints."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from apps.api.services.matches import MatchesService

router = APIRouter()
matches_service = MatchesService()

MatchStatusValue = Literal["pending", "high_priority", "confirmed", "dismissed"]


class MatchStatusUpdate(BaseModel):
    status: MatchStatusValue


@router.get("/matches")
def list_matches(status: Optional[MatchStatusValue] = Query(None)) -> dict:
    """Matches newest first, each joined with its missing person."""
    matches = matches_service.list_matches(status=status)
    return {"matches": matches, "count": len(matches)}


@router.get("/matches/{match_id}")
def get_match(match_id: str) -> dict:
    match = matches_service.get_match(match_id)
    if not match:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")
    return match


@router.patch("/matches/{match_id}")
def update_match_status(match_id: str, body: MatchStatusUpdate) -> dict:
    try:
        match = matches_service.update_status(match_id, body.status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not match:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")
    return match


__all__ = ["router"]

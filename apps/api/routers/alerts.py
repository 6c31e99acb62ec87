"""Alert feed endpoints and the alarm sound."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

from apps.api.services.matches import ALERT_LIST_LIMIT, AlertsService
from py_missingwatch.alarm import alarm_wav_bytes

router = APIRouter()
alerts_service = AlertsService()


@router.get("/alerts")
def list_alerts(limit: int = Query(ALERT_LIST_LIMIT, ge=1, le=ALERT_LIST_LIMIT)) -> dict:
    alerts = alerts_service.list_alerts(limit=limit)
    return {"alerts": alerts, "unread_count": alerts_service.unread_count()}


@router.get("/alerts/alarm.wav")
def alarm_sound() -> Response:
    """Alarm tone played by clients when a new alert arrives."""
    return Response(
        content=alarm_wav_bytes(),
        media_type="audio/wav",
        headers={"Cache-Control": "public, max-age=86400"},
    )


@router.post("/alerts/read_all")
def mark_all_alerts_read() -> dict:
    updated = alerts_service.mark_all_read()
    return {"updated": updated, "unread_count": 0}


@router.post("/alerts/{alert_id}/read")
def mark_alert_read(alert_id: str) -> dict:
    alert = alerts_service.mark_read(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return alert


__all__ = ["router"]

"""Persist accepted comparison outcomes as match + alert rows."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

from apps.api.services.matches import AlertsService, MatchesService
from apps.api.services.storage import StorageService
from apps.api.services.tables import new_id
from py_missingwatch.config import ACCEPT_THRESHOLD, HIGH_PRIORITY_THRESHOLD
from py_missingwatch.pipeline.dispatcher import ComparisonOutcome
from py_missingwatch.pipeline.engine import AnalysisContext
from py_missingwatch.pipeline.routing import alert_message, route

LOGGER = logging.getLogger(__name__)

FACE_PREFIX = "faces"


class StoreMatchRecorder:
    def __init__(
        self,
        matches: MatchesService,
        alerts: AlertsService,
        storage: StorageService,
        accept: float = ACCEPT_THRESHOLD,
        high_priority: float = HIGH_PRIORITY_THRESHOLD,
        run_id: Optional[str] = None,
    ):
        self.matches = matches
        self.alerts = alerts
        self.storage = storage
        self.accept = accept
        self.high_priority = high_priority
        self.run_id = run_id

    def _store_face(self, outcome: ComparisonOutcome) -> Optional[str]:
        if outcome.task.total_faces < 1:
            # Full-frame candidate; the frame itself is already stored.
            return None
        data = base64.b64decode(outcome.task.face.face_image_b64)
        return self.storage.put(f"{FACE_PREFIX}/{new_id()}.jpg", data, "image/jpeg")

    def record(self, outcome: ComparisonOutcome, context: AnalysisContext) -> Optional[Dict[str, Any]]:
        result = outcome.result
        if result is None:
            return None
        decision = route(result, self.accept, self.high_priority)
        if not decision.accepted:
            return None
        person = outcome.task.person
        name = person.get("name") or "Unknown"
        LOGGER.info("Match found for %s with confidence %.1f%%", name, result.confidence)

        details: Dict[str, Any] = dict(result.analysis_details)
        if outcome.task.total_faces > 0:
            details.setdefault("face_index", outcome.task.face_index)
            details.setdefault("total_faces_in_frame", outcome.task.total_faces)

        match = self.matches.insert_match(
            {
                "missing_person_id": person.get("id"),
                "confidence_score": result.confidence,
                "face_similarity": result.face_similarity,
                "appearance_match": result.appearance_match,
                "reasoning": result.reasoning,
                "analysis_details": details,
                "face_index": outcome.task.face_index if outcome.task.total_faces > 0 else None,
                "total_faces": outcome.task.total_faces,
                "face_box": outcome.task.face.box.to_dict(),
                "timestamp_s": outcome.task.face.timestamp_s,
                "video_filename": context.video_filename,
                "location": context.location or "Unknown",
                "frame_key": context.frame_key,
                "face_key": self._store_face(outcome),
                "status": decision.status.value,
                "analysis_run_id": self.run_id,
            }
        )
        try:
            self.alerts.insert_alert(
                {
                    "match_id": match["id"],
                    "missing_person_id": person.get("id"),
                    "alert_type": decision.alert_type.value,
                    "message": alert_message(name, result.confidence, result.reasoning),
                }
            )
        except Exception:
            # An alert failure never rolls back the match row.
            LOGGER.exception("Error creating alert for match %s", match["id"])
        return match

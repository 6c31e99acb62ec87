"""Video and frame analysis runs wired to the stores."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from apps.api import config
from apps.api.services.matches import AlertsService, MatchesService
from apps.api.services.persons import PersonsService
from apps.api.services.recorder import StoreMatchRecorder
from apps.api.services.storage import StorageService
from apps.api.services.tables import new_id, now_iso, parse_iso
from py_missingwatch.config import AnalysisConfig, load_analysis_config
from py_missingwatch.face_extractor import DetectFn, DetectedFace, FaceBox, FaceDetector
from py_missingwatch.frame_sampler import FrameSample, decode_image, from_base64, to_base64
from py_missingwatch.layout import get_path
from py_missingwatch.pipeline.comparison import ComparisonClient
from py_missingwatch.pipeline.dispatcher import make_compare_fn
from py_missingwatch.pipeline.engine import (
    NO_ACTIVE_PERSONS_MESSAGE,
    AnalysisContext,
    AnalysisResult,
    ProgressFn,
    compare_and_record,
    extract_unique_faces,
    run_video_analysis,
)

LOGGER = logging.getLogger(__name__)

FRAME_PREFIX = "frames"


class AnalysisService:
    def __init__(
        self,
        persons: Optional[PersonsService] = None,
        matches: Optional[MatchesService] = None,
        alerts: Optional[AlertsService] = None,
        comparison_client: Optional[ComparisonClient] = None,
        detector: Optional[DetectFn] = None,
        config_loader: Callable[[], AnalysisConfig] = load_analysis_config,
    ):
        self.persons = persons or PersonsService()
        self.matches = matches or MatchesService(self.persons)
        self.alerts = alerts or AlertsService(self.persons)
        self.comparison_client = comparison_client
        self.detector = detector
        self.config_loader = config_loader
        self._detector_lock = threading.Lock()
        self._detector_key: Optional[str] = None
        self._runs_lock = threading.Lock()

    @property
    def storage(self) -> StorageService:
        return self.persons.storage

    # ------------------------------------------------------------- wiring
    def _client(self, cfg: AnalysisConfig) -> ComparisonClient:
        current = self.comparison_client
        if current is None or (isinstance(current, ComparisonClient) and current.timeout_s != cfg.timeout_s):
            self.comparison_client = ComparisonClient(
                model=config.VISION_MODEL,
                base_url=config.VISION_API_BASE_URL or None,
                timeout_s=cfg.timeout_s,
            )
        return self.comparison_client

    def _detector(self, cfg: AnalysisConfig) -> DetectFn:
        key = repr(cfg.detector_cfg())
        with self._detector_lock:
            if self.detector is None or (isinstance(self.detector, FaceDetector) and key != self._detector_key):
                self.detector = FaceDetector(cfg.detector_cfg())
                self._detector_key = key
            return self.detector

    def _store_frame(self, jpeg: bytes) -> str:
        return self.storage.put(f"{FRAME_PREFIX}/{new_id()}.jpg", jpeg, "image/jpeg")

    def _recorder(self, cfg: AnalysisConfig, run_id: str) -> StoreMatchRecorder:
        return StoreMatchRecorder(
            self.matches,
            self.alerts,
            self.storage,
            accept=cfg.accept,
            high_priority=cfg.high_priority,
            run_id=run_id,
        )

    # ---------------------------------------------------------------- runs
    def analyze_video(
        self,
        video_path: Path,
        video_filename: Optional[str] = None,
        location: Optional[str] = None,
        frame_count: Optional[int] = None,
        progress: Optional[ProgressFn] = None,
    ) -> Dict[str, Any]:
        cfg = self.config_loader()
        if frame_count is not None:
            cfg.frame_count = frame_count
            cfg.validate()
        run_id = new_id()
        persons = self.persons.active_persons()
        LOGGER.info("Analysis %s: %s against %d active person(s)", run_id, video_filename, len(persons))
        context = AnalysisContext(video_filename=video_filename or Path(video_path).name, location=location)
        result = run_video_analysis(
            video_path,
            persons,
            compare_fn=make_compare_fn(self._client(cfg), self.persons.reference_url) if persons else None,
            detector=self._detector(cfg) if persons else None,
            cfg=cfg,
            context=context,
            recorder=self._recorder(cfg, run_id),
            store_frame=self._store_frame,
            progress=progress,
        )
        return self._finish(run_id, "video", context, result)

    def compare_frame(
        self,
        frame_b64: str,
        video_filename: Optional[str] = None,
        location: Optional[str] = None,
        detected_faces: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Analyse one frame, optionally with faces the client already cropped."""
        cfg = self.config_loader()
        run_id = new_id()
        context = AnalysisContext(video_filename=video_filename, location=location)
        persons = self.persons.active_persons()
        if not persons:
            result = AnalysisResult(message=NO_ACTIVE_PERSONS_MESSAGE)
            return self._finish(run_id, "frame", context, result)

        frame_bytes = from_base64(frame_b64)
        image = decode_image(frame_bytes)
        client_faces = [_face_from_payload(face) for face in detected_faces or []]
        context.frame_key = self._store_frame(frame_bytes)
        full_frame = False
        if client_faces:
            faces = client_faces
            faces_detected = len(faces)
        else:
            sample = FrameSample(index=0, timestamp_s=0.0, image=image)
            extraction = extract_unique_faces([sample], self._detector(cfg), cfg)
            faces = extraction.faces
            faces_detected = extraction.faces_detected
            full_frame = extraction.full_frame_fallback

        result = compare_and_record(
            faces,
            persons,
            make_compare_fn(self._client(cfg), self.persons.reference_url),
            cfg,
            context,
            recorder=self._recorder(cfg, run_id),
            full_frame=full_frame,
        )
        result.frames_sampled = 1
        result.faces_detected = faces_detected
        result.unique_faces = 0 if full_frame else len(faces)
        result.full_frame_fallback = full_frame
        return self._finish(run_id, "frame", context, result)

    def _finish(self, run_id: str, kind: str, context: AnalysisContext, result: AnalysisResult) -> Dict[str, Any]:
        summary = result.summary()
        self._log_run(run_id, kind, context, summary)
        recorded = {m.get("missing_person_id"): m for m in result.recorded}
        matches = []
        for outcome in result.accepted:
            person = outcome.task.person
            matches.append(
                {
                    "person": {"id": person.get("id"), "name": person.get("name")},
                    "match": recorded.get(person.get("id")),
                    "confidence": outcome.result.confidence,
                    "reasoning": outcome.result.reasoning,
                    "face_index": outcome.task.face_index,
                }
            )
        failures = [
            {
                "person_id": outcome.task.person.get("id"),
                "face_index": outcome.task.face_index,
                "error": outcome.error,
            }
            for outcome in result.failures
        ]
        return {
            "run_id": run_id,
            "message": result.message,
            "video_filename": context.video_filename,
            "location": context.location or "Unknown",
            "summary": summary,
            "matches": matches,
            "failures": failures,
        }

    def _log_run(self, run_id: str, kind: str, context: AnalysisContext, summary: Dict[str, Any]) -> None:
        path = get_path("analysis_runs")
        path.parent.mkdir(parents=True, exist_ok=True)
        row = {
            "run_id": run_id,
            "kind": kind,
            "video_filename": context.video_filename,
            "location": context.location,
            "finished_at": now_iso(),
            **summary,
        }
        with self._runs_lock, path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(row) + "\n")

    def _runs(self) -> List[Dict[str, Any]]:
        path = get_path("analysis_runs")
        rows: List[Dict[str, Any]] = []
        try:
            with path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        rows.append(json.loads(line))
                    except json.JSONDecodeError:
                        LOGGER.warning("Skipping malformed run log line in %s", path)
        except FileNotFoundError:
            return []
        return rows

    def stats(self) -> Dict[str, int]:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
        frames_24h = 0
        for run in self._runs():
            finished = run.get("finished_at")
            if finished and parse_iso(finished) >= cutoff:
                frames_24h += int(run.get("frames_sampled") or 0)
        persons = self.persons.list_persons()
        return {
            "total_missing_persons": sum(1 for p in persons if p.get("status") == "active"),
            "frames_analyzed_24h": frames_24h,
            "pending_matches": self.matches.count_by_status("pending", "high_priority"),
            "resolved_cases": sum(1 for p in persons if p.get("status") == "resolved"),
        }


def _face_from_payload(payload: Dict[str, Any]) -> DetectedFace:
    box = payload.get("box") or {}
    return DetectedFace(
        face_image_b64=to_base64(from_base64(str(payload["face_image"]))),
        box=FaceBox(
            x=float(box.get("x", 0.0)),
            y=float(box.get("y", 0.0)),
            width=float(box.get("width", 0.0)),
            height=float(box.get("height", 0.0)),
        ),
        confidence=float(payload.get("confidence", 0.0)),
    )

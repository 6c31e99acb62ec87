"""Video analysis engine - UI-agnostic orchestration of the match pipeline.

Usage:
    from py_missingwatch.pipeline import run_video_analysis, load_analysis_config

    cfg = load_analysis_config()
    result = run_video_analysis(
        "clip.mp4",
        persons,
        compare_fn=make_compare_fn(ComparisonClient(), resolve_reference),
        detector=FaceDetector(cfg.detector_cfg()),
        cfg=cfg,
    )
    print(f"{result.unique_faces} faces, {len(result.recorded)} matches")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from py_missingwatch.config import AnalysisConfig
from py_missingwatch.dedup import deduplicate_faces
from py_missingwatch.face_extractor import DetectFn, DetectedFace, FaceBox, extract_faces
from py_missingwatch.frame_sampler import FrameSample, encode_jpeg, main_frame_index, sample_frames, to_base64
from py_missingwatch.pipeline.dispatcher import (
    CompareFn,
    ComparisonOutcome,
    accepted,
    best_per_person,
    build_tasks,
    dispatch_tasks,
)
from py_missingwatch.pipeline.routing import route

LOGGER = logging.getLogger(__name__)

NO_ACTIVE_PERSONS_MESSAGE = "No active missing persons to compare"

ProgressFn = Callable[[str], None]


@dataclass
class AnalysisContext:
    """Where the footage came from; copied onto every recorded match."""

    video_filename: Optional[str] = None
    location: Optional[str] = None
    frame_key: Optional[str] = None


class MatchRecorder(Protocol):
    def record(self, outcome: ComparisonOutcome, context: AnalysisContext) -> Optional[Dict[str, Any]]:
        ...


@dataclass
class FaceExtraction:
    frames_sampled: int
    faces_detected: int
    faces: List[DetectedFace]
    main_frame_jpeg: Optional[bytes] = None
    full_frame_fallback: bool = False

    @property
    def unique_faces(self) -> int:
        return 0 if self.full_frame_fallback else len(self.faces)


@dataclass
class AnalysisResult:
    frames_sampled: int = 0
    faces_detected: int = 0
    unique_faces: int = 0
    comparisons: int = 0
    accepted: List[ComparisonOutcome] = field(default_factory=list)
    recorded: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[ComparisonOutcome] = field(default_factory=list)
    full_frame_fallback: bool = False
    elapsed_s: float = 0.0
    message: str = ""

    def summary(self) -> Dict[str, Any]:
        return {
            "frames_sampled": self.frames_sampled,
            "faces_detected": self.faces_detected,
            "unique_faces": self.unique_faces,
            "comparisons": self.comparisons,
            "matches_found": len(self.accepted),
            "failed_comparisons": len(self.failures),
            "full_frame_fallback": self.full_frame_fallback,
            "elapsed_s": round(self.elapsed_s, 3),
            "message": self.message,
        }


def _emit(progress: Optional[ProgressFn], message: str) -> None:
    LOGGER.info(message)
    if progress is not None:
        progress(message)


def full_frame_candidate(sample: FrameSample, jpeg_quality: int = 80) -> DetectedFace:
    """Wrap a whole frame as a comparison candidate when no face was found."""
    return DetectedFace(
        face_image_b64=to_base64(encode_jpeg(sample.image, jpeg_quality)),
        box=FaceBox(0.0, 0.0, float(sample.width), float(sample.height)),
        confidence=0.0,
        frame_index=sample.index,
        timestamp_s=sample.timestamp_s,
    )


def pick_main_sample(samples: Sequence[FrameSample], frame_count: int) -> FrameSample:
    """Return the middle sample by sampling index, or the nearest one that decoded."""
    target = main_frame_index(frame_count)
    return min(samples, key=lambda sample: (abs(sample.index - target), sample.index))


def extract_unique_faces(
    samples: Sequence[FrameSample],
    detector: DetectFn,
    cfg: AnalysisConfig,
    progress: Optional[ProgressFn] = None,
) -> FaceExtraction:
    """Detect faces on every sample and collapse repeats across frames."""
    detected: List[DetectedFace] = []
    total = len(samples)
    for position, sample in enumerate(samples, start=1):
        _emit(progress, f"Detecting faces in frame {position}/{total}...")
        detected.extend(
            extract_faces(
                sample,
                detector,
                padding=cfg.padding,
                min_size=cfg.min_face_size,
                jpeg_quality=cfg.face_jpeg_quality,
            )
        )
    unique = deduplicate_faces(detected, radius_px=cfg.radius_px)

    main_jpeg = None
    main_sample = None
    if samples:
        main_sample = pick_main_sample(samples, cfg.frame_count)
        main_jpeg = encode_jpeg(main_sample.image, cfg.main_frame_jpeg_quality)

    extraction = FaceExtraction(
        frames_sampled=total,
        faces_detected=len(detected),
        faces=unique,
        main_frame_jpeg=main_jpeg,
    )
    if not unique and main_sample is not None and cfg.compare_full_frame_when_no_faces:
        _emit(progress, "No faces detected; comparing the full frame instead")
        extraction.faces = [full_frame_candidate(main_sample, cfg.main_frame_jpeg_quality)]
        extraction.full_frame_fallback = True
    _emit(progress, f"Found {len(unique)} unique face(s) across {total} frame(s)")
    return extraction


def compare_and_record(
    faces: Sequence[DetectedFace],
    persons: Sequence[Mapping[str, Any]],
    compare_fn: CompareFn,
    cfg: AnalysisConfig,
    context: AnalysisContext,
    recorder: Optional[MatchRecorder] = None,
    full_frame: bool = False,
    progress: Optional[ProgressFn] = None,
) -> AnalysisResult:
    """Fan out comparisons, then keep and record the accepted verdicts."""
    result = AnalysisResult()
    if not persons:
        result.message = NO_ACTIVE_PERSONS_MESSAGE
        return result
    if not faces:
        result.message = "No faces to compare"
        return result

    tasks = build_tasks(faces, persons, total_faces=0 if full_frame else len(faces))
    _emit(progress, f"Comparing {len(faces)} face(s) against {len(persons)} missing person(s)...")
    report = dispatch_tasks(tasks, compare_fn, max_workers=cfg.max_workers)
    result.comparisons = report.total
    result.failures = report.failed

    kept = [
        outcome
        for outcome in accepted(report.succeeded, cfg.accept)
        if route(outcome.result, cfg.accept, cfg.high_priority).accepted
    ]
    result.accepted = best_per_person(kept)
    if recorder is not None:
        for outcome in result.accepted:
            record = recorder.record(outcome, context)
            if record is not None:
                result.recorded.append(record)
    result.message = f"Analysis complete. Found {len(result.accepted)} potential matches."
    return result


def run_video_analysis(
    video_path: Path | str,
    persons: Sequence[Mapping[str, Any]],
    compare_fn: CompareFn,
    detector: DetectFn,
    cfg: AnalysisConfig,
    context: Optional[AnalysisContext] = None,
    recorder: Optional[MatchRecorder] = None,
    store_frame: Optional[Callable[[bytes], str]] = None,
    progress: Optional[ProgressFn] = None,
) -> AnalysisResult:
    """Sample a video, extract unique faces and compare them to every person."""
    started = time.monotonic()
    context = context or AnalysisContext(video_filename=Path(video_path).name)
    if not persons:
        _emit(progress, NO_ACTIVE_PERSONS_MESSAGE)
        return AnalysisResult(message=NO_ACTIVE_PERSONS_MESSAGE)

    samples = sample_frames(video_path, cfg.frame_count)
    extraction = extract_unique_faces(samples, detector, cfg, progress=progress)
    if store_frame is not None and extraction.main_frame_jpeg is not None and not context.frame_key:
        context.frame_key = store_frame(extraction.main_frame_jpeg)

    result = compare_and_record(
        extraction.faces,
        persons,
        compare_fn,
        cfg,
        context,
        recorder=recorder,
        full_frame=extraction.full_frame_fallback,
        progress=progress,
    )
    result.frames_sampled = extraction.frames_sampled
    result.faces_detected = extraction.faces_detected
    result.unique_faces = extraction.unique_faces
    result.full_frame_fallback = extraction.full_frame_fallback
    result.elapsed_s = time.monotonic() - started
    _emit(progress, result.message)
    return result

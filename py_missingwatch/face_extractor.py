"""Face detection and crop normalisation.

Detection is delegated to InsightFace RetinaFace. A deterministic simulated
detector is available for tests/CI via `MISSINGWATCH_VISION_SIM=1` or
`cfg["force_simulated"]=True`; it still exercises the real crop and encode
path.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2  # type: ignore
import numpy as np

from py_missingwatch.errors import DetectorUnavailableError
from py_missingwatch.frame_sampler import FrameSample, encode_jpeg, to_base64

LOGGER = logging.getLogger(__name__)

DEFAULT_PADDING = 0.5
DEFAULT_MIN_FACE_SIZE = 256
DEFAULT_FACE_JPEG_QUALITY = 95


@dataclass(frozen=True)
class FaceBox:
    """Axis-aligned box in source pixel coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @classmethod
    def from_xyxy(cls, bbox: Sequence[float]) -> "FaceBox":
        x1, y1, x2, y2 = (float(v) for v in bbox[:4])
        return cls(x=x1, y=y1, width=max(0.0, x2 - x1), height=max(0.0, y2 - y1))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Detection:
    box: FaceBox
    confidence: float


@dataclass
class DetectedFace:
    """A normalised face crop ready to be sent for comparison."""

    face_image_b64: str
    box: FaceBox
    confidence: float
    frame_index: int = 0
    timestamp_s: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "face_image": self.face_image_b64,
            "box": self.box.to_dict(),
            "confidence": self.confidence,
            "frame_index": self.frame_index,
            "timestamp_s": self.timestamp_s,
        }


DetectFn = Callable[[np.ndarray], List[Detection]]


class FaceDetector:
    """Wrap InsightFace RetinaFace with a deterministic simulated mode."""

    def __init__(self, cfg: Dict[str, object] | None = None):
        self.cfg = dict(cfg or {})
        self.min_confidence = float(self.cfg.get("min_confidence", 0.5))
        self.simulated = bool(
            self.cfg.get("force_simulated") or os.getenv("MISSINGWATCH_VISION_SIM") == "1"
        )
        self._model = None
        if not self.simulated:
            self._init_model()

    def _init_model(self) -> None:
        try:
            from insightface.app import FaceAnalysis  # type: ignore
        except ImportError as exc:
            raise DetectorUnavailableError(
                "insightface is required for face detection. Install with: pip install insightface onnxruntime"
            ) from exc
        profile = str(self.cfg.get("insightface_profile", "buffalo_l"))
        det_size = self.cfg.get("det_size", (640, 640))
        if isinstance(det_size, list):
            det_size = tuple(det_size)
        kwargs: Dict[str, object] = {"name": profile, "allowed_modules": ["detection"]}
        providers = self.cfg.get("providers")
        if providers:
            kwargs["providers"] = providers
        try:
            model = FaceAnalysis(**kwargs)
            model.prepare(ctx_id=int(self.cfg.get("ctx_id", -1)), det_size=det_size)
        except Exception as exc:  # pragma: no cover - exercised in integration
            raise DetectorUnavailableError(f"Failed to initialise RetinaFace ({profile}): {exc}") from exc
        LOGGER.info("Loaded RetinaFace detector profile=%s det_size=%s", profile, det_size)
        self._model = model

    def __call__(self, frame: np.ndarray) -> List[Detection]:
        if self.simulated:
            detections = [self._simulated_detection(frame)]
        else:
            detections = [
                Detection(box=FaceBox.from_xyxy(face.bbox.tolist()), confidence=float(face.det_score))
                for face in self._model.get(frame)
            ]
        return [det for det in detections if det.confidence >= self.min_confidence]

    def _simulated_detection(self, frame: np.ndarray) -> Detection:
        """Generate a deterministic box centred on the brightest pixels."""
        h, w = frame.shape[:2]
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        min_val, max_val, _, max_loc = cv2.minMaxLoc(gray)
        span = max(0.05, min(0.25, (max_val - min_val) / 255.0))
        half_w = span * w / 2
        half_h = span * h / 2
        x1 = max(0.0, max_loc[0] - half_w)
        y1 = max(0.0, max_loc[1] - half_h)
        x2 = min(float(w), max_loc[0] + half_w)
        y2 = min(float(h), max_loc[1] + half_h)
        return Detection(box=FaceBox.from_xyxy([x1, y1, x2, y2]), confidence=float(span + 0.5))


def padded_region(
    box: FaceBox,
    frame_width: int,
    frame_height: int,
    padding: float = DEFAULT_PADDING,
) -> Tuple[float, float, float, float]:
    """Grow `box` by `padding` of its size on every side, clipped to the frame.

    Returns ``(x, y, width, height)``.
    """
    x = max(0.0, box.x - box.width * padding)
    y = max(0.0, box.y - box.height * padding)
    width = min(box.width * (1 + padding * 2), frame_width - x)
    height = min(box.height * (1 + padding * 2), frame_height - y)
    return x, y, max(0.0, width), max(0.0, height)


def crop_face(
    image: np.ndarray,
    box: FaceBox,
    padding: float = DEFAULT_PADDING,
    min_size: int = DEFAULT_MIN_FACE_SIZE,
) -> Optional[np.ndarray]:
    """Crop a padded face region and upscale it so its short side is >= min_size."""
    frame_h, frame_w = image.shape[:2]
    x, y, width, height = padded_region(box, frame_w, frame_h, padding)
    if width < 1 or height < 1:
        return None
    x0, y0 = int(math.floor(x)), int(math.floor(y))
    x1 = min(frame_w, int(math.ceil(x + width)))
    y1 = min(frame_h, int(math.ceil(y + height)))
    crop = image[y0:y1, x0:x1]
    if crop.size == 0:
        return None
    scale = max(1.0, min_size / min(width, height))
    out_w = int(round(width * scale))
    out_h = int(round(height * scale))
    if (out_w, out_h) == (crop.shape[1], crop.shape[0]):
        return crop.copy()
    return cv2.resize(crop, (out_w, out_h), interpolation=cv2.INTER_CUBIC)


def extract_faces(
    sample: FrameSample,
    detector: DetectFn,
    padding: float = DEFAULT_PADDING,
    min_size: int = DEFAULT_MIN_FACE_SIZE,
    jpeg_quality: int = DEFAULT_FACE_JPEG_QUALITY,
) -> List[DetectedFace]:
    """Detect every face in a sampled frame and return normalised crops."""
    faces: List[DetectedFace] = []
    for det in detector(sample.image):
        crop = crop_face(sample.image, det.box, padding=padding, min_size=min_size)
        if crop is None:
            LOGGER.debug("Skipping degenerate box %s in frame %d", det.box, sample.index)
            continue
        faces.append(
            DetectedFace(
                face_image_b64=to_base64(encode_jpeg(crop, jpeg_quality)),
                box=det.box,
                confidence=det.confidence,
                frame_index=sample.index,
                timestamp_s=sample.timestamp_s,
            )
        )
    return faces

"""Collapse detections of the same person across sampled frames."""

from __future__ import annotations

import math
from typing import Iterable, List, Tuple

from py_missingwatch.face_extractor import DetectedFace

DEFAULT_RADIUS_PX = 50.0


def _distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def deduplicate_faces(faces: Iterable[DetectedFace], radius_px: float = DEFAULT_RADIUS_PX) -> List[DetectedFace]:
    """Keep the first face seen at each position.

    A face whose box centre is strictly closer than `radius_px` to the centre
    of an already kept face is treated as the same person and dropped. Input
    order (frame order) is preserved.
    """
    kept: List[DetectedFace] = []
    seen: List[Tuple[float, float]] = []
    for face in faces:
        center = face.box.center
        if any(_distance(center, pos) < radius_px for pos in seen):
            continue
        kept.append(face)
        seen.append(center)
    return kept
